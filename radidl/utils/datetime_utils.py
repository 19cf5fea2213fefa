"""
日時処理ユーティリティ

Radikoの14桁タイムスタンプ（YYYYMMDDhhmmss, JST）の解析・整形・加算を提供します。
固定長・ゼロ埋めのため、文字列比較がそのまま時系列比較になります。
"""

import re
from datetime import datetime, timedelta
from typing import Optional

import pytz

JST = pytz.timezone('Asia/Tokyo')

TIMESTAMP_FORMAT = '%Y%m%d%H%M%S'
TIMESTAMP_PATTERN = re.compile(r'^\d{14}$')
SEARCH_TIME_PATTERN = re.compile(
    r'^(\d{4})-(\d{2})-(\d{2})[ T](\d{2}):(\d{2}):(\d{2})$'
)


def is_timestamp(value: str) -> bool:
    """14桁タイムスタンプ形式かどうか"""
    return bool(value) and TIMESTAMP_PATTERN.match(value) is not None


def parse_timestamp(ts: str) -> datetime:
    """14桁タイムスタンプをdatetime（JST壁時計、naive）に変換

    Raises:
        ValueError: 形式不正、または存在しない日時
    """
    if not is_timestamp(ts):
        raise ValueError(f"不正なタイムスタンプ: {ts!r}")
    return datetime.strptime(ts, TIMESTAMP_FORMAT)


def format_timestamp(dt: datetime) -> str:
    """datetimeを14桁タイムスタンプに変換"""
    return dt.strftime(TIMESTAMP_FORMAT)


def step_timestamp(ts: str, seconds: int) -> str:
    """タイムスタンプを指定秒数だけ進める

    日・月・年の繰り上がり（うるう年を含む）はdatetime演算に任せる。
    JSTには夏時間がないため、naiveな加算で壁時計と一致する。

    Example:
        step_timestamp("20251231235500", 300)  # "20260101000000"
    """
    return format_timestamp(parse_timestamp(ts) + timedelta(seconds=seconds))


def now_timestamp(now: Optional[datetime] = None) -> str:
    """現在時刻（JST）を14桁タイムスタンプで返す

    Args:
        now: 基準時刻。naiveな値はJST壁時計として扱い、aware値はJSTへ変換する
    """
    if now is None:
        now = datetime.now(JST)
    elif now.tzinfo is not None:
        now = now.astimezone(JST)
    return format_timestamp(now)


def search_time_to_timestamp(value: str) -> str:
    """検索APIの "YYYY-MM-DD hh:mm:ss" 形式を14桁タイムスタンプに変換

    Returns:
        変換結果。形式が一致しない場合は空文字
    """
    match = SEARCH_TIME_PATTERN.match((value or '').strip())
    if not match:
        return ""
    return ''.join(match.groups())
