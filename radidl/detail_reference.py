"""
番組参照解析モジュール

Radikoのタイムフリー番組URL（ハッシュ形式）を解析します。
- 直接参照: https://radiko.jp/#!/ts/<放送局ID>/<開始時刻14桁>
- 検索参照: https://radiko.jp/#!/search/timeshift?key=<キーワード>
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Iterable, Optional, Union
from urllib.parse import parse_qs, urlsplit

from .error_handler import MalformedReference, NoCandidates
from .utils.datetime_utils import is_timestamp, now_timestamp

SEARCH_MARKER = "#!/search/timeshift"
DETAIL_MARKER = "#!/ts/"
DETAIL_URL_TEMPLATE = "https://radiko.jp/#!/ts/{station_id}/{start_time}"


class ReferenceKind(Enum):
    """番組参照の種別"""
    DIRECT = "direct"
    SEARCH = "search"
    UNSUPPORTED = "unsupported"


@dataclass(frozen=True)
class DetailReference:
    """放送局IDと開始時刻の組（番組の一意な識別子）"""
    station_id: str
    start_time: str

    def __post_init__(self):
        if not self.station_id:
            raise MalformedReference("放送局IDが空です")
        if not is_timestamp(self.start_time):
            raise MalformedReference(f"開始時刻が14桁ではありません: {self.start_time!r}")

    def to_url(self) -> str:
        """正規化された直接参照URL"""
        return DETAIL_URL_TEMPLATE.format(station_id=self.station_id, start_time=self.start_time)


def classify(reference: str) -> ReferenceKind:
    """参照文字列の種別を判定"""
    if SEARCH_MARKER in reference:
        return ReferenceKind.SEARCH
    if DETAIL_MARKER in reference:
        return ReferenceKind.DIRECT
    return ReferenceKind.UNSUPPORTED


def _fragment(reference: str) -> str:
    fragment = urlsplit(reference).fragment
    if fragment.startswith("!"):
        fragment = fragment[1:]
    return fragment


def parse_direct(reference: str) -> DetailReference:
    """直接参照URLから DetailReference を抽出

    Raises:
        MalformedReference: "ts/<放送局>/<時刻>" の3要素がない、または時刻が14桁でない
    """
    parts = [part for part in _fragment(reference).split("/") if part]
    if len(parts) < 3 or parts[0] != "ts":
        raise MalformedReference(f"不正な番組URLです: {reference}")

    station_id, start_time = parts[1], parts[2]
    if not is_timestamp(start_time):
        raise MalformedReference(f"番組URLの開始時刻が不正です: {reference}")

    return DetailReference(station_id=station_id, start_time=start_time)


def extract_search_key(reference: str) -> str:
    """検索参照URLのハッシュ内クエリから key を取り出す（なければ空文字）"""
    fragment = _fragment(reference)
    _, sep, query = fragment.partition("?")
    if not sep or not query:
        return ""
    values = parse_qs(query).get("key")
    return values[0] if values else ""


def pick_latest(candidates: Iterable[Union[DetailReference, str]],
                now: Optional[Union[datetime, str]] = None) -> DetailReference:
    """候補の中から現在時刻以前で最も新しい番組を選ぶ

    タイムスタンプは固定長・ゼロ埋めのため、文字列比較で時系列順になる。
    未来の再放送枠などは除外し、形式不正な候補文字列は読み飛ばす。

    Args:
        candidates: DetailReference または直接参照URL
        now: 基準時刻（datetime または14桁タイムスタンプ、省略時は現在JST）

    Raises:
        NoCandidates: 条件に合う候補がない
    """
    now_ts = now if isinstance(now, str) else now_timestamp(now)

    eligible = []
    for candidate in candidates:
        if isinstance(candidate, str):
            try:
                candidate = parse_direct(candidate)
            except MalformedReference:
                continue
        if candidate.start_time <= now_ts:
            eligible.append(candidate)

    if not eligible:
        raise NoCandidates("検索結果に利用可能な番組がありません")

    return max(eligible, key=lambda ref: ref.start_time)
