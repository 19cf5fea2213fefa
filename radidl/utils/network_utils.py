"""
ネットワーク処理ユーティリティ

HTTPセッション作成とリトライ処理の統一機能
全てのネットワーク呼び出しは呼び出し箇所ごとに調整したリトライ回数・待機時間で
retry_operation / fetch_with_retry を経由する。
"""

import asyncio
import time
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

import requests

T = TypeVar('T')

# 既定のタイムアウト（秒）
API_TIMEOUT = 30
PAGE_TIMEOUT = 120
SEGMENT_TIMEOUT = 30

DEFAULT_RETRIES = 3
DEFAULT_RETRY_DELAY = 0.3


class TimeoutSession(requests.Session):
    """全リクエストに既定タイムアウトを適用するセッション

    requests.Session は属性としてのタイムアウトを持たないため、
    request() 呼び出し時に timeout が未指定なら補完する。
    """

    def __init__(self, timeout: float = API_TIMEOUT):
        super().__init__()
        self.timeout = timeout

    def request(self, method, url, **kwargs):
        kwargs.setdefault('timeout', self.timeout)
        return super().request(method, url, **kwargs)


def create_radiko_session(
    timeout: float = API_TIMEOUT,
    additional_headers: Optional[Dict[str, str]] = None
) -> requests.Session:
    """Radiko API用の標準セッションを作成

    Args:
        timeout: リクエストタイムアウト秒数（デフォルト: 30秒）
        additional_headers: 追加ヘッダー辞書

    Returns:
        requests.Session: 設定済みセッション

    Example:
        session = create_radiko_session()
        response = session.get("https://radiko.jp/v3/station/list/JP13.xml")
    """
    session = TimeoutSession(timeout)

    standard_headers = {
        'User-Agent': 'RadiDL/1.0',
        'Accept': '*/*',
        'Accept-Language': 'ja,en;q=0.9',
        'Connection': 'keep-alive'
    }

    if additional_headers:
        standard_headers.update(additional_headers)

    session.headers.update(standard_headers)
    return session


def retry_operation(operation: Callable[[], T],
                    retries: int = DEFAULT_RETRIES,
                    delay: float = DEFAULT_RETRY_DELAY) -> T:
    """操作を失敗時にリトライする

    初回に加えて最大 retries 回再試行する。k回目の再試行前に delay * k 秒待機する
    （線形バックオフ）。全て失敗した場合は最後の例外をそのまま送出する。

    Args:
        operation: 引数なしの呼び出し可能オブジェクト
        retries: 追加試行回数
        delay: 基本待機秒数

    Returns:
        operation の戻り値
    """
    attempt = 0
    while True:
        try:
            return operation()
        except Exception:
            if attempt >= retries:
                raise
            attempt += 1
            time.sleep(delay * attempt)


async def async_retry_operation(operation: Callable[[], Awaitable[T]],
                                retries: int = DEFAULT_RETRIES,
                                delay: float = DEFAULT_RETRY_DELAY) -> T:
    """retry_operation のコルーチン版

    Args:
        operation: 呼び出すたびに新しいawaitableを返すファクトリ
    """
    attempt = 0
    while True:
        try:
            return await operation()
        except Exception:
            if attempt >= retries:
                raise
            attempt += 1
            await asyncio.sleep(delay * attempt)


def fetch_with_retry(session: requests.Session,
                     url: str,
                     retries: int = DEFAULT_RETRIES,
                     delay: float = DEFAULT_RETRY_DELAY,
                     method: str = 'GET',
                     **kwargs: Any) -> requests.Response:
    """単一のHTTPリクエストをリトライ付きで実行

    通信例外のみリトライ対象。ステータスコードの判定は呼び出し側が行う。
    """
    return retry_operation(
        lambda: session.request(method, url, **kwargs),
        retries=retries,
        delay=delay
    )


def is_success(response: requests.Response) -> bool:
    """2xxレスポンスかどうか"""
    return 200 <= response.status_code < 300
