"""
セグメント取得・結合モジュール

セグメントURLを固定数のワーカーで並行ダウンロードし、先頭のID3ヘッダーを除去した上で
元の順序どおりに連結して1つのAACファイルとして保存します。
"""

import asyncio
import struct
from pathlib import Path
from typing import Awaitable, Callable, List, Optional, Sequence, TypeVar, Union

import aiohttp

from .error_handler import NoSegments, SegmentFetchError
from .utils.base import LoggerMixin
from .utils.network_utils import SEGMENT_TIMEOUT, async_retry_operation
from .utils.path_utils import ensure_directory_exists

T = TypeVar('T')
R = TypeVar('R')

ProgressCallback = Callable[[int, int], None]

ID3_MAGIC = b'ID3'
ID3_HEADER_SIZE = 10

DEFAULT_CONCURRENCY = 4

# セグメント単体の取得（内側）と、取得+ヘッダー除去全体（外側）のリトライ設定
FETCH_RETRIES = 1
FETCH_RETRY_DELAY = 0.15
SEGMENT_RETRIES = 3
SEGMENT_RETRY_DELAY = 0.3


def strip_container_header(data: bytes) -> bytes:
    """先頭のID3ヘッダーを除去

    "ID3" で始まり10バイト以上ある場合、10 + (オフセット6のビッグエンディアン32bit値)
    バイトを除去する。それ以外はそのまま返す。

    Raises:
        ValueError: 宣言されたヘッダー長がデータ長を超える
    """
    if len(data) < ID3_HEADER_SIZE or not data.startswith(ID3_MAGIC):
        return data

    payload_size = struct.unpack('>I', data[6:10])[0]
    header_size = ID3_HEADER_SIZE + payload_size
    if header_size > len(data):
        raise ValueError(f"ID3ヘッダー長がデータ長を超えています: {header_size} > {len(data)}")
    return data[header_size:]


async def run_with_concurrency(items: Sequence[T],
                               worker: Callable[[T, int], Awaitable[R]],
                               limit: int) -> List[R]:
    """limit 個のワーカーで items を処理し、結果を元の順序で返す

    各ワーカーは共有のインデックスを1つずつ取得して処理し、結果をそのインデックス位置に書き込む。
    いずれかが失敗した場合は残りのワーカーをキャンセルして例外を送出する。
    """
    results: List[Optional[R]] = [None] * len(items)
    cursor = 0

    async def runner() -> None:
        nonlocal cursor
        while cursor < len(items):
            index = cursor
            cursor += 1
            results[index] = await worker(items[index], index)

    worker_count = min(max(limit, 1), len(items))
    tasks = [asyncio.ensure_future(runner()) for _ in range(worker_count)]
    try:
        await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise

    return results


class SegmentDownloader(LoggerMixin):
    """セグメントの並行ダウンロードと結合を行うクラス"""

    def __init__(self, concurrency: int = DEFAULT_CONCURRENCY, timeout: float = SEGMENT_TIMEOUT):
        super().__init__()
        self.concurrency = concurrency
        self.timeout = timeout

    async def _fetch_segment_bytes(self, session: aiohttp.ClientSession, url: str) -> bytes:
        """セグメント1件を取得"""
        async with session.get(url) as response:
            if response.status < 200 or response.status >= 300:
                raise SegmentFetchError(f"セグメント取得失敗: ステータス {response.status} {url}",
                                        status_code=response.status, context={'url': url})
            return await response.read()

    async def _download_segment(self, session: aiohttp.ClientSession, url: str) -> bytes:
        async def fetch_and_strip() -> bytes:
            data = await async_retry_operation(
                lambda: self._fetch_segment_bytes(session, url),
                retries=FETCH_RETRIES, delay=FETCH_RETRY_DELAY
            )
            return strip_container_header(data)

        return await async_retry_operation(fetch_and_strip,
                                           retries=SEGMENT_RETRIES, delay=SEGMENT_RETRY_DELAY)

    async def fetch_and_merge(self, locators: Sequence[str],
                              output_path: Union[str, Path],
                              on_progress: Optional[ProgressCallback] = None) -> int:
        """全セグメントを取得・結合してファイルに書き込む

        Args:
            locators: セグメントURL（時系列順）
            output_path: 出力ファイルパス（親ディレクトリは自動作成）
            on_progress: (完了数, 総数) を受け取るコールバック。最初に (0, 総数) で呼ばれる

        Returns:
            書き込んだバイト数

        Raises:
            NoSegments: セグメントが0件
            SegmentFetchError: リトライ後もセグメントを取得できない
        """
        if not locators:
            raise NoSegments("セグメントがありません")

        total = len(locators)
        done = 0
        if on_progress:
            on_progress(0, total)

        self.logger.info(f"セグメントダウンロード開始: {total}件 (並行数: {self.concurrency})")

        async with aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=self.timeout),
            connector=aiohttp.TCPConnector(limit=self.concurrency)
        ) as session:

            async def worker(url: str, index: int) -> bytes:
                nonlocal done
                data = await self._download_segment(session, url)
                done += 1
                if on_progress:
                    on_progress(done, total)
                return data

            segments = await run_with_concurrency(locators, worker, self.concurrency)

        merged = b''.join(segments)
        path = ensure_directory_exists(output_path)
        with open(path, 'wb') as f:
            f.write(merged)

        self.logger.info(f"セグメント結合完了: {path} ({len(merged)} bytes)")
        return len(merged)

    def merge(self, locators: Sequence[str], output_path: Union[str, Path],
              on_progress: Optional[ProgressCallback] = None) -> int:
        """fetch_and_merge の同期版"""
        return asyncio.run(self.fetch_and_merge(locators, output_path, on_progress))


def merge_segments(locators: Sequence[str], output_path: Union[str, Path],
                   on_progress: Optional[ProgressCallback] = None,
                   concurrency: int = DEFAULT_CONCURRENCY) -> int:
    """セグメントを取得・結合してファイルに保存（同期エントリ）"""
    return SegmentDownloader(concurrency=concurrency).merge(locators, output_path, on_progress)
