"""
タイムフリーダウンロードモジュール

番組参照URLから録音ファイルを作成するまでのパイプラインを統括します。
段階: 番組参照の解決 → 地域解決 → 認証 → 番組情報 → プレイリスト → セグメント取得・結合
各段階で発生した例外には段階名（stage）を付与して、そのまま送出します。
"""

from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, List, Optional, Sequence, Tuple, Union

import requests

from .area_resolver import AreaResolver
from .audio import ProgressCallback, SegmentDownloader
from .auth import TokenManager
from .cache_store import JsonCacheStore
from .detail_reference import DetailReference
from .detail_resolver import DetailResolver, create_detail_resolver
from .error_handler import (
    ErrorHandler, NoSegments, PlaylistExpired, PlaylistFetchError, format_error, tag_stage
)
from .key_material import KeyMaterialLoader
from .playlist import PlaylistBuilder
from .program_info import ProgramInfoResolver, ProgramMeta
from .utils.base import LoggerMixin
from .utils.config_utils import AppConfig
from .utils.network_utils import create_radiko_session
from .utils.path_utils import build_program_filename

STAGE_RESOLVE = "resolve"
STAGE_AREA = "area"
STAGE_AUTH = "auth"
STAGE_PROGRAM = "program"
STAGE_PLAYLIST = "playlist"
STAGE_SEGMENTS = "segments"

TOKEN_CACHE_FILE = "auth-tokens.json"
AREA_CACHE_FILE = "station-areas.json"
ENCRYPTION_KEY_FILE = "encryption.key"
BROWSER_STATE_FILE = "storage-state.json"

# プレイリスト取得でこのステータスが返った場合はトークン失効とみなす
TOKEN_REJECTED_STATUS = 403


@contextmanager
def stage(name: str) -> Iterator[None]:
    """ブロック内で発生した例外に段階名を付与して再送出"""
    try:
        yield
    except Exception as e:
        tag_stage(e, name)
        raise


@dataclass
class DownloadResult:
    """1番組のダウンロード結果"""
    reference: str
    detail: DetailReference
    area_id: str
    program: ProgramMeta
    output_path: Path
    bytes_written: int
    segment_count: int


@dataclass
class BatchResult:
    """バッチ処理結果"""
    succeeded: List[DownloadResult] = field(default_factory=list)
    failures: List[Tuple[str, str]] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return len(self.succeeded)

    @property
    def failure_count(self) -> int:
        return len(self.failures)

    @property
    def exit_code(self) -> int:
        """全件成功なら0、1件でも失敗があれば2"""
        return 2 if self.failures else 0


class TimeFreeDownloader(LoggerMixin):
    """タイムフリー番組ダウンローダー"""

    def __init__(self,
                 session: Optional[requests.Session] = None,
                 detail_resolver: Optional[DetailResolver] = None,
                 area_resolver: Optional[AreaResolver] = None,
                 token_manager: Optional[TokenManager] = None,
                 program_resolver: Optional[ProgramInfoResolver] = None,
                 playlist_builder: Optional[PlaylistBuilder] = None,
                 segment_downloader: Optional[SegmentDownloader] = None):
        super().__init__()
        self.session = session or create_radiko_session()
        self.detail_resolver = detail_resolver or create_detail_resolver("api", self.session)
        self.area_resolver = area_resolver or AreaResolver(self.session)
        self.token_manager = token_manager or TokenManager(self.session)
        self.program_resolver = program_resolver or ProgramInfoResolver(self.session)
        self.playlist_builder = playlist_builder or PlaylistBuilder(self.session)
        self.segment_downloader = segment_downloader or SegmentDownloader()

    @classmethod
    def from_config(cls, config: AppConfig,
                    session: Optional[requests.Session] = None) -> 'TimeFreeDownloader':
        """設定からダウンローダーを構築（キャッシュは cache_dir 配下に永続化）"""
        session = session or create_radiko_session()
        cache_dir = Path(config.cache_dir)
        key_path = cache_dir / ENCRYPTION_KEY_FILE if config.encrypt_cache else None

        return cls(
            session=session,
            detail_resolver=create_detail_resolver(config.resolver, session, cache_dir / BROWSER_STATE_FILE),
            area_resolver=AreaResolver(session, JsonCacheStore(cache_dir / AREA_CACHE_FILE, key_path)),
            token_manager=TokenManager(
                session,
                key_material_loader=KeyMaterialLoader(config.key_file),
                store=JsonCacheStore(cache_dir / TOKEN_CACHE_FILE, key_path),
                ttl_seconds=config.token_ttl_seconds
            ),
            program_resolver=ProgramInfoResolver(session),
            playlist_builder=PlaylistBuilder(session, window_seconds=config.window_seconds),
            segment_downloader=SegmentDownloader(concurrency=config.concurrency)
        )

    def download(self, reference: str, output_dir: Union[str, Path],
                 area_id: Optional[str] = None,
                 on_progress: Optional[ProgressCallback] = None) -> DownloadResult:
        """1番組をダウンロードして保存

        Args:
            reference: 番組参照URL（直接参照または検索参照）
            output_dir: 出力ディレクトリ
            area_id: 地域IDの指定（指定時は地域解決を行わない）
            on_progress: セグメント取得の進捗コールバック
        """
        with stage(STAGE_RESOLVE):
            detail = self.detail_resolver.resolve(reference)
        self.logger.info(f"番組参照: {detail.station_id} {detail.start_time}")

        with stage(STAGE_AREA):
            resolved_area = area_id or self.area_resolver.resolve_area(detail.station_id)

        with stage(STAGE_AUTH):
            token = self.token_manager.get_token(resolved_area)

        with stage(STAGE_PROGRAM):
            program = self.program_resolver.resolve_meta(detail.station_id, detail.start_time)
        self.logger.info(f"番組情報: {program.title} ({program.duration_seconds}秒)")

        with stage(STAGE_PLAYLIST):
            try:
                locators = self.playlist_builder.build_segment_urls(
                    detail.station_id, program.start_time, program.end_time, token, resolved_area
                )
            except (PlaylistExpired, PlaylistFetchError) as e:
                if isinstance(e, PlaylistExpired) or getattr(e, 'status_code', None) == TOKEN_REJECTED_STATUS:
                    self.logger.warning(f"トークンが拒否されたためキャッシュを破棄します: {resolved_area}")
                    self.token_manager.invalidate(resolved_area)
                raise
            if not locators:
                raise NoSegments(f"セグメントが見つかりません: {detail.to_url()}")

        output_path = Path(output_dir) / build_program_filename(program.title, program.start_time)
        with stage(STAGE_SEGMENTS):
            bytes_written = self.segment_downloader.merge(locators, output_path, on_progress)

        self.logger.info(f"保存完了: {output_path} ({bytes_written} bytes)")
        return DownloadResult(
            reference=reference,
            detail=detail,
            area_id=resolved_area,
            program=program,
            output_path=output_path,
            bytes_written=bytes_written,
            segment_count=len(locators)
        )

    def download_batch(self, references: Sequence[str], output_dir: Union[str, Path],
                       area_id: Optional[str] = None,
                       on_progress: Optional[ProgressCallback] = None,
                       error_handler: Optional[ErrorHandler] = None) -> BatchResult:
        """複数番組を順にダウンロード（1件の失敗は他に影響しない）"""
        error_handler = error_handler or ErrorHandler()
        result = BatchResult()

        for index, reference in enumerate(references, 1):
            self.logger.info(f"[{index}/{len(references)}] 処理開始: {reference}")
            try:
                result.succeeded.append(self.download(reference, output_dir, area_id, on_progress))
            except Exception as e:
                error_handler.handle_error(e, reference)
                result.failures.append((reference, format_error(e)))

        self.logger.info(f"バッチ処理完了: 成功 {result.success_count}件 / 失敗 {result.failure_count}件")
        return result

    def close(self) -> None:
        """ブラウザ等の外部リソースを解放"""
        close_browser = getattr(self.detail_resolver, 'close_browser', None)
        if close_browser:
            close_browser()
        self.session.close()

    def __enter__(self) -> 'TimeFreeDownloader':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
