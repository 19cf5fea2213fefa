"""
TimeFreeDownloader 統合テスト

擬似HTTPセッションでパイプライン全体を通し、出力ファイル・段階タグ・バッチ処理を確認する。
"""

import tempfile
import unittest
from pathlib import Path
from unittest.mock import MagicMock, patch

from radidl.area_resolver import AreaResolver
from radidl.audio import SegmentDownloader
from radidl.auth import TokenManager
from radidl.detail_resolver import ApiDetailResolver, PageDetailResolver
from radidl.downloader import BatchResult, TimeFreeDownloader
from radidl.error_handler import (
    ErrorHandler, MalformedReference, NoSegments, PlaylistExpired, PlaylistFetchError, ProgramNotFound
)
from radidl.playlist import PlaylistBuilder
from radidl.program_info import ProgramInfoResolver
from radidl.utils.config_utils import AppConfig
from tests.utils.fake_http import FakeResponse, FakeSession
from tests.utils.radiko_fixtures import (
    auth1_response, id3_wrapped, make_key_material, station_list_xml, stream_config_xml, weekly_program_xml
)

REFERENCE = "https://radiko.jp/#!/ts/ALPHA/20260219000000"
PLAYLIST_URL = "https://tf.example/tf/playlist.m3u8"


def segment_body(url: str) -> bytes:
    return id3_wrapped(url.rsplit('/', 1)[1].encode(), tag_size=6)


async def fake_fetch(self, session, url):
    return segment_body(url)


class PipelineTestCase(unittest.TestCase):
    """擬似Radikoサービスを組み立てる基底クラス"""

    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.output_dir = Path(self.temp_dir.name) / "out"

        self.sleep_patcher = patch('radidl.utils.network_utils.time.sleep')
        self.sleep_patcher.start()
        self.fetch_patcher = patch.object(SegmentDownloader, '_fetch_segment_bytes', fake_fetch)
        self.fetch_patcher.start()

        self.session = FakeSession()
        self.session.route("/station/list/JP13.xml", FakeResponse(200, station_list_xml("JP13", ["TBS", "ALPHA"])))
        self.session.route("/station/list/", FakeResponse(200, station_list_xml("JPX", [])))
        self.session.route("auth1", auth1_response("TOKEN-1"))
        self.session.route("auth2", FakeResponse(200, "ok"))
        self.session.route("weekly/ALPHA.xml", FakeResponse(200, weekly_program_xml("ALPHA", [
            {"ft": "20260219000000", "to": "20260219003000", "title": "Test Show"},
        ])))
        self.session.route("pc_html5/ALPHA.xml", FakeResponse(200, stream_config_xml(PLAYLIST_URL)))

        def playlist(method, url, kwargs):
            seek = url.split('seek=')[1][:14]
            return FakeResponse(200, f"#EXTM3U\nhttps://chunk.example/{seek}.m3u8\n")

        def chunklist(method, url, kwargs):
            seek = url.rsplit('/', 1)[1][:14]
            return FakeResponse(200, "#EXTM3U\n" + "\n".join(
                f"https://seg.example/{seek}-{n}.aac" for n in range(3)
            ))

        self.playlist_handler = self.default_playlist_handler = playlist
        self.session.route("tf.example", lambda m, u, k: self.playlist_handler(m, u, k))
        self.session.route("chunk.example", chunklist)

        self.downloader = TimeFreeDownloader(
            session=self.session,
            detail_resolver=ApiDetailResolver(self.session),
            area_resolver=AreaResolver(self.session),
            token_manager=TokenManager(self.session, make_key_material),
            program_resolver=ProgramInfoResolver(self.session),
            playlist_builder=PlaylistBuilder(self.session, window_seconds=900),
            segment_downloader=SegmentDownloader()
        )

    def tearDown(self):
        self.fetch_patcher.stop()
        self.sleep_patcher.stop()
        self.temp_dir.cleanup()


class TestDownloadPipeline(PipelineTestCase):
    """1番組のダウンロード"""

    def test_01_エンドツーエンド(self):
        """
        ALPHA 20260219000000 - 20260219003000 "Test Show" を900秒の時間窓2つで取得する
        """
        progress = []

        result = self.downloader.download(REFERENCE, self.output_dir,
                                          on_progress=lambda done, total: progress.append((done, total)))

        # Then: 時間窓2つ分のプレイリストとchunklist
        self.assertEqual(len(self.session.calls_to("tf.example")), 2)
        self.assertEqual(len(self.session.calls_to("chunk.example")), 2)
        self.assertEqual(result.segment_count, 6)

        # Then: ファイル名と内容
        expected_path = self.output_dir / "Test Show - 20260219.aac"
        self.assertEqual(result.output_path, expected_path)
        self.assertTrue(expected_path.exists())

        seeks = ["20260219000000", "20260219001500"]
        expected = b"".join(f"{seek}-{n}.aac".encode() for seek in seeks for n in range(3))
        self.assertEqual(expected_path.read_bytes(), expected)
        self.assertEqual(result.bytes_written, len(expected))

        self.assertEqual(result.area_id, "JP13")
        self.assertEqual(result.program.title, "Test Show")
        self.assertEqual(progress[0], (0, 6))
        self.assertEqual(progress[-1], (6, 6))

    def test_02_地域指定時は地域解決を行わない(self):
        result = self.downloader.download(REFERENCE, self.output_dir, area_id="JP27")

        self.assertEqual(result.area_id, "JP27")
        self.assertEqual(self.session.calls_to("/station/list/"), [])
        _, _, kwargs = self.session.calls_to("tf.example")[0]
        self.assertEqual(kwargs['headers']['X-Radiko-AreaId'], "JP27")

    def test_03_2回目はキャッシュを使用(self):
        self.downloader.download(REFERENCE, self.output_dir)
        self.downloader.download(REFERENCE, self.output_dir)

        self.assertEqual(len(self.session.calls_to("auth1")), 1)
        self.assertEqual(len(self.session.calls_to("/station/list/")), 13)


class TestStageTagging(PipelineTestCase):
    """段階タグ"""

    def test_01_参照解析の失敗(self):
        with self.assertRaises(MalformedReference) as ctx:
            self.downloader.download("https://example.com/abc", self.output_dir)
        self.assertEqual(ctx.exception.stage, "resolve")

    def test_02_番組情報の失敗(self):
        with self.assertRaises(ProgramNotFound) as ctx:
            self.downloader.download("https://radiko.jp/#!/ts/ALPHA/20260219001000", self.output_dir)
        self.assertEqual(ctx.exception.stage, "program")

    def test_03_プレイリストの失敗(self):
        self.playlist_handler = lambda m, u, k: FakeResponse(200, "expired")
        with self.assertRaises(PlaylistExpired) as ctx:
            self.downloader.download(REFERENCE, self.output_dir)
        self.assertEqual(ctx.exception.stage, "playlist")
        self.assertFalse(self.output_dir.exists())

    def test_04_セグメントなし(self):
        self.session.routes.insert(0, ("chunk.example", FakeResponse(200, "#EXTM3U\n")))
        with self.assertRaises(NoSegments) as ctx:
            self.downloader.download(REFERENCE, self.output_dir)
        self.assertEqual(ctx.exception.stage, "playlist")

    def test_05_通信例外も段階タグ付きでそのまま送出(self):
        self.session.routes.insert(0, ("auth1", ConnectionError("reset")))
        with self.assertRaises(ConnectionError) as ctx:
            self.downloader.download(REFERENCE, self.output_dir, area_id="JP13")
        self.assertEqual(ctx.exception.stage, "auth")


class TestTokenRejection(PipelineTestCase):
    """プレイリストでトークンが拒否された場合"""

    def test_01_403でトークンを破棄して次回は再認証(self):
        self.playlist_handler = lambda m, u, k: FakeResponse(403, "forbidden")

        for _ in range(2):
            with self.assertRaises(PlaylistFetchError) as ctx:
                self.downloader.download(REFERENCE, self.output_dir)
            self.assertEqual(ctx.exception.status_code, 403)
            self.assertEqual(ctx.exception.stage, "playlist")

        self.assertEqual(len(self.session.calls_to("auth1")), 2)
        self.assertEqual(self.downloader.token_manager.store.load_all(), {})

    def test_02_expiredでもトークンを破棄(self):
        self.playlist_handler = lambda m, u, k: FakeResponse(200, "expired")
        with self.assertRaises(PlaylistExpired):
            self.downloader.download(REFERENCE, self.output_dir)

        self.playlist_handler = self.default_playlist_handler
        self.downloader.download(REFERENCE, self.output_dir)
        self.assertEqual(len(self.session.calls_to("auth1")), 2)

    def test_03_403以外の失敗ではトークンを保持(self):
        self.playlist_handler = lambda m, u, k: FakeResponse(404, "not found")
        with self.assertRaises(PlaylistFetchError):
            self.downloader.download(REFERENCE, self.output_dir)

        self.assertIn("JP13", self.downloader.token_manager.store.load_all())
        self.playlist_handler = self.default_playlist_handler
        self.downloader.download(REFERENCE, self.output_dir)
        self.assertEqual(len(self.session.calls_to("auth1")), 1)


class TestDownloadBatch(PipelineTestCase):
    """バッチ処理"""

    def test_01_失敗しても残りを処理(self):
        handler = ErrorHandler()
        references = [
            "https://example.com/abc",
            REFERENCE,
            "https://radiko.jp/#!/ts/ALPHA/20260219001000",
        ]

        result = self.downloader.download_batch(references, self.output_dir, error_handler=handler)

        self.assertEqual(result.success_count, 1)
        self.assertEqual(result.failure_count, 2)
        self.assertEqual(result.exit_code, 2)
        self.assertEqual([ref for ref, _ in result.failures], [references[0], references[2]])
        self.assertIn("stage=resolve", result.failures[0][1])
        self.assertIn("stage=program", result.failures[1][1])
        self.assertEqual(handler.summary(), {"MalformedReference": 1, "ProgramNotFound": 1})

    def test_02_全件成功(self):
        result = self.downloader.download_batch([REFERENCE], self.output_dir)
        self.assertEqual(result.exit_code, 0)

    def test_03_空の結果(self):
        self.assertEqual(BatchResult().exit_code, 0)


class TestFromConfig(unittest.TestCase):
    """設定からの構築"""

    def test_01_設定値を各部品に反映(self):
        with tempfile.TemporaryDirectory() as tmp:
            config = AppConfig(links=[REFERENCE], cache_dir=tmp, encrypt_cache=True,
                               window_seconds=600, concurrency=2, token_ttl_minutes=10)
            downloader = TimeFreeDownloader.from_config(config, session=FakeSession())

            self.assertEqual(downloader.playlist_builder.window_seconds, 600)
            self.assertEqual(downloader.segment_downloader.concurrency, 2)
            self.assertEqual(downloader.token_manager.ttl_seconds, 600)
            self.assertEqual(downloader.token_manager.store.path, Path(tmp) / "auth-tokens.json")
            self.assertEqual(downloader.area_resolver.store.encryption_key_path, Path(tmp) / "encryption.key")
            self.assertIsInstance(downloader.detail_resolver, ApiDetailResolver)

    def test_02_ページ方式のブラウザ状態はキャッシュディレクトリに保存(self):
        with tempfile.TemporaryDirectory() as tmp:
            config = AppConfig(links=[REFERENCE], cache_dir=tmp, resolver="page")
            downloader = TimeFreeDownloader.from_config(config, session=FakeSession())

            self.assertIsInstance(downloader.detail_resolver, PageDetailResolver)
            self.assertEqual(downloader.detail_resolver.storage_state_path, Path(tmp) / "storage-state.json")

    def test_03_closeでブラウザを終了(self):
        resolver = MagicMock()
        downloader = TimeFreeDownloader(session=FakeSession(), detail_resolver=resolver)
        with downloader:
            pass
        resolver.close_browser.assert_called_once()
        self.assertTrue(downloader.session.closed)


if __name__ == '__main__':
    unittest.main()
