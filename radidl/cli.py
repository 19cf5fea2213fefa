"""
コマンドラインインターフェース

設定ファイル（JSON）または引数で指定した番組URLを順にダウンロードします。

終了コード:
    0: 全件成功
    1: 設定エラー等で処理を開始できなかった
    2: 1件以上失敗した
"""

import argparse
import logging
from pathlib import Path
from typing import Callable, List, Optional

from tqdm import tqdm

from . import __version__
from .downloader import BatchResult, TimeFreeDownloader
from .error_handler import ErrorHandler, RadiDLError, format_error
from .logging_config import reset_logging, setup_logging
from .utils.base import LoggerMixin
from .utils.config_utils import DEFAULT_CONFIG, AppConfig, load_app_config

EXIT_OK = 0
EXIT_FATAL = 1
EXIT_PARTIAL_FAILURE = 2

DEFAULT_CONFIG_PATH = "config.json"


class TqdmProgress:
    """(完了数, 総数) の進捗通知をtqdmのプログレスバーに反映する

    (0, 総数) を受け取るたびに新しいバーを開始する。
    """

    def __init__(self, desc: str = "セグメントダウンロード"):
        self.desc = desc
        self.bar: Optional[tqdm] = None

    def __call__(self, completed: int, total: int) -> None:
        if completed == 0:
            self.close()
            self.bar = tqdm(total=total, desc=self.desc, unit="seg")
            return
        if self.bar is not None:
            self.bar.update(completed - self.bar.n)

    def close(self) -> None:
        if self.bar is not None:
            self.bar.close()
            self.bar = None


class RadiDLCLI(LoggerMixin):
    """RadiDL CLIメインクラス"""

    VERSION = __version__

    def __init__(self,
                 downloader_factory: Callable[[AppConfig], TimeFreeDownloader] = TimeFreeDownloader.from_config,
                 error_handler: Optional[ErrorHandler] = None):
        super().__init__()
        self.downloader_factory = downloader_factory
        self.error_handler = error_handler or ErrorHandler()

    def create_parser(self) -> argparse.ArgumentParser:
        """コマンドライン引数パーサーを作成"""
        parser = argparse.ArgumentParser(
            prog='RadiDL',
            description='Radikoタイムフリー番組をAACファイルとして保存します',
            formatter_class=argparse.RawDescriptionHelpFormatter,
            epilog="""
使用例:
  python RadiDL.py                                  # config.json の links を処理
  python RadiDL.py -c my.json                       # 設定ファイルを指定
  python RadiDL.py "https://radiko.jp/#!/ts/TBS/20260219010000"
            """
        )

        parser.add_argument('--version', action='version', version=f'RadiDL {self.VERSION}')
        parser.add_argument('--config', '-c', help='設定ファイルパス', default=DEFAULT_CONFIG_PATH)
        parser.add_argument('--verbose', '-v', action='store_true', help='詳細ログを表示')
        parser.add_argument('links', nargs='*', help='番組URL（指定時は設定ファイルの links より優先）')

        return parser

    def _setup_logging(self, log_level: str, verbose: bool = False) -> None:
        """ログ設定（verbose時はDEBUGレベルでコンソールにも出力）"""
        reset_logging()
        setup_logging(
            log_level=logging.DEBUG if verbose else log_level,
            console_output=verbose
        )

    def load_config(self, config_path: str, links: List[str]) -> AppConfig:
        """設定を読み込む

        設定ファイルがなくても引数で番組URLが指定されていれば既定値で動作する。

        Raises:
            ConfigurationError: 設定が不正、または番組URLが1件もない
        """
        path = Path(config_path)
        if path.exists() or not links:
            return load_app_config(path, overrides={'links': links or None})

        self.logger.info(f"設定ファイルがないため既定値を使用します: {path}")
        return AppConfig.from_dict(dict(DEFAULT_CONFIG, links=links))

    def run(self, args: Optional[List[str]] = None) -> int:
        """CLIメインエントリーポイント"""
        parser = self.create_parser()
        parsed_args = parser.parse_args(args)

        try:
            config = self.load_config(parsed_args.config, parsed_args.links)
        except RadiDLError as e:
            self._setup_logging("INFO", parsed_args.verbose)
            self.logger.error(f"設定エラー: {format_error(e)}")
            print(f"設定エラー: {e}")
            return EXIT_FATAL

        self._setup_logging(config.log_level, parsed_args.verbose)

        try:
            downloader = self.downloader_factory(config)
        except RadiDLError as e:
            self.logger.error(f"初期化エラー: {format_error(e)}")
            print(f"初期化エラー: {e}")
            return EXIT_FATAL

        progress = TqdmProgress()
        try:
            with downloader:
                result = downloader.download_batch(
                    config.links,
                    config.output_dir,
                    area_id=config.area_id,
                    on_progress=progress,
                    error_handler=self.error_handler
                )
        except KeyboardInterrupt:
            print("\n操作がキャンセルされました")
            return EXIT_FATAL
        finally:
            progress.close()

        self._print_summary(result)
        return result.exit_code

    def _print_summary(self, result: BatchResult) -> None:
        for item in result.succeeded:
            print(f"保存しました: {item.output_path} ({item.program.title})")

        print(f"完了: 成功 {result.success_count}件 / 失敗 {result.failure_count}件")
        for reference, message in result.failures:
            print(f"  失敗: {reference}")
            print(f"    {message}")


def main(args: Optional[List[str]] = None) -> int:
    """コンソールスクリプト用エントリーポイント"""
    return RadiDLCLI().run(args)
