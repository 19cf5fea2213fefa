"""
ログ設定モジュール

RadiDLプロジェクト全体のログ設定を統一管理します。
- 通常使用時：ファイル出力（詳細モード時のみコンソール出力）
- テスト時：ファイル出力なし、エラーのみコンソール出力
"""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Union


class RadiDLLogConfig:
    """RadiDLのログ設定管理クラス"""

    # デフォルト設定
    DEFAULT_LOG_LEVEL = logging.INFO
    DEFAULT_LOG_FILE = "radidl.log"
    DEFAULT_MAX_LOG_SIZE = 10 * 1024 * 1024  # 10MB
    LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

    def __init__(self):
        self._initialized = False
        self._is_test_mode = self._detect_test_mode()
        self._console_output = self._determine_console_output()

    def _detect_test_mode(self) -> bool:
        """テストモードかどうかを判定"""
        return any([
            'PYTEST_CURRENT_TEST' in os.environ,
            'pytest' in sys.modules,
            os.environ.get('RADIDL_TEST_MODE', '').lower() == 'true'
        ])

    def _determine_console_output(self) -> bool:
        """コンソール出力を行うかどうかを判定"""
        console_env = os.environ.get('RADIDL_CONSOLE_OUTPUT', '').lower()
        if console_env == 'true':
            return True
        elif console_env == 'false':
            return False

        return self._is_test_mode

    def setup_logging(self,
                     log_level: Optional[Union[str, int]] = None,
                     log_file: Optional[str] = None,
                     console_output: Optional[bool] = None,
                     max_log_size: Optional[int] = None) -> None:
        """
        ログ設定を初期化

        Args:
            log_level: ログレベル（DEBUG, INFO, WARNING, ERROR, CRITICAL）
            log_file: ログファイルパス
            console_output: コンソール出力の有無（None時は自動判定）
            max_log_size: ログファイルの最大サイズ（バイト）
        """
        if self._initialized:
            return

        if log_level is None:
            log_level = os.environ.get('RADIDL_LOG_LEVEL', self.DEFAULT_LOG_LEVEL)

        if isinstance(log_level, str):
            log_level = getattr(logging, log_level.upper(), self.DEFAULT_LOG_LEVEL)

        if log_file is None:
            log_file = os.environ.get('RADIDL_LOG_FILE', self.DEFAULT_LOG_FILE)

        if console_output is None:
            console_output = self._console_output

        if max_log_size is None:
            max_log_size = self.DEFAULT_MAX_LOG_SIZE

        handlers = []

        # ファイルハンドラー（テスト時以外で有効）
        if log_file and not self._is_test_mode:
            try:
                Path(log_file).parent.mkdir(parents=True, exist_ok=True)
                file_handler = RotatingFileHandler(
                    log_file,
                    maxBytes=max_log_size,
                    backupCount=5,
                    encoding='utf-8'
                )
                file_handler.setLevel(log_level)
                handlers.append(file_handler)

            except OSError as e:
                print(f"Warning: Failed to create log file handler: {e}", file=sys.stderr)

        if console_output:
            console_handler = logging.StreamHandler(sys.stderr)
            # テスト時はERRORレベル以上のみ出力
            if self._is_test_mode:
                console_handler.setLevel(logging.ERROR)
            else:
                console_handler.setLevel(log_level)
            handlers.append(console_handler)

        if handlers:
            logging.basicConfig(
                level=log_level,
                handlers=handlers,
                format=self.LOG_FORMAT,
                datefmt='%Y-%m-%d %H:%M:%S',
                force=True
            )
        else:
            logging.basicConfig(
                level=log_level,
                handlers=[logging.NullHandler()],
                force=True
            )

        self._initialized = True

        logging.getLogger(__name__).debug(
            f"ログ設定完了 - レベル: {logging.getLevelName(log_level)}, "
            f"ファイル: {log_file}, コンソール出力: {console_output}"
        )

    def get_logger(self, name: str) -> logging.Logger:
        """
        ロガーを取得

        Args:
            name: ロガー名

        Returns:
            logging.Logger: 設定済みのロガー
        """
        if not self._initialized:
            self.setup_logging()

        return logging.getLogger(name)

    def is_test_mode(self) -> bool:
        """テストモードかどうかを返す"""
        return self._is_test_mode

    def reset(self) -> None:
        """ログ設定をリセット（テスト用）"""
        self._initialized = False
        root_logger = logging.getLogger()
        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)
            handler.close()


# グローバルインスタンス
_log_config = RadiDLLogConfig()


def setup_logging(log_level: Optional[Union[str, int]] = None,
                 log_file: Optional[str] = None,
                 console_output: Optional[bool] = None,
                 max_log_size: Optional[int] = None) -> None:
    """RadiDLのログ設定を初期化"""
    _log_config.setup_logging(log_level, log_file, console_output, max_log_size)


def get_logger(name: str) -> logging.Logger:
    """ロガーを取得"""
    return _log_config.get_logger(name)


def is_test_mode() -> bool:
    """テストモードかどうかを返す"""
    return _log_config.is_test_mode()


def reset_logging() -> None:
    """ログ設定をリセット（テスト用）"""
    _log_config.reset()
