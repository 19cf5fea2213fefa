"""
RadiDL ユーティリティモジュール

共通機能やヘルパー関数を提供するユーティリティパッケージ
"""

from typing import List
from .base import LoggerMixin
from .datetime_utils import parse_timestamp, format_timestamp, step_timestamp, now_timestamp
from .path_utils import ensure_directory_path_exists, sanitize_filename_part, build_program_filename
from .network_utils import create_radiko_session, retry_operation, async_retry_operation, fetch_with_retry

__all__: List[str] = [
    'LoggerMixin',
    'parse_timestamp',
    'format_timestamp',
    'step_timestamp',
    'now_timestamp',
    'ensure_directory_path_exists',
    'sanitize_filename_part',
    'build_program_filename',
    'create_radiko_session',
    'retry_operation',
    'async_retry_operation',
    'fetch_with_retry',
]
