"""
パス処理ユーティリティ

出力ディレクトリ作成と録音ファイル名生成の統一機能
"""

import re
from pathlib import Path
from typing import Union

DEFAULT_TITLE = "program"
OUTPUT_EXTENSION = ".aac"

_FORBIDDEN_CHARS = re.compile(r'[\\/:*?"<>|]')
_UNDERSCORE_RUN = re.compile(r'_+')
_WHITESPACE_RUN = re.compile(r'\s+')


def ensure_directory_path_exists(dir_path: Union[str, Path]) -> Path:
    """ディレクトリパスを作成し、Pathオブジェクトを返す

    既存のディレクトリがある場合はエラーにならない。
    """
    path = Path(dir_path)
    path.mkdir(parents=True, exist_ok=True)
    return path


def ensure_directory_exists(file_path: Union[str, Path]) -> Path:
    """ファイルパスの親ディレクトリを作成し、Pathオブジェクトを返す"""
    path = Path(file_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    return path


def sanitize_filename_part(value: str) -> str:
    """ファイル名の一部として安全な文字列に変換

    - \\ / : * ? " < > | を "_" に置換
    - 連続する "_" と空白を1文字にまとめる
    - 前後の空白を除去し、空になった場合は "program"

    Example:
        sanitize_filename_part('A/B:C*D?"E<F>G|')  # 'A_B_C_D_E_F_G_'
    """
    sanitized = _FORBIDDEN_CHARS.sub('_', value or '')
    sanitized = _UNDERSCORE_RUN.sub('_', sanitized)
    sanitized = _WHITESPACE_RUN.sub(' ', sanitized).strip()
    return sanitized or DEFAULT_TITLE


def build_program_filename(title: str, start_time: str) -> str:
    """録音ファイル名 "<タイトル> - <YYYYMMDD>.aac" を生成"""
    safe_title = sanitize_filename_part((title or '').strip() or DEFAULT_TITLE)
    return f"{safe_title} - {start_time[:8]}{OUTPUT_EXTENSION}"
