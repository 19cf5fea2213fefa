"""
RadiDL - Radikoタイムフリー番組ダウンローダー

番組URLから認証・地域解決・番組情報取得・プレイリスト解析・セグメント取得を行い、
1つのAACファイルとして保存します。
"""

__version__ = "1.0.0"

from .detail_reference import DetailReference
from .downloader import BatchResult, DownloadResult, TimeFreeDownloader
from .error_handler import RadiDLError

__all__ = [
    '__version__',
    'DetailReference',
    'TimeFreeDownloader',
    'DownloadResult',
    'BatchResult',
    'RadiDLError',
]
