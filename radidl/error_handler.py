"""
エラーハンドリングモジュール

このモジュールはRadiDLの統一エラーハンドリングを提供します。
- カスタム例外クラス（パイプライン各段階のエラー種別）
- エラーメッセージ整形（原因チェーン・段階タグ）
- バッチ処理向けのエラー記録
"""

import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from .logging_config import get_logger


class ErrorSeverity(Enum):
    """エラー重要度"""
    LOW = "low"           # 軽微な警告
    MEDIUM = "medium"     # 注意が必要なエラー
    HIGH = "high"         # 重要なエラー
    CRITICAL = "critical" # 致命的なエラー


class ErrorCategory(Enum):
    """エラーカテゴリ"""
    REFERENCE = "reference"               # 番組参照の解析
    AUTHENTICATION = "authentication"     # 認証関連
    NETWORK = "network"                   # ネットワーク関連
    PROGRAM = "program"                   # 番組情報関連
    PLAYLIST = "playlist"                 # プレイリスト関連
    DOWNLOAD = "download"                 # セグメント取得関連
    CONFIGURATION = "configuration"       # 設定関連
    UNKNOWN = "unknown"                   # 不明


# カスタム例外クラス群

class RadiDLError(Exception):
    """RadiDL基底例外クラス

    stage にはエラーが発生したパイプライン段階名が後から付与される。
    """
    category = ErrorCategory.UNKNOWN
    severity = ErrorSeverity.MEDIUM

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}
        self.stage: Optional[str] = None


class MalformedReference(RadiDLError):
    """番組参照の形式不正"""
    category = ErrorCategory.REFERENCE


class NoCandidates(RadiDLError):
    """検索結果に利用可能な番組がない"""
    category = ErrorCategory.REFERENCE


class StationNotFound(RadiDLError):
    """放送局の所属エリアが見つからない"""
    category = ErrorCategory.NETWORK


class HandshakeError(RadiDLError):
    """認証ハンドシェイク失敗"""
    category = ErrorCategory.AUTHENTICATION
    severity = ErrorSeverity.HIGH


class KeyMaterialError(RadiDLError):
    """アプリ鍵情報の読み込み失敗"""
    category = ErrorCategory.CONFIGURATION
    severity = ErrorSeverity.CRITICAL


class ProgramInfoError(RadiDLError):
    """番組表の取得・解析失敗"""
    category = ErrorCategory.PROGRAM


class ProgramNotFound(ProgramInfoError):
    """開始時刻が一致する番組がない"""


class PlaylistExpired(RadiDLError):
    """プレイリストが "expired" を返した"""
    category = ErrorCategory.PLAYLIST
    severity = ErrorSeverity.HIGH


class PlaylistFetchError(RadiDLError):
    """プレイリスト取得失敗"""
    category = ErrorCategory.PLAYLIST
    severity = ErrorSeverity.HIGH

    def __init__(self, message: str, status_code: Optional[int] = None,
                 context: Optional[Dict[str, Any]] = None):
        super().__init__(message, context)
        self.status_code = status_code


class ChunklistFetchError(PlaylistFetchError):
    """chunklist取得失敗"""


class SegmentFetchError(RadiDLError):
    """セグメント取得失敗"""
    category = ErrorCategory.DOWNLOAD
    severity = ErrorSeverity.HIGH

    def __init__(self, message: str, status_code: Optional[int] = None,
                 context: Optional[Dict[str, Any]] = None):
        super().__init__(message, context)
        self.status_code = status_code


class NoSegments(RadiDLError):
    """プレイリストからセグメントが得られなかった"""
    category = ErrorCategory.PLAYLIST


class ConfigurationError(RadiDLError):
    """設定エラー"""
    category = ErrorCategory.CONFIGURATION
    severity = ErrorSeverity.CRITICAL


def tag_stage(error: BaseException, stage: str) -> BaseException:
    """例外に発生段階を付与する（既に付与済みなら上書きしない）"""
    if getattr(error, 'stage', None) is None:
        try:
            error.stage = stage
        except AttributeError:
            pass
    return error


def format_error(error: BaseException, max_causes: int = 4) -> str:
    """例外を1行のメッセージに整形

    "メッセージ | cause=原因 | ... | stage=段階" の形式。
    原因は __cause__ / __context__ を最大 max_causes 件まで辿る。
    """
    parts = [str(error) or error.__class__.__name__]
    current = error
    for _ in range(max_causes):
        cause = current.__cause__
        if cause is None and not current.__suppress_context__:
            cause = current.__context__
        if cause is None:
            break
        parts.append(f"cause={cause}")
        current = cause

    stage = getattr(error, 'stage', None)
    if stage:
        parts.append(f"stage={stage}")
    return " | ".join(parts)


@dataclass
class ErrorRecord:
    """エラー記録"""
    reference: str
    error_type: str
    message: str
    stage: Optional[str] = None
    category: ErrorCategory = ErrorCategory.UNKNOWN
    severity: ErrorSeverity = ErrorSeverity.MEDIUM
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        """辞書形式に変換"""
        return {
            'reference': self.reference,
            'error_type': self.error_type,
            'message': self.message,
            'stage': self.stage,
            'category': self.category.value,
            'severity': self.severity.value,
            'timestamp': self.timestamp.isoformat()
        }


class ErrorHandler:
    """統一エラーハンドラー

    バッチ処理で項目ごとのエラーを記録し、重要度に応じたレベルでログ出力する。
    """

    _LOG_LEVELS = {
        ErrorSeverity.LOW: 'info',
        ErrorSeverity.MEDIUM: 'warning',
        ErrorSeverity.HIGH: 'error',
        ErrorSeverity.CRITICAL: 'critical',
    }

    def __init__(self):
        self.records: List[ErrorRecord] = []
        self.lock = threading.RLock()
        self.logger = get_logger(__name__)

    def handle_error(self, error: BaseException, reference: str = "") -> ErrorRecord:
        """エラーを記録してログ出力"""
        category = getattr(error, 'category', ErrorCategory.UNKNOWN)
        severity = getattr(error, 'severity', ErrorSeverity.MEDIUM)
        if not isinstance(category, ErrorCategory):
            category = ErrorCategory.UNKNOWN
        if not isinstance(severity, ErrorSeverity):
            severity = ErrorSeverity.MEDIUM

        record = ErrorRecord(
            reference=reference,
            error_type=error.__class__.__name__,
            message=format_error(error),
            stage=getattr(error, 'stage', None),
            category=category,
            severity=severity
        )

        with self.lock:
            self.records.append(record)

        log = getattr(self.logger, self._LOG_LEVELS[severity])
        log(f"[{record.error_type}] {reference} -> {record.message}")
        return record

    def summary(self) -> Dict[str, int]:
        """エラー種別ごとの件数"""
        with self.lock:
            counts: Dict[str, int] = {}
            for record in self.records:
                counts[record.error_type] = counts.get(record.error_type, 0) + 1
            return counts
