"""
設定ファイル管理ユーティリティ

JSON設定ファイルの読み込み・検証機能を統一提供します。
"""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from radidl.error_handler import ConfigurationError
from radidl.logging_config import get_logger
from radidl.region_mapper import RegionMapper

logger = get_logger(__name__)


DEFAULT_CONFIG: Dict[str, Any] = {
    "links": [],
    "output_dir": "downloads",
    "area_id": "",
    "prefecture": "",
    "resolver": "api",
    "cache_dir": ".cache",
    "encrypt_cache": False,
    "key_file": "",
    "window_seconds": 300,
    "concurrency": 4,
    "token_ttl_minutes": 70,
    "log_level": "INFO",
}


class ConfigManager:
    """統一設定管理クラス

    Usage:
        config_manager = ConfigManager("config.json")
        config = config_manager.load_config(DEFAULT_CONFIG)
    """

    def __init__(self, config_path: Union[str, Path], encoding: str = 'utf-8'):
        self.config_path = Path(config_path)
        self.encoding = encoding

    def load_config(self, default_config: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """設定ファイルを読み込み、デフォルト設定にマージして返す

        Raises:
            ConfigurationError: ファイルが存在しない、またはJSONとして不正
        """
        merged_config = dict(default_config or {})

        if not self.config_path.exists():
            raise ConfigurationError(f"設定ファイルが存在しません: {self.config_path}")

        try:
            with open(self.config_path, 'r', encoding=self.encoding) as f:
                config = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"設定ファイルJSON解析エラー: {self.config_path} - {e}") from e
        except OSError as e:
            raise ConfigurationError(f"設定ファイル読み込みエラー: {self.config_path} - {e}") from e

        if not isinstance(config, dict):
            raise ConfigurationError(f"設定ファイルの最上位はオブジェクトである必要があります: {self.config_path}")

        merged_config.update(config)
        logger.debug(f"設定ファイル読み込み成功: {self.config_path}")
        return merged_config


@dataclass
class AppConfig:
    """検証済みの実行時設定"""
    links: List[str]
    output_dir: str = "downloads"
    area_id: Optional[str] = None
    resolver: str = "api"
    cache_dir: str = ".cache"
    encrypt_cache: bool = False
    key_file: Optional[str] = None
    window_seconds: int = 300
    concurrency: int = 4
    token_ttl_minutes: float = 70
    log_level: str = "INFO"

    @property
    def token_ttl_seconds(self) -> float:
        return self.token_ttl_minutes * 60

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AppConfig':
        """辞書から設定を生成し検証する

        area_id が未指定で prefecture がある場合は都道府県名から地域IDへ変換する。

        Raises:
            ConfigurationError: 値が不正
        """
        links = data.get("links")
        if not isinstance(links, list) or not links or not all(isinstance(x, str) and x.strip() for x in links):
            raise ConfigurationError("設定には空でない `links` 配列が必要です")

        area_id = _optional_str(data, "area_id").strip() or None
        prefecture = _optional_str(data, "prefecture").strip()
        if area_id is None and prefecture:
            area_id = RegionMapper.get_area_id(prefecture)
            if area_id is None:
                raise ConfigurationError(f"不明な都道府県名です: {prefecture}")
        if area_id is not None and not RegionMapper.validate_area_id(area_id):
            raise ConfigurationError(f"不正な地域IDです: {area_id}")

        resolver = _optional_str(data, "resolver") or "api"
        if resolver not in ("api", "page"):
            raise ConfigurationError(f"resolver は 'api' または 'page' を指定してください: {resolver}")

        window_seconds = _positive_int(data, "window_seconds", 300)
        concurrency = _positive_int(data, "concurrency", 4)

        ttl = data.get("token_ttl_minutes", 70)
        if isinstance(ttl, bool) or not isinstance(ttl, (int, float)) or ttl <= 0:
            raise ConfigurationError(f"token_ttl_minutes は正の数である必要があります: {ttl}")

        encrypt_cache = data.get("encrypt_cache", False)
        if not isinstance(encrypt_cache, bool):
            raise ConfigurationError(f"encrypt_cache は true または false を指定してください: {encrypt_cache!r}")

        return cls(
            links=[x.strip() for x in links],
            output_dir=_optional_str(data, "output_dir") or "downloads",
            area_id=area_id,
            resolver=resolver,
            cache_dir=_optional_str(data, "cache_dir") or ".cache",
            encrypt_cache=encrypt_cache,
            key_file=_optional_str(data, "key_file") or None,
            window_seconds=window_seconds,
            concurrency=concurrency,
            token_ttl_minutes=ttl,
            log_level=_optional_str(data, "log_level") or "INFO"
        )


def _optional_str(data: Dict[str, Any], key: str) -> str:
    """文字列設定値を取得（未指定・nullは空文字列）"""
    value = data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ConfigurationError(f"{key} は文字列である必要があります: {value!r}")
    return value


def _positive_int(data: Dict[str, Any], key: str, default: int) -> int:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ConfigurationError(f"{key} は正の整数である必要があります: {value}")
    return value


def load_app_config(config_path: Union[str, Path],
                    overrides: Optional[Dict[str, Any]] = None) -> AppConfig:
    """JSON設定ファイルを読み込み、検証済みのAppConfigを返す（関数版）

    Args:
        config_path: 設定ファイルパス
        overrides: ファイルの値より優先する設定（コマンドライン引数など）
    """
    config = ConfigManager(config_path).load_config(DEFAULT_CONFIG)
    if overrides:
        config.update({k: v for k, v in overrides.items() if v is not None})
    return AppConfig.from_dict(config)
