"""
アプリ鍵情報モジュール

認証ハンドシェイクで使うアプリID・バージョン・フルキー（base64）を読み込みます。
読み込み順:
1. 環境変数 RADIDL_APP_KEY / RADIDL_APP_ID / RADIDL_APP_VERSION
2. 鍵ファイル（JSON、または aSmartPhone8_fullkey_b64 定数を含むJSファイル）
"""

import base64
import binascii
import json
import os
import random
import re
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Union

from .error_handler import HandshakeError, KeyMaterialError
from .logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_APP_ID = "aSmartPhone8"
DEFAULT_APP_VERSION = "8.2.4"
DEFAULT_KEY_FILE = "rajiko/modules/static.js"

ENV_APP_KEY = "RADIDL_APP_KEY"
ENV_APP_ID = "RADIDL_APP_ID"
ENV_APP_VERSION = "RADIDL_APP_VERSION"

_JS_KEY_PATTERN = re.compile(r'const aSmartPhone8_fullkey_b64 = "([\s\S]*?)";')

DEVICE_MODEL = "Google Pixel 6"
DEVICE_SDK = "34"


@dataclass(frozen=True)
class KeyMaterial:
    """アプリ鍵情報"""
    app_version: str
    app_id: str
    app_key_base64: str

    def partial_key(self, offset: int, length: int) -> str:
        """フルキーの [offset, offset+length) を切り出してbase64で返す

        Raises:
            HandshakeError: 範囲がキー長を超える
        """
        full_key = base64.b64decode(self.app_key_base64)
        if offset < 0 or length <= 0 or offset + length > len(full_key):
            raise HandshakeError(
                f"部分キーの範囲が不正です: offset={offset}, length={length}, key_size={len(full_key)}"
            )
        return base64.b64encode(full_key[offset:offset + length]).decode('ascii')


@dataclass(frozen=True)
class DeviceInfo:
    """擬似Android端末の識別情報"""
    app_version: str
    user_id: str
    user_agent: str
    device: str


def generate_device_info(app_version: str, rng: Optional[random.Random] = None) -> DeviceInfo:
    """ハンドシェイク用の端末識別情報を生成（ユーザーIDは毎回ランダム）"""
    rng = rng or random
    user_id = ''.join(rng.choice('0123456789abcdef') for _ in range(32))
    return DeviceInfo(
        app_version=app_version,
        user_id=user_id,
        user_agent=f"Dalvik/2.1.0 (Linux; U; Android 14.0.0; {DEVICE_MODEL}/AP2A.240805.005.S4)",
        device=f"{DEVICE_SDK}.GQML3"
    )


def _validate(material: KeyMaterial, source: str) -> KeyMaterial:
    if not material.app_key_base64:
        raise KeyMaterialError(f"アプリキーが空です: {source}")
    try:
        base64.b64decode(material.app_key_base64, validate=True)
    except (binascii.Error, ValueError) as e:
        raise KeyMaterialError(f"アプリキーをbase64として解釈できません: {source}") from e
    return material


def _from_environment() -> Optional[KeyMaterial]:
    app_key = os.environ.get(ENV_APP_KEY, '').strip()
    if not app_key:
        return None
    return _validate(KeyMaterial(
        app_version=os.environ.get(ENV_APP_VERSION) or DEFAULT_APP_VERSION,
        app_id=os.environ.get(ENV_APP_ID) or DEFAULT_APP_ID,
        app_key_base64=app_key
    ), "環境変数")


def _from_file(path: Path) -> KeyMaterial:
    try:
        content = path.read_text(encoding='utf-8')
    except OSError as e:
        raise KeyMaterialError(f"鍵ファイルを読み込めません: {path}") from e

    if path.suffix.lower() == '.json':
        try:
            data: Dict[str, str] = json.loads(content)
        except json.JSONDecodeError as e:
            raise KeyMaterialError(f"鍵ファイルのJSON解析に失敗しました: {path}") from e
        if not isinstance(data, dict):
            raise KeyMaterialError(f"鍵ファイルの形式が不正です: {path}")
        material = KeyMaterial(
            app_version=data.get("app_version") or DEFAULT_APP_VERSION,
            app_id=data.get("app_id") or DEFAULT_APP_ID,
            app_key_base64=(data.get("app_key_base64") or "").strip()
        )
    else:
        match = _JS_KEY_PATTERN.search(content)
        if not match:
            raise KeyMaterialError(f"aSmartPhone8_fullkey_b64 が見つかりません: {path}")
        material = KeyMaterial(
            app_version=DEFAULT_APP_VERSION,
            app_id=DEFAULT_APP_ID,
            app_key_base64=match.group(1).strip()
        )

    return _validate(material, str(path))


class KeyMaterialLoader:
    """鍵情報をプロセス内で一度だけ読み込み、以後は同じ値を返す"""

    def __init__(self, path: Optional[Union[str, Path]] = None):
        self.path = Path(path) if path else Path(DEFAULT_KEY_FILE)
        self._material: Optional[KeyMaterial] = None
        self._lock = threading.Lock()

    def __call__(self) -> KeyMaterial:
        with self._lock:
            if self._material is None:
                material = _from_environment()
                if material is None:
                    material = _from_file(self.path)
                    logger.debug(f"鍵ファイルからアプリキーを読み込みました: {self.path}")
                else:
                    logger.debug("環境変数からアプリキーを読み込みました")
                self._material = material
            return self._material


_default_loaders: Dict[str, KeyMaterialLoader] = {}


def load_key_material(path: Optional[Union[str, Path]] = None) -> KeyMaterial:
    """鍵情報を読み込む（パスごとにメモ化）

    Raises:
        KeyMaterialError: 鍵が見つからない、またはbase64として不正
    """
    key = str(path or DEFAULT_KEY_FILE)
    loader = _default_loaders.get(key)
    if loader is None:
        loader = _default_loaders.setdefault(key, KeyMaterialLoader(key))
    return loader()
