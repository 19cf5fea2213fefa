"""
Radiko認証モジュール

このモジュールはRadikoの2段階認証ハンドシェイクとトークン管理を行います。
- auth1: 端末識別ヘッダーを送り、トークンと部分キーの範囲を受け取る
- auth2: トークン・部分キー・擬似GPS位置を送り、トークンを有効化する
- 取得したトークンは地域IDごとにTTL付きでキャッシュする
"""

import random
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

import requests

from .cache_store import CacheStore, MemoryCacheStore
from .error_handler import HandshakeError
from .key_material import KeyMaterial, generate_device_info, load_key_material
from .region_mapper import RegionMapper
from .utils.base import LoggerMixin
from .utils.network_utils import fetch_with_retry, is_success

AUTH1_URL = "https://radiko.jp/v2/api/auth1"
AUTH2_URL = "https://radiko.jp/v2/api/auth2"

# トークン有効期限（70分）
DEFAULT_TOKEN_TTL = 70 * 60

HANDSHAKE_RETRIES = 3
HANDSHAKE_RETRY_DELAY = 0.3


@dataclass
class AuthInfo:
    """認証情報"""
    token: str
    area_id: str
    issued_at: float

    def is_expired(self, ttl_seconds: float, now: float) -> bool:
        """発行からTTL以上経過していれば期限切れ"""
        return now - self.issued_at >= ttl_seconds

    def to_dict(self) -> Dict[str, object]:
        return {'token': self.token, 'issued_at': self.issued_at}


class TokenManager(LoggerMixin):
    """地域IDごとの認証トークンを管理するクラス"""

    def __init__(self,
                 session: requests.Session,
                 key_material_loader: Callable[[], KeyMaterial] = load_key_material,
                 store: Optional[CacheStore] = None,
                 ttl_seconds: float = DEFAULT_TOKEN_TTL,
                 clock: Callable[[], float] = time.time,
                 rng: Optional[random.Random] = None):
        super().__init__()
        self.session = session
        self.key_material_loader = key_material_loader
        self.store = store or MemoryCacheStore()
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self.rng = rng or random.Random()
        self._tokens: Dict[str, AuthInfo] = {}
        self._loaded = False

    def _ensure_loaded(self) -> None:
        """保存済みトークンを初回のみ読み込む"""
        if self._loaded:
            return
        self._loaded = True

        for area_id, item in self.store.load_all().items():
            if not isinstance(item, dict):
                continue
            token = item.get('token')
            issued_at = item.get('issued_at')
            if not token or isinstance(issued_at, bool) or not isinstance(issued_at, (int, float)):
                continue
            self._tokens[area_id] = AuthInfo(token=token, area_id=area_id, issued_at=float(issued_at))

        if self._tokens:
            self.logger.debug(f"保存済みトークンを読み込みました: {len(self._tokens)}件")

    def _save(self) -> None:
        self.store.save_all({area_id: info.to_dict() for area_id, info in self._tokens.items()})

    def get_token(self, area_id: str) -> str:
        """有効なトークンを取得（期限切れ・未取得ならハンドシェイクを実行）

        Raises:
            HandshakeError: 地域ID不正、またはハンドシェイク失敗
        """
        self._ensure_loaded()

        cached = self._tokens.get(area_id)
        if cached and not cached.is_expired(self.ttl_seconds, self.clock()):
            self.logger.debug(f"キャッシュ済みトークンを使用: {area_id}")
            return cached.token

        auth_info = self.authenticate(area_id)
        self._tokens[area_id] = auth_info
        self._save()
        return auth_info.token

    def invalidate(self, area_id: str) -> None:
        """キャッシュ済みトークンを破棄"""
        self._ensure_loaded()
        if self._tokens.pop(area_id, None) is not None:
            self._save()

    def authenticate(self, area_id: str) -> AuthInfo:
        """2段階認証ハンドシェイクを実行"""
        if not RegionMapper.validate_area_id(area_id):
            raise HandshakeError(f"不正な地域IDです: {area_id}")

        self.logger.info(f"認証開始: {area_id} ({RegionMapper.get_prefecture_name(area_id)})")
        material = self.key_material_loader()
        device = generate_device_info(material.app_version, self.rng)

        identity_headers = {
            'X-Radiko-App': material.app_id,
            'X-Radiko-App-Version': device.app_version,
            'X-Radiko-Device': device.device,
            'X-Radiko-User': device.user_id,
        }

        # Step 1: auth1
        response = fetch_with_retry(
            self.session, AUTH1_URL,
            retries=HANDSHAKE_RETRIES, delay=HANDSHAKE_RETRY_DELAY,
            headers=identity_headers
        )
        if not is_success(response):
            raise HandshakeError(f"auth1 失敗: ステータス {response.status_code}",
                                 context={'status_code': response.status_code})

        token = response.headers.get('X-Radiko-AuthToken')
        key_offset = response.headers.get('X-Radiko-KeyOffset')
        key_length = response.headers.get('X-Radiko-KeyLength')
        if not token or not key_offset or not key_length:
            raise HandshakeError("auth1 応答にトークンまたはキー範囲のヘッダーがありません")

        try:
            offset, length = int(key_offset), int(key_length)
        except ValueError as e:
            raise HandshakeError(f"auth1 応答のキー範囲が不正です: {key_offset}, {key_length}") from e

        # Step 2: auth2
        partial_key = material.partial_key(offset, length)
        auth2_headers = dict(identity_headers)
        auth2_headers.update({
            'X-Radiko-AuthToken': token,
            'X-Radiko-Partialkey': partial_key,
            'X-Radiko-Location': RegionMapper.generate_gps(area_id, self.rng),
            'X-Radiko-Connection': 'wifi',
            'User-Agent': device.user_agent,
        })

        response = fetch_with_retry(
            self.session, AUTH2_URL,
            retries=HANDSHAKE_RETRIES, delay=HANDSHAKE_RETRY_DELAY,
            headers=auth2_headers
        )
        if response.status_code != 200:
            raise HandshakeError(f"auth2 失敗: ステータス {response.status_code}",
                                 context={'status_code': response.status_code})

        self.logger.info(f"認証成功: {area_id}")
        return AuthInfo(token=token, area_id=area_id, issued_at=self.clock())
