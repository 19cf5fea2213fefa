"""
キャッシュ永続化モジュール

認証トークンや放送局エリアのキャッシュを保存します。
- MemoryCacheStore: プロセス内のみ
- JsonCacheStore: JSONファイル（Fernetによる暗号化オプションあり）
"""

import copy
import json
from pathlib import Path
from typing import Any, Dict, Optional, Union

from cryptography.fernet import Fernet, InvalidToken

from .utils.base import LoggerMixin


class CacheStore(LoggerMixin):
    """キャッシュ保存先の基底クラス"""

    def load_all(self) -> Dict[str, Any]:
        raise NotImplementedError

    def save_all(self, data: Dict[str, Any]) -> None:
        raise NotImplementedError


class MemoryCacheStore(CacheStore):
    """メモリ上のキャッシュ（テスト・一時利用向け）"""

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        super().__init__()
        self._data: Dict[str, Any] = copy.deepcopy(initial or {})
        self.save_count = 0

    def load_all(self) -> Dict[str, Any]:
        return copy.deepcopy(self._data)

    def save_all(self, data: Dict[str, Any]) -> None:
        self._data = copy.deepcopy(data)
        self.save_count += 1


class JsonCacheStore(CacheStore):
    """JSONファイルによるキャッシュ

    encryption_key_path を指定すると内容をFernetで暗号化して保存する。
    鍵ファイルは初回利用時に生成し、権限を 0600 に制限する。
    """

    def __init__(self, path: Union[str, Path],
                 encryption_key_path: Optional[Union[str, Path]] = None):
        super().__init__()
        self.path = Path(path)
        self.encryption_key_path = Path(encryption_key_path) if encryption_key_path else None
        self._fernet: Optional[Fernet] = None

    def _get_fernet(self) -> Optional[Fernet]:
        if self.encryption_key_path is None:
            return None
        if self._fernet is None:
            self._fernet = Fernet(self._get_or_create_key())
        return self._fernet

    def _get_or_create_key(self) -> bytes:
        """暗号化キーを取得または作成"""
        key_file = self.encryption_key_path
        if key_file.exists():
            return key_file.read_bytes().strip()

        key = Fernet.generate_key()
        key_file.parent.mkdir(parents=True, exist_ok=True)
        with open(key_file, 'wb') as f:
            f.write(key)
        # ファイル権限を制限
        key_file.chmod(0o600)
        self.logger.info(f"暗号化キーを作成しました: {key_file}")
        return key

    def load_all(self) -> Dict[str, Any]:
        """キャッシュを読み込む（存在しない・壊れている場合は空）"""
        if not self.path.exists():
            return {}

        try:
            raw = self.path.read_bytes()
            fernet = self._get_fernet()
            if fernet is not None:
                raw = fernet.decrypt(raw)
            data = json.loads(raw.decode('utf-8'))
        except (OSError, ValueError, InvalidToken) as e:
            self.logger.warning(f"キャッシュファイルを読み込めません（無視します）: {self.path} - {e}")
            return {}

        if not isinstance(data, dict):
            self.logger.warning(f"キャッシュファイルの形式が不正です（無視します）: {self.path}")
            return {}
        return data

    def save_all(self, data: Dict[str, Any]) -> None:
        """キャッシュを一時ファイル経由で原子的に保存"""
        payload = json.dumps(data, ensure_ascii=False, indent=2).encode('utf-8')
        fernet = self._get_fernet()
        if fernet is not None:
            payload = fernet.encrypt(payload)

        self.path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self.path.with_suffix(self.path.suffix + '.tmp')
        with open(temp_path, 'wb') as f:
            f.write(payload)
        temp_path.replace(self.path)
        self.logger.debug(f"キャッシュを保存しました: {self.path}")
