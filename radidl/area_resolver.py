"""
放送局エリア解決モジュール

放送局IDから所属する地域ID（JP1〜JP47）を求めます。
地域ごとの放送局一覧XMLを JP1 から順に走査し、最初に見つかった地域を採用します。
"""

import xml.etree.ElementTree as ET
from typing import Dict, List, Optional

import requests

from .cache_store import CacheStore, MemoryCacheStore
from .error_handler import StationNotFound
from .region_mapper import RegionMapper
from .utils.base import LoggerMixin
from .utils.network_utils import fetch_with_retry, is_success

STATION_LIST_URL = "https://radiko.jp/v3/station/list/{area_id}.xml"

STATION_LIST_RETRIES = 3
STATION_LIST_RETRY_DELAY = 0.2


def parse_station_ids(xml_text: str) -> List[str]:
    """放送局一覧XMLから放送局IDを抽出

    Raises:
        ET.ParseError: XMLとして不正
    """
    root = ET.fromstring(xml_text)
    return [elem.text.strip() for elem in root.iter('id') if elem.text and elem.text.strip()]


class AreaResolver(LoggerMixin):
    """放送局ID → 地域ID の解決とキャッシュ"""

    def __init__(self, session: requests.Session, store: Optional[CacheStore] = None):
        super().__init__()
        self.session = session
        self.store = store or MemoryCacheStore()
        self._station_areas: Dict[str, str] = {}
        self._loaded = False

    def _ensure_loaded(self) -> None:
        if self._loaded:
            return
        self._loaded = True
        for station_id, area_id in self.store.load_all().items():
            if isinstance(area_id, str) and RegionMapper.validate_area_id(area_id):
                self._station_areas[station_id] = area_id

    def _fetch_area_stations(self, area_id: str) -> Optional[List[str]]:
        """地域の放送局一覧を取得（失敗時はNone）"""
        url = STATION_LIST_URL.format(area_id=area_id)
        try:
            response = fetch_with_retry(
                self.session, url,
                retries=STATION_LIST_RETRIES, delay=STATION_LIST_RETRY_DELAY
            )
        except requests.RequestException as e:
            self.logger.warning(f"放送局一覧の取得に失敗しました（スキップ）: {area_id} - {e}")
            return None

        if not is_success(response):
            self.logger.warning(f"放送局一覧の取得に失敗しました（スキップ）: {area_id} - ステータス {response.status_code}")
            return None

        try:
            return parse_station_ids(response.text)
        except ET.ParseError as e:
            self.logger.warning(f"放送局一覧XMLの解析に失敗しました（スキップ）: {area_id} - {e}")
            return None

    def resolve_area(self, station_id: str) -> str:
        """放送局IDの所属地域IDを取得

        Raises:
            StationNotFound: 全地域を走査しても見つからない
        """
        self._ensure_loaded()

        cached = self._station_areas.get(station_id)
        if cached:
            return cached

        self.logger.info(f"放送局の所属地域を検索中: {station_id}")
        scanned: Dict[str, str] = {}
        skipped = False
        found: Optional[str] = None

        for area_id in RegionMapper.list_area_ids():
            stations = self._fetch_area_stations(area_id)
            if stations is None:
                skipped = True
                continue

            for sid in stations:
                scanned.setdefault(sid, area_id)

            if station_id in stations:
                found = area_id
                break

        # 取得できなかった地域がある走査の結果は保存しない
        if skipped:
            self.logger.warning("取得できなかった地域があるため、今回の走査結果はキャッシュしません")
        else:
            new_entries = {sid: area for sid, area in scanned.items() if sid not in self._station_areas}
            if new_entries:
                self._station_areas.update(new_entries)
                self.store.save_all(dict(self._station_areas))

        if found is None:
            raise StationNotFound(f"放送局の所属地域が見つかりません: {station_id}",
                                  context={'station_id': station_id})

        self.logger.info(f"所属地域を特定しました: {station_id} -> {found}")
        return found
