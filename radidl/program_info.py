"""
番組情報モジュール

放送局の週間番組表XMLから、開始時刻が一致する番組のメタデータを取得します。
"""

import xml.etree.ElementTree as ET
from dataclasses import dataclass

import requests

from .error_handler import ProgramInfoError, ProgramNotFound
from .utils.base import LoggerMixin
from .utils.datetime_utils import is_timestamp, parse_timestamp
from .utils.network_utils import fetch_with_retry, is_success

WEEKLY_PROGRAM_URL = "https://api.radiko.jp/program/v3/weekly/{station_id}.xml"

PROGRAM_RETRIES = 3
PROGRAM_RETRY_DELAY = 0.3


@dataclass
class ProgramMeta:
    """番組メタデータ"""
    station_id: str
    start_time: str      # ft（14桁）
    end_time: str        # to（14桁）
    title: str
    performer: str = ""
    description: str = ""

    def __post_init__(self):
        if not is_timestamp(self.start_time) or not is_timestamp(self.end_time):
            raise ProgramInfoError(f"番組の時刻が不正です: {self.start_time} - {self.end_time}")
        if self.end_time <= self.start_time:
            raise ProgramInfoError(f"番組の終了時刻が開始時刻以前です: {self.start_time} - {self.end_time}")

    @property
    def duration_seconds(self) -> int:
        return int((parse_timestamp(self.end_time) - parse_timestamp(self.start_time)).total_seconds())


class ProgramInfoResolver(LoggerMixin):
    """番組表から番組メタデータを解決するクラス"""

    def __init__(self, session: requests.Session):
        super().__init__()
        self.session = session

    def resolve_meta(self, station_id: str, start_time: str) -> ProgramMeta:
        """放送局IDと開始時刻から番組メタデータを取得

        Raises:
            ProgramInfoError: 番組表の取得・解析に失敗
            ProgramNotFound: 開始時刻が一致する番組がない
        """
        url = WEEKLY_PROGRAM_URL.format(station_id=station_id)
        response = fetch_with_retry(self.session, url,
                                    retries=PROGRAM_RETRIES, delay=PROGRAM_RETRY_DELAY)
        if not is_success(response):
            raise ProgramInfoError(f"番組表の取得に失敗しました: {station_id} - ステータス {response.status_code}",
                                   context={'status_code': response.status_code})

        try:
            root = ET.fromstring(response.content)
        except ET.ParseError as e:
            raise ProgramInfoError(f"番組表XMLの解析に失敗しました: {station_id}") from e

        for prog_elem in root.iter('prog'):
            if prog_elem.get('ft') != start_time:
                continue

            meta = ProgramMeta(
                station_id=station_id,
                start_time=start_time,
                end_time=prog_elem.get('to', ''),
                title=self._get_element_text(prog_elem, 'title'),
                performer=self._get_element_text(prog_elem, 'pfm'),
                description=self._get_element_text(prog_elem, 'desc')
            )
            self.logger.info(f"番組情報取得: {meta.title} ({meta.start_time} - {meta.end_time})")
            return meta

        raise ProgramNotFound(f"番組が見つかりません: {station_id} {start_time}",
                              context={'station_id': station_id, 'start_time': start_time})

    def _get_element_text(self, parent, tag_name: str) -> str:
        """XML要素からテキストを取得（なければ空文字）"""
        elem = parent.find(tag_name)
        if elem is None or elem.text is None:
            return ""
        return elem.text.strip()
