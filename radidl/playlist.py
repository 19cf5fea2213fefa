"""
プレイリスト解析モジュール

タイムフリー番組のセグメントURL一覧を、一定秒数の時間窓ごとに取得します。
各窓でプレイリスト（m3u8）を取得し、その最初のデータ行が指す chunklist から
セグメントURLを順番に集めます。
"""

import random
import xml.etree.ElementTree as ET
from typing import List, Optional
from urllib.parse import urlencode, urlsplit, urlunsplit, parse_qsl

import requests

from .error_handler import ChunklistFetchError, PlaylistExpired, PlaylistFetchError
from .utils.base import LoggerMixin
from .utils.datetime_utils import parse_timestamp, step_timestamp
from .utils.network_utils import fetch_with_retry, is_success

STREAM_CONFIG_URL = "https://radiko.jp/v3/station/stream/pc_html5/{station_id}.xml"
DEFAULT_PLAYLIST_URL = "https://tf-f-rpaa-radiko.smartstream.ne.jp/tf/playlist.m3u8"

# 1回のプレイリスト取得で扱う時間窓（秒）
DEFAULT_WINDOW_SECONDS = 300

# プレイリスト期限切れ時の応答本文
EXPIRED_SENTINEL = "expired"

STREAM_CONFIG_RETRIES = 3
STREAM_CONFIG_RETRY_DELAY = 0.3
PLAYLIST_RETRIES = 3
PLAYLIST_RETRY_DELAY = 0.25


def data_lines(text: str) -> List[str]:
    """m3u8本文から空行と "#" 行を除いたデータ行を返す"""
    lines = []
    for line in text.splitlines():
        line = line.strip()
        if line and not line.startswith('#'):
            lines.append(line)
    return lines


def _set_query(url: str, params: dict) -> str:
    parts = urlsplit(url)
    query = dict(parse_qsl(parts.query, keep_blank_values=True))
    query.update(params)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), parts.fragment))


class PlaylistBuilder(LoggerMixin):
    """番組全体のセグメントURL一覧を構築するクラス"""

    def __init__(self, session: requests.Session,
                 window_seconds: int = DEFAULT_WINDOW_SECONDS,
                 expired_sentinel: str = EXPIRED_SENTINEL,
                 rng: Optional[random.Random] = None):
        super().__init__()
        if window_seconds <= 0:
            raise ValueError(f"window_seconds は正の値である必要があります: {window_seconds}")
        self.session = session
        self.window_seconds = window_seconds
        self.expired_sentinel = expired_sentinel
        self.rng = rng or random.Random()

    def resolve_playlist_template(self, station_id: str) -> str:
        """放送局のストリーム設定からプレイリスト生成URLを取得

        timefree="1" かつ areafree="0" の最初の定義を採用する。
        取得・解析に失敗した場合や該当がない場合は既定URLを返す。
        """
        url = STREAM_CONFIG_URL.format(station_id=station_id)
        try:
            response = fetch_with_retry(self.session, url,
                                        retries=STREAM_CONFIG_RETRIES, delay=STREAM_CONFIG_RETRY_DELAY)
        except requests.RequestException as e:
            self.logger.warning(f"ストリーム設定の取得に失敗しました。既定URLを使用します: {e}")
            return DEFAULT_PLAYLIST_URL

        if not is_success(response):
            self.logger.warning(f"ストリーム設定の取得に失敗しました。既定URLを使用します: ステータス {response.status_code}")
            return DEFAULT_PLAYLIST_URL

        try:
            root = ET.fromstring(response.content)
        except ET.ParseError as e:
            self.logger.warning(f"ストリーム設定XMLの解析に失敗しました。既定URLを使用します: {e}")
            return DEFAULT_PLAYLIST_URL

        for url_elem in root.iter('url'):
            if url_elem.get('timefree') != '1' or url_elem.get('areafree') != '0':
                continue
            create_url = url_elem.findtext('playlist_create_url')
            if create_url and create_url.strip():
                return create_url.strip()

        self.logger.debug(f"該当するストリーム定義がありません。既定URLを使用します: {station_id}")
        return DEFAULT_PLAYLIST_URL

    def _random_lsid(self) -> str:
        return ''.join(self.rng.choice('0123456789abcdef') for _ in range(32))

    def build_segment_urls(self, station_id: str, start_time: str, end_time: str,
                           token: str, area_id: str) -> List[str]:
        """番組全体のセグメントURLを時系列順に取得

        時間窓ごとに seek を進め、seek が終了時刻に達するまで繰り返す。
        1つの窓でも失敗した場合は全体を中止する。

        Raises:
            PlaylistExpired: プレイリストが期限切れ
            PlaylistFetchError: プレイリスト取得失敗（403を含む）
            ChunklistFetchError: chunklist取得失敗
        """
        template = self.resolve_playlist_template(station_id)
        base_params = {
            'lsid': self._random_lsid(),
            'station_id': station_id,
            'l': str(self.window_seconds),
            'start_at': start_time,
            'end_at': end_time,
            'type': 'b',
            'ft': start_time,
            'to': end_time,
        }
        headers = {
            'X-Radiko-AreaId': area_id,
            'X-Radiko-AuthToken': token,
        }

        segments: List[str] = []
        seek = start_time
        end = parse_timestamp(end_time)

        while parse_timestamp(seek) < end:
            params = dict(base_params, seek=seek)
            playlist_url = _set_query(template, params)

            chunklist_url = self._fetch_chunklist_url(playlist_url, headers, seek)
            window_segments = self._fetch_segments(chunklist_url, seek)
            segments.extend(window_segments)
            self.logger.debug(f"時間窓 {seek}: {len(window_segments)}セグメント")

            seek = step_timestamp(seek, self.window_seconds)

        self.logger.info(f"セグメントURL取得完了: {len(segments)}件")
        return segments

    def _fetch_chunklist_url(self, playlist_url: str, headers: dict, seek: str) -> str:
        response = fetch_with_retry(self.session, playlist_url,
                                    retries=PLAYLIST_RETRIES, delay=PLAYLIST_RETRY_DELAY,
                                    headers=headers)
        body = response.text
        if body.strip() == self.expired_sentinel:
            raise PlaylistExpired(f"プレイリストが期限切れです: seek={seek}",
                                  context={'seek': seek})
        if not is_success(response):
            raise PlaylistFetchError(f"プレイリスト取得失敗: seek={seek} ステータス {response.status_code}",
                                     status_code=response.status_code, context={'seek': seek})

        lines = data_lines(body)
        if not lines:
            raise ChunklistFetchError(f"プレイリストにchunklistの行がありません: seek={seek}",
                                      status_code=response.status_code, context={'seek': seek})
        return lines[0]

    def _fetch_segments(self, chunklist_url: str, seek: str) -> List[str]:
        response = fetch_with_retry(self.session, chunklist_url,
                                    retries=PLAYLIST_RETRIES, delay=PLAYLIST_RETRY_DELAY)
        if not is_success(response):
            raise ChunklistFetchError(f"chunklist取得失敗: seek={seek} ステータス {response.status_code}",
                                      status_code=response.status_code, context={'seek': seek})

        return data_lines(response.text)
