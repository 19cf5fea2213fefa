"""
番組参照解決モジュール

ユーザーが指定したURLを DetailReference（放送局ID + 開始時刻）に解決します。
- 直接参照はそのまま解析する
- 検索参照は番組検索API（ApiDetailResolver）または検索ページのスクレイピング
  （PageDetailResolver、Playwright使用）で候補を集め、最新の放送済み番組を選ぶ
"""

import json
import random
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional, Union
from urllib.parse import urljoin

import requests

from .detail_reference import (
    DetailReference, ReferenceKind, classify, extract_search_key, parse_direct, pick_latest
)
from .error_handler import ConfigurationError, MalformedReference, NoCandidates
from .utils.base import LoggerMixin
from .utils.datetime_utils import search_time_to_timestamp
from .utils.network_utils import PAGE_TIMEOUT, create_radiko_session
from .utils.path_utils import ensure_directory_exists

SEARCH_API_URL = "https://api.annex-cf.radiko.jp/v1/programs/legacy/perl/program/search"
SITE_ORIGIN = "https://radiko.jp/"

SEARCH_ROW_LIMIT = 12
PAGE_SETTLE_MS = 4000
DETAIL_LINK_SELECTOR = 'a[href*="#!/ts/"]'
BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/145.0.7632.6 Safari/537.36"
)


class DetailResolver(LoggerMixin):
    """番組参照解決の基底クラス"""

    def __init__(self, clock: Optional[Callable[[], Optional[datetime]]] = None):
        super().__init__()
        self.clock = clock or (lambda: None)

    def resolve(self, reference: str) -> DetailReference:
        """参照URLを DetailReference に解決

        Raises:
            MalformedReference: 未対応の形式、または直接参照の形式不正
            NoCandidates: 検索結果に利用可能な番組がない
        """
        kind = classify(reference)
        if kind == ReferenceKind.DIRECT:
            return parse_direct(reference)
        if kind == ReferenceKind.SEARCH:
            candidates = self.search_candidates(reference)
            if not candidates:
                raise NoCandidates(f"検索結果に番組がありません: {reference}")
            latest = pick_latest(candidates, self.clock())
            self.logger.info(f"検索結果から番組を選択: {latest.to_url()}")
            return latest
        raise MalformedReference(f"未対応のURLです: {reference}")

    def search_candidates(self, reference: str) -> List[DetailReference]:
        raise NotImplementedError


def candidates_from_search_payload(payload: dict) -> List[DetailReference]:
    """番組検索APIのJSONから候補を生成（不完全な項目は除外）"""
    candidates = []
    for item in payload.get('data') or []:
        if not isinstance(item, dict):
            continue
        station_id = item.get('station_id') or ''
        start_time = search_time_to_timestamp(item.get('start_time') or '')
        if not station_id or not start_time:
            continue
        candidates.append(DetailReference(station_id=station_id, start_time=start_time))
    return candidates


class ApiDetailResolver(DetailResolver):
    """番組検索APIによる解決"""

    def __init__(self, session: requests.Session,
                 clock: Optional[Callable[[], Optional[datetime]]] = None,
                 rng: Optional[random.Random] = None):
        super().__init__(clock)
        self.session = session
        self.rng = rng or random.Random()

    def search_candidates(self, reference: str) -> List[DetailReference]:
        """検索APIから候補を取得

        通信失敗や2xx以外の応答は「候補なし」として扱う。
        """
        key = extract_search_key(reference)
        if not key:
            self.logger.warning(f"検索キーワードがありません: {reference}")
            return []

        params = {
            'key': key,
            'filter': '',
            'start_day': '',
            'end_day': '',
            'area_id': '',
            'cur_area_id': '',
            'uid': '%032x' % self.rng.getrandbits(128),
            'row_limit': str(SEARCH_ROW_LIMIT),
            'app_id': 'pc',
            'action_id': '0',
        }

        try:
            response = self.session.get(SEARCH_API_URL, params=params)
        except requests.RequestException as e:
            self.logger.warning(f"番組検索APIの呼び出しに失敗しました: {e}")
            return []

        if response.status_code < 200 or response.status_code >= 300:
            self.logger.warning(f"番組検索APIがエラーを返しました: ステータス {response.status_code}")
            return []

        try:
            payload = json.loads(response.text)
        except ValueError as e:
            self.logger.warning(f"番組検索APIの応答を解析できません: {e}")
            return []
        if not isinstance(payload, dict):
            return []

        candidates = candidates_from_search_payload(payload)
        self.logger.debug(f"検索候補: {len(candidates)}件 (key={key})")
        return candidates


class PageDetailResolver(DetailResolver):
    """検索ページのスクレイピングによる解決（Playwright同期API）

    page を渡した場合はそのページを使い、ブラウザの起動・終了は行わない。
    storage_state_path を指定すると、Cookie等のブラウザ状態を起動時に読み込み、
    終了時に保存する。
    """

    def __init__(self, page=None, context=None,
                 timeout_ms: int = PAGE_TIMEOUT * 1000,
                 settle_ms: int = PAGE_SETTLE_MS,
                 clock: Optional[Callable[[], Optional[datetime]]] = None,
                 storage_state_path: Optional[Union[str, Path]] = None,
                 user_agent: str = BROWSER_USER_AGENT):
        super().__init__(clock)
        self.timeout_ms = timeout_ms
        self.settle_ms = settle_ms
        self.storage_state_path = Path(storage_state_path) if storage_state_path else None
        self.user_agent = user_agent
        self.playwright = None
        self.browser = None
        self.context = context
        self.page = page
        self._owns_browser = page is None

    def setup_browser(self) -> None:
        """ブラウザを起動（ページが渡されている場合は何もしない）"""
        if self.page is not None:
            return

        from playwright.sync_api import sync_playwright

        self.logger.info("ブラウザを起動しています")
        self.playwright = sync_playwright().start()
        self.browser = self.playwright.chromium.launch(headless=True)

        context_options = {'user_agent': self.user_agent}
        if self.storage_state_path and self.storage_state_path.exists():
            self.logger.debug(f"ブラウザ状態を読み込みます: {self.storage_state_path}")
            context_options['storage_state'] = str(self.storage_state_path)
        self.context = self.browser.new_context(**context_options)
        self.page = self.context.new_page()
        self._owns_browser = True

    def close_browser(self) -> None:
        """自分で起動したブラウザのみ終了する（状態保存先があれば保存）"""
        if not self._owns_browser:
            return

        if self.context and self.storage_state_path:
            ensure_directory_exists(self.storage_state_path)
            self.context.storage_state(path=str(self.storage_state_path))

        if self.page:
            self.page.close()
            self.page = None
        if self.context:
            self.context.close()
            self.context = None
        if self.browser:
            self.browser.close()
            self.browser = None
        if self.playwright:
            self.playwright.stop()
            self.playwright = None

    def search_candidates(self, reference: str) -> List[DetailReference]:
        self.setup_browser()

        self.page.goto(reference, wait_until="domcontentloaded", timeout=self.timeout_ms)
        self.page.wait_for_timeout(self.settle_ms)
        hrefs = self.page.eval_on_selector_all(
            DETAIL_LINK_SELECTOR,
            "els => els.map(e => e.getAttribute('href')).filter(Boolean)"
        )

        candidates = []
        for href in hrefs:
            try:
                candidates.append(parse_direct(urljoin(SITE_ORIGIN, href)))
            except MalformedReference:
                continue
        self.logger.debug(f"検索ページの候補: {len(candidates)}件")
        return candidates


def create_detail_resolver(kind: str = "api", session: Optional[requests.Session] = None,
                           storage_state_path: Optional[Union[str, Path]] = None) -> DetailResolver:
    """設定値から解決方式を選択

    Args:
        storage_state_path: ページ方式でのブラウザ状態の保存先

    Raises:
        ConfigurationError: 不明な方式
    """
    if kind == "api":
        if session is None:
            session = create_radiko_session()
        return ApiDetailResolver(session)
    if kind == "page":
        return PageDetailResolver(storage_state_path=storage_state_path)
    raise ConfigurationError(f"不明な番組参照の解決方式です: {kind}")
