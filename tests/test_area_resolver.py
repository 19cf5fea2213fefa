"""
AreaResolver 単体テスト
"""

import unittest
from unittest.mock import patch

import requests

from radidl.area_resolver import AreaResolver, parse_station_ids
from radidl.cache_store import MemoryCacheStore
from radidl.error_handler import StationNotFound
from tests.utils.fake_http import FakeResponse, FakeSession
from tests.utils.radiko_fixtures import station_list_xml


def area_url(area_id: str) -> str:
    return f"/station/list/{area_id}.xml"


@patch('radidl.utils.network_utils.time.sleep')
class TestAreaResolver(unittest.TestCase):

    def setUp(self):
        self.session = FakeSession()
        self.store = MemoryCacheStore()
        self.resolver = AreaResolver(self.session, self.store)

    def test_01_最初に見つかった地域を返す(self, mock_sleep):
        self.session.route(area_url("JP1"), FakeResponse(200, station_list_xml("JP1", ["HBC", "STV"])))
        self.session.route(area_url("JP2"), FakeResponse(200, station_list_xml("JP2", ["RAB"])))
        self.session.route(area_url("JP3"), FakeResponse(200, station_list_xml("JP3", ["IBC", "RAB"])))

        self.assertEqual(self.resolver.resolve_area("RAB"), "JP2")
        self.assertEqual(len(self.session.calls), 2)

    def test_02_キャッシュヒットは通信しない(self, mock_sleep):
        self.session.route(area_url("JP1"), FakeResponse(200, station_list_xml("JP1", ["HBC", "STV"])))

        self.assertEqual(self.resolver.resolve_area("HBC"), "JP1")
        # 走査済み地域の他の放送局もキャッシュされる
        self.assertEqual(self.resolver.resolve_area("STV"), "JP1")
        self.assertEqual(len(self.session.calls), 1)
        self.assertEqual(self.store.load_all(), {"HBC": "JP1", "STV": "JP1"})

    def test_03_失敗した地域はスキップ(self, mock_sleep):
        self.session.route(area_url("JP1"), requests.ConnectionError("down"))
        self.session.route(area_url("JP2"), FakeResponse(500, "error"))
        self.session.route(area_url("JP3"), FakeResponse(200, "<stations><broken"))
        self.session.route(area_url("JP4"), FakeResponse(200, station_list_xml("JP4", ["TBC"])))

        self.assertEqual(self.resolver.resolve_area("TBC"), "JP4")
        # JP1 は初回 + 3回リトライ
        self.assertEqual(len(self.session.calls_to(area_url("JP1"))), 4)

    def test_04_取得できなかった地域がある走査はキャッシュしない(self, mock_sleep):
        """
        JP1 の障害中に JP2 で見つかった結果を保存すると、
        復旧後に JP1 で見つかるはずの放送局が JP2 のまま返ってしまう
        """
        self.session.route(area_url("JP1"), [requests.ConnectionError("down")] * 4
                           + [FakeResponse(200, station_list_xml("JP1", ["SHARED"]))])
        self.session.route(area_url("JP2"), FakeResponse(200, station_list_xml("JP2", ["SHARED"])))

        self.assertEqual(self.resolver.resolve_area("SHARED"), "JP2")
        self.assertEqual(self.store.load_all(), {})

        self.assertEqual(self.resolver.resolve_area("SHARED"), "JP1")
        self.assertEqual(self.store.load_all(), {"SHARED": "JP1"})

    def test_05_全地域で見つからない(self, mock_sleep):
        self.session.route("/station/list/", FakeResponse(200, station_list_xml("JPX", ["OTHER"])))

        with self.assertRaises(StationNotFound):
            self.resolver.resolve_area("NOWHERE")
        self.assertEqual(len(self.session.calls), 47)

    def test_06_保存済みキャッシュを利用(self, mock_sleep):
        store = MemoryCacheStore({"TBS": "JP13", "BAD": "JP99"})
        resolver = AreaResolver(self.session, store)
        self.assertEqual(resolver.resolve_area("TBS"), "JP13")
        self.assertEqual(self.session.calls, [])


class TestParseStationIds(unittest.TestCase):

    def test_01_放送局IDの抽出(self):
        xml = station_list_xml("JP13", ["TBS", "QRR", "LFR"])
        self.assertEqual(parse_station_ids(xml), ["TBS", "QRR", "LFR"])


if __name__ == '__main__':
    unittest.main()
