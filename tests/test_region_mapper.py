"""
RegionMapper 単体テスト

47都道府県マッピングと認証用GPS位置の生成を確認する。
"""

import random
import unittest

from radidl.region_mapper import GPS_JITTER, RegionMapper


class TestRegionMapperBasicMapping(unittest.TestCase):
    """基本マッピング"""

    def test_01_都道府県名から地域ID取得(self):
        cases = [
            ("北海道", "JP1"),
            ("東京都", "JP13"),
            ("東京", "JP13"),
            ("大阪府", "JP27"),
            ("沖縄県", "JP47"),
            ("Tokyo", "JP13"),
            ("osaka", "JP27"),
        ]
        for prefecture, expected in cases:
            with self.subTest(prefecture=prefecture):
                self.assertEqual(RegionMapper.get_area_id(prefecture), expected)

    def test_02_不正な入力(self):
        for value in ["存在しない県", "", "   ", None]:
            with self.subTest(value=value):
                self.assertIsNone(RegionMapper.get_area_id(value))

    def test_03_地域一覧はJP1からJP47の順(self):
        area_ids = RegionMapper.list_area_ids()
        self.assertEqual(len(area_ids), 47)
        self.assertEqual(area_ids[0], "JP1")
        self.assertEqual(area_ids[-1], "JP47")
        self.assertEqual(area_ids, [f"JP{n}" for n in range(1, 48)])

    def test_04_地域IDの検証(self):
        self.assertTrue(RegionMapper.validate_area_id("JP13"))
        self.assertFalse(RegionMapper.validate_area_id("JP0"))
        self.assertFalse(RegionMapper.validate_area_id("JP48"))
        self.assertEqual(RegionMapper.get_prefecture_name("JP27"), "大阪府")


class TestGenerateGps(unittest.TestCase):
    """GPS位置の生成"""

    def test_01_基準座標からのゆらぎ(self):
        rng = random.Random(42)
        base = RegionMapper.get_region_info("JP13")
        for _ in range(200):
            value = RegionMapper.generate_gps("JP13", rng)
            latitude, longitude, suffix = value.split(",")
            self.assertEqual(suffix, "gps")
            self.assertEqual(len(latitude.split(".")[1]), 6)
            self.assertLessEqual(abs(float(latitude) - base.latitude), GPS_JITTER + 1e-6)
            self.assertLessEqual(abs(float(longitude) - base.longitude), GPS_JITTER + 1e-6)

    def test_02_不明な地域ID(self):
        with self.assertRaises(ValueError):
            RegionMapper.generate_gps("JP99")


if __name__ == '__main__':
    unittest.main()
