"""
設定管理 単体テスト

ConfigManager の読み込みと、AppConfig の検証を確認する。
"""

import json
import tempfile
import unittest
from pathlib import Path

from radidl.error_handler import ConfigurationError
from radidl.utils.config_utils import DEFAULT_CONFIG, AppConfig, ConfigManager, load_app_config

LINK = "https://radiko.jp/#!/ts/TBS/20260219010000"


class TestConfigManager(unittest.TestCase):
    """ConfigManager"""

    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.config_path = Path(self.temp_dir.name) / "config.json"

    def tearDown(self):
        self.temp_dir.cleanup()

    def test_01_既定値にマージ(self):
        self.config_path.write_text(json.dumps({"links": [LINK], "concurrency": 2}), encoding='utf-8')

        config = ConfigManager(self.config_path).load_config(DEFAULT_CONFIG)

        self.assertEqual(config["links"], [LINK])
        self.assertEqual(config["concurrency"], 2)
        self.assertEqual(config["window_seconds"], 300)

    def test_02_ファイルなし_JSON不正はConfigurationError(self):
        with self.assertRaises(ConfigurationError):
            ConfigManager(self.config_path).load_config(DEFAULT_CONFIG)

        self.config_path.write_text("{not json", encoding='utf-8')
        with self.assertRaises(ConfigurationError):
            ConfigManager(self.config_path).load_config(DEFAULT_CONFIG)

        self.config_path.write_text("[]", encoding='utf-8')
        with self.assertRaises(ConfigurationError):
            ConfigManager(self.config_path).load_config(DEFAULT_CONFIG)


class TestAppConfig(unittest.TestCase):
    """AppConfig の検証"""

    def _config(self, **overrides):
        data = dict(DEFAULT_CONFIG, links=[LINK])
        data.update(overrides)
        return data

    def test_01_既定値(self):
        config = AppConfig.from_dict(self._config())
        self.assertEqual(config.output_dir, "downloads")
        self.assertIsNone(config.area_id)
        self.assertEqual(config.resolver, "api")
        self.assertEqual(config.window_seconds, 300)
        self.assertEqual(config.concurrency, 4)
        self.assertEqual(config.token_ttl_seconds, 4200)

    def test_02_都道府県名から地域ID(self):
        self.assertEqual(AppConfig.from_dict(self._config(prefecture="大阪")).area_id, "JP27")
        self.assertEqual(AppConfig.from_dict(self._config(prefecture="Tokyo")).area_id, "JP13")
        # area_id が優先
        self.assertEqual(AppConfig.from_dict(self._config(area_id="JP1", prefecture="大阪")).area_id, "JP1")
        # null は未指定扱い
        self.assertIsNone(AppConfig.from_dict(self._config(area_id=None, prefecture=None)).area_id)

    def test_03_不正な値(self):
        invalid = [
            {"links": []},
            {"links": "https://radiko.jp"},
            {"links": [""]},
            {"area_id": "JP48"},
            {"prefecture": "存在しない県"},
            {"resolver": "browser"},
            {"window_seconds": 0},
            {"concurrency": "4"},
            {"concurrency": True},
            {"token_ttl_minutes": -1},
            {"area_id": 13},
            {"prefecture": 13},
            {"output_dir": ["out"]},
            {"cache_dir": 1},
            {"key_file": {"path": "static.js"}},
            {"resolver": 1},
            {"log_level": 10},
            {"encrypt_cache": "false"},
            {"encrypt_cache": 1},
        ]
        for overrides in invalid:
            with self.subTest(overrides=overrides):
                with self.assertRaises(ConfigurationError):
                    AppConfig.from_dict(self._config(**overrides))

    def test_04_上書き指定(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "config.json"
            path.write_text(json.dumps({"links": [LINK], "output_dir": "a"}), encoding='utf-8')

            config = load_app_config(path, overrides={"output_dir": "b", "area_id": None})

            self.assertEqual(config.output_dir, "b")
            self.assertIsNone(config.area_id)


if __name__ == '__main__':
    unittest.main()
