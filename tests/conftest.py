"""
pytest configuration and fixtures for RadiDL tests
"""

import os
import random
import sys
import tempfile
import warnings
from pathlib import Path

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

os.environ.setdefault("RADIDL_TEST_MODE", "true")

from tests.utils.fake_http import FakeSession



@pytest.fixture
def temp_dir():
    """一時ディレクトリfixture"""
    with tempfile.TemporaryDirectory() as tmp:
        yield Path(tmp)


@pytest.fixture
def fake_session():
    """擬似HTTPセッションfixture"""
    return FakeSession()


@pytest.fixture
def seeded_rng():
    """再現可能な乱数生成器"""
    return random.Random(1234)


@pytest.fixture(autouse=True)
def clean_key_env(monkeypatch):
    """鍵情報の環境変数をテストごとに除去"""
    for name in ("RADIDL_APP_KEY", "RADIDL_APP_ID", "RADIDL_APP_VERSION"):
        monkeypatch.delenv(name, raising=False)
    yield


@pytest.fixture(autouse=True)
def ignore_resource_warnings():
    warnings.filterwarnings("ignore", category=ResourceWarning)
    yield
