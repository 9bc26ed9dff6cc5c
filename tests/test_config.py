"""Tests for settings parsing and host engine loading."""

import pytest

from massive_action_api.core.config import Settings
from massive_action_api.core.host import HostEngine, load_host_engine

from .conftest import FakeHostEngine


def build_engine() -> HostEngine:
    return FakeHostEngine()


class TestSettings:
    def test_prefix_is_normalized(self):
        assert Settings(api_prefix="api.php/").api_prefix == "/api.php"
        assert Settings(api_prefix="/").api_prefix == ""

    def test_urls_lose_trailing_slash(self):
        settings = Settings(bridge_base_url="http://glpi.test/api.php/")
        assert settings.bridge_base_url == "http://glpi.test/api.php"

    def test_blank_optional_values(self):
        settings = Settings(redis_url="  ", host_engine="")
        assert settings.redis_url is None
        assert settings.host_engine is None

    def test_cors_origins(self):
        settings = Settings(CORS_ORIGINS="http://a.test/, http://b.test")
        assert settings.cors_origins == ["http://a.test", "http://b.test"]

    def test_concurrency_ceiling(self):
        with pytest.raises(ValueError):
            Settings(max_concurrency=8)


class TestLoadHostEngine:
    def test_factory(self):
        engine = load_host_engine("tests.test_config:build_engine")
        assert isinstance(engine, FakeHostEngine)

    def test_malformed_path(self):
        with pytest.raises(ValueError):
            load_host_engine("tests.test_config")

    def test_not_an_engine(self):
        with pytest.raises(TypeError):
            load_host_engine("tests.test_config:TestSettings")
