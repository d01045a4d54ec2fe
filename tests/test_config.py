"""Tests for settings loading: env vars, nodeflow.toml providers and overrides."""

import pydantic
import pytest

from nodeflow.core.config import NodeflowSettings, get_settings


@pytest.fixture
def home(tmp_path, monkeypatch):
    """Isolated NODEFLOW_HOME and working directory with no provider keys in env."""
    monkeypatch.setenv("NODEFLOW_HOME", str(tmp_path / "home"))
    monkeypatch.chdir(tmp_path)
    for name in ("OPENROUTER_API_KEY", "XAI_API_KEY", "NODEFLOW_API_KEY", "NODEFLOW_TICK_INTERVAL"):
        monkeypatch.delenv(name, raising=False)
    (tmp_path / "home").mkdir()
    return tmp_path / "home"


class TestSettings:
    def test_defaults(self, home):
        settings = get_settings()
        assert settings.port == 8500
        assert settings.tick_interval == 3.0
        assert settings.node_max_attempts == 5
        assert settings.openrouter_api_key is None

    def test_env_vars(self, home, monkeypatch):
        monkeypatch.setenv("NODEFLOW_TICK_INTERVAL", "0.5")
        monkeypatch.setenv("NODEFLOW_API_KEY", "secret")
        monkeypatch.setenv("XAI_API_KEY", "xai-env")
        settings = get_settings()
        assert settings.tick_interval == 0.5
        assert settings.api_key == "secret"
        assert settings.provider_api_key("xai") == "xai-env"

    def test_toml_provider_keys(self, home):
        (home / "nodeflow.toml").write_text('[providers.openrouter]\napi_key = "or-file"\n')
        assert get_settings().openrouter_api_key == "or-file"

    def test_local_toml_wins_over_home(self, home, tmp_path):
        (home / "nodeflow.toml").write_text('[providers.openrouter]\napi_key = "from-home"\n')
        (tmp_path / "nodeflow.toml").write_text('[providers.openrouter]\napi_key = "from-cwd"\n')
        assert get_settings().openrouter_api_key == "from-cwd"

    def test_env_wins_over_toml(self, home, monkeypatch):
        (home / "nodeflow.toml").write_text('[providers.xai]\napi_key = "xai-file"\n')
        monkeypatch.setenv("XAI_API_KEY", "xai-env")
        assert get_settings().xai_api_key == "xai-env"

    def test_unreadable_toml_ignored(self, home):
        (home / "nodeflow.toml").write_text("not = [valid")
        assert get_settings().openrouter_api_key is None

    def test_overrides_win(self, home, monkeypatch):
        monkeypatch.setenv("NODEFLOW_TICK_INTERVAL", "0.5")
        assert get_settings(tick_interval=0.1).tick_interval == 0.1

    def test_unknown_provider_key(self, home):
        assert get_settings().provider_api_key("acme") is None

    def test_frozen(self, home):
        settings = NodeflowSettings(_env_file=None)
        with pytest.raises(pydantic.ValidationError):
            settings.tick_interval = 1.0
