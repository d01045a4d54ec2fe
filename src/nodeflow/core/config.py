"""Nodeflow configuration — reads from nodeflow.toml, env vars, and CLI args."""

import logging
import os
import tomllib
from pathlib import Path
from typing import Dict, Any
from pydantic_settings import BaseSettings
from pydantic import Field

logger = logging.getLogger("nodeflow.config")


class NodeflowSettings(BaseSettings):
    """Daemon settings.

    Instances are frozen: the coordinator, node tasks and the executor
    receive one at construction and never mutate it.
    """

    # Server
    host: str = "0.0.0.0"
    port: int = 8500
    log_level: str = "info"

    # Database (SQLite by default for zero-setup)
    database_url: str = Field(
        default="sqlite+aiosqlite:///nodeflow.db",
        alias="NODEFLOW_DATABASE_URL",
    )

    # Auth
    api_key: str = Field(default="nodeflow_dev_key", alias="NODEFLOW_API_KEY")

    # Coordinator / task queue
    tick_interval: float = 3.0
    coordinator_max_attempts: int = 3
    node_max_attempts: int = 5
    retry_backoff_base: float = 1.0
    retry_backoff_cap: float = 10.0
    max_concurrent: int = 10
    # Seconds a dispatched node may stay pending before it is dispatched again
    dispatch_lease: float = 300.0

    # Outbound calls
    http_timeout: float = 30.0
    llm_timeout: float = 90.0

    # LLM providers
    openrouter_api_key: str | None = Field(default=None, alias="OPENROUTER_API_KEY")
    xai_api_key: str | None = Field(default=None, alias="XAI_API_KEY")
    openrouter_url: str = "https://openrouter.ai/api/v1/chat/completions"
    xai_url: str = "https://api.x.ai/v1/chat/completions"
    app_referer: str = "https://github.com/nodeflow/nodeflow"
    app_title: str = "Nodeflow Pipeline"

    model_config = {
        "env_prefix": "NODEFLOW_",
        "env_file": ".env",
        "frozen": True,
        "populate_by_name": True,
        "extra": "ignore",
    }

    def provider_api_key(self, provider: str) -> str | None:
        """Process-wide API key for an LLM provider, if configured."""
        return getattr(self, f"{provider}_api_key", None)


class ClientSettings(BaseSettings):
    """CLI client settings."""

    host: str = Field(default="http://localhost:8500", alias="NODEFLOW_HOST")
    api_key: str = Field(default="nodeflow_dev_key", alias="NODEFLOW_API_KEY")

    model_config = {"env_prefix": "NODEFLOW_"}


def _load_toml_config() -> Dict[str, Any]:
    """Load configuration from nodeflow.toml files.

    Searches for nodeflow.toml in:
    1. NODEFLOW_HOME (~/.nodeflow/nodeflow.toml by default)
    2. Current directory (./nodeflow.toml)

    Returns:
        Combined configuration dict from found files
    """
    config: Dict[str, Any] = {}

    home = Path(os.environ.get("NODEFLOW_HOME", "~/.nodeflow")).expanduser()
    candidates = [home / "nodeflow.toml", Path("nodeflow.toml")]

    for path in candidates:
        if not path.exists():
            continue
        try:
            with path.open("rb") as f:
                file_config = tomllib.load(f)
        except (OSError, tomllib.TOMLDecodeError) as e:
            logger.warning(f"Ignoring unreadable config file {path}: {e}")
            continue
        # Later files take precedence, provider keys are merged one by one
        if "providers" in file_config:
            config.setdefault("providers", {}).update(file_config.pop("providers"))
        config.update(file_config)

    return config


def get_settings(**overrides: Any) -> NodeflowSettings:
    """Build settings from env/.env, then nodeflow.toml providers, then overrides."""
    toml_config = _load_toml_config()

    values: Dict[str, Any] = {}
    for provider, provider_config in toml_config.get("providers", {}).items():
        api_key = provider_config.get("api_key") if isinstance(provider_config, dict) else None
        if api_key:
            values[f"{provider}_api_key"] = api_key

    settings = NodeflowSettings()
    # Env vars win over the toml file; explicit overrides win over both
    for key, value in values.items():
        if getattr(settings, key, None):
            continue
        overrides.setdefault(key, value)

    if overrides:
        settings = settings.model_copy(update=overrides)
    return settings


def get_client_settings() -> ClientSettings:
    return ClientSettings()
