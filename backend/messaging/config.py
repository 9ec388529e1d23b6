"""Messaging service configuration.

Loads settings from two YAML files:
  * messaging.settings.yaml: non-secret configuration
  * messaging.secrets.yaml: secrets (never committed)

Both files are optional. A missing file logs a warning and the defaults
below apply. ``MESSAGING_REDIS_URL`` overrides ``redis.url`` so container
deployments can point at a shared registry without editing YAML.
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

SETTINGS_FILE = Path("messaging.settings.yaml")
SECRETS_FILE  = Path("messaging.secrets.yaml")

REDIS_URL_ENV = "MESSAGING_REDIS_URL"

_LOG_LEVELS = ("debug", "info", "warning", "error", "critical")


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        logger.warning("Config file not found: %s", path)
        return {}
    with path.open(encoding="utf-8") as fh:
        return yaml.safe_load(fh) or {}


# ---------------------------------------------------------------------------
# Secrets models
# ---------------------------------------------------------------------------


class JWTSecrets(BaseModel):
    secret_key: str = "change-me-in-production"
    algorithm:  str = "HS256"


class Secrets(BaseModel):
    jwt: JWTSecrets = Field(default_factory=JWTSecrets)


# ---------------------------------------------------------------------------
# Settings models
# ---------------------------------------------------------------------------


class ServerSettings(BaseModel):
    host: str = "0.0.0.0"
    port: int = 8000


class LoggingSettings(BaseModel):
    level: str = "info"

    @field_validator("level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        value = value.lower()
        if value not in _LOG_LEVELS:
            raise ValueError(f"log level must be one of {_LOG_LEVELS}")
        return value


class RegistrySettings(BaseModel):
    """Which SharedRegistry backend to use.

    ``redis`` is required for horizontally scaled deployments. ``memory``
    keeps everything inside the process and is meant for single-instance
    deployments and tests.
    """
    backend:            Literal["redis", "memory"] = "redis"
    socket_ttl_seconds: int                        = Field(default=86400, gt=0)


class RedisSettings(BaseModel):
    url:            str   = "redis://localhost:6379/0"
    socket_timeout: float = 5.0


class RateLimitSettings(BaseModel):
    window_seconds: int = Field(default=10, gt=0)
    max_messages:   int = Field(default=5, gt=0)


class StoreSettings(BaseModel):
    db_path: str = "messages.duckdb"


class PaginationSettings(BaseModel):
    default_limit: int = Field(default=20, gt=0)
    max_limit:     int = Field(default=100, gt=0)


class HeartbeatSettings(BaseModel):
    # 0 disables the ping task
    interval_seconds: float = Field(default=25.0, ge=0)


class AuthSettings(BaseModel):
    bind_registration: bool = False


class AppConfig(BaseModel):
    server:     ServerSettings     = Field(default_factory=ServerSettings)
    logging:    LoggingSettings    = Field(default_factory=LoggingSettings)
    registry:   RegistrySettings   = Field(default_factory=RegistrySettings)
    redis:      RedisSettings      = Field(default_factory=RedisSettings)
    rate_limit: RateLimitSettings  = Field(default_factory=RateLimitSettings)
    store:      StoreSettings      = Field(default_factory=StoreSettings)
    pagination: PaginationSettings = Field(default_factory=PaginationSettings)
    heartbeat:  HeartbeatSettings  = Field(default_factory=HeartbeatSettings)
    auth:       AuthSettings       = Field(default_factory=AuthSettings)
    secrets:    Secrets            = Field(default_factory=Secrets)


# ---------------------------------------------------------------------------
# Public loader
# ---------------------------------------------------------------------------


def load_config(
    settings_path: Optional[Path] = None,
    secrets_path: Optional[Path] = None,
) -> AppConfig:
    """Load and merge settings + secrets into a single *AppConfig* object."""
    settings_data = _load_yaml(Path(settings_path) if settings_path else SETTINGS_FILE)
    secrets_data  = _load_yaml(Path(secrets_path) if secrets_path else SECRETS_FILE)

    # Merge: secrets live under the "secrets" key in AppConfig
    settings_data["secrets"] = secrets_data

    redis_url = os.environ.get(REDIS_URL_ENV)
    if redis_url:
        settings_data.setdefault("redis", {})["url"] = redis_url

    config = AppConfig(**settings_data)
    logger.info(
        "Settings loaded (server=%s:%s, registry=%s, rate_limit=%d/%ds)",
        config.server.host,
        config.server.port,
        config.registry.backend,
        config.rate_limit.max_messages,
        config.rate_limit.window_seconds,
    )
    return config


_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """Return the process-wide config, loading it on first use."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def set_config(config: AppConfig) -> None:
    global _config
    _config = config


def reset_config() -> None:
    global _config
    _config = None
