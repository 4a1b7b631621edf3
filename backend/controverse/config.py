"""ControVerse application configuration.

Loads settings from a single YAML file:
  * controverse.settings.yaml : non-secret configuration

The listening port can be overridden with the ``PORT`` environment variable,
which takes precedence over the YAML value.
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

SETTINGS_FILE = Path("controverse.settings.yaml")
PORT_ENV_VAR = "PORT"


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        logger.warning("Config file not found: %s", path)
        return {}
    with path.open(encoding="utf-8") as fh:
        return yaml.safe_load(fh) or {}


# ---------------------------------------------------------------------------
# Settings models
# ---------------------------------------------------------------------------


class ServerSettings(BaseModel):
    host:                     str       = "0.0.0.0"
    port:                     int       = 9000
    static_dir:               str       = "public"
    cors_origins:             List[str] = Field(default_factory=lambda: ["*"])
    http_rate_limit:          int       = Field(default=100, ge=1)
    http_rate_window_seconds: int       = Field(default=900, ge=1)


class ChatSettings(BaseModel):
    """Limits and moderation for the shared chat room."""
    max_history:              int       = Field(default=50, ge=1)
    rate_limit_threshold:     int       = Field(default=10, ge=1)
    rate_limit_decay_seconds: float     = Field(default=60.0, ge=0)
    nickname_max_length:      int       = Field(default=20, ge=1)
    profanity_words:          List[str] = Field(
        default_factory=lambda: ["spam", "badword1", "badword2"]
    )

    @field_validator("profanity_words")
    @classmethod
    def _drop_blank_words(cls, words: List[str]) -> List[str]:
        # An empty pattern would match between every character
        return [w for w in words if w]


class LoggingSettings(BaseModel):
    level: str = "info"


class AppConfig(BaseModel):
    server:  ServerSettings  = Field(default_factory=ServerSettings)
    chat:    ChatSettings    = Field(default_factory=ChatSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


# ---------------------------------------------------------------------------
# Public loader
# ---------------------------------------------------------------------------


def _apply_env_overrides(data: Dict[str, Any]) -> None:
    port = os.environ.get(PORT_ENV_VAR)
    if not port:
        return
    try:
        data.setdefault("server", {})["port"] = int(port)
    except ValueError:
        logger.warning("Ignoring non-numeric %s=%r", PORT_ENV_VAR, port)


def load_config(settings_path: Optional[Union[str, Path]] = None) -> AppConfig:
    """Load settings from YAML and apply environment overrides."""
    path = Path(settings_path) if settings_path else SETTINGS_FILE
    data = _load_yaml(path)
    _apply_env_overrides(data)

    config = AppConfig(**data)
    logger.info(
        "Settings loaded (server=%s:%s, max_history=%s, rate_limit=%s/%ss)",
        config.server.host,
        config.server.port,
        config.chat.max_history,
        config.chat.rate_limit_threshold,
        config.chat.rate_limit_decay_seconds,
    )
    return config


_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """Return the process-wide config, loading it on first use."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reset_config() -> None:
    """Forget the cached config so the next get_config() reloads it."""
    global _config
    _config = None
