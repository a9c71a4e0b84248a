"""Configuration loader.

Reads ``config.yml`` (and an optional ``.env``) once at startup and returns an
immutable :class:`Config` record.  Environment variables override the YAML
file; ``DISCORD_WEBHOOK_URL`` alone is enough to run without a config file.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml
from dotenv import load_dotenv

logger = logging.getLogger(__name__)


DEFAULT_CATEGORIES: Tuple[str, ...] = (
    "all-switching",
    "all-unifi-cloud-gateways",
    "all-wifi",
    "all-cameras-nvrs",
    "all-door-access",
    "all-cloud-keys-gateways",
    "all-power-tech",
    "all-integrations",
    "accessories-cables-dacs",
)


class ConfigError(RuntimeError):
    """Raised when the configuration cannot be read or is invalid."""


def _get_env(name: str, default: Optional[str] = None) -> Optional[str]:
    return os.environ.get(name, default)


def _parse_bool(value: Any, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def _parse_int(name: str, value: Any) -> int:
    if isinstance(value, bool):
        raise ConfigError(f"{name} must be an integer, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be an integer, got {value!r}") from None


@dataclass(frozen=True)
class Config:
    discord_webhook_url: str = ""
    save_batch_size: int = 2
    home_url: str = "https://store.ui.com/us/en"
    products_file: str = "products.json"
    jwt: str = ""
    catalog_push_url: str = "http://localhost:3001/api/products"
    categories: Tuple[str, ...] = field(default=DEFAULT_CATEGORIES)
    poll_interval_seconds: int = 30
    save_interval_seconds: int = 300
    request_timeout: int = 10
    sse_heartbeat_seconds: int = 30
    host: str = "0.0.0.0"
    port: int = 8080
    server_enabled: bool = True
    log_level: str = "INFO"

    def redacted(self) -> Dict[str, Any]:
        """Return the config as a dict that is safe to log."""
        out = {f.name: getattr(self, f.name) for f in fields(self)}
        if out["jwt"]:
            out["jwt"] = "***"
        if out["discord_webhook_url"]:
            # webhook URLs embed their own secret token
            out["discord_webhook_url"] = out["discord_webhook_url"].rsplit("/", 1)[0] + "/***"
        return out


_INT_KEYS = (
    "save_batch_size",
    "poll_interval_seconds",
    "save_interval_seconds",
    "request_timeout",
    "sse_heartbeat_seconds",
    "port",
)
_STR_KEYS = (
    "discord_webhook_url",
    "home_url",
    "products_file",
    "jwt",
    "catalog_push_url",
    "host",
    "log_level",
)

# env var -> config field
_ENV_OVERRIDES = {
    "DISCORD_WEBHOOK_URL": "discord_webhook_url",
    "PRODUCTS_FILE": "products_file",
    "CATALOG_PUSH_URL": "catalog_push_url",
    "JWT": "jwt",
    "HOST": "host",
    "PORT": "port",
    "LOG_LEVEL": "log_level",
    "SERVER_ENABLED": "server_enabled",
}


def _read_yaml(path: Path) -> Dict[str, Any]:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read config file {path}: {e}") from e
    try:
        data = yaml.safe_load(text) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping at the top level")
    return data


def _coerce(raw: Dict[str, Any]) -> Dict[str, Any]:
    values: Dict[str, Any] = {}
    for key in _INT_KEYS:
        if raw.get(key) is not None:
            values[key] = _parse_int(key, raw[key])
    for key in _STR_KEYS:
        if raw.get(key) is not None:
            values[key] = str(raw[key]).strip()
    if raw.get("server_enabled") is not None:
        values["server_enabled"] = _parse_bool(raw["server_enabled"], True)
    cats = raw.get("categories")
    if cats is not None:
        if isinstance(cats, str):
            cats = cats.split(",")
        if not isinstance(cats, (list, tuple)):
            raise ConfigError("categories must be a list of category slugs")
        values["categories"] = tuple(str(c).strip() for c in cats if str(c).strip())
    return values


def validate(cfg: Config) -> None:
    """Validate values that would break the monitor loop."""
    if cfg.save_batch_size < 1:
        raise ConfigError("save_batch_size must be at least 1")
    if cfg.poll_interval_seconds <= 0 or cfg.save_interval_seconds <= 0:
        raise ConfigError("poll_interval_seconds and save_interval_seconds must be positive")
    if cfg.request_timeout <= 0:
        raise ConfigError("request_timeout must be positive")
    if cfg.sse_heartbeat_seconds < 0:
        raise ConfigError("sse_heartbeat_seconds cannot be negative")
    if not cfg.categories:
        raise ConfigError("at least one category must be configured")
    if not cfg.home_url.startswith(("http://", "https://")):
        raise ConfigError(f"home_url must be an absolute http(s) URL, got {cfg.home_url!r}")


def load(path: str | os.PathLike = "config.yml", *, dotenv: bool = True) -> Config:
    """Load configuration from the YAML file at *path* plus the environment.

    A missing file is only tolerated when ``DISCORD_WEBHOOK_URL`` comes from
    the environment; otherwise it is a :class:`ConfigError`.
    """
    if dotenv:
        load_dotenv()

    cfg_path = Path(path)
    env_webhook = _get_env("DISCORD_WEBHOOK_URL")

    raw: Dict[str, Any] = {}
    if cfg_path.exists() or not env_webhook:
        raw = _read_yaml(cfg_path)

    for env_name, key in _ENV_OVERRIDES.items():
        value = _get_env(env_name)
        if value:
            raw[key] = value

    cfg = replace(Config(), **_coerce(raw))
    validate(cfg)
    logger.info("Loaded config: %s", cfg.redacted())
    return cfg


__all__ = ["Config", "ConfigError", "DEFAULT_CATEGORIES", "load", "validate"]
