import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from viewcounter.adapters.sqlite.tenants import TENANT_ID_PATTERN, validate_tenant_ids
from viewcounter.config.models import AppConfig
from viewcounter.core.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("viewcounter.yaml")
CONFIG_ENV_VAR = "VIEWCOUNTER_CONFIG"

# env var -> (section, key); applied after the file
ENV_OVERRIDES: dict[str, tuple[str, ...]] = {
    "VIEWCOUNTER_DB_PATH": ("database", "path"),
    "VIEWCOUNTER_DB_MODE": ("database", "mode"),
    "VIEWCOUNTER_POOL_SIZE": ("database", "pool_size"),
    "PORT": ("server", "port"),
    "UNIQUE_VISITOR_WINDOW_HOURS": ("server", "unique_visitor_window_hours"),
    "RATE_LIMIT_WINDOW_SECONDS": ("server", "rate_limit", "window_seconds"),
    "RATE_LIMIT_MAX": ("server", "rate_limit", "max_requests"),
    "VIEWCOUNTER_GEOIP_DB": ("server", "geoip_db_path"),
}


def _set_path(data: dict[str, Any], keys: tuple[str, ...], value: Any) -> None:
    node = data
    for key in keys[:-1]:
        child = node.get(key)
        if not isinstance(child, dict):
            child = {}
            node[key] = child
        node = child
    node[keys[-1]] = value


def _apply_env(data: dict[str, Any], environ: dict[str, str]) -> None:
    for env_var, keys in ENV_OVERRIDES.items():
        if environ.get(env_var):
            _set_path(data, keys, environ[env_var])

    apps = environ.get("VIEWCOUNTER_ALLOWED_APPS")
    if apps:
        _set_path(
            data,
            ("allowed", "app_ids"),
            [a.strip() for a in apps.split(",") if a.strip()],
        )
        data["allowed"].pop("appId", None)


def parse_config(content: str, environ: dict[str, str] | None = None) -> AppConfig:
    """
    Parse and validate configuration text.

    Raises ConfigurationError on YAML or schema errors, or on tenant ids
    that cannot be used as relation names.
    """
    try:
        data = yaml.safe_load(content) if content.strip() else None
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML syntax in config file: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigurationError("Config file must contain a mapping")

    _apply_env(data, dict(os.environ) if environ is None else environ)

    try:
        config = AppConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"Config validation failed:\n{e}") from e

    bad = [a for a in config.allowed.app_ids if not TENANT_ID_PATTERN.match(a)]
    if bad:
        raise ConfigurationError(
            f"Invalid app ids {bad}: expected 1-64 letters, digits or '_'"
        )
    if not config.allowed.app_ids:
        raise ConfigurationError("At least one app id must be allowed")
    validate_tenant_ids(config.allowed.app_ids)
    return config


def load_config(path: Path | None = None, environ: dict[str, str] | None = None) -> AppConfig:
    """
    Load the config file (or defaults if it is missing) and apply env overrides.
    """
    env = dict(os.environ) if environ is None else environ
    if path is None:
        path = Path(env.get(CONFIG_ENV_VAR) or DEFAULT_CONFIG_PATH)

    if not path.exists():
        logger.warning("Config file %s not found, using defaults", path)
        return parse_config("", env)

    with open(path) as f:
        content = f.read()
    return parse_config(content, env)


def validate_startup(config: AppConfig) -> None:
    """
    Validate operational requirements before startup.
    """
    db_path = config.database.path
    if db_path == ":memory:":
        return

    directory = Path(db_path).resolve().parent
    if not directory.is_dir():
        raise ConfigurationError(f"Database directory does not exist: {directory}")
    if not os.access(directory, os.W_OK):
        raise ConfigurationError(f"Database directory is not writable: {directory}")

    logger.info("Configuration validated (%d apps)", len(config.allowed.app_ids))
