from viewcounter.config.loader import load_config, parse_config, validate_startup
from viewcounter.config.models import (
    AllowedConfig,
    AppConfig,
    DatabaseConfig,
    RateLimitConfig,
    ServerConfig,
)

__all__ = [
    "AllowedConfig",
    "AppConfig",
    "DatabaseConfig",
    "RateLimitConfig",
    "ServerConfig",
    "load_config",
    "parse_config",
    "validate_startup",
]
