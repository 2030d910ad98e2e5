from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from viewcounter.core.entities import DeviceSize


class DatabaseConfig(BaseModel):
    path: str = "viewcounter.db"
    mode: Literal["create", "connect"] = "create"
    pool_size: int = Field(default=10, ge=1)
    queue_limit: int = Field(default=50, ge=0)
    acquire_timeout_seconds: float = Field(default=5.0, gt=0)


class AllowedConfig(BaseModel):
    app_ids: list[str] = Field(default_factory=lambda: ["example_app"], alias="appId")
    device_sizes: list[str] = Field(
        default_factory=lambda: [s.value for s in DeviceSize], alias="deviceSize"
    )

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("device_sizes")
    @classmethod
    def _known_sizes(cls, value: list[str]) -> list[str]:
        known = {s.value for s in DeviceSize}
        unknown = [v for v in value if v not in known]
        if unknown:
            raise ValueError(f"unknown device sizes: {', '.join(unknown)}")
        return value


class RateLimitConfig(BaseModel):
    window_seconds: int = Field(default=60, ge=1)
    max_requests: int = Field(default=100, ge=1)


class ServerConfig(BaseModel):
    host: str = "0.0.0.0"
    port: int = Field(default=3030, ge=1, le=65535)
    unique_visitor_window_hours: int = Field(default=24, ge=0)
    trust_proxy_headers: bool = True
    geoip_db_path: str | None = None
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)


class AppConfig(BaseModel):
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    allowed: AllowedConfig = Field(default_factory=AllowedConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
