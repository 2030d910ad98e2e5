from __future__ import annotations

from typing import Any

from fastapi import Depends, Request

from viewcounter.api.context import ServiceContext
from viewcounter.components.analytics import AnalyticsValidationError, normalize_country
from viewcounter.core.services.privacy import client_address, transient_visitor_digest

# Component error code -> HTTP status
ERROR_STATUS = {
    "invalid_tenant": 422,
    "invalid_value": 422,
    "not_initialized": 503,
    "storage_error": 500,
}


class ApiError(Exception):
    """Rendered as a JSON body with the given status by the app's handler."""

    def __init__(self, status_code: int, body: dict[str, Any]) -> None:
        super().__init__(body.get("message", ""))
        self.status_code = status_code
        self.body = body


def validation_error(field_name: str, message: str, code: str = "invalid_value") -> ApiError:
    return ApiError(
        422,
        {
            "message": "Validation failed",
            "errors": [{"field": field_name, "message": message, "code": code}],
        },
    )


def raise_for_errors(errors: list[AnalyticsValidationError]) -> None:
    """Translate component errors into the transport response."""
    if not errors:
        return
    status_code = max(ERROR_STATUS.get(e.code, 500) for e in errors)
    if status_code == 422:
        raise ApiError(
            status_code,
            {
                "message": "Validation failed",
                "errors": [
                    {"field": e.field_name, "message": e.message, "code": e.code} for e in errors
                ],
            },
        )
    if status_code == 503:
        raise ApiError(status_code, {"message": "Service not initialized"})
    raise ApiError(status_code, {"message": "Database error"})


# --- Context ---


def get_context(request: Request) -> ServiceContext:
    return request.app.state.ctx


# --- Client ---


def get_client_ip(request: Request, ctx: ServiceContext = Depends(get_context)) -> str:
    """
    Raw client address as a bare host. Never persist or log the returned value.

    Proxy headers may carry a port or IPv6 brackets; those are stripped. The
    first candidate that is a valid address wins, else the socket peer as-is.
    """
    peer = request.client.host if request.client else ""
    candidates: list[str | None] = []
    if ctx.config.server.trust_proxy_headers:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            candidates.append(forwarded.split(",")[0])
        candidates.append(request.headers.get("x-real-ip"))
    candidates.append(peer)

    for candidate in candidates:
        host = client_address(candidate)
        if host is not None:
            return host
    return peer


def get_country(
    request: Request,
    ip: str = Depends(get_client_ip),
    ctx: ServiceContext = Depends(get_context),
) -> str | None:
    """Country from the local GeoIP database, falling back to CF-IPCountry."""
    if ctx.country_lookup is not None:
        code = normalize_country(ctx.country_lookup.country(ip))
        if code is not None:
            return code
    return normalize_country(request.headers.get("cf-ipcountry"))


def enforce_rate_limit(
    request: Request,
    ip: str = Depends(get_client_ip),
    ctx: ServiceContext = Depends(get_context),
) -> None:
    """Per-client limit, keyed by the transient visitor digest."""
    key = transient_visitor_digest(ip, request.headers.get("user-agent", ""))
    if not ctx.rate_limiter.check_client(key):
        raise ApiError(
            429,
            {
                "message": "Too many requests, please try again later",
                "retryAfter": ctx.rate_limiter.retry_after(),
            },
        )


def require_app(app_id: str, ctx: ServiceContext) -> str:
    """Reject app ids outside the allow-list before any core call."""
    if not app_id:
        raise validation_error("appId", "appId is required")
    if app_id not in ctx.registry:
        raise validation_error("appId", "Invalid appId", code="invalid_tenant")
    return app_id
