"""
Tracking API routes.

Public endpoints that register pageviews and custom events. Client address,
user agent and referrer are classified here; only the attributes reach the
core, which masks the address before storage.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, ConfigDict, Field

from viewcounter.api.context import ServiceContext
from viewcounter.api.deps import (
    enforce_rate_limit,
    get_client_ip,
    get_context,
    get_country,
    raise_for_errors,
    require_app,
    validation_error,
)
from viewcounter.components.analytics import (
    EventAttributes,
    RegisterEventInput,
    RegisterEventOutput,
    run_register_event,
)
from viewcounter.core.entities import MAX_EVENT_TYPE, PAGEVIEW
from viewcounter.core.services.client_classifier import parse_user_agent, size_for_device_type
from viewcounter.core.services.referrer_classifier import parse_referrer

router = APIRouter(dependencies=[Depends(enforce_rate_limit)])


# --- Request Models ---


class EventRequest(BaseModel):
    """Custom event request."""

    app_id: str = Field(..., alias="appId")
    event_type: str = Field(..., alias="eventType", min_length=1, max_length=MAX_EVENT_TYPE)
    device_size: str | None = Field(None, alias="deviceSize")
    page: str | None = None
    title: str | None = None
    referrer: str | None = None
    session_id: str | None = Field(None, alias="sessionId")
    event_data: dict[str, Any] | None = Field(None, alias="eventData")

    model_config = ConfigDict(populate_by_name=True)


# --- Helpers ---


def _register(
    request: Request,
    ctx: ServiceContext,
    app_id: str,
    ip: str,
    country: str | None,
    device_size: str | None,
    page: str | None,
    title: str | None,
    referrer: str | None,
    session_id: str | None,
    event_type: str = PAGEVIEW,
    event_data: dict[str, Any] | None = None,
) -> RegisterEventOutput:
    client = parse_user_agent(request.headers.get("user-agent"))
    ref = parse_referrer(referrer or request.headers.get("referer"))

    if not device_size:
        device_size = size_for_device_type(client.device_type).value
    if device_size not in ctx.config.allowed.device_sizes:
        raise validation_error("deviceSize", "Invalid deviceSize")

    attrs = EventAttributes(
        ip=ip,
        device_size=device_size,
        country=country,
        page_path=page,
        page_title=title,
        referrer=ref.referrer,
        referrer_domain=ref.referrer_domain,
        source_type=ref.source_type,
        browser=client.browser,
        browser_version=client.browser_version,
        os=client.os,
        os_version=client.os_version,
        device_type=client.device_type,
        session_id=session_id,
        event_type=event_type,
        event_data=event_data,
    )
    output = run_register_event(
        RegisterEventInput(tenant_id=app_id, attrs=attrs),
        repo=ctx.event_repo,
        time_port=ctx.clock,
        config=ctx.store_config,
    )
    raise_for_errors(output.errors)
    return output


# --- Routes ---


@router.get("/registerView")
def register_view(
    request: Request,
    app_id: str = Query("", alias="appId"),
    device_size: str = Query("", alias="deviceSize"),
    page: str | None = Query(None),
    title: str | None = Query(None),
    referrer: str | None = Query(None),
    session_id: str | None = Query(None, alias="sessionId"),
    ip: str = Depends(get_client_ip),
    country: str | None = Depends(get_country),
    ctx: ServiceContext = Depends(get_context),
) -> dict[str, Any]:
    """Register a pageview with the configured uniqueness window."""
    require_app(app_id, ctx)
    if not device_size:
        raise validation_error("deviceSize", "deviceSize is required")

    output = _register(
        request, ctx, app_id, ip, country, device_size, page, title, referrer, session_id
    )
    return {
        "message": "Success!",
        "duplicate": output.result.duplicate,
        "isUnique": output.result.is_unique,
    }


@router.post("/event")
def track_event(
    request: Request,
    body: EventRequest,
    ip: str = Depends(get_client_ip),
    country: str | None = Depends(get_country),
    ctx: ServiceContext = Depends(get_context),
) -> dict[str, Any]:
    """Track a custom event; deviceSize defaults to the user-agent derived size."""
    require_app(body.app_id, ctx)

    output = _register(
        request,
        ctx,
        body.app_id,
        ip,
        country,
        body.device_size,
        body.page,
        body.title,
        body.referrer,
        body.session_id,
        event_type=body.event_type,
        event_data=body.event_data,
    )
    return {
        "message": "Event tracked successfully",
        "insertId": output.result.insert_id,
        "isUnique": output.result.is_unique,
    }
