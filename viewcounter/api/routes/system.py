from __future__ import annotations

import ipaddress
from typing import Any

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from viewcounter.api.context import ServiceContext
from viewcounter.api.deps import enforce_rate_limit, get_client_ip, get_context, get_country
from viewcounter.components.analytics import AggregationEngine
from viewcounter.core.services.privacy import mask_ip

router = APIRouter(dependencies=[Depends(enforce_rate_limit)])


def _is_valid_ip(value: str) -> bool:
    try:
        ipaddress.ip_address(value.split("%", 1)[0])
    except ValueError:
        return False
    return True


@router.get("/health")
def health(ctx: ServiceContext = Depends(get_context)) -> JSONResponse:
    """Health check endpoint."""
    result = AggregationEngine(ctx.analytics_repo, time_port=ctx.clock).health_check()
    if result["healthy"]:
        return JSONResponse({"status": "healthy", "database": "connected"})
    return JSONResponse({"status": "unhealthy", "database": "disconnected"}, status_code=503)


@router.get("/ip")
def client_ip(
    ip: str = Depends(get_client_ip),
    country: str | None = Depends(get_country),
) -> dict[str, Any]:
    """The caller's address and country as they would be stored."""
    return {"ip": mask_ip(ip), "valid": _is_valid_ip(ip), "country": country}


@router.get("/apps")
def list_apps(ctx: ServiceContext = Depends(get_context)) -> dict[str, Any]:
    apps = ctx.registry.tenant_ids
    return {"apps": apps, "count": len(apps)}
