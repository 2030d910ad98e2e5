"""
Analytics read API routes.

Every route validates the app id against the allow-list, runs one component
query and serializes the typed result. Only masked addresses are returned.
"""

from __future__ import annotations

from dataclasses import asdict
from typing import Any

from fastapi import APIRouter, Depends, Query

from viewcounter.api.context import ServiceContext
from viewcounter.api.deps import (
    enforce_rate_limit,
    get_context,
    raise_for_errors,
    require_app,
)
from viewcounter.components.analytics import (
    CountItem,
    QueryBrowsersInput,
    QueryOutput,
    QueryPagesInput,
    QueryReferrersInput,
    QuerySessionInput,
    QueryStatsInput,
    QueryTrendsInput,
    QueryViewsInput,
    run_query_browsers,
    run_query_pages,
    run_query_referrers,
    run_query_session,
    run_query_stats,
    run_query_trends,
    run_query_views,
)

router = APIRouter(dependencies=[Depends(enforce_rate_limit)])


def _value(output: QueryOutput) -> Any:
    raise_for_errors(output.errors)
    return output.value


def _counts(items: tuple[CountItem, ...], key: str) -> list[dict[str, Any]]:
    return [{key: item.value, "count": item.count} for item in items]


def _iso(dt: Any) -> str:
    return dt.isoformat().replace("+00:00", "Z")


@router.get("/stats/{app_id}")
def get_stats(app_id: str, ctx: ServiceContext = Depends(get_context)) -> dict[str, Any]:
    require_app(app_id, ctx)
    stats = _value(
        run_query_stats(
            QueryStatsInput(tenant_id=app_id), repo=ctx.analytics_repo, time_port=ctx.clock
        )
    )
    return {
        "appId": app_id,
        "totalViews": stats.total_views,
        "uniqueViews": stats.unique_views,
        "uniqueVisitors": stats.unique_visitors,
        "last24Hours": stats.last_24_hours,
        "byCountry": _counts(stats.by_country, "country"),
        "byDevice": _counts(stats.by_device, "deviceSize"),
    }


@router.get("/trends/{app_id}")
def get_trends(
    app_id: str,
    period: str = Query("daily"),
    days: int = Query(30),
    ctx: ServiceContext = Depends(get_context),
) -> dict[str, Any]:
    require_app(app_id, ctx)
    trends = _value(
        run_query_trends(
            QueryTrendsInput(tenant_id=app_id, period=period, days=days),
            repo=ctx.analytics_repo,
            time_port=ctx.clock,
        )
    )
    return {
        "appId": app_id,
        "period": trends.period.value,
        "days": trends.days,
        "trends": [{"period": p.period, "count": p.count} for p in trends.points],
    }


@router.get("/referrers/{app_id}")
def get_referrers(
    app_id: str,
    limit: int = Query(20),
    ctx: ServiceContext = Depends(get_context),
) -> dict[str, Any]:
    require_app(app_id, ctx)
    stats = _value(
        run_query_referrers(
            QueryReferrersInput(tenant_id=app_id, limit=limit),
            repo=ctx.analytics_repo,
            time_port=ctx.clock,
        )
    )
    return {
        "appId": app_id,
        "bySource": _counts(stats.by_source, "sourceType"),
        "byDomain": _counts(stats.by_domain, "referrerDomain"),
    }


@router.get("/browsers/{app_id}")
def get_browsers(app_id: str, ctx: ServiceContext = Depends(get_context)) -> dict[str, Any]:
    require_app(app_id, ctx)
    stats = _value(
        run_query_browsers(
            QueryBrowsersInput(tenant_id=app_id), repo=ctx.analytics_repo, time_port=ctx.clock
        )
    )
    return {
        "appId": app_id,
        "byBrowser": _counts(stats.by_browser, "browser"),
        "byOS": _counts(stats.by_os, "os"),
        "byDeviceType": _counts(stats.by_device_type, "deviceType"),
    }


@router.get("/pages/{app_id}")
def get_pages(
    app_id: str,
    limit: int = Query(20),
    ctx: ServiceContext = Depends(get_context),
) -> dict[str, Any]:
    require_app(app_id, ctx)
    pages = _value(
        run_query_pages(
            QueryPagesInput(tenant_id=app_id, limit=limit),
            repo=ctx.analytics_repo,
            time_port=ctx.clock,
        )
    )
    return {
        "appId": app_id,
        "pages": [
            {"pagePath": p.page_path, "pageTitle": p.page_title, "views": p.views} for p in pages
        ],
    }


@router.get("/sessions/{app_id}/{session_id}")
def get_session(
    app_id: str,
    session_id: str,
    ctx: ServiceContext = Depends(get_context),
) -> dict[str, Any]:
    require_app(app_id, ctx)
    events = _value(
        run_query_session(
            QuerySessionInput(tenant_id=app_id, session_id=session_id),
            repo=ctx.analytics_repo,
            time_port=ctx.clock,
        )
    )
    serialized = []
    for event in events:
        item = asdict(event)
        item["timestamp"] = _iso(event.timestamp)
        serialized.append(item)
    return {"appId": app_id, "sessionId": session_id, "events": serialized}


@router.get("/views/{app_id}")
def get_views(
    app_id: str,
    limit: int = Query(50),
    offset: int = Query(0),
    ctx: ServiceContext = Depends(get_context),
) -> dict[str, Any]:
    require_app(app_id, ctx)
    page = _value(
        run_query_views(
            QueryViewsInput(tenant_id=app_id, limit=limit, offset=offset),
            repo=ctx.analytics_repo,
            time_port=ctx.clock,
        )
    )
    return {
        "appId": app_id,
        "views": [
            {
                "ip": v.masked_ip,
                "country": v.country,
                "timestamp": _iso(v.timestamp),
                "deviceSize": v.device_size,
            }
            for v in page.views
        ],
        "total": page.total,
        "limit": page.limit,
        "offset": page.offset,
    }
