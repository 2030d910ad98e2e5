"""
Analytics component - Event registration and aggregation.

Registers pageviews/events with masked addresses and serves tenant-scoped
analytics over the same relation.

Invariants:
- No raw network address is stored, logged or returned
- Uniqueness computed for pageviews only, within the trailing window
- Every registration appends a row
- Every operation is scoped to one allow-listed, provisioned tenant
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from viewcounter.core.errors import NotInitializedError, StorageError, ValidationError
from viewcounter.core.ports.clock import TimePort

from ._aggregate import AggregateConfig, AggregationEngine
from ._impl import EventStore, EventStoreConfig
from .models import (
    AnalyticsValidationError,
    QueryBrowsersInput,
    QueryOutput,
    QueryPagesInput,
    QueryReferrersInput,
    QuerySessionInput,
    QueryStatsInput,
    QueryTrendsInput,
    QueryViewsInput,
    RegisterEventInput,
    RegisterEventOutput,
)
from .ports import AnalyticsRepoPort, EventRepoPort

logger = logging.getLogger(__name__)

_HANDLED_ERRORS = (ValidationError, NotInitializedError, StorageError)


def _convert_error(
    error: ValidationError | NotInitializedError | StorageError,
) -> AnalyticsValidationError:
    """Convert a core error to a component error entry."""
    field_name = error.field_name if isinstance(error, ValidationError) else None
    return AnalyticsValidationError(code=error.code, message=str(error), field_name=field_name)


def _query(operation: Callable[[], Any]) -> QueryOutput:
    try:
        value = operation()
    except _HANDLED_ERRORS as e:
        return QueryOutput(value=None, errors=[_convert_error(e)], success=False)
    return QueryOutput(value=value)


# --- Component Entry Points ---


def run_register_event(
    inp: RegisterEventInput,
    *,
    repo: EventRepoPort,
    time_port: TimePort | None = None,
    config: EventStoreConfig | None = None,
) -> RegisterEventOutput:
    """
    Register a pageview or custom event.

    Args:
        inp: Tenant id and validated event attributes.
        repo: Event repository port.
        time_port: Optional time port.
        config: Optional store configuration (default dedup window).

    Returns:
        RegisterEventOutput with insert id and uniqueness, or errors.
    """
    store = EventStore(repo=repo, time_port=time_port, config=config)
    try:
        result = store.register_event(inp.tenant_id, inp.attrs)
    except _HANDLED_ERRORS as e:
        if isinstance(e, StorageError):
            logger.warning("Event registration failed for %s: %s", inp.tenant_id, e)
        return RegisterEventOutput(result=None, errors=[_convert_error(e)], success=False)

    return RegisterEventOutput(result=result)


def _engine(
    repo: AnalyticsRepoPort,
    time_port: TimePort | None,
    config: AggregateConfig | None,
) -> AggregationEngine:
    return AggregationEngine(repo=repo, time_port=time_port, config=config)


def run_query_stats(
    inp: QueryStatsInput,
    *,
    repo: AnalyticsRepoPort,
    time_port: TimePort | None = None,
    config: AggregateConfig | None = None,
) -> QueryOutput:
    """Summary counts with country and device breakdowns."""
    engine = _engine(repo, time_port, config)
    return _query(lambda: engine.get_stats(inp.tenant_id))


def run_query_trends(
    inp: QueryTrendsInput,
    *,
    repo: AnalyticsRepoPort,
    time_port: TimePort | None = None,
    config: AggregateConfig | None = None,
) -> QueryOutput:
    """Counts per hourly, daily or weekly bucket."""
    engine = _engine(repo, time_port, config)
    return _query(lambda: engine.get_trends(inp.tenant_id, inp.period, inp.days))


def run_query_referrers(
    inp: QueryReferrersInput,
    *,
    repo: AnalyticsRepoPort,
    time_port: TimePort | None = None,
    config: AggregateConfig | None = None,
) -> QueryOutput:
    engine = _engine(repo, time_port, config)
    return _query(lambda: engine.get_referrer_stats(inp.tenant_id, inp.limit))


def run_query_browsers(
    inp: QueryBrowsersInput,
    *,
    repo: AnalyticsRepoPort,
    time_port: TimePort | None = None,
    config: AggregateConfig | None = None,
) -> QueryOutput:
    engine = _engine(repo, time_port, config)
    return _query(lambda: engine.get_browser_stats(inp.tenant_id))


def run_query_pages(
    inp: QueryPagesInput,
    *,
    repo: AnalyticsRepoPort,
    time_port: TimePort | None = None,
    config: AggregateConfig | None = None,
) -> QueryOutput:
    engine = _engine(repo, time_port, config)
    return _query(lambda: engine.get_page_stats(inp.tenant_id, inp.limit))


def run_query_session(
    inp: QuerySessionInput,
    *,
    repo: AnalyticsRepoPort,
    time_port: TimePort | None = None,
    config: AggregateConfig | None = None,
) -> QueryOutput:
    """Every event of one session, oldest first."""
    engine = _engine(repo, time_port, config)
    return _query(lambda: engine.get_session_details(inp.tenant_id, inp.session_id))


def run_query_views(
    inp: QueryViewsInput,
    *,
    repo: AnalyticsRepoPort,
    time_port: TimePort | None = None,
    config: AggregateConfig | None = None,
) -> QueryOutput:
    """Paginated recent views, newest first."""
    engine = _engine(repo, time_port, config)
    return _query(lambda: engine.get_views(inp.tenant_id, inp.limit, inp.offset))


_QUERY_HANDLERS: dict[type, Callable[..., QueryOutput]] = {
    QueryStatsInput: run_query_stats,
    QueryTrendsInput: run_query_trends,
    QueryReferrersInput: run_query_referrers,
    QueryBrowsersInput: run_query_browsers,
    QueryPagesInput: run_query_pages,
    QuerySessionInput: run_query_session,
    QueryViewsInput: run_query_views,
}


def run(
    inp: Any,
    *,
    event_repo: EventRepoPort | None = None,
    repo: AnalyticsRepoPort | None = None,
    time_port: TimePort | None = None,
    store_config: EventStoreConfig | None = None,
    aggregate_config: AggregateConfig | None = None,
) -> RegisterEventOutput | QueryOutput:
    """
    Main entry point for the analytics component.

    Dispatches to the appropriate handler based on input type.

    Args:
        inp: Input object determining the operation.
        event_repo: Event repository port (required for registration).
        repo: Analytics repository port (required for queries).
        time_port: Optional time port.
        store_config: Optional write path configuration.
        aggregate_config: Optional read path configuration.

    Returns:
        RegisterEventOutput for registrations, QueryOutput for queries.
    """
    if isinstance(inp, RegisterEventInput):
        if event_repo is None:
            raise ValueError("EventRepoPort is required for register operations")
        return run_register_event(inp, repo=event_repo, time_port=time_port, config=store_config)

    handler = _QUERY_HANDLERS.get(type(inp))
    if handler is None:
        raise ValueError(f"Unknown input type: {type(inp)}")
    if repo is None:
        raise ValueError("AnalyticsRepoPort is required for query operations")
    return handler(inp, repo=repo, time_port=time_port, config=aggregate_config)
