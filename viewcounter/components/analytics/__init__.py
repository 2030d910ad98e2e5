"""
Analytics component - Event registration and aggregation.
"""

from ._aggregate import (
    AggregateConfig,
    AggregationEngine,
    InMemoryAnalyticsRepo,
    bucket_key,
    create_aggregation_engine,
    iso_week_key,
)
from ._impl import (
    DefaultTimePort,
    EventStore,
    EventStoreConfig,
    InMemoryEventRepo,
    create_event_store,
    normalize_country,
)
from .component import (
    run,
    run_query_browsers,
    run_query_pages,
    run_query_referrers,
    run_query_session,
    run_query_stats,
    run_query_trends,
    run_query_views,
    run_register_event,
)
from .models import (
    AnalyticsValidationError,
    BrowserStats,
    CountItem,
    EventAttributes,
    EventRow,
    PageStat,
    QueryBrowsersInput,
    QueryOutput,
    QueryPagesInput,
    QueryReferrersInput,
    QuerySessionInput,
    QueryStatsInput,
    QueryTrendsInput,
    QueryViewsInput,
    ReferrerStats,
    RegisterEventInput,
    RegisterEventOutput,
    RegisterResult,
    SessionEvent,
    StatsResult,
    TrendPoint,
    TrendsResult,
    ViewRecord,
    ViewsPage,
)
from .ports import AnalyticsRepoPort, EventRepoPort

__all__ = [
    # Write path
    "DefaultTimePort",
    "EventStore",
    "EventStoreConfig",
    "InMemoryEventRepo",
    "create_event_store",
    "normalize_country",
    # Read path
    "AggregateConfig",
    "AggregationEngine",
    "InMemoryAnalyticsRepo",
    "bucket_key",
    "create_aggregation_engine",
    "iso_week_key",
    # Entry points
    "run",
    "run_query_browsers",
    "run_query_pages",
    "run_query_referrers",
    "run_query_session",
    "run_query_stats",
    "run_query_trends",
    "run_query_views",
    "run_register_event",
    # Models
    "AnalyticsValidationError",
    "BrowserStats",
    "CountItem",
    "EventAttributes",
    "EventRow",
    "PageStat",
    "QueryBrowsersInput",
    "QueryOutput",
    "QueryPagesInput",
    "QueryReferrersInput",
    "QuerySessionInput",
    "QueryStatsInput",
    "QueryTrendsInput",
    "QueryViewsInput",
    "ReferrerStats",
    "RegisterEventInput",
    "RegisterEventOutput",
    "RegisterResult",
    "SessionEvent",
    "StatsResult",
    "TrendPoint",
    "TrendsResult",
    "ViewRecord",
    "ViewsPage",
    # Ports
    "AnalyticsRepoPort",
    "EventRepoPort",
]
