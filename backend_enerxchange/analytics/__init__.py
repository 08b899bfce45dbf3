"""
Analytics — transaction history ledger, filters and marketplace aggregates.
"""

from backend_enerxchange.analytics.aggregates import (
    AnalyticsAggregator,
    AnalyticsSnapshot,
    HourlyProduction,
    MarketSummary,
    VolumePoint,
    market_summary,
    production_by_hour,
    top_producers,
    volume_by_date,
)
from backend_enerxchange.analytics.history import (
    TransactionHistoryAggregator,
    TransactionRecord,
    TransactionType,
    merge_history,
)
from backend_enerxchange.analytics.history_filters import (
    HistoryFilter,
    export_history_csv,
    filter_history,
    parse_history_csv,
)
from backend_enerxchange.analytics.listing_filters import ListingFilter, filter_listings

__all__ = [
    "AnalyticsAggregator",
    "AnalyticsSnapshot",
    "HistoryFilter",
    "HourlyProduction",
    "ListingFilter",
    "MarketSummary",
    "TransactionHistoryAggregator",
    "TransactionRecord",
    "TransactionType",
    "VolumePoint",
    "export_history_csv",
    "filter_history",
    "filter_listings",
    "market_summary",
    "merge_history",
    "parse_history_csv",
    "production_by_hour",
    "top_producers",
    "volume_by_date",
]
