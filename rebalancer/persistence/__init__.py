from rebalancer.persistence.feed import AnalyticsFeed
from rebalancer.persistence.interfaces import AnalyticsStore
from rebalancer.persistence.records import (
    PaymentCurrency,
    PaymentRecord,
    PaymentStatus,
    PositionEventRecord,
    PositionEventType,
    PositionRecord,
    ReactiveLogRecord,
    ReactiveLogStatus,
)

__all__ = [
    "AnalyticsFeed",
    "AnalyticsStore",
    "PaymentCurrency",
    "PaymentRecord",
    "PaymentStatus",
    "PositionEventRecord",
    "PositionEventType",
    "PositionRecord",
    "ReactiveLogRecord",
    "ReactiveLogStatus",
]
