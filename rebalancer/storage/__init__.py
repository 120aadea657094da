from rebalancer.storage.memory import InMemoryAnalyticsStore
from rebalancer.storage.sql import SqlAnalyticsStore, SqlStoreConfig

__all__ = ["InMemoryAnalyticsStore", "SqlAnalyticsStore", "SqlStoreConfig"]
