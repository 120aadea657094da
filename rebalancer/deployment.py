"""Wire the three domains, the relay and the analytics feed together."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from rebalancer.config import Settings
from rebalancer.domains import DestinationHandler, OriginPositionRegistry, ReactiveManager
from rebalancer.domains.base import Clock
from rebalancer.execution import ExecutionVenue
from rebalancer.persistence import AnalyticsFeed, AnalyticsStore
from rebalancer.relay import InMemoryRelay, SubscriptionRegistry
from rebalancer.storage import InMemoryAnalyticsStore, SqlAnalyticsStore, SqlStoreConfig
from rebalancer.units import ZERO_ADDRESS

logger = logging.getLogger(__name__)


@dataclass
class Deployment:
    settings: Settings
    origin: OriginPositionRegistry
    manager: ReactiveManager
    destination: DestinationHandler
    relay: InMemoryRelay
    store: AnalyticsStore
    feed: AnalyticsFeed


def build_deployment(
    settings: Settings,
    *,
    store: Optional[AnalyticsStore] = None,
    venue: Optional[ExecutionVenue] = None,
    clock: Optional[Clock] = None,
) -> Deployment:
    """Build an in-process deployment.

    The relay subscribes to every handled event kind of the origin contract
    when `settings.origin.contract_ref` is set. Without `store`, a SQL store
    is used when `settings.database_url` is set, an in-memory one otherwise.
    """
    origin = OriginPositionRegistry(settings.origin, clock=clock)
    manager = ReactiveManager(settings.manager, clock=clock)
    destination = DestinationHandler(settings.destination, venue=venue, clock=clock)

    registry = SubscriptionRegistry()
    if origin.contract_ref != ZERO_ADDRESS:
        registry.subscribe_all(origin.contract_ref)
    relay = InMemoryRelay(settings.relay, origin=origin, manager=manager, destination=destination, registry=registry)

    if store is None:
        if settings.database_url:
            sql_store = SqlAnalyticsStore(config=SqlStoreConfig(database_url=settings.database_url))
            sql_store.create_schema()
            store = sql_store
        else:
            store = InMemoryAnalyticsStore()
    feed = AnalyticsFeed(store)
    feed.attach(origin=origin, manager=manager, destination=destination, relay=relay)

    logger.info(
        f"Deployment ready: {len(registry)} subscriptions, store={type(store).__name__}, "
        f"destination chain {destination.chain_id}"
    )
    return Deployment(
        settings=settings,
        origin=origin,
        manager=manager,
        destination=destination,
        relay=relay,
        store=store,
        feed=feed,
    )
