"""Structured events emitted by the domains."""

from .log import DomainEvent, EventLog, EventSubscriber

__all__ = ["DomainEvent", "EventLog", "EventSubscriber"]
