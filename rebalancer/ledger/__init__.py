"""Append-only dedup ledgers."""

from .dedup import DedupLedger, callback_key, event_key

__all__ = ["DedupLedger", "callback_key", "event_key"]
