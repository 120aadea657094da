"""Tests for the append-only dedup ledger."""

from __future__ import annotations

import pytest

from rebalancer.errors import StateError, ValidationError
from rebalancer.ledger import DedupLedger, callback_key, event_key

SIG = b"\x01" * 32
PID = b"\x02" * 32


def test_mark_then_contains(clock):
    ledger = DedupLedger(name="test", clock=clock)
    key = event_key(SIG, PID, b"payload")

    assert key not in ledger
    ledger.mark(key)

    assert key in ledger
    assert ledger.is_processed(key)
    assert ledger.processed_at(key) == clock.now
    assert len(ledger) == 1
    assert list(ledger) == [key]


def test_mark_is_insert_once():
    ledger = DedupLedger(name="test")
    key = event_key(SIG, PID, b"")
    ledger.mark(key)

    with pytest.raises(StateError, match="already processed"):
        ledger.mark(key)
    assert len(ledger) == 1


def test_ledger_has_no_removal_api():
    ledger = DedupLedger(name="test")
    assert not hasattr(ledger, "remove")
    assert not hasattr(ledger, "clear")
    assert not hasattr(ledger, "discard")


def test_event_key_covers_every_component():
    base = event_key(SIG, PID, b"data")

    assert event_key(SIG, PID, b"data") == base
    assert event_key(b"\x03" * 32, PID, b"data") != base
    assert event_key(SIG, b"\x04" * 32, b"data") != base
    assert event_key(SIG, PID, b"datb") != base
    assert len(base) == 32


def test_callback_key_requires_32_bytes():
    assert callback_key(b"\x05" * 32) == b"\x05" * 32
    with pytest.raises(ValidationError):
        callback_key(b"\x05" * 31)
