"""Analytics store tests, run against both the in-memory and the SQL store."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from conftest import create_monitored
from db.init_db import init_schema
from rebalancer.guards import sign_callback
from rebalancer.persistence import (
    AnalyticsFeed,
    PaymentRecord,
    PositionEventRecord,
    PositionRecord,
    ReactiveLogRecord,
)
from rebalancer.relay import encode_action_data
from rebalancer.storage import InMemoryAnalyticsStore, SqlAnalyticsStore
from rebalancer.types import ActionData
from rebalancer.units import SCALE

POSITION_HEX = "0x" + "11" * 32
OWNER = "0x" + "ab" * 20
CREATED = datetime(2024, 1, 1, tzinfo=timezone.utc)


def make_sql_store() -> SqlAnalyticsStore:
    engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    store = SqlAnalyticsStore(engine=engine)
    store.create_schema()
    return store


@pytest.fixture(params=["memory", "sql"])
def store(request):
    if request.param == "memory":
        return InMemoryAnalyticsStore()
    return make_sql_store()


def position_record(**overrides) -> PositionRecord:
    values = dict(
        position_id=POSITION_HEX,
        owner=OWNER,
        origin_chain_id=1597,
        origin_contract="0x" + "0c" * 20,
        threshold=SCALE // 5,
        action_type="rebalance",
        gas_budget=10**17,
        position_identifier="eth-usdc-lp",
        created_at=CREATED,
        updated_at=CREATED,
    )
    values.update(overrides)
    return PositionRecord(**values)


class TestPositions:
    def test_record_and_get(self, store) -> None:
        store.record_position(position=position_record())

        record = store.get_position(position_id=POSITION_HEX)
        assert record == position_record()

    def test_large_integers_survive(self, store) -> None:
        store.record_position(position=position_record(gas_budget=2**255))
        assert store.get_position(position_id=POSITION_HEX).gas_budget == 2**255

    def test_upsert_keeps_created_at(self, store) -> None:
        store.record_position(position=position_record())
        later = CREATED + timedelta(hours=1)

        store.record_position(position=position_record(is_active=False, created_at=later, updated_at=later))

        record = store.get_position(position_id=POSITION_HEX)
        assert not record.is_active
        assert record.created_at == CREATED
        assert record.updated_at == later

    def test_list_by_owner(self, store) -> None:
        store.record_position(position=position_record())
        store.record_position(position=position_record(position_id="0x" + "22" * 32, owner="0x" + "cd" * 20))

        assert [p.position_id for p in store.list_positions(owner=OWNER)] == [POSITION_HEX]
        assert len(store.list_positions()) == 2

    def test_unknown_position(self, store) -> None:
        assert store.get_position(position_id="0x" + "99" * 32) is None


class TestEventsLogsPayments:
    def test_position_events(self, store) -> None:
        first = store.record_position_event(
            event=PositionEventRecord(position_id=POSITION_HEX, event_type="created", event_data={"a": 1})
        )
        second = store.record_position_event(
            event=PositionEventRecord(position_id=POSITION_HEX, event_type="price_update", event_data={"delta": "5"})
        )

        events = store.list_position_events(position_id=POSITION_HEX)
        assert [e.id for e in events] == [first, second]
        assert events[1].event_data == {"delta": "5"}

    def test_reactive_log_lifecycle(self, store) -> None:
        log_id = store.record_reactive_log(
            log=ReactiveLogRecord(position_id=POSITION_HEX, status="pending", payload={"callback_id": "0x01"})
        )

        store.update_reactive_log(log_id=log_id, status="success", dest_tx_hash="0xabc", gas_used=21000)

        [log] = store.list_reactive_logs(position_id=POSITION_HEX)
        assert (log.status, log.dest_tx_hash, log.gas_used) == ("success", "0xabc", 21000)
        assert log.payload == {"callback_id": "0x01"}

    def test_status_only_update_keeps_other_fields(self, store) -> None:
        log_id = store.record_reactive_log(
            log=ReactiveLogRecord(position_id=POSITION_HEX, status="pending", payload={}, gas_used=5)
        )
        store.update_reactive_log(log_id=log_id, status="failed")

        [log] = store.list_reactive_logs()
        assert log.status == "failed"
        assert log.gas_used == 5

    def test_update_unknown_log(self, store) -> None:
        with pytest.raises(KeyError):
            store.update_reactive_log(log_id=404, status="failed")

    def test_payments(self, store) -> None:
        store.record_payment(
            payment=PaymentRecord(owner=OWNER, amount=10**17, currency="REACT", position_id=POSITION_HEX)
        )
        store.record_payment(payment=PaymentRecord(owner="0x" + "cd" * 20, amount=1, currency="ETH"))

        [payment] = store.list_payments(owner=OWNER)
        assert payment.amount == 10**17
        assert payment.status == "confirmed"
        assert len(store.list_payments()) == 2


class TestFeed:
    def test_manager_events_are_recorded(self, manager, accounts) -> None:
        store = make_sql_store()
        AnalyticsFeed(store, currency="ETH").attach(manager=manager)

        pid = create_monitored(manager, accounts.owner.address, threshold=SCALE)
        manager.update_position(pid, SCALE // 2, "hedge", SCALE // 10, caller=accounts.owner.address)
        manager.deactivate_position(pid, caller=accounts.owner.address)

        record = store.get_position(position_id="0x" + pid.hex())
        assert record.threshold == SCALE // 2
        assert record.action_type == "hedge"
        assert not record.is_active
        [payment] = store.list_payments(owner=accounts.owner.address)
        assert payment.currency == "ETH"

    def test_unknown_callback_is_skipped(self, destination, accounts) -> None:
        store = InMemoryAnalyticsStore()
        AnalyticsFeed(store).attach(destination=destination)
        position_id = b"\x11" * 32
        signature = sign_callback(accounts.relay.key, position_id, destination.chain_id)
        data = encode_action_data(ActionData("rebalance", "0x" + "00" * 20, "0x" + "00" * 20, 5, 0))

        assert destination.process_callback(b"\x01" * 32, position_id, data, signature)
        assert store.list_reactive_logs() == []


def test_init_schema_creates_tables(tmp_path) -> None:
    url = f"sqlite:///{tmp_path / 'analytics.db'}"

    tables = init_schema(url)

    assert tables == ["payments", "position_events", "positions", "reactive_logs"]
    assert init_schema(url) == tables


def test_sql_store_needs_engine_or_config() -> None:
    with pytest.raises(ValueError):
        SqlAnalyticsStore()

