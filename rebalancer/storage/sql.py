"""SQLAlchemy-backed analytics store (PostgreSQL in production, SQLite in tests)."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterator, Optional, Sequence

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from db.crud import analytics as crud
from db.models import Base, PaymentRow, PositionRow, ReactiveLogRow
from rebalancer.persistence.interfaces import AnalyticsStore
from rebalancer.persistence.records import (
    PaymentRecord,
    PositionEventRecord,
    PositionRecord,
    ReactiveLogRecord,
    ReactiveLogStatus,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SqlStoreConfig:
    """Connection configuration.

    `database_url` should come from environment (e.g. DATABASE_URL).
    Do not log it.
    """

    database_url: str


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite drops tzinfo; everything stored is UTC.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _int_or_none(value: Optional[str]) -> Optional[int]:
    return None if value is None else int(value)


class SqlAnalyticsStore(AnalyticsStore):
    """Analytics store on the `positions`, `position_events`, `reactive_logs` and `payments` tables."""

    def __init__(self, *, config: Optional[SqlStoreConfig] = None, engine: Optional[Engine] = None) -> None:
        if config is None and engine is None:
            raise ValueError("SqlAnalyticsStore needs a config or an engine")
        self._config = config
        self._engine = engine
        self._sessions: Optional[sessionmaker[Session]] = None

    def _get_engine(self) -> Engine:
        if self._engine is None:
            assert self._config is not None
            # Do not log the URL (it may contain secrets).
            self._engine = create_engine(self._config.database_url, echo=False, pool_pre_ping=True)
        return self._engine

    def create_schema(self) -> None:
        Base.metadata.create_all(self._get_engine())
        logger.info("Analytics schema ensured")

    @contextmanager
    def _session(self) -> Iterator[Session]:
        if self._sessions is None:
            self._sessions = sessionmaker(bind=self._get_engine(), expire_on_commit=False)
        with self._sessions.begin() as session:
            yield session

    # ---- positions

    def record_position(self, *, position: PositionRecord) -> None:
        with self._session() as db:
            crud.upsert_position(
                db,
                position.position_id,
                owner=position.owner,
                origin_chain_id=position.origin_chain_id,
                origin_contract=position.origin_contract,
                origin_token=position.origin_token,
                position_identifier=position.position_identifier,
                threshold=str(position.threshold),
                action_type=position.action_type,
                gas_budget=str(position.gas_budget),
                is_active=position.is_active,
                created_at=position.created_at,
                updated_at=position.updated_at,
            )

    def get_position(self, *, position_id: str) -> Optional[PositionRecord]:
        with self._session() as db:
            row = crud.get_position(db, position_id)
            return None if row is None else self._position_record(row)

    def list_positions(self, *, owner: str | None = None) -> Sequence[PositionRecord]:
        with self._session() as db:
            return [self._position_record(row) for row in crud.get_positions(db, owner)]

    # ---- position events

    def record_position_event(self, *, event: PositionEventRecord) -> int:
        with self._session() as db:
            row = crud.create_position_event(
                db,
                position_id=event.position_id,
                event_type=event.event_type,
                event_data=event.event_data,
                origin_tx_hash=event.origin_tx_hash,
                created_at=event.created_at,
            )
            return int(row.id)

    def list_position_events(self, *, position_id: str) -> Sequence[PositionEventRecord]:
        with self._session() as db:
            return [
                PositionEventRecord(
                    id=int(row.id),
                    position_id=row.position_id,
                    event_type=row.event_type,
                    event_data=row.event_data or {},
                    origin_tx_hash=row.origin_tx_hash,
                    created_at=_aware(row.created_at),
                )
                for row in crud.get_position_events(db, position_id)
            ]

    # ---- reactive logs

    def record_reactive_log(self, *, log: ReactiveLogRecord) -> int:
        with self._session() as db:
            row = crud.create_reactive_log(
                db,
                position_id=log.position_id,
                status=log.status,
                payload=log.payload,
                reactive_tx_hash=log.reactive_tx_hash,
                origin_tx_hash=log.origin_tx_hash,
                dest_tx_hash=log.dest_tx_hash,
                gas_used=None if log.gas_used is None else str(log.gas_used),
                created_at=log.created_at,
            )
            return int(row.id)

    def update_reactive_log(
        self,
        *,
        log_id: int,
        status: ReactiveLogStatus,
        dest_tx_hash: str | None = None,
        gas_used: int | None = None,
    ) -> None:
        with self._session() as db:
            touched = crud.update_reactive_log(
                db,
                log_id,
                status=status,
                dest_tx_hash=dest_tx_hash,
                gas_used=None if gas_used is None else str(gas_used),
            )
            if not touched:
                raise KeyError(log_id)

    def list_reactive_logs(self, *, position_id: str | None = None) -> Sequence[ReactiveLogRecord]:
        with self._session() as db:
            return [self._log_record(row) for row in crud.get_reactive_logs(db, position_id)]

    # ---- payments

    def record_payment(self, *, payment: PaymentRecord) -> int:
        with self._session() as db:
            row = crud.create_payment(
                db,
                owner=payment.owner,
                position_id=payment.position_id,
                amount=str(payment.amount),
                currency=payment.currency,
                status=payment.status,
                tx_hash=payment.tx_hash,
                created_at=payment.created_at,
            )
            return int(row.id)

    def list_payments(self, *, owner: str | None = None) -> Sequence[PaymentRecord]:
        with self._session() as db:
            return [self._payment_record(row) for row in crud.get_payments(db, owner)]

    # ---- row mapping

    @staticmethod
    def _position_record(row: PositionRow) -> PositionRecord:
        return PositionRecord(
            position_id=row.position_id,
            owner=row.owner,
            origin_chain_id=int(row.origin_chain_id),
            origin_contract=row.origin_contract,
            origin_token=row.origin_token,
            position_identifier=row.position_identifier,
            threshold=int(row.threshold),
            action_type=row.action_type,
            gas_budget=int(row.gas_budget),
            is_active=bool(row.is_active),
            created_at=_aware(row.created_at),
            updated_at=_aware(row.updated_at),
        )

    @staticmethod
    def _log_record(row: ReactiveLogRow) -> ReactiveLogRecord:
        payload: dict[str, Any] = row.payload or {}
        return ReactiveLogRecord(
            id=int(row.id),
            position_id=row.position_id,
            status=row.status,
            payload=payload,
            reactive_tx_hash=row.reactive_tx_hash,
            origin_tx_hash=row.origin_tx_hash,
            dest_tx_hash=row.dest_tx_hash,
            gas_used=_int_or_none(row.gas_used),
            created_at=_aware(row.created_at),
        )

    @staticmethod
    def _payment_record(row: PaymentRow) -> PaymentRecord:
        return PaymentRecord(
            id=int(row.id),
            owner=row.owner,
            position_id=row.position_id,
            amount=int(row.amount),
            currency=row.currency,
            status=row.status,
            tx_hash=row.tx_hash,
            created_at=_aware(row.created_at),
        )
