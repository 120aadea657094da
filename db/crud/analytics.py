"""CRUD operations for the analytics tables.

Plain synchronous SQLAlchemy sessions; the caller owns the transaction.
"""

from __future__ import annotations

from typing import Any, Sequence

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from db.models.analytics import PaymentRow, PositionEventRow, PositionRow, ReactiveLogRow


# ---------------------------------------------------------------------------
# Position Operations
# ---------------------------------------------------------------------------


def get_position(db: Session, position_id: str) -> PositionRow | None:
    """Get a position by its on-chain id."""
    return db.execute(select(PositionRow).where(PositionRow.position_id == position_id)).scalars().first()


def get_positions(db: Session, owner: str | None = None) -> Sequence[PositionRow]:
    """Get all positions, optionally filtered by owner."""
    query = select(PositionRow)
    if owner:
        query = query.where(PositionRow.owner == owner)
    return db.execute(query.order_by(PositionRow.id)).scalars().all()


def upsert_position(db: Session, position_id: str, **values: Any) -> PositionRow:
    """Insert a position or update the provided fields of an existing one."""
    row = get_position(db, position_id)
    if row is None:
        row = PositionRow(position_id=position_id, **values)
        db.add(row)
    else:
        values.pop("created_at", None)
        for key, value in values.items():
            setattr(row, key, value)
    db.flush()
    return row


def count_positions(db: Session, active_only: bool = False) -> int:
    query = select(func.count()).select_from(PositionRow)
    if active_only:
        query = query.where(PositionRow.is_active.is_(True))
    return int(db.execute(query).scalar_one())


# ---------------------------------------------------------------------------
# Position Event Operations
# ---------------------------------------------------------------------------


def create_position_event(db: Session, **values: Any) -> PositionEventRow:
    row = PositionEventRow(**values)
    db.add(row)
    db.flush()
    return row


def get_position_events(db: Session, position_id: str) -> Sequence[PositionEventRow]:
    query = select(PositionEventRow).where(PositionEventRow.position_id == position_id)
    return db.execute(query.order_by(PositionEventRow.id)).scalars().all()


# ---------------------------------------------------------------------------
# Reactive Log Operations
# ---------------------------------------------------------------------------


def create_reactive_log(db: Session, **values: Any) -> ReactiveLogRow:
    row = ReactiveLogRow(**values)
    db.add(row)
    db.flush()
    return row


def update_reactive_log(db: Session, log_id: int, **values: Any) -> int:
    """Update the provided (non-None) fields. Returns the number of rows touched."""
    values = {k: v for k, v in values.items() if v is not None}
    result = db.execute(update(ReactiveLogRow).where(ReactiveLogRow.id == log_id).values(**values))
    return result.rowcount


def get_reactive_logs(db: Session, position_id: str | None = None) -> Sequence[ReactiveLogRow]:
    query = select(ReactiveLogRow)
    if position_id:
        query = query.where(ReactiveLogRow.position_id == position_id)
    return db.execute(query.order_by(ReactiveLogRow.id)).scalars().all()


# ---------------------------------------------------------------------------
# Payment Operations
# ---------------------------------------------------------------------------


def create_payment(db: Session, **values: Any) -> PaymentRow:
    row = PaymentRow(**values)
    db.add(row)
    db.flush()
    return row


def get_payments(db: Session, owner: str | None = None) -> Sequence[PaymentRow]:
    query = select(PaymentRow)
    if owner:
        query = query.where(PaymentRow.owner == owner)
    return db.execute(query.order_by(PaymentRow.id)).scalars().all()
