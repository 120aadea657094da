"""SQLAlchemy models for the analytics history tables.

- positions
- position_events
- reactive_logs
- payments

uint256 values (thresholds, budgets, amounts) are stored as decimal strings;
no SQL numeric type holds them exactly on every backend.
"""

from __future__ import annotations

from sqlalchemy import JSON, BigInteger, Boolean, Column, DateTime, Index, Integer, Text, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase

# SQLite only autoincrements INTEGER PRIMARY KEY.
Id = BigInteger().with_variant(Integer, "sqlite")
Json = JSON().with_variant(JSONB, "postgresql")


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class PositionRow(Base):
    """Monitored position as seen by the manager.

    Table: positions
    """

    __tablename__ = "positions"

    id = Column(Id, primary_key=True, autoincrement=True)
    position_id = Column(Text, nullable=False, unique=True)  # 0x-prefixed bytes32
    owner = Column(Text, nullable=False)
    origin_chain_id = Column(BigInteger, nullable=False)
    origin_contract = Column(Text, nullable=False)
    origin_token = Column(Text, nullable=True)
    position_identifier = Column(Text, nullable=True)  # label
    threshold = Column(Text, nullable=False)
    action_type = Column(Text, nullable=False)  # partial_unwind|rebalance|hedge
    gas_budget = Column(Text, nullable=False, default="0")
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (Index("idx_positions_owner", "owner"),)

    def __repr__(self) -> str:
        return f"<PositionRow(position_id={self.position_id}, action={self.action_type}, active={self.is_active})>"


class PositionEventRow(Base):
    """Table: position_events"""

    __tablename__ = "position_events"

    id = Column(Id, primary_key=True, autoincrement=True)
    position_id = Column(Text, nullable=False)
    event_type = Column(Text, nullable=False)  # created|price_update|liquidity_update|threshold_breach
    event_data = Column(Json, nullable=True)
    origin_tx_hash = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (Index("idx_position_events_position", "position_id"),)


class ReactiveLogRow(Base):
    """Table: reactive_logs"""

    __tablename__ = "reactive_logs"

    id = Column(Id, primary_key=True, autoincrement=True)
    position_id = Column(Text, nullable=False)
    reactive_tx_hash = Column(Text, nullable=True)
    origin_tx_hash = Column(Text, nullable=True)
    dest_tx_hash = Column(Text, nullable=True)
    gas_used = Column(Text, nullable=True)
    status = Column(Text, nullable=False)  # pending|success|failed
    payload = Column(Json, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (Index("idx_reactive_logs_position", "position_id"),)

    def __repr__(self) -> str:
        return f"<ReactiveLogRow(id={self.id}, position_id={self.position_id}, status={self.status})>"


class PaymentRow(Base):
    """Table: payments"""

    __tablename__ = "payments"

    id = Column(Id, primary_key=True, autoincrement=True)
    owner = Column(Text, nullable=False)
    position_id = Column(Text, nullable=True)
    amount = Column(Text, nullable=False)
    currency = Column(Text, nullable=False)  # REACT|ETH|USDC
    tx_hash = Column(Text, nullable=True)
    status = Column(Text, nullable=False)  # pending|confirmed|failed
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (Index("idx_payments_owner", "owner"),)
