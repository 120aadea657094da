"""SQLAlchemy models for the rebalancer analytics database."""

from db.models.analytics import Base, PaymentRow, PositionEventRow, PositionRow, ReactiveLogRow

__all__ = ["Base", "PaymentRow", "PositionEventRow", "PositionRow", "ReactiveLogRow"]
