"""SQLAlchemy ORM models for payhook."""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import BIGINT, BOOLEAN, TEXT, TIMESTAMP, Index
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class Order(Base):
    """Order record - owned by the ordering subsystem.

    This service only moves ``status`` forward through conditional updates;
    it never creates or deletes orders.
    """

    __tablename__ = "orders"

    id: Mapped[str] = mapped_column(TEXT, primary_key=True)
    customer_id: Mapped[Optional[str]] = mapped_column(TEXT, nullable=True)
    vendor_id: Mapped[Optional[str]] = mapped_column(TEXT, nullable=True)

    # Status tracking
    status: Mapped[str] = mapped_column(TEXT, nullable=False, default="pending")
    # pending, payment_processing, paid, payment_failed, preparing, ready, delivered, cancelled
    payment_status: Mapped[Optional[str]] = mapped_column(TEXT, nullable=True)

    # Payment details (amount in minor units, e.g. centavos)
    payment_id: Mapped[Optional[str]] = mapped_column(TEXT, nullable=True)
    payment_amount: Mapped[Optional[int]] = mapped_column(BIGINT, nullable=True)
    payment_currency: Mapped[Optional[str]] = mapped_column(TEXT, nullable=True)
    paid_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    failed_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    failure_reason: Mapped[Optional[str]] = mapped_column(TEXT, nullable=True)
    # Upstream event that recorded the payment outcome
    payment_event_id: Mapped[Optional[str]] = mapped_column(TEXT, nullable=True)

    # Optimistic concurrency token, bumped on every transition
    version: Mapped[int] = mapped_column(BIGINT, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=_utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )

    __table_args__ = (
        Index("idx_orders_status", "status"),
        Index("idx_orders_customer", "customer_id"),
    )


class DeviceToken(Base):
    """Push registration for one device of one user.

    Rows are soft-deactivated (``is_active=False``) when the push gateway
    reports the registration as permanently invalid; they are never deleted
    here so the audit trail survives.
    """

    __tablename__ = "device_tokens"

    user_id: Mapped[str] = mapped_column(TEXT, primary_key=True)
    token: Mapped[str] = mapped_column(TEXT, primary_key=True)
    platform: Mapped[Optional[str]] = mapped_column(TEXT, nullable=True)  # android, ios, web
    is_active: Mapped[bool] = mapped_column(BOOLEAN, nullable=False, default=True)

    registered_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=_utcnow,
    )
    deactivated_at: Mapped[Optional[datetime]] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True
    )
    deactivation_reason: Mapped[Optional[str]] = mapped_column(TEXT, nullable=True)

    __table_args__ = (
        Index("idx_device_tokens_user_active", "user_id", "is_active"),
    )
