"""Order state transitions under a conditional-update contract.

The only shared mutable resource in the webhook pipeline is the order row.
Every transition is ONE atomic statement:

    UPDATE orders
    SET status = :new_status, <fields>, version = version + 1
    WHERE id = :order_id AND status IN (:expected)

Two concurrent deliveries of the same event race on that WHERE clause; the
database guarantees exactly one of them sees rowcount == 1. The loser falls
through to a plain SELECT that only classifies the outcome (it never writes).
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session, sessionmaker

from payhook_api.db.models import Order

logger = logging.getLogger(__name__)


class OrderStatus(str, Enum):
    """Order lifecycle, stored as the lowercase value."""

    PENDING = "pending"
    PAYMENT_PROCESSING = "payment_processing"
    PAID = "paid"
    PAYMENT_FAILED = "payment_failed"
    PREPARING = "preparing"
    READY = "ready"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"

    @property
    def rank(self) -> int:
        return _RANK[self]

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


_RANK: dict[OrderStatus, int] = {
    OrderStatus.PENDING: 0,
    OrderStatus.PAYMENT_PROCESSING: 1,
    OrderStatus.PAID: 2,
    OrderStatus.PAYMENT_FAILED: 2,
    OrderStatus.PREPARING: 3,
    OrderStatus.READY: 4,
    OrderStatus.DELIVERED: 5,
    OrderStatus.CANCELLED: 6,
}

TERMINAL_STATUSES = frozenset(
    {OrderStatus.PAYMENT_FAILED, OrderStatus.DELIVERED, OrderStatus.CANCELLED}
)

# Statuses from which a payment outcome may still be recorded
PAYMENT_PENDING_STATUSES = frozenset({OrderStatus.PENDING, OrderStatus.PAYMENT_PROCESSING})

# Columns a transition may write besides status/version/updated_at
_WRITABLE_FIELDS = frozenset(
    {
        "payment_status",
        "payment_id",
        "payment_amount",
        "payment_currency",
        "paid_at",
        "failed_at",
        "failure_reason",
        "payment_event_id",
    }
)


class TransitionResult(str, Enum):
    APPLIED = "applied"
    ALREADY_IN_TARGET_OR_LATER = "already_in_target_or_later"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class TransitionOutcome:
    """Result of one conditional transition.

    ``current_status`` is the status observed after the attempt (the new
    status when applied). Recipient ids come from the order row so the
    dispatcher can fall back to them when event metadata lacks them.
    ``payment_event_id`` names the event that recorded the row's payment
    outcome, so a caller can recognise its own earlier write.
    """

    result: TransitionResult
    order_id: str
    current_status: Optional[str] = None
    customer_id: Optional[str] = None
    vendor_id: Optional[str] = None
    payment_event_id: Optional[str] = None

    @property
    def applied(self) -> bool:
        return self.result is TransitionResult.APPLIED


class OrderStateStore(ABC):
    """Conditional read/update of order records keyed by order id."""

    @abstractmethod
    def transition(
        self,
        order_id: str,
        expected: Iterable[OrderStatus],
        new_status: OrderStatus,
        fields: Optional[dict[str, Any]] = None,
    ) -> TransitionOutcome:
        """Move ``order_id`` to ``new_status`` iff its status is in ``expected``.

        Must be implemented as a single atomic conditional operation.
        Infrastructure failures propagate as exceptions; the caller decides
        whether they are retryable.
        """


def _validate_fields(fields: Optional[dict[str, Any]]) -> dict[str, Any]:
    if not fields:
        return {}
    unknown = set(fields) - _WRITABLE_FIELDS
    if unknown:
        raise ValueError(f"Unsupported transition fields: {sorted(unknown)}")
    return dict(fields)


class SqlOrderStateStore(OrderStateStore):
    """OrderStateStore over the ``orders`` table.

    Each call opens its own short-lived session, so one store instance is safe
    to share across threads.
    """

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def transition(
        self,
        order_id: str,
        expected: Iterable[OrderStatus],
        new_status: OrderStatus,
        fields: Optional[dict[str, Any]] = None,
    ) -> TransitionOutcome:
        expected_values = sorted({OrderStatus(s).value for s in expected})
        if not expected_values:
            raise ValueError("expected statuses must not be empty")
        values = _validate_fields(fields)
        values.update(
            status=new_status.value,
            version=Order.version + 1,
            updated_at=datetime.now(timezone.utc),
        )

        with self._session_factory() as session:
            stmt = (
                update(Order)
                .where(Order.id == order_id, Order.status.in_(expected_values))
                .values(**values)
                .returning(Order.customer_id, Order.vendor_id, Order.payment_event_id)
                .execution_options(synchronize_session=False)
            )
            row = session.execute(stmt).first()
            session.commit()

            if row is not None:
                logger.info(
                    "ORDER_TRANSITION_APPLIED",
                    extra={
                        "order_id": order_id,
                        "to_status": new_status.value,
                        "expected": expected_values,
                    },
                )
                return TransitionOutcome(
                    result=TransitionResult.APPLIED,
                    order_id=order_id,
                    current_status=new_status.value,
                    customer_id=row.customer_id,
                    vendor_id=row.vendor_id,
                    payment_event_id=row.payment_event_id,
                )

            # Zero rows: classify only. The row may have moved since, which
            # cannot change the classification (statuses only move forward).
            current = session.execute(
                select(
                    Order.status, Order.customer_id, Order.vendor_id, Order.payment_event_id
                ).where(Order.id == order_id)
            ).first()

        if current is None:
            logger.warning("ORDER_NOT_FOUND", extra={"order_id": order_id})
            return TransitionOutcome(result=TransitionResult.NOT_FOUND, order_id=order_id)

        logger.info(
            "ORDER_TRANSITION_SKIPPED",
            extra={
                "order_id": order_id,
                "current_status": current.status,
                "to_status": new_status.value,
            },
        )
        return TransitionOutcome(
            result=TransitionResult.ALREADY_IN_TARGET_OR_LATER,
            order_id=order_id,
            current_status=current.status,
            customer_id=current.customer_id,
            vendor_id=current.vendor_id,
            payment_event_id=current.payment_event_id,
        )
