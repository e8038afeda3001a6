"""Event dispatch: verified PaymentEvent → order transition → fan-out.

  PaymentPaid      → {pending, payment_processing} → paid
                     notify customer ("Payment Successful!") + vendor ("New Order Received!")
  PaymentFailed    → {pending, payment_processing} → payment_failed
                     notify customer ("Payment Failed")
  SourceChargeable → acknowledged, no state change
  Unknown          → acknowledged, no state change (never an error: the
                     sender would otherwise retry forever)

Idempotency comes from the conditional transition: only the delivery that
actually moves the order sends notifications. A duplicate or out-of-order
event observes ALREADY_IN_TARGET_OR_LATER and sends nothing.

Every transition stamps the order with the event id. When a store call
times out after committing, the retry finds the row already in the target
status under this event's id and counts the transition as applied.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from sqlalchemy.exc import DBAPIError, OperationalError

from payhook_api.config.settings import PipelineSettings
from payhook_api.notifications.fanout import FanoutReport, NotificationFanoutEngine
from payhook_api.notifications.messages import (
    NotificationMessage,
    new_order_message,
    payment_failed_message,
    payment_success_message,
)
from payhook_api.observability.metrics import log_transition_result
from payhook_api.payments.errors import TransientInfrastructureFailure
from payhook_api.payments.events import PaymentEvent, PaymentEventType
from payhook_api.payments.order_store import (
    PAYMENT_PENDING_STATUSES,
    OrderStateStore,
    OrderStatus,
    TransitionOutcome,
    TransitionResult,
)
from payhook_api.utils.retry import retry_async
from payhook_api.utils.sanitize import error_fields

logger = logging.getLogger(__name__)

DEFAULT_FAILURE_REASON = "Payment failed"


class DispatchOutcome(str, Enum):
    APPLIED = "applied"
    DUPLICATE = "duplicate"
    ORDER_NOT_FOUND = "order_not_found"
    MISSING_ORDER_REFERENCE = "missing_order_reference"
    IGNORED = "ignored"


@dataclass
class DispatchResult:
    outcome: DispatchOutcome
    event_id: str
    event_type: PaymentEventType
    order_id: Optional[str] = None
    transition: Optional[TransitionOutcome] = None
    notifications: list[FanoutReport] = field(default_factory=list)


def is_transient_store_error(exc: BaseException) -> bool:
    """Store failures worth retrying on the transition path."""
    if isinstance(exc, (TimeoutError, asyncio.TimeoutError, OperationalError)):
        return True
    if isinstance(exc, DBAPIError) and exc.connection_invalidated:
        return True
    return False


class EventDispatcher:
    """Routes a verified event to its handler."""

    def __init__(
        self,
        order_store: OrderStateStore,
        fanout: NotificationFanoutEngine,
        settings: Optional[PipelineSettings] = None,
        *,
        sleep=asyncio.sleep,
    ) -> None:
        self.order_store = order_store
        self.fanout = fanout
        self.settings = settings or PipelineSettings()
        self._sleep = sleep

    async def dispatch(self, event: PaymentEvent) -> DispatchResult:
        if event.type is PaymentEventType.PAYMENT_PAID:
            return await self._handle_paid(event)
        if event.type is PaymentEventType.PAYMENT_FAILED:
            return await self._handle_failed(event)

        logger.info(
            "WEBHOOK_EVENT_IGNORED",
            extra={"event_id": event.id, "event_type": event.upstream_type},
        )
        return DispatchResult(DispatchOutcome.IGNORED, event.id, event.type)

    # ------------------------------------------------------------------
    # Store access (bounded timeout + bounded retry)
    # ------------------------------------------------------------------

    async def _transition(
        self,
        event: PaymentEvent,
        order_id: str,
        new_status: OrderStatus,
        fields: dict[str, Any],
    ) -> TransitionOutcome:
        attempts = 0
        timed_out = False
        fields = {**fields, "payment_event_id": event.id}

        async def attempt() -> TransitionOutcome:
            nonlocal attempts, timed_out
            attempts += 1
            try:
                return await asyncio.wait_for(
                    asyncio.to_thread(
                        self.order_store.transition,
                        order_id,
                        PAYMENT_PENDING_STATUSES,
                        new_status,
                        fields,
                    ),
                    timeout=self.settings.store_timeout_seconds,
                )
            except (TimeoutError, asyncio.TimeoutError):
                # The worker thread keeps running and may still commit
                timed_out = True
                raise

        try:
            outcome = await retry_async(
                attempt,
                is_retryable=is_transient_store_error,
                max_attempts=self.settings.store_max_attempts,
                base_delay=self.settings.store_retry_base_delay,
                max_delay=self.settings.store_retry_max_delay,
                operation="order_transition",
                sleep=self._sleep,
            )
        except Exception as exc:
            if not is_transient_store_error(exc):
                raise
            logger.error(
                "ORDER_TRANSITION_UNAVAILABLE",
                extra={"order_id": order_id, "attempts": attempts, **error_fields(exc)},
            )
            raise TransientInfrastructureFailure(
                "Order store unavailable; retry later"
            ) from exc

        if timed_out and self._is_own_write(outcome, new_status, event.id):
            logger.warning(
                "ORDER_TRANSITION_RECONCILED",
                extra={"order_id": order_id, "to_status": new_status.value, "attempts": attempts},
            )
            outcome = replace(outcome, result=TransitionResult.APPLIED)

        log_transition_result(order_id, outcome.result.value, new_status.value, attempts)
        return outcome

    @staticmethod
    def _is_own_write(outcome: TransitionOutcome, new_status: OrderStatus, event_id: str) -> bool:
        """A timed-out attempt of this same event already moved the row."""
        return (
            outcome.result is TransitionResult.ALREADY_IN_TARGET_OR_LATER
            and outcome.current_status == new_status.value
            and outcome.payment_event_id == event_id
        )

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def _missing_order(self, event: PaymentEvent) -> DispatchResult:
        logger.warning(
            "WEBHOOK_MISSING_ORDER_REFERENCE",
            extra={"event_id": event.id, "event_type": event.upstream_type},
        )
        return DispatchResult(DispatchOutcome.MISSING_ORDER_REFERENCE, event.id, event.type)

    def _not_applied(self, event: PaymentEvent, transition: TransitionOutcome) -> DispatchResult:
        if transition.result is TransitionResult.NOT_FOUND:
            outcome = DispatchOutcome.ORDER_NOT_FOUND
        else:
            outcome = DispatchOutcome.DUPLICATE
        return DispatchResult(outcome, event.id, event.type, transition.order_id, transition)

    async def _handle_paid(self, event: PaymentEvent) -> DispatchResult:
        meta = event.metadata
        if not meta.order_id:
            return self._missing_order(event)

        fields: dict[str, Any] = {
            "payment_status": "completed",
            "paid_at": datetime.now(timezone.utc),
        }
        if meta.payment_id:
            fields["payment_id"] = meta.payment_id
        if meta.amount is not None:
            fields["payment_amount"] = meta.amount
        if meta.currency:
            fields["payment_currency"] = meta.currency

        transition = await self._transition(event, meta.order_id, OrderStatus.PAID, fields)
        if not transition.applied:
            return self._not_applied(event, transition)

        customer_id = meta.customer_id or transition.customer_id
        vendor_id = meta.vendor_id or transition.vendor_id

        messages: list[NotificationMessage] = []
        if customer_id:
            messages.append(
                payment_success_message(
                    customer_id=customer_id,
                    order_id=meta.order_id,
                    amount=meta.amount,
                    currency=meta.currency,
                    vendor_id=vendor_id,
                )
            )
        if vendor_id:
            messages.append(
                new_order_message(
                    vendor_id=vendor_id,
                    order_id=meta.order_id,
                    amount=meta.amount,
                    customer_id=customer_id,
                )
            )
        return await self._applied(event, transition, messages)

    async def _handle_failed(self, event: PaymentEvent) -> DispatchResult:
        meta = event.metadata
        if not meta.order_id:
            return self._missing_order(event)

        fields: dict[str, Any] = {
            "payment_status": "failed",
            "failure_reason": meta.failure_reason or DEFAULT_FAILURE_REASON,
            "failed_at": datetime.now(timezone.utc),
        }
        if meta.payment_id:
            fields["payment_id"] = meta.payment_id

        transition = await self._transition(
            event, meta.order_id, OrderStatus.PAYMENT_FAILED, fields
        )
        if not transition.applied:
            return self._not_applied(event, transition)

        customer_id = meta.customer_id or transition.customer_id
        messages: list[NotificationMessage] = []
        if customer_id:
            messages.append(
                payment_failed_message(
                    customer_id=customer_id,
                    order_id=meta.order_id,
                    vendor_id=meta.vendor_id or transition.vendor_id,
                )
            )
        return await self._applied(event, transition, messages)

    async def _applied(
        self,
        event: PaymentEvent,
        transition: TransitionOutcome,
        messages: list[NotificationMessage],
    ) -> DispatchResult:
        if not messages:
            logger.warning(
                "FANOUT_NO_RECIPIENTS",
                extra={"event_id": event.id, "order_id": transition.order_id},
            )
        reports = await self.fanout.notify_many(messages)
        return DispatchResult(
            DispatchOutcome.APPLIED,
            event.id,
            event.type,
            transition.order_id,
            transition,
            reports,
        )
