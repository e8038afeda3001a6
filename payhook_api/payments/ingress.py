"""Webhook ingress: one inbound delivery, end to end.

    Received → SignatureChecked → Dispatched → Acknowledged
                     │                 │
                     └── Rejected ◄────┘

  Received         raw body + signature header, payload hashed for logs
  SignatureChecked HMAC over the raw bytes, BEFORE any parsing → 401 on failure
  Dispatched       parse (400 on malformed), ledger claim, EventDispatcher;
                   only a ledger "done" skips dispatch
  Acknowledged     200 {"success": true}, including every business no-op

Only WebhookError subclasses and unexpected internal exceptions produce a
non-2xx result. handle() never raises except on cancellation.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from payhook_api.context import event_id_var, order_id_var
from payhook_api.observability.metrics import log_webhook_outcome
from payhook_api.payments.dispatcher import DispatchOutcome, DispatchResult, EventDispatcher
from payhook_api.payments.errors import (
    AuthenticationFailure,
    MalformedPayload,
    TransientInfrastructureFailure,
    WebhookError,
)
from payhook_api.payments.event_ledger import ClaimResult, EventLedger, NullEventLedger
from payhook_api.payments.events import PaymentEvent, parse_payment_event
from payhook_api.payments.signature import SignatureVerifier
from payhook_api.utils.sanitize import error_fields, payload_hash_bytes

logger = logging.getLogger(__name__)

PROVIDER = "paymongo"


class IngressState(str, Enum):
    ACKNOWLEDGED = "acknowledged"
    REJECTED = "rejected"


@dataclass(frozen=True)
class IngressResult:
    state: IngressState
    status_code: int
    payload_hash: str
    outcome: Optional[DispatchOutcome] = None
    error: Optional[WebhookError] = None
    event_id: Optional[str] = None
    event_type: Optional[str] = None
    dispatch: Optional[DispatchResult] = None

    @property
    def acknowledged(self) -> bool:
        return self.state is IngressState.ACKNOWLEDGED


class WebhookIngressHandler:
    """Composes verification, parsing, dedup and dispatch for one request."""

    def __init__(
        self,
        verifier: SignatureVerifier,
        dispatcher: EventDispatcher,
        ledger: Optional[EventLedger] = None,
    ) -> None:
        self.verifier = verifier
        self.dispatcher = dispatcher
        self.ledger = ledger or NullEventLedger()

    async def handle(self, raw_body: bytes, signature_header: Optional[str]) -> IngressResult:
        started = time.perf_counter()
        payload_hash = payload_hash_bytes(raw_body)
        logger.info(
            "WEBHOOK_RECEIVED",
            extra={"provider": PROVIDER, "payload_hash": payload_hash, "payload_size": len(raw_body)},
        )

        result = await self._process(raw_body, signature_header, payload_hash)

        log_webhook_outcome(
            provider=PROVIDER,
            outcome=result.outcome.value if result.outcome else result.error.code,
            status_code=result.status_code,
            event_type=result.event_type,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        return result

    async def _process(
        self, raw_body: bytes, signature_header: Optional[str], payload_hash: str
    ) -> IngressResult:
        # SignatureChecked
        if not self.verifier.verify(raw_body, signature_header):
            reason = "missing" if not signature_header else "mismatch"
            logger.warning(
                "WEBHOOK_SIGNATURE_INVALID",
                extra={"provider": PROVIDER, "payload_hash": payload_hash, "reason": reason},
            )
            return self._rejected(AuthenticationFailure(f"Signature {reason}"), payload_hash)

        try:
            event = parse_payment_event(raw_body)
        except MalformedPayload as exc:
            logger.warning(
                exc.code,
                extra={"provider": PROVIDER, "payload_hash": payload_hash, "error_code": exc.code},
            )
            return self._rejected(exc, payload_hash)

        event_token = event_id_var.set(event.id)
        order_token = order_id_var.set(event.metadata.order_id or "")
        try:
            return await self._dispatch(event, payload_hash)
        finally:
            order_id_var.reset(order_token)
            event_id_var.reset(event_token)

    async def _dispatch(self, event: PaymentEvent, payload_hash: str) -> IngressResult:
        claim = await asyncio.to_thread(self.ledger.try_claim, event.id)
        if claim is ClaimResult.DONE:
            return self._acknowledged(event, payload_hash, DispatchOutcome.DUPLICATE)
        # IN_PROGRESS dispatches too; the conditional transition absorbs the overlap

        try:
            dispatch = await self.dispatcher.dispatch(event)
        except WebhookError as exc:
            await self._release(event.id, claim)
            return self._rejected(exc, payload_hash, event)
        except asyncio.CancelledError:
            await asyncio.shield(self._release(event.id, claim))
            raise
        except Exception as exc:
            await self._release(event.id, claim)
            logger.error(
                "WEBHOOK_INTERNAL_ERROR",
                extra={"provider": PROVIDER, "payload_hash": payload_hash, **error_fields(exc)},
            )
            return self._rejected(TransientInfrastructureFailure(), payload_hash, event)

        await asyncio.to_thread(self.ledger.mark_done, event.id)
        logger.info(
            "WEBHOOK_DISPATCHED",
            extra={
                "provider": PROVIDER,
                "event_type": event.upstream_type,
                "outcome": dispatch.outcome.value,
                "notifications": len(dispatch.notifications),
            },
        )
        return self._acknowledged(event, payload_hash, dispatch.outcome, dispatch)

    async def _release(self, event_id: str, claim: ClaimResult) -> None:
        if claim.owned:
            await asyncio.to_thread(self.ledger.release, event_id)

    @staticmethod
    def _acknowledged(
        event: PaymentEvent,
        payload_hash: str,
        outcome: DispatchOutcome,
        dispatch: Optional[DispatchResult] = None,
    ) -> IngressResult:
        return IngressResult(
            state=IngressState.ACKNOWLEDGED,
            status_code=200,
            payload_hash=payload_hash,
            outcome=outcome,
            event_id=event.id,
            event_type=event.upstream_type,
            dispatch=dispatch,
        )

    @staticmethod
    def _rejected(
        error: WebhookError,
        payload_hash: str,
        event: Optional[PaymentEvent] = None,
    ) -> IngressResult:
        return IngressResult(
            state=IngressState.REJECTED,
            status_code=error.status_code,
            payload_hash=payload_hash,
            error=error,
            event_id=event.id if event else None,
            event_type=event.upstream_type if event else None,
        )
