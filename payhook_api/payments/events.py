"""Inbound payment events: type mapping and payload parsing.

The raw body must already be signature-verified before it reaches
parse_payment_event(); nothing here trusts unverified input.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import ValidationError

from payhook_api.payments.errors import MalformedPayload
from payhook_api.schemas import PayMongoWebhookBody

logger = logging.getLogger(__name__)


class PaymentEventType(str, Enum):
    """Event types the dispatcher distinguishes."""

    PAYMENT_PAID = "PaymentPaid"
    PAYMENT_FAILED = "PaymentFailed"
    SOURCE_CHARGEABLE = "SourceChargeable"
    UNKNOWN = "Unknown"


_UPSTREAM_TYPES: dict[str, PaymentEventType] = {
    "payment.paid": PaymentEventType.PAYMENT_PAID,
    "payment.failed": PaymentEventType.PAYMENT_FAILED,
    "source.chargeable": PaymentEventType.SOURCE_CHARGEABLE,
}


def map_event_type(upstream_type: str) -> PaymentEventType:
    """Map the processor's type string; anything unrecognized is UNKNOWN."""
    return _UPSTREAM_TYPES.get(upstream_type, PaymentEventType.UNKNOWN)


@dataclass(frozen=True)
class EventMetadata:
    """References carried in the payment's metadata."""

    order_id: Optional[str] = None
    customer_id: Optional[str] = None
    vendor_id: Optional[str] = None
    payment_id: Optional[str] = None
    amount: Optional[int] = None
    currency: Optional[str] = None
    failure_reason: Optional[str] = None


@dataclass(frozen=True)
class PaymentEvent:
    """A verified inbound event. Immutable; read-only during dispatch."""

    id: str
    type: PaymentEventType
    upstream_type: str
    received_at: datetime
    raw_payload: bytes = field(repr=False)
    metadata: EventMetadata = field(default_factory=EventMetadata)


def _as_optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def parse_payment_event(
    raw_body: bytes,
    received_at: Optional[datetime] = None,
) -> PaymentEvent:
    """Build a PaymentEvent from a verified raw body.

    Raises:
        MalformedPayload: body is not a JSON object or lacks data.id / data.type
    """
    try:
        decoded = json.loads(raw_body)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise MalformedPayload(
            "Request body is not valid JSON", code="WEBHOOK_INVALID_JSON"
        ) from exc

    if not isinstance(decoded, dict):
        raise MalformedPayload("Request body must be a JSON object")

    try:
        body = PayMongoWebhookBody.model_validate(decoded)
    except ValidationError as exc:
        fields = sorted({".".join(str(p) for p in err["loc"]) for err in exc.errors()})
        raise MalformedPayload(f"Invalid or missing fields: {', '.join(fields)}") from exc

    attributes = body.data.attributes
    raw_metadata: dict[str, Any] = {}
    if attributes is not None and attributes.metadata:
        raw_metadata = attributes.metadata

    metadata = EventMetadata(
        order_id=_as_optional_str(raw_metadata.get("orderId")),
        customer_id=_as_optional_str(raw_metadata.get("customerId")),
        vendor_id=_as_optional_str(raw_metadata.get("vendorId")),
        payment_id=_as_optional_str(raw_metadata.get("paymentId")),
        amount=attributes.amount if attributes is not None else None,
        currency=_as_optional_str(attributes.currency) if attributes is not None else None,
        failure_reason=_as_optional_str(raw_metadata.get("failureReason")),
    )

    return PaymentEvent(
        id=body.data.id,
        type=map_event_type(body.data.type),
        upstream_type=body.data.type,
        received_at=received_at or datetime.now(timezone.utc),
        raw_payload=raw_body,
        metadata=metadata,
    )
