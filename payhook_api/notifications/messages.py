"""Push notification content for payment events."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Optional

_CURRENCY_SYMBOLS = {"PHP": "₱"}

# Keys always present in the data payload (FCM data values must be strings)
DATA_KEYS = (
    "type",
    "orderId",
    "customerId",
    "vendorId",
    "driverId",
    "amount",
    "url",
    "timestamp",
)


@dataclass(frozen=True)
class NotificationMessage:
    """One push message addressed to every active device of ``target_user_id``."""

    title: str
    body: str
    target_user_id: str
    data: dict[str, str] = field(default_factory=dict)


def format_amount(amount: Optional[int], currency: Optional[str] = "PHP") -> str:
    """Render minor units as a display amount, e.g. 150000 → "₱1500.00"."""
    code = (currency or "PHP").upper()
    symbol = _CURRENCY_SYMBOLS.get(code, f"{code} ")
    return f"{symbol}{(amount or 0) / 100:.2f}"


def _data(
    kind: str,
    *,
    order_id: str,
    url: str,
    customer_id: Optional[str] = None,
    vendor_id: Optional[str] = None,
    amount: Optional[int] = None,
    now_ms: Optional[int] = None,
) -> dict[str, str]:
    timestamp = now_ms if now_ms is not None else int(time.time() * 1000)
    return {
        "type": kind,
        "orderId": order_id,
        "customerId": customer_id or "",
        "vendorId": vendor_id or "",
        # Payment events never name a driver
        "driverId": "",
        "amount": str(amount) if amount is not None else "0",
        "url": url,
        "timestamp": str(timestamp),
    }


def payment_success_message(
    *,
    customer_id: str,
    order_id: str,
    amount: Optional[int],
    currency: Optional[str] = "PHP",
    vendor_id: Optional[str] = None,
    now_ms: Optional[int] = None,
) -> NotificationMessage:
    return NotificationMessage(
        title="Payment Successful!",
        body=(
            f"Your payment of {format_amount(amount, currency)} "
            "has been processed successfully."
        ),
        target_user_id=customer_id,
        data=_data(
            "payment_success",
            order_id=order_id,
            url=f"/orders/{order_id}",
            customer_id=customer_id,
            vendor_id=vendor_id,
            amount=amount,
            now_ms=now_ms,
        ),
    )


def new_order_message(
    *,
    vendor_id: str,
    order_id: str,
    amount: Optional[int],
    customer_id: Optional[str] = None,
    now_ms: Optional[int] = None,
) -> NotificationMessage:
    return NotificationMessage(
        title="New Order Received!",
        body=f"New order {order_id} - Payment confirmed. Please start preparing.",
        target_user_id=vendor_id,
        data=_data(
            "order_confirmed",
            order_id=order_id,
            url=f"/vendor/orders/{order_id}",
            customer_id=customer_id,
            vendor_id=vendor_id,
            amount=amount,
            now_ms=now_ms,
        ),
    )


def payment_failed_message(
    *,
    customer_id: str,
    order_id: str,
    vendor_id: Optional[str] = None,
    now_ms: Optional[int] = None,
) -> NotificationMessage:
    return NotificationMessage(
        title="Payment Failed",
        body=f"Your payment for order {order_id} could not be processed. Please try again.",
        target_user_id=customer_id,
        data=_data(
            "payment_failed",
            order_id=order_id,
            url=f"/orders/{order_id}",
            customer_id=customer_id,
            vendor_id=vendor_id,
            now_ms=now_ms,
        ),
    )
