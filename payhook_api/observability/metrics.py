"""Observability metrics helpers for the payment webhook pipeline.

Metrics are emitted as structured log lines; the log pipeline aggregates
them by the ``event`` field.

Usage:
    from payhook_api.observability.metrics import log_webhook_outcome

    log_webhook_outcome(provider="paymongo", outcome="applied", status_code=200)

Security:
- Device tokens are NEVER logged; only their count or 8-char fingerprint
- Payloads are referenced by sha256 hash only
"""

import logging
from typing import Optional

logger = logging.getLogger(__name__)


# ============================================================================
# Webhook Metrics
# ============================================================================


def log_webhook_outcome(
    provider: str,
    outcome: str,
    status_code: int,
    event_type: Optional[str] = None,
    duration_ms: Optional[float] = None,
) -> None:
    """Log the final disposition of one webhook delivery.

    Args:
        provider: Upstream provider (e.g. "paymongo")
        outcome: DispatchOutcome value, or an error code for rejected requests
        status_code: HTTP status returned to the sender
        event_type: Upstream event type string (optional)
        duration_ms: Handler latency (optional)
    """
    logger.info(
        "webhook.outcome",
        extra={
            "event": "webhook.outcome",
            "provider": provider,
            "outcome": outcome,
            "status_code": status_code,
            "event_type": event_type,
            "duration_ms": duration_ms,
        },
    )


# ============================================================================
# Order Transition Metrics
# ============================================================================


def log_transition_result(
    order_id: str,
    result: str,
    to_status: str,
    attempts: int = 1,
) -> None:
    """Log a conditional order transition.

    Args:
        order_id: Order identifier
        result: applied, already_in_target_or_later, not_found
        to_status: Requested target status
        attempts: Store attempts used (>1 means transient failures were retried)
    """
    logger.info(
        "order.transition",
        extra={
            "event": "order.transition",
            "order_id": order_id,
            "result": result,
            "to_status": to_status,
            "attempts": attempts,
        },
    )


# ============================================================================
# Notification Metrics
# ============================================================================


def log_fanout_result(
    user_id: str,
    notification_type: str,
    total: int,
    succeeded: int,
    transient: int,
    permanent: int,
    unknown: int,
) -> None:
    """Log the per-user result of one multicast fan-out.

    Args:
        user_id: Recipient user
        notification_type: data.type of the message (payment_success, ...)
        total: Tokens targeted
        succeeded: Tokens delivered
        transient: Tokens that failed transiently (left active)
        permanent: Tokens reported as invalid registrations
        unknown: Tokens that failed for an unclassified reason (left active)
    """
    logger.info(
        "notification.fanout",
        extra={
            "event": "notification.fanout",
            "user_id": user_id,
            "notification_type": notification_type,
            "total": total,
            "succeeded": succeeded,
            "transient": transient,
            "permanent": permanent,
            "unknown": unknown,
        },
    )


def log_tokens_deactivated(user_id: str, count: int, reason: Optional[str] = None) -> None:
    """Log soft-deactivation of invalid device registrations.

    Args:
        user_id: Owner of the tokens
        count: Tokens that changed from active to inactive
        reason: Gateway error code that triggered the cleanup (optional)
    """
    logger.info(
        "notification.tokens_deactivated",
        extra={
            "event": "notification.tokens_deactivated",
            "user_id": user_id,
            "count": count,
            "reason": reason,
        },
    )
