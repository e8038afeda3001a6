"""Notification fan-out: user → active tokens → multicast → cleanup.

Fan-out is best-effort. notify() and notify_many() never raise to the
caller (cancellation excepted); a missed push is not a correctness
violation, while a failed webhook response would make the sender retry a
payment event that was already applied.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional, Sequence

from payhook_api.notifications.gateway import DeliveryOutcome, ErrorClass, NotificationGateway
from payhook_api.notifications.messages import NotificationMessage
from payhook_api.notifications.tokens import TokenRegistry
from payhook_api.observability.metrics import log_fanout_result, log_tokens_deactivated
from payhook_api.utils.sanitize import error_fields, token_fingerprint

logger = logging.getLogger(__name__)

DEACTIVATION_REASON = "invalid_registration"


@dataclass
class FanoutReport:
    """What happened to one user's notification."""

    user_id: str
    total: int = 0
    succeeded: list[str] = field(default_factory=list)
    transient: list[str] = field(default_factory=list)
    permanent: list[str] = field(default_factory=list)
    unknown: list[str] = field(default_factory=list)
    deactivated: int = 0
    error: Optional[str] = None

    @property
    def sent(self) -> bool:
        return self.total > 0 and self.error is None


def partition_outcomes(report: FanoutReport, outcomes: Sequence[DeliveryOutcome]) -> None:
    """Sort every outcome into the report; never stops early."""
    for outcome in outcomes:
        if outcome.success:
            report.succeeded.append(outcome.token)
        elif outcome.error_class is ErrorClass.PERMANENT_INVALID_REGISTRATION:
            report.permanent.append(outcome.token)
        elif outcome.error_class is ErrorClass.TRANSIENT:
            report.transient.append(outcome.token)
        else:
            report.unknown.append(outcome.token)


class NotificationFanoutEngine:
    """Resolves recipients, sends one multicast per user, retires dead tokens."""

    def __init__(
        self,
        registry: TokenRegistry,
        gateway: NotificationGateway,
        *,
        fanout_timeout_seconds: float = 15.0,
    ) -> None:
        self.registry = registry
        self.gateway = gateway
        self.fanout_timeout_seconds = fanout_timeout_seconds

    async def notify(self, user_id: str, message: NotificationMessage) -> FanoutReport:
        report = FanoutReport(user_id=user_id)
        notification_type = message.data.get("type", "")

        try:
            tokens = await asyncio.to_thread(self.registry.list_active, user_id)
        except Exception as exc:
            report.error = "token_lookup_failed"
            logger.error(
                "FANOUT_TOKEN_LOOKUP_FAILED",
                extra={"user_id": user_id, **error_fields(exc)},
            )
            return report

        if not tokens:
            logger.info("FANOUT_NO_ACTIVE_TOKENS", extra={"user_id": user_id})
            return report

        report.total = len(tokens)
        try:
            outcomes = await self.gateway.send_multicast(tokens, message)
        except Exception as exc:
            # Gateway-level failure: no token was disproven, leave them all active
            report.error = "gateway_failed"
            report.transient.extend(tokens)
            logger.error(
                "FANOUT_GATEWAY_FAILED",
                extra={"user_id": user_id, "token_count": len(tokens), **error_fields(exc)},
            )
            return report

        partition_outcomes(report, outcomes)

        if report.permanent:
            try:
                report.deactivated = await asyncio.to_thread(
                    self.registry.deactivate, user_id, report.permanent, DEACTIVATION_REASON
                )
            except Exception as exc:
                report.error = "deactivation_failed"
                logger.error(
                    "TOKENS_DEACTIVATION_FAILED",
                    extra={
                        "user_id": user_id,
                        "token_fps": [token_fingerprint(t) for t in report.permanent],
                        **error_fields(exc),
                    },
                )
            else:
                log_tokens_deactivated(user_id, report.deactivated, DEACTIVATION_REASON)

        log_fanout_result(
            user_id=user_id,
            notification_type=notification_type,
            total=report.total,
            succeeded=len(report.succeeded),
            transient=len(report.transient),
            permanent=len(report.permanent),
            unknown=len(report.unknown),
        )
        logger.info(
            "FANOUT_COMPLETED",
            extra={
                "user_id": user_id,
                "notification_type": notification_type,
                "total": report.total,
                "deactivated": report.deactivated,
            },
        )
        return report

    async def notify_many(
        self,
        messages: Sequence[NotificationMessage],
        timeout_seconds: Optional[float] = None,
    ) -> list[FanoutReport]:
        """Fan out several messages concurrently under one overall deadline.

        Users are independent; on deadline expiry the unfinished fan-outs are
        cancelled and reported with ``error="timeout"``.
        """
        if not messages:
            return []

        timeout = self.fanout_timeout_seconds if timeout_seconds is None else timeout_seconds
        tasks = [
            asyncio.create_task(self.notify(m.target_user_id, m)) for m in messages
        ]
        try:
            done, pending = await asyncio.wait(tasks, timeout=timeout)
        except asyncio.CancelledError:
            for task in tasks:
                task.cancel()
            raise

        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
            logger.warning(
                "FANOUT_TIMEOUT",
                extra={"timeout_s": timeout, "cancelled": len(pending), "completed": len(done)},
            )

        reports: list[FanoutReport] = []
        for message, task in zip(messages, tasks):
            if task in done and not task.cancelled() and task.exception() is None:
                reports.append(task.result())
                continue
            error = "timeout" if task in pending else "failed"
            if task in done and not task.cancelled() and task.exception() is not None:
                logger.error(
                    "FANOUT_TASK_FAILED",
                    extra={"user_id": message.target_user_id, **error_fields(task.exception())},
                )
            reports.append(FanoutReport(user_id=message.target_user_id, error=error))
        return reports
