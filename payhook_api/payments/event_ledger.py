"""Event receipt ledger: fast-path duplicate filter keyed by upstream event id.

Claim protocol (per event id):
  1. SET payhook:event:{id} "processing" NX EX processing_ttl
       → OK   : CLAIMED, this delivery owns the key and dispatches
       → None : GET the key
                  "done"         → DONE, ACK 200 with zero side effects
                  anything else  → IN_PROGRESS, dispatch anyway without
                                   owning the key (the holder may still fail)
  2. On success:  SET key "done" EX ttl
  3. On internal failure: DEL key (owner only), so the sender's retry is
     processed again

Only "done" short-circuits a delivery. A "processing" mark left by a crashed
worker expires after the short processing TTL.

The ledger is an optimization only. The conditional order transition is the
authoritative idempotency guard, so a Redis outage fails OPEN: the claim is
granted and the transition contract absorbs any duplicate.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from enum import Enum

import redis

logger = logging.getLogger(__name__)

KEY_PREFIX = "payhook:event:"
DEFAULT_TTL_SECONDS = 86400
DEFAULT_PROCESSING_TTL_SECONDS = 120

PROCESSING = "processing"
DONE = "done"


def ledger_key(event_id: str) -> str:
    return f"{KEY_PREFIX}{event_id}"


class ClaimResult(str, Enum):
    CLAIMED = "claimed"
    IN_PROGRESS = "in_progress"
    DONE = "done"

    @property
    def owned(self) -> bool:
        return self is ClaimResult.CLAIMED


class EventLedger(ABC):
    """Remembers which upstream events have been received."""

    @abstractmethod
    def try_claim(self, event_id: str) -> ClaimResult:
        """Claim ``event_id`` for processing, or report who already has it."""

    @abstractmethod
    def mark_done(self, event_id: str) -> None:
        """Record that processing of ``event_id`` completed."""

    @abstractmethod
    def release(self, event_id: str) -> None:
        """Forget a claim after a failure so a retry is reprocessed."""


class NullEventLedger(EventLedger):
    """Ledger used when Redis is not configured; grants every claim."""

    def try_claim(self, event_id: str) -> ClaimResult:
        return ClaimResult.CLAIMED

    def mark_done(self, event_id: str) -> None:
        return None

    def release(self, event_id: str) -> None:
        return None


class RedisEventLedger(EventLedger):
    """Redis-backed ledger using SET NX EX."""

    def __init__(
        self,
        client: redis.Redis,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        processing_ttl_seconds: int = DEFAULT_PROCESSING_TTL_SECONDS,
    ) -> None:
        self._client = client
        self._ttl = ttl_seconds
        self._processing_ttl = processing_ttl_seconds

    def try_claim(self, event_id: str) -> ClaimResult:
        key = ledger_key(event_id)
        try:
            if self._client.set(key, PROCESSING, nx=True, ex=self._processing_ttl):
                return ClaimResult.CLAIMED
            state = self._client.get(key)
        except redis.RedisError as exc:
            logger.warning(
                "EVENT_LEDGER_UNAVAILABLE",
                extra={"op": "claim", "event_id": event_id, "error_type": type(exc).__name__},
            )
            return ClaimResult.CLAIMED

        if state == DONE:
            logger.info("EVENT_LEDGER_DUPLICATE", extra={"event_id": event_id})
            return ClaimResult.DONE
        # Key held by another delivery, or expired between SET and GET
        logger.info("EVENT_LEDGER_IN_PROGRESS", extra={"event_id": event_id})
        return ClaimResult.IN_PROGRESS

    def mark_done(self, event_id: str) -> None:
        try:
            self._client.set(ledger_key(event_id), DONE, ex=self._ttl)
        except redis.RedisError as exc:
            logger.warning(
                "EVENT_LEDGER_UNAVAILABLE",
                extra={"op": "mark_done", "event_id": event_id, "error_type": type(exc).__name__},
            )

    def release(self, event_id: str) -> None:
        try:
            self._client.delete(ledger_key(event_id))
        except redis.RedisError as exc:
            # Key expires on its own; until then retries dispatch as IN_PROGRESS
            logger.error(
                "EVENT_LEDGER_RELEASE_FAILED",
                extra={
                    "event_id": event_id,
                    "error_type": type(exc).__name__,
                    "ttl_s": self._processing_ttl,
                },
            )
