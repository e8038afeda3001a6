"""Notification gateway contract.

A gateway accepts one message plus a batch of device tokens and returns one
DeliveryOutcome per token. Failures are classified at the gateway boundary
from structured response fields, never inferred later from error text.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence

from payhook_api.notifications.messages import NotificationMessage


class ErrorClass(str, Enum):
    TRANSIENT = "transient"
    PERMANENT_INVALID_REGISTRATION = "permanent_invalid_registration"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class DeliveryOutcome:
    """Per-token result of one send attempt."""

    token: str
    success: bool
    error_class: Optional[ErrorClass] = None
    error_code: Optional[str] = None

    @classmethod
    def ok(cls, token: str) -> "DeliveryOutcome":
        return cls(token=token, success=True)

    @classmethod
    def failed(
        cls, token: str, error_class: ErrorClass, error_code: Optional[str] = None
    ) -> "DeliveryOutcome":
        return cls(token=token, success=False, error_class=error_class, error_code=error_code)

    @property
    def is_permanent(self) -> bool:
        return self.error_class is ErrorClass.PERMANENT_INVALID_REGISTRATION


class NotificationGateway(ABC):
    """Push-delivery collaborator."""

    @abstractmethod
    async def send_multicast(
        self, tokens: Sequence[str], message: NotificationMessage
    ) -> list[DeliveryOutcome]:
        """Send ``message`` to every token; one outcome per token, in order.

        Implementations should not raise for per-token failures.
        """

    async def aclose(self) -> None:
        """Release network resources."""
        return None
