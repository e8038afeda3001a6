"""Device token registry.

Tokens are soft-deactivated, never deleted, so the registration history
survives for audit.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.orm import Session, sessionmaker

from payhook_api.db.models import DeviceToken

logger = logging.getLogger(__name__)


class TokenRegistry(ABC):
    """Per-user collection of device registrations."""

    @abstractmethod
    def list_active(self, user_id: str) -> list[str]:
        """Active tokens for ``user_id`` (empty list when none)."""

    @abstractmethod
    def deactivate(self, user_id: str, tokens: Sequence[str], reason: Optional[str] = None) -> int:
        """Mark ``tokens`` inactive in one batch.

        Idempotent: already-inactive or unknown tokens are skipped silently.

        Returns:
            Number of tokens that changed from active to inactive
        """

    @abstractmethod
    def register(self, user_id: str, token: str, platform: Optional[str] = None) -> None:
        """Add or reactivate a registration."""


class SqlTokenRegistry(TokenRegistry):
    """TokenRegistry over the ``device_tokens`` table."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def list_active(self, user_id: str) -> list[str]:
        with self._session_factory() as session:
            rows = session.execute(
                select(DeviceToken.token)
                .where(DeviceToken.user_id == user_id, DeviceToken.is_active.is_(True))
                .order_by(DeviceToken.registered_at, DeviceToken.token)
            ).scalars()
            return list(rows)

    def deactivate(self, user_id: str, tokens: Sequence[str], reason: Optional[str] = None) -> int:
        unique = sorted(set(tokens))
        if not unique:
            return 0

        with self._session_factory() as session:
            result = session.execute(
                update(DeviceToken)
                .where(
                    DeviceToken.user_id == user_id,
                    DeviceToken.token.in_(unique),
                    DeviceToken.is_active.is_(True),
                )
                .values(
                    is_active=False,
                    deactivated_at=datetime.now(timezone.utc),
                    deactivation_reason=reason,
                )
                .execution_options(synchronize_session=False)
            )
            session.commit()
            changed = result.rowcount or 0

        logger.info(
            "TOKENS_DEACTIVATED",
            extra={"user_id": user_id, "requested": len(unique), "changed": changed, "reason": reason},
        )
        return changed

    def register(self, user_id: str, token: str, platform: Optional[str] = None) -> None:
        with self._session_factory() as session:
            existing = session.get(DeviceToken, (user_id, token))
            if existing is None:
                session.add(DeviceToken(user_id=user_id, token=token, platform=platform))
            else:
                existing.is_active = True
                existing.deactivated_at = None
                existing.deactivation_reason = None
                if platform:
                    existing.platform = platform
            session.commit()
