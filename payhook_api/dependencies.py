"""Production wiring for the webhook pipeline.

Everything is built from environment configuration on first use, so the
application imports cleanly without a database, Redis or FCM credentials.
"""

import logging

from payhook_api.config.env import get_webhook_secret
from payhook_api.config.settings import load_pipeline_settings
from payhook_api.db.redis_client import RedisClient
from payhook_api.db.session import get_session_factory
from payhook_api.notifications.fanout import NotificationFanoutEngine
from payhook_api.notifications.fcm import FcmGateway
from payhook_api.notifications.tokens import SqlTokenRegistry
from payhook_api.payments.dispatcher import EventDispatcher
from payhook_api.payments.event_ledger import EventLedger, NullEventLedger, RedisEventLedger
from payhook_api.payments.ingress import WebhookIngressHandler
from payhook_api.payments.order_store import SqlOrderStateStore
from payhook_api.payments.signature import SignatureVerifier

logger = logging.getLogger(__name__)


def build_event_ledger(ttl_seconds: int, processing_ttl_seconds: int) -> EventLedger:
    client = RedisClient.get_client()
    if client is None:
        logger.info("EVENT_LEDGER_DISABLED", extra={"reason": "REDIS_URL unset"})
        return NullEventLedger()
    return RedisEventLedger(
        client, ttl_seconds=ttl_seconds, processing_ttl_seconds=processing_ttl_seconds
    )


def build_ingress_handler() -> WebhookIngressHandler:
    """Assemble the default handler.

    Raises:
        ValueError: If the webhook secret, FCM project or credentials, or a
            PAYHOOK_* tunable is missing or invalid
        RuntimeError: If DATABASE_URL is missing in production
    """
    verifier = SignatureVerifier(get_webhook_secret())
    settings = load_pipeline_settings()
    session_factory = get_session_factory()

    gateway = FcmGateway.from_env(
        timeout_seconds=settings.gateway_timeout_seconds,
        max_concurrency=settings.gateway_max_concurrency,
    )
    fanout = NotificationFanoutEngine(
        SqlTokenRegistry(session_factory),
        gateway,
        fanout_timeout_seconds=settings.fanout_timeout_seconds,
    )
    dispatcher = EventDispatcher(SqlOrderStateStore(session_factory), fanout, settings)
    ledger = build_event_ledger(
        settings.event_ledger_ttl_seconds, settings.event_ledger_processing_ttl_seconds
    )

    logger.info(
        "WEBHOOK_HANDLER_READY",
        extra={"fcm_project": gateway.project_id, "ledger": type(ledger).__name__},
    )
    return WebhookIngressHandler(verifier, dispatcher, ledger)
