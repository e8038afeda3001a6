"""Pytest configuration and fixtures."""

import json
from dataclasses import dataclass
from typing import Any, Iterator, Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from payhook_api.config.settings import PipelineSettings
from payhook_api.db.models import Base
from payhook_api.notifications.fanout import NotificationFanoutEngine
from payhook_api.payments.dispatcher import EventDispatcher
from payhook_api.payments.ingress import WebhookIngressHandler
from payhook_api.payments.signature import SignatureVerifier, compute_signature
from tests.fakes import InMemoryEventLedger, InMemoryOrderStore, InMemoryTokenRegistry, ScriptedGateway

WEBHOOK_SECRET = "whsk_test_5b1f0c9e2d"
SIGNATURE_HEADER = "Paymongo-Signature"


def paymongo_body(
    event_type: str = "payment.paid",
    *,
    event_id: str = "evt_001",
    order_id: Optional[str] = "order_001",
    customer_id: Optional[str] = "cust_001",
    vendor_id: Optional[str] = "vend_001",
    amount: Optional[int] = 150000,
    currency: str = "PHP",
    **metadata: Any,
) -> bytes:
    """Build a PayMongo-style webhook envelope."""
    meta: dict[str, Any] = {}
    if order_id is not None:
        meta["orderId"] = order_id
    if customer_id is not None:
        meta["customerId"] = customer_id
    if vendor_id is not None:
        meta["vendorId"] = vendor_id
    meta.update(metadata)

    attributes: dict[str, Any] = {"currency": currency, "status": "paid", "metadata": meta}
    if amount is not None:
        attributes["amount"] = amount

    return json.dumps(
        {"data": {"id": event_id, "type": event_type, "attributes": attributes}}
    ).encode()


def sign(body: bytes, secret: str = WEBHOOK_SECRET) -> str:
    return compute_signature(body, secret)


def signed_headers(body: bytes, secret: str = WEBHOOK_SECRET) -> dict[str, str]:
    return {"Content-Type": "application/json", SIGNATURE_HEADER: sign(body, secret)}


async def _no_sleep(_delay: float) -> None:
    return None


@dataclass
class Pipeline:
    """A fully wired ingress handler over in-memory collaborators."""

    handler: WebhookIngressHandler
    store: InMemoryOrderStore
    registry: InMemoryTokenRegistry
    gateway: ScriptedGateway
    ledger: InMemoryEventLedger


@pytest.fixture
def fast_settings() -> PipelineSettings:
    return PipelineSettings(
        store_timeout_seconds=1.0,
        store_retry_base_delay=0.0,
        fanout_timeout_seconds=2.0,
    )


@pytest.fixture
def pipeline(fast_settings: PipelineSettings) -> Pipeline:
    """Pending order_001 with one device for the customer and one for the vendor."""
    store = InMemoryOrderStore()
    store.add("order_001", customer_id="cust_001", vendor_id="vend_001")

    registry = InMemoryTokenRegistry()
    registry.register("cust_001", "tok-cust-a")
    registry.register("vend_001", "tok-vend-a")

    gateway = ScriptedGateway()
    ledger = InMemoryEventLedger()
    fanout = NotificationFanoutEngine(
        registry, gateway, fanout_timeout_seconds=fast_settings.fanout_timeout_seconds
    )
    dispatcher = EventDispatcher(store, fanout, fast_settings, sleep=_no_sleep)
    handler = WebhookIngressHandler(SignatureVerifier(WEBHOOK_SECRET), dispatcher, ledger)
    return Pipeline(handler, store, registry, gateway, ledger)


@pytest.fixture
def sqlite_session_factory() -> Iterator[sessionmaker[Session]]:
    """In-memory SQLite with the full schema, shared across threads."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    try:
        yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    finally:
        engine.dispose()
