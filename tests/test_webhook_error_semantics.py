"""Webhook error semantics (retry storm prevention).

  (A) Signature missing / mismatch          → 401, never 500, no Retry-After
  (B) Invalid JSON / malformed payload      → 400 after a valid signature
  (C) Our misconfig (missing secret)        → 500 WEBHOOK_PROVIDER_MISCONFIG
  (D) Store outage / internal error         → 500 WEBHOOK_INTERNAL_ERROR + Retry-After
  Business no-ops                           → 200 {"success": true}
"""

import asyncio
import json

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.exc import OperationalError

from payhook_api.main import create_app
from payhook_api.routers import webhooks
from tests.conftest import SIGNATURE_HEADER, WEBHOOK_SECRET, paymongo_body, signed_headers
from tests.log_capture import LogCapture

URL = "/webhooks/paymongo"


async def _post(app, body: bytes, headers: dict):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        return await client.post(URL, content=body, headers=headers)


@pytest.fixture
def app(pipeline):
    return create_app(webhook_handler=pipeline.handler, json_logs=False)


class TestSignatureFailures:
    @pytest.mark.asyncio
    async def test_missing_signature_returns_401(self, app, pipeline) -> None:
        body = paymongo_body()

        with LogCapture() as cap:
            response = await _post(app, body, {"Content-Type": "application/json"})
            logs = cap.logs()

        assert response.status_code == 401
        assert response.headers["content-type"].startswith("application/problem+json")
        assert "retry-after" not in response.headers
        problem = response.json()
        assert problem["error"] == "invalid signature"
        assert problem["error_code"] == "WEBHOOK_SIGNATURE_INVALID"
        assert problem["provider"] == "paymongo"
        assert len(problem["payload_hash"]) == 64

        record = next(e for e in logs if e["message"] == "WEBHOOK_SIGNATURE_INVALID")
        assert record["reason"] == "missing"
        assert record["payload_hash"] == problem["payload_hash"]
        assert pipeline.store.status_of("order_001") == "pending"

    @pytest.mark.asyncio
    async def test_wrong_secret_returns_401(self, app, pipeline) -> None:
        body = paymongo_body()

        response = await _post(app, body, signed_headers(body, secret="whsk_someone_else"))

        assert response.status_code == 401
        assert response.json()["error"] == "invalid signature"
        assert pipeline.gateway.sends == []

    @pytest.mark.asyncio
    async def test_tampered_body_returns_401_and_order_untouched(self, app, pipeline) -> None:
        original = paymongo_body()
        tampered = original.replace(b"150000", b"1")
        headers = signed_headers(original)

        response = await _post(app, tampered, headers)

        assert response.status_code == 401
        assert pipeline.store.status_of("order_001") == "pending"
        assert pipeline.store.calls == 0
        assert pipeline.ledger.entries == {}

    @pytest.mark.asyncio
    async def test_garbage_signature_header_is_401_not_500(self, app) -> None:
        body = paymongo_body()
        response = await _post(app, body, {SIGNATURE_HEADER: "zz-not-hex"})
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_secret_never_in_logs(self, app) -> None:
        body = paymongo_body()
        with LogCapture() as cap:
            await _post(app, body, signed_headers(body))
            await _post(app, body, {SIGNATURE_HEADER: "00" * 32})
            raw = cap.raw()

        assert WEBHOOK_SECRET not in raw
        assert body.decode() not in raw


class TestPayloadFailures:
    @pytest.mark.asyncio
    async def test_invalid_json_returns_400(self, app) -> None:
        body = b"not valid json {"

        with LogCapture() as cap:
            response = await _post(app, body, signed_headers(body))
            messages = cap.messages()

        assert response.status_code == 400
        problem = response.json()
        assert problem["error"] == "invalid payload"
        assert problem["error_code"] == "WEBHOOK_INVALID_JSON"
        assert "retry-after" not in response.headers
        assert "WEBHOOK_INVALID_JSON" in messages

    @pytest.mark.asyncio
    async def test_missing_event_id_returns_400(self, app) -> None:
        body = json.dumps({"data": {"type": "payment.paid", "attributes": {}}}).encode()

        response = await _post(app, body, signed_headers(body))

        assert response.status_code == 400
        assert response.json()["error_code"] == "WEBHOOK_INVALID_PAYLOAD"

    @pytest.mark.asyncio
    async def test_signature_checked_before_parsing(self, app) -> None:
        # Unsigned garbage must be rejected as unauthenticated, not malformed
        response = await _post(app, b"not valid json {", {})
        assert response.status_code == 401


class TestInternalFailures:
    @pytest.mark.asyncio
    async def test_store_outage_returns_500_with_retry_after(self, app, pipeline) -> None:
        pipeline.store.failures = [
            OperationalError("UPDATE orders", {}, Exception("connection refused"))
            for _ in range(3)
        ]
        body = paymongo_body()

        with LogCapture() as cap:
            response = await _post(app, body, signed_headers(body))
            messages = cap.messages()

        assert response.status_code == 500
        assert response.headers["retry-after"] == "60"
        problem = response.json()
        assert problem["error"] == "internal error"
        assert problem["error_code"] == "WEBHOOK_INTERNAL_ERROR"
        assert "ORDER_TRANSITION_UNAVAILABLE" in messages
        # Claim released so the sender's retry is processed
        assert pipeline.ledger.entries == {}
        assert pipeline.gateway.sends == []

    @pytest.mark.asyncio
    async def test_retry_after_outage_succeeds(self, app, pipeline) -> None:
        pipeline.store.failures = [
            OperationalError("UPDATE orders", {}, Exception("connection refused"))
            for _ in range(3)
        ]
        body = paymongo_body()

        first = await _post(app, body, signed_headers(body))
        second = await _post(app, body, signed_headers(body))

        assert first.status_code == 500
        assert second.status_code == 200
        assert pipeline.store.status_of("order_001") == "paid"

    @pytest.mark.asyncio
    async def test_unexpected_error_returns_500(self, app, pipeline) -> None:
        pipeline.store.failures = [KeyError("boom")]
        body = paymongo_body()

        with LogCapture() as cap:
            response = await _post(app, body, signed_headers(body))
            messages = cap.messages()

        assert response.status_code == 500
        assert response.headers["retry-after"] == "60"
        assert "WEBHOOK_INTERNAL_ERROR" in messages

    @pytest.mark.asyncio
    async def test_missing_secret_returns_provider_misconfig(self, monkeypatch) -> None:
        monkeypatch.delenv("PAYMONGO_WEBHOOK_SECRET", raising=False)
        app = create_app(json_logs=False)
        body = paymongo_body()

        with LogCapture() as cap:
            response = await _post(app, body, signed_headers(body))
            messages = cap.messages()

        assert response.status_code == 500
        assert response.headers["retry-after"] == "60"
        assert response.json()["error_code"] == "WEBHOOK_PROVIDER_MISCONFIG"
        assert "WEBHOOK_PROVIDER_MISCONFIG" in messages


class TestBusinessNoOps:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "body",
        [
            paymongo_body("source.chargeable"),
            paymongo_body("payment.refunded"),
            paymongo_body(order_id="order_404"),
            paymongo_body(order_id=None),
        ],
        ids=["source_chargeable", "unknown_type", "order_not_found", "no_order_reference"],
    )
    async def test_acknowledged_with_200(self, app, pipeline, body) -> None:
        response = await _post(app, body, signed_headers(body))

        assert response.status_code == 200
        assert response.json() == {"success": True}
        assert pipeline.store.status_of("order_001") == "pending"
        assert pipeline.gateway.sends == []

    @pytest.mark.asyncio
    async def test_request_id_echoed(self, app) -> None:
        body = paymongo_body("source.chargeable")
        headers = {**signed_headers(body), "X-Request-ID": "req-abc"}

        response = await _post(app, body, headers)

        assert response.headers["x-request-id"] == "req-abc"


class TestHandlerWiring:
    @pytest.mark.asyncio
    async def test_cold_app_builds_handler_once_under_concurrency(self, monkeypatch, pipeline) -> None:
        builds = []

        def build() -> object:
            builds.append(1)
            return pipeline.handler

        monkeypatch.setattr(webhooks, "build_ingress_handler", build)
        app = create_app(json_logs=False)
        body = paymongo_body("source.chargeable")

        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            responses = await asyncio.gather(
                *(client.post(URL, content=body, headers=signed_headers(body)) for _ in range(8))
            )

        assert [r.status_code for r in responses] == [200] * 8
        assert len(builds) == 1
        assert app.state.webhook_handler is pipeline.handler
