"""FcmGateway boundary classification over httpx.MockTransport."""

import json

import httpx
import pytest

from payhook_api.notifications.fcm import (
    FcmGateway,
    classify_fcm_response,
    extract_fcm_error_code,
)
from payhook_api.notifications.gateway import ErrorClass
from payhook_api.notifications.messages import payment_success_message

MESSAGE = payment_success_message(customer_id="cust_1", order_id="order_1", amount=1000, now_ms=1)


def _fcm_error(http_status: int, status: str, error_code: str | None = None) -> httpx.Response:
    details = []
    if error_code:
        details.append(
            {"@type": "type.googleapis.com/google.firebase.fcm.v1.FcmError", "errorCode": error_code}
        )
    return httpx.Response(
        http_status,
        json={"error": {"code": http_status, "message": "x", "status": status, "details": details}},
    )


def _gateway(handler, **kwargs) -> FcmGateway:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return FcmGateway("demo-project", access_token="ya29.test", client=client, **kwargs)


class TestClassification:
    @pytest.mark.parametrize(
        "status_code,error_code,expected",
        [
            (200, None, None),
            (404, "UNREGISTERED", ErrorClass.PERMANENT_INVALID_REGISTRATION),
            (403, "SENDER_ID_MISMATCH", ErrorClass.PERMANENT_INVALID_REGISTRATION),
            (404, None, ErrorClass.PERMANENT_INVALID_REGISTRATION),
            (429, "QUOTA_EXCEEDED", ErrorClass.TRANSIENT),
            (503, "UNAVAILABLE", ErrorClass.TRANSIENT),
            (500, "INTERNAL", ErrorClass.TRANSIENT),
            (502, None, ErrorClass.TRANSIENT),
            (400, "INVALID_ARGUMENT", ErrorClass.UNKNOWN),
            (401, "THIRD_PARTY_AUTH_ERROR", ErrorClass.UNKNOWN),
        ],
    )
    def test_classify(self, status_code, error_code, expected) -> None:
        assert classify_fcm_response(status_code, error_code) is expected

    def test_extract_prefers_fcm_error_code(self) -> None:
        body = _fcm_error(404, "NOT_FOUND", "UNREGISTERED").json()
        assert extract_fcm_error_code(body) == "UNREGISTERED"

    def test_extract_falls_back_to_status(self) -> None:
        assert extract_fcm_error_code(_fcm_error(400, "INVALID_ARGUMENT").json()) == "INVALID_ARGUMENT"

    def test_extract_handles_garbage(self) -> None:
        assert extract_fcm_error_code(["nope"]) is None
        assert extract_fcm_error_code({"error": "flat"}) is None


class TestSendMulticast:
    @pytest.mark.asyncio
    async def test_per_token_outcomes_in_order(self) -> None:
        responses = {
            "tok-ok": httpx.Response(200, json={"name": "projects/demo-project/messages/1"}),
            "tok-gone": _fcm_error(404, "NOT_FOUND", "UNREGISTERED"),
            "tok-busy": _fcm_error(503, "UNAVAILABLE", "UNAVAILABLE"),
            "tok-bad": _fcm_error(400, "INVALID_ARGUMENT", "INVALID_ARGUMENT"),
        }
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            body = json.loads(request.content)
            seen.append(body)
            assert request.headers["Authorization"] == "Bearer ya29.test"
            assert request.url.path == "/v1/projects/demo-project/messages:send"
            return responses[body["message"]["token"]]

        gateway = _gateway(handler)
        outcomes = await gateway.send_multicast(list(responses), MESSAGE)
        await gateway.aclose()

        assert [o.token for o in outcomes] == list(responses)
        assert outcomes[0].success is True
        assert outcomes[1].error_class is ErrorClass.PERMANENT_INVALID_REGISTRATION
        assert outcomes[1].error_code == "UNREGISTERED"
        assert outcomes[2].error_class is ErrorClass.TRANSIENT
        assert outcomes[3].error_class is ErrorClass.UNKNOWN

        assert seen[0]["message"]["notification"] == {"title": MESSAGE.title, "body": MESSAGE.body}
        assert seen[0]["message"]["data"]["type"] == "payment_success"

    @pytest.mark.asyncio
    async def test_timeout_and_transport_errors_are_transient(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            token = json.loads(request.content)["message"]["token"]
            if token == "tok-slow":
                raise httpx.ReadTimeout("timed out", request=request)
            raise httpx.ConnectError("refused", request=request)

        gateway = _gateway(handler)
        outcomes = await gateway.send_multicast(["tok-slow", "tok-down"], MESSAGE)

        assert all(o.error_class is ErrorClass.TRANSIENT for o in outcomes)
        assert outcomes[0].error_code == "TIMEOUT"

    @pytest.mark.asyncio
    async def test_non_json_error_body(self) -> None:
        gateway = _gateway(lambda request: httpx.Response(502, text="<html>bad gateway</html>"))
        (outcome,) = await gateway.send_multicast(["tok"], MESSAGE)
        assert outcome.error_class is ErrorClass.TRANSIENT
        assert outcome.error_code == "502"

    @pytest.mark.asyncio
    async def test_empty_token_list_sends_nothing(self) -> None:
        calls = []
        gateway = _gateway(lambda request: calls.append(request) or httpx.Response(200))
        assert await gateway.send_multicast([], MESSAGE) == []
        assert calls == []

    @pytest.mark.asyncio
    async def test_token_provider_failure_leaves_tokens_transient(self) -> None:
        async def broken_provider() -> str:
            raise RuntimeError("metadata server unreachable")

        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200)))
        gateway = FcmGateway("demo-project", token_provider=broken_provider, client=client)

        outcomes = await gateway.send_multicast(["a", "b"], MESSAGE)

        assert [o.error_class for o in outcomes] == [ErrorClass.TRANSIENT, ErrorClass.TRANSIENT]

    @pytest.mark.asyncio
    async def test_injected_token_provider_used(self) -> None:
        async def provider() -> str:
            return "ya29.dynamic"

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.headers["Authorization"] == "Bearer ya29.dynamic"
            return httpx.Response(200, json={})

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        gateway = FcmGateway("demo-project", token_provider=provider, client=client)
        (outcome,) = await gateway.send_multicast(["tok"], MESSAGE)
        assert outcome.success


class TestConstruction:
    def test_requires_project(self) -> None:
        with pytest.raises(ValueError):
            FcmGateway("", access_token="x")

    def test_requires_credentials(self) -> None:
        with pytest.raises(ValueError):
            FcmGateway("demo-project")

    def test_from_env_missing_project(self, monkeypatch) -> None:
        monkeypatch.delenv("FCM_PROJECT_ID", raising=False)
        monkeypatch.setenv("FCM_ACCESS_TOKEN", "x")
        with pytest.raises(ValueError, match="FCM_PROJECT_ID"):
            FcmGateway.from_env()

    def test_from_env_missing_token(self, monkeypatch) -> None:
        monkeypatch.setenv("FCM_PROJECT_ID", "demo-project")
        monkeypatch.delenv("FCM_ACCESS_TOKEN", raising=False)
        with pytest.raises(ValueError, match="FCM_ACCESS_TOKEN"):
            FcmGateway.from_env()
