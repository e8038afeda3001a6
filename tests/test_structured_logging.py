"""Structured logging: context correlation and redaction."""

import json
import logging
from io import StringIO

import pytest

from payhook_api.context import event_id_var, order_id_var, request_id_var
from payhook_api.observability.metrics import log_fanout_result, log_webhook_outcome
from payhook_api.utils.logging import JSONFormatter
from payhook_api.utils.sanitize import error_fields, sanitize_str
from tests.conftest import paymongo_body, sign
from tests.log_capture import LogCapture


def _logger(name: str) -> tuple[logging.Logger, StringIO]:
    logger = logging.getLogger(name)
    logger.setLevel(logging.INFO)
    logger.handlers.clear()
    logger.propagate = False

    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(JSONFormatter())
    logger.addHandler(handler)
    return logger, stream


def test_json_formatter_includes_context_vars() -> None:
    logger, stream = _logger("test_context_logger")
    tokens = [
        request_id_var.set("req_123"),
        event_id_var.set("evt_abc"),
        order_id_var.set("order_xyz"),
    ]
    try:
        logger.info("Test message")
    finally:
        order_id_var.reset(tokens[2])
        event_id_var.reset(tokens[1])
        request_id_var.reset(tokens[0])

    log_data = json.loads(stream.getvalue())
    assert log_data["message"] == "Test message"
    assert log_data["request_id"] == "req_123"
    assert log_data["event_id"] == "evt_abc"
    assert log_data["order_id"] == "order_xyz"
    assert log_data["level"] == "INFO"


def test_json_formatter_omits_missing_context() -> None:
    logger, stream = _logger("test_no_context_logger")

    logger.info("Background task message")

    log_data = json.loads(stream.getvalue())
    assert "event_id" not in log_data
    assert "order_id" not in log_data


def test_json_formatter_includes_extra_fields() -> None:
    logger, stream = _logger("test_extra_logger")

    logger.info("FANOUT_COMPLETED", extra={"user_id": "cust_1", "total": 3})

    log_data = json.loads(stream.getvalue())
    assert log_data["user_id"] == "cust_1"
    assert log_data["total"] == 3


@pytest.mark.parametrize("key", ["token", "tokens", "signature", "authorization", "webhook_secret"])
def test_sensitive_extra_keys_redacted(key) -> None:
    logger, stream = _logger(f"test_redact_{key}")

    logger.info("something", extra={key: "fcm-device-token-value"})

    log_data = json.loads(stream.getvalue())
    assert log_data[key] == "[REDACTED]"
    assert "fcm-device-token-value" not in stream.getvalue()


def test_nested_sensitive_keys_redacted() -> None:
    logger, stream = _logger("test_nested_logger")

    logger.info("nested", extra={"payload": {"token": "abc", "order": "o1"}})

    log_data = json.loads(stream.getvalue())
    assert log_data["payload"] == {"token": "[REDACTED]", "order": "o1"}


def test_secret_patterns_scrubbed_from_messages() -> None:
    assert "whsk_live_abcdef" not in sanitize_str("secret is whsk_live_abcdef")
    assert "ya29.token" not in sanitize_str("Authorization: Bearer ya29.token")


def test_error_fields_sanitized_and_bounded() -> None:
    fields = error_fields(RuntimeError("Bearer ya29.secret " + "x" * 500))
    assert fields["error_type"] == "RuntimeError"
    assert "ya29.secret" not in fields["error_msg"]
    assert len(fields["error_msg"]) <= 200


def test_metric_events_are_structured() -> None:
    with LogCapture() as cap:
        log_webhook_outcome("paymongo", "applied", 200, "payment.paid", 12.5)
        log_fanout_result("cust_1", "payment_success", 3, 1, 1, 1, 0)
        logs = cap.logs()

    outcome = next(e for e in logs if e.get("event") == "webhook.outcome")
    assert outcome["status_code"] == 200
    fanout = next(e for e in logs if e.get("event") == "notification.fanout")
    assert fanout["permanent"] == 1


@pytest.mark.asyncio
async def test_pipeline_logs_correlate_event_and_never_leak_tokens(pipeline) -> None:
    body = paymongo_body()

    with LogCapture() as cap:
        await pipeline.handler.handle(body, sign(body))
        logs = cap.logs()
        raw = cap.raw()

    dispatched = next(e for e in logs if e["message"] == "WEBHOOK_DISPATCHED")
    assert dispatched["event_id"] == "evt_001"
    assert dispatched["order_id"] == "order_001"
    assert any(e["message"] == "WEBHOOK_RECEIVED" for e in logs)
    assert any(e["message"] == "FANOUT_COMPLETED" for e in logs)
    assert "tok-cust-a" not in raw
    assert "tok-vend-a" not in raw

    # Context is restored once the event is finished
    assert event_id_var.get() == ""
    assert order_id_var.get() == ""
