"""Inbound payment webhooks (PayMongo).

Error taxonomy (retry storm prevention):
  (A) Signature missing / mismatch                     → 401 WEBHOOK_SIGNATURE_INVALID
  (B) Invalid JSON / malformed payload                 → 400 WEBHOOK_INVALID_JSON / _PAYLOAD
  (C) Our misconfig (missing secret / FCM credentials) → 500 WEBHOOK_PROVIDER_MISCONFIG
  (D) Store timeout / internal error after verification → 500 WEBHOOK_INTERNAL_ERROR
  Business no-ops (duplicate, unknown type, order not found) → 200 {"success": true}
  500 is ONLY for (C)(D). Signature mismatch is NEVER 500.
"""

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from payhook_api.config.env import get_signature_header_name
from payhook_api.context import request_id_var
from payhook_api.dependencies import build_ingress_handler
from payhook_api.payments.errors import ProviderMisconfigured, WebhookError
from payhook_api.payments.ingress import PROVIDER, WebhookIngressHandler
from payhook_api.schemas import WebhookAck
from payhook_api.utils.sanitize import error_fields, payload_hash_bytes

router = APIRouter(prefix="/webhooks", tags=["webhooks"])
logger = logging.getLogger(__name__)

_ERROR_MEMBER = {
    401: "invalid signature",
    400: "invalid payload",
}


# ============================================================================
# Webhook Problem Details helper
# ============================================================================


def _webhook_problem(
    request: Request,
    error: WebhookError,
    *,
    payload_hash: str | None,
) -> JSONResponse:
    """Return an RFC 9457 Problem Details response with webhook extensions.

    5xx failures add a Retry-After: 60 response header.

    Response extensions (beyond RFC 9457 base):
      provider, error_code, payload_hash, error  (never raw payload/secrets)
    """
    status = error.status_code
    request_id = request_id_var.get()
    instance = request_id or str(request.url.path)

    content: dict = {
        "type": f"urn:payhook:webhook:{error.code.lower()}",
        "title": error.title,
        "status": status,
        "provider": PROVIDER,
        "error_code": error.code,
        "error": _ERROR_MEMBER.get(status, "internal error"),
    }
    if error.detail is not None:
        content["detail"] = error.detail
    if payload_hash is not None:
        content["payload_hash"] = payload_hash
    if instance:
        content["instance"] = instance

    headers = {"Content-Type": "application/problem+json"}
    if status >= 500:
        headers["Retry-After"] = "60"

    return JSONResponse(status_code=status, content=content, headers=headers)


def get_ingress_handler(request: Request) -> WebhookIngressHandler:
    """Handler injected via app.state, else built once from the environment."""
    # Must stay synchronous: with no await between check and store, one build per app
    handler = getattr(request.app.state, "webhook_handler", None)
    if handler is None:
        handler = build_ingress_handler()
        request.app.state.webhook_handler = handler
    return handler


# ============================================================================
# PayMongo Webhook Handler
# ============================================================================


@router.post("/paymongo", response_model=WebhookAck)
async def paymongo_webhook(request: Request):
    """PayMongo webhook handler.

    The signature is checked over the raw bytes before anything is parsed.
    """
    raw_body: bytes = await request.body()
    request.state.payload_hash = payload_hash_bytes(raw_body)

    try:
        handler = get_ingress_handler(request)
    except (ValueError, RuntimeError) as exc:
        logger.error(
            "WEBHOOK_PROVIDER_MISCONFIG",
            extra={"provider": PROVIDER, **error_fields(exc)},
        )
        return _webhook_problem(
            request,
            ProviderMisconfigured("Webhook processing is not configured"),
            payload_hash=request.state.payload_hash,
        )

    signature = request.headers.get(get_signature_header_name())
    result = await handler.handle(raw_body, signature)

    if not result.acknowledged:
        return _webhook_problem(request, result.error, payload_hash=result.payload_hash)

    return WebhookAck(success=True)
