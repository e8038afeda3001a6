"""Firebase Cloud Messaging HTTP v1 gateway.

FCM Reference:
- Send: https://firebase.google.com/docs/reference/fcm/rest/v1/projects.messages/send
- Error codes: https://firebase.google.com/docs/reference/fcm/rest/v1/ErrorCode

HTTP v1 has no batch endpoint, so a multicast is one request per token,
run as a bounded-concurrency task set with per-task outcome capture.

Classification (structured fields only, never message text):
  2xx                                         → success
  errorCode UNREGISTERED / SENDER_ID_MISMATCH,
  or HTTP 404                                 → PERMANENT_INVALID_REGISTRATION
  errorCode QUOTA_EXCEEDED / UNAVAILABLE / INTERNAL,
  HTTP 429 / 5xx, timeout, transport error    → TRANSIENT
  anything else (incl. INVALID_ARGUMENT)      → UNKNOWN
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, Sequence

import httpx

from payhook_api.config.env import get_fcm_access_token, get_fcm_project_id
from payhook_api.notifications.gateway import (
    DeliveryOutcome,
    ErrorClass,
    NotificationGateway,
)
from payhook_api.notifications.messages import NotificationMessage
from payhook_api.utils.sanitize import token_fingerprint

logger = logging.getLogger(__name__)

FCM_BASE_URL = "https://fcm.googleapis.com"
_FCM_ERROR_TYPE = "type.googleapis.com/google.firebase.fcm.v1.FcmError"

PERMANENT_ERROR_CODES = frozenset({"UNREGISTERED", "SENDER_ID_MISMATCH"})
TRANSIENT_ERROR_CODES = frozenset({"QUOTA_EXCEEDED", "UNAVAILABLE", "INTERNAL"})

TokenProvider = Callable[[], Awaitable[str]]


def extract_fcm_error_code(payload: Any) -> Optional[str]:
    """Pull the FcmError errorCode (or the google.rpc status) from an error body."""
    if not isinstance(payload, dict):
        return None
    error = payload.get("error")
    if not isinstance(error, dict):
        return None
    for detail in error.get("details") or []:
        if isinstance(detail, dict) and detail.get("@type") == _FCM_ERROR_TYPE:
            code = detail.get("errorCode")
            if code:
                return str(code)
    status = error.get("status")
    return str(status) if status else None


def classify_fcm_response(status_code: int, error_code: Optional[str]) -> Optional[ErrorClass]:
    """Map an FCM response to an ErrorClass; None means delivered."""
    if 200 <= status_code < 300:
        return None
    if error_code in PERMANENT_ERROR_CODES or status_code == 404:
        return ErrorClass.PERMANENT_INVALID_REGISTRATION
    if error_code in TRANSIENT_ERROR_CODES or status_code == 429 or status_code >= 500:
        return ErrorClass.TRANSIENT
    return ErrorClass.UNKNOWN


class FcmGateway(NotificationGateway):
    """NotificationGateway over the FCM HTTP v1 API.

    Environment Variables:
    - FCM_PROJECT_ID: Firebase project that owns the registrations (required)
    - FCM_ACCESS_TOKEN: OAuth bearer token (required unless a token provider is injected)
    """

    def __init__(
        self,
        project_id: str,
        *,
        access_token: Optional[str] = None,
        token_provider: Optional[TokenProvider] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout_seconds: float = 10.0,
        max_concurrency: int = 16,
        base_url: str = FCM_BASE_URL,
    ) -> None:
        if not project_id:
            raise ValueError("FCM project id is required")
        if not access_token and token_provider is None:
            raise ValueError(
                "FCM credentials are required. Set FCM_ACCESS_TOKEN or inject a token provider."
            )
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")

        self.project_id = project_id
        self._access_token = access_token
        self._token_provider = token_provider
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)
        self._timeout = timeout_seconds
        self._max_concurrency = max_concurrency
        self.send_url = f"{base_url}/v1/projects/{project_id}/messages:send"

    @classmethod
    def from_env(
        cls,
        *,
        timeout_seconds: float = 10.0,
        max_concurrency: int = 16,
    ) -> "FcmGateway":
        """Build from FCM_PROJECT_ID / FCM_ACCESS_TOKEN.

        Raises:
            ValueError: If the project id or credentials are missing
        """
        return cls(
            get_fcm_project_id(),
            access_token=get_fcm_access_token(),
            timeout_seconds=timeout_seconds,
            max_concurrency=max_concurrency,
        )

    async def _bearer(self) -> str:
        if self._token_provider is not None:
            return await self._token_provider()
        return self._access_token or ""

    @staticmethod
    def build_request_body(token: str, message: NotificationMessage) -> dict:
        return {
            "message": {
                "token": token,
                "notification": {"title": message.title, "body": message.body},
                "data": dict(message.data),
            }
        }

    async def _send_one(
        self,
        token: str,
        message: NotificationMessage,
        headers: dict[str, str],
        semaphore: asyncio.Semaphore,
    ) -> DeliveryOutcome:
        async with semaphore:
            try:
                response = await self._client.post(
                    self.send_url,
                    json=self.build_request_body(token, message),
                    headers=headers,
                    timeout=self._timeout,
                )
            except httpx.TimeoutException:
                return DeliveryOutcome.failed(token, ErrorClass.TRANSIENT, "TIMEOUT")
            except httpx.TransportError as exc:
                return DeliveryOutcome.failed(token, ErrorClass.TRANSIENT, type(exc).__name__)

        if response.is_success:
            return DeliveryOutcome.ok(token)

        try:
            error_code = extract_fcm_error_code(response.json())
        except ValueError:
            error_code = None

        error_class = classify_fcm_response(response.status_code, error_code)
        logger.debug(
            "FCM_SEND_FAILED",
            extra={
                "token_fp": token_fingerprint(token),
                "http_status": response.status_code,
                "fcm_error_code": error_code,
                "error_class": error_class.value if error_class else None,
            },
        )
        return DeliveryOutcome.failed(
            token, error_class or ErrorClass.UNKNOWN, error_code or str(response.status_code)
        )

    async def send_multicast(
        self, tokens: Sequence[str], message: NotificationMessage
    ) -> list[DeliveryOutcome]:
        if not tokens:
            return []

        try:
            bearer = await self._bearer()
        except Exception as exc:
            # Credential failure says nothing about the tokens themselves
            logger.error(
                "FCM_AUTH_UNAVAILABLE",
                extra={"error_type": type(exc).__name__, "token_count": len(tokens)},
            )
            return [DeliveryOutcome.failed(t, ErrorClass.TRANSIENT, "AUTH_UNAVAILABLE") for t in tokens]

        headers = {
            "Authorization": f"Bearer {bearer}",
            "Content-Type": "application/json",
        }
        semaphore = asyncio.Semaphore(self._max_concurrency)
        results = await asyncio.gather(
            *(self._send_one(t, message, headers, semaphore) for t in tokens),
            return_exceptions=True,
        )

        outcomes: list[DeliveryOutcome] = []
        for token, result in zip(tokens, results):
            if isinstance(result, DeliveryOutcome):
                outcomes.append(result)
            elif isinstance(result, asyncio.CancelledError):
                raise result
            else:
                logger.error(
                    "FCM_SEND_ERROR",
                    extra={"token_fp": token_fingerprint(token), "error_type": type(result).__name__},
                )
                outcomes.append(DeliveryOutcome.failed(token, ErrorClass.UNKNOWN, type(result).__name__))
        return outcomes

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
