"""Webhook error taxonomy.

  AuthenticationFailure          → 401  (bad or missing signature; never 500)
  MalformedPayload               → 400  (invalid JSON / missing required fields)
  ProviderMisconfigured          → 500  (our misconfig: missing secret, gateway creds)
  TransientInfrastructureFailure → 500  (store timeout/unavailable on the critical path)

Business no-ops (duplicate, unknown type, order not found) are not errors; they
are reported as DispatchOutcome values and acknowledged with 200.
Permanent recipient failures never reach the webhook caller; they are tagged on
DeliveryOutcome and handled by the fan-out engine.
"""


class WebhookError(Exception):
    """Base class for failures that map to a webhook HTTP response."""

    status_code: int = 500
    code: str = "WEBHOOK_INTERNAL_ERROR"
    title: str = "Internal processing error"

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail or self.title)
        self.detail = detail


class AuthenticationFailure(WebhookError):
    """Signature missing or does not match the raw body."""

    status_code = 401
    code = "WEBHOOK_SIGNATURE_INVALID"
    title = "Webhook signature verification failed"


class MalformedPayload(WebhookError):
    """Verified body that is structurally unusable."""

    status_code = 400
    code = "WEBHOOK_INVALID_PAYLOAD"
    title = "Invalid webhook payload"

    def __init__(self, detail: str | None = None, *, code: str | None = None) -> None:
        super().__init__(detail)
        if code:
            self.code = code


class ProviderMisconfigured(WebhookError):
    """Required configuration for verification or delivery is absent."""

    status_code = 500
    code = "WEBHOOK_PROVIDER_MISCONFIG"
    title = "Webhook provider misconfiguration"


class TransientInfrastructureFailure(WebhookError):
    """Store timeout or outage on the order-transition path; the sender should retry."""

    status_code = 500
    code = "WEBHOOK_INTERNAL_ERROR"
    title = "Internal processing error"
