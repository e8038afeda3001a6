"""Payment webhook pipeline: verify → dispatch → transition → notify."""

from payhook_api.payments.dispatcher import DispatchOutcome, DispatchResult, EventDispatcher
from payhook_api.payments.errors import (
    AuthenticationFailure,
    MalformedPayload,
    ProviderMisconfigured,
    TransientInfrastructureFailure,
    WebhookError,
)
from payhook_api.payments.events import PaymentEvent, PaymentEventType, parse_payment_event
from payhook_api.payments.ingress import IngressResult, IngressState, WebhookIngressHandler
from payhook_api.payments.signature import SignatureVerifier, verify_signature

__all__ = [
    "AuthenticationFailure",
    "DispatchOutcome",
    "DispatchResult",
    "EventDispatcher",
    "IngressResult",
    "IngressState",
    "MalformedPayload",
    "PaymentEvent",
    "PaymentEventType",
    "ProviderMisconfigured",
    "SignatureVerifier",
    "TransientInfrastructureFailure",
    "WebhookError",
    "WebhookIngressHandler",
    "parse_payment_event",
    "verify_signature",
]
