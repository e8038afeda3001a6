"""Pydantic schemas for API requests/responses."""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


# ============================================================================
# POST /webhooks/paymongo - Request envelope
# ============================================================================


class PayMongoEventAttributes(BaseModel):
    """Payment attributes carried by a PayMongo event."""

    model_config = ConfigDict(extra="allow")

    amount: Optional[int] = Field(None, description="Amount in minor units (centavos)")
    currency: Optional[str] = None
    status: Optional[str] = None
    description: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None


class PayMongoEventData(BaseModel):
    """The ``data`` member of the webhook envelope."""

    model_config = ConfigDict(extra="allow")

    id: str = Field(..., min_length=1, description="Upstream event ID")
    type: str = Field(..., min_length=1, description="Event type, e.g. payment.paid")
    attributes: Optional[PayMongoEventAttributes] = None


class PayMongoWebhookBody(BaseModel):
    """Top-level webhook envelope."""

    model_config = ConfigDict(extra="allow")

    data: PayMongoEventData


# ============================================================================
# Responses
# ============================================================================


class WebhookAck(BaseModel):
    """200 acknowledgment body."""

    success: bool = True


class ProblemDetail(BaseModel):
    """RFC 9457 Problem Details for HTTP API errors.

    RFC 9457: detail can be either a string or a structured object (dict).
    """

    model_config = ConfigDict(extra="allow")

    type: str = Field(..., description="URI reference identifying the problem type")
    title: str = Field(..., description="Short, human-readable summary")
    status: int = Field(..., description="HTTP status code")
    detail: Optional[str | dict[str, Any]] = Field(
        None, description="Human-readable explanation or structured error details"
    )
    instance: Optional[str] = Field(None, description="URI reference identifying the specific occurrence")
