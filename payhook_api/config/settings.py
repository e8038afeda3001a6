"""Pipeline tunables (timeouts, retry policy, fan-out concurrency).

Loaded from PAYHOOK_* environment variables into a validated pydantic model.
"""

import logging
import os
from typing import Optional

from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)


class PipelineSettings(BaseModel):
    """Timeouts and retry policy for the webhook pipeline."""

    store_timeout_seconds: float = Field(
        default=5.0, gt=0, le=60, description="Bound on a single order-store call"
    )
    store_max_attempts: int = Field(
        default=3, ge=1, le=10, description="Attempts for a transient store failure"
    )
    store_retry_base_delay: float = Field(
        default=0.1, ge=0, le=5, description="Initial backoff delay (seconds)"
    )
    store_retry_max_delay: float = Field(
        default=2.0, ge=0, le=30, description="Backoff delay cap (seconds)"
    )
    gateway_timeout_seconds: float = Field(
        default=10.0, gt=0, le=60, description="HTTP timeout for one push send"
    )
    gateway_max_concurrency: int = Field(
        default=16, ge=1, le=256, description="Concurrent sends per multicast"
    )
    fanout_timeout_seconds: float = Field(
        default=15.0, gt=0, le=120, description="Bound on the whole fan-out for one event"
    )
    event_ledger_ttl_seconds: int = Field(
        default=86400, ge=60, description="How long a processed event id is remembered"
    )
    event_ledger_processing_ttl_seconds: int = Field(
        default=120,
        ge=10,
        le=3600,
        description="Expiry of an in-flight claim left by a crashed worker",
    )


_ENV_FIELDS = {
    "PAYHOOK_STORE_TIMEOUT_SECONDS": "store_timeout_seconds",
    "PAYHOOK_STORE_MAX_ATTEMPTS": "store_max_attempts",
    "PAYHOOK_STORE_RETRY_BASE_DELAY": "store_retry_base_delay",
    "PAYHOOK_STORE_RETRY_MAX_DELAY": "store_retry_max_delay",
    "PAYHOOK_GATEWAY_TIMEOUT_SECONDS": "gateway_timeout_seconds",
    "PAYHOOK_GATEWAY_MAX_CONCURRENCY": "gateway_max_concurrency",
    "PAYHOOK_FANOUT_TIMEOUT_SECONDS": "fanout_timeout_seconds",
    "PAYHOOK_EVENT_LEDGER_TTL_SECONDS": "event_ledger_ttl_seconds",
    "PAYHOOK_EVENT_LEDGER_PROCESSING_TTL_SECONDS": "event_ledger_processing_ttl_seconds",
}


def load_pipeline_settings(environ: Optional[dict[str, str]] = None) -> PipelineSettings:
    """Build PipelineSettings from environment variables.

    Unset variables keep their defaults.

    Raises:
        ValueError: If a variable is set to an out-of-range or non-numeric value
    """
    env = os.environ if environ is None else environ
    values = {field: env[name] for name, field in _ENV_FIELDS.items() if env.get(name)}

    try:
        settings = PipelineSettings(**values)
    except ValidationError as exc:
        raise ValueError(f"Invalid PAYHOOK_* pipeline configuration: {exc}") from exc

    logger.debug("PIPELINE_SETTINGS_LOADED", extra={"settings": settings.model_dump()})
    return settings
