"""Utility functions and helpers."""

from payhook_api.utils.logging import JSONFormatter, configure_json_logging
from payhook_api.utils.retry import compute_delay, retry_async
from payhook_api.utils.sanitize import (
    error_fields,
    payload_hash_bytes,
    sanitize_exc,
    sanitize_obj,
    sanitize_str,
    token_fingerprint,
)

__all__ = [
    "JSONFormatter",
    "configure_json_logging",
    "compute_delay",
    "retry_async",
    "error_fields",
    "payload_hash_bytes",
    "sanitize_exc",
    "sanitize_obj",
    "sanitize_str",
    "token_fingerprint",
]
