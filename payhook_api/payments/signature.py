"""Webhook signature verification - constant-time HMAC-SHA256.

Contract:
- Expected signature = hex(HMAC-SHA256(secret, raw_body)) over the exact bytes received
- Comparison uses hmac.compare_digest() on decoded bytes (no timing side channel)
- Malformed hex, wrong length, empty header or empty secret → False, never an exception
- The secret is never logged
"""

from __future__ import annotations

import binascii
import hashlib
import hmac
import logging

logger = logging.getLogger(__name__)

_DIGEST_SIZE = hashlib.sha256().digest_size


def compute_signature(raw_body: bytes, secret: str) -> str:
    """Return the hex HMAC-SHA256 of ``raw_body`` keyed with ``secret``."""
    return hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()


def verify_signature(raw_body: bytes, signature_header: str | None, secret: str) -> bool:
    """Check ``signature_header`` against the HMAC of ``raw_body``.

    Returns:
        True only when the header decodes to exactly the expected digest.
    """
    if not signature_header or not secret:
        return False

    try:
        provided = binascii.unhexlify(signature_header.strip())
    except (binascii.Error, ValueError):
        logger.debug("Signature header is not valid hex")
        return False

    if len(provided) != _DIGEST_SIZE:
        return False

    expected = hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).digest()
    return hmac.compare_digest(expected, provided)


class SignatureVerifier:
    """Verifier bound to one shared secret."""

    def __init__(self, secret: str) -> None:
        if not secret:
            raise ValueError("Webhook secret must be a non-empty string")
        self._secret = secret

    def verify(self, raw_body: bytes, signature_header: str | None) -> bool:
        return verify_signature(raw_body, signature_header, self._secret)

    def __repr__(self) -> str:
        return "SignatureVerifier(secret=[REDACTED])"
