"""HMAC-SHA256 secrets and request signatures.

Receivers verify a delivery by recomputing the HMAC of the raw request body
with their copy of the webhook secret and comparing it to the
``X-Webhook-Signature`` header.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets

SIGNATURE_PREFIX = "sha256="


def generate_secret() -> str:
    """Generate a webhook secret with 256 bits of entropy.

    Returns:
        A 64-character hex string.
    """
    return secrets.token_hex(32)


def compute_signature(payload: bytes | str, secret: str) -> str:
    """Compute the HMAC-SHA256 signature of a request body.

    Args:
        payload: Raw request body. Strings are signed as UTF-8.
        secret: Shared secret for HMAC.

    Returns:
        Signature in format "sha256=<hex_digest>".
    """
    if isinstance(payload, str):
        payload = payload.encode("utf-8")
    digest = hmac.new(
        key=secret.encode("utf-8"),
        msg=payload,
        digestmod=hashlib.sha256,
    ).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


def verify_signature(payload: bytes | str, signature: str, secret: str) -> bool:
    """Verify a request body against its signature in constant time.

    Args:
        payload: Raw request body that was signed.
        signature: Signature to verify (format: "sha256=<hex_digest>").
        secret: Shared secret for HMAC.

    Returns:
        True if the signature matches, False otherwise.
    """
    expected = compute_signature(payload, secret)
    return hmac.compare_digest(expected.encode("utf-8"), signature.encode("utf-8"))
