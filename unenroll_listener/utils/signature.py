"""Shopify webhook HMAC verification."""
import base64
import hashlib
import hmac
from typing import Optional


def compute_hmac(raw_body: bytes, secret: str) -> str:
    """Return the base64 HMAC-SHA256 digest Shopify sends for ``raw_body``."""
    return base64.b64encode(
        hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).digest()
    ).decode("utf-8")


def verify_webhook(raw_body: bytes, hmac_header: Optional[str], secret: Optional[str]) -> bool:
    """Check ``hmac_header`` against the digest of the untouched request body.

    The base64 text itself is compared, so a change to any header character
    fails. Never raises: a missing secret or header, or a header that is not
    the expected base64 text, counts as a failed verification.
    """
    if not secret or not hmac_header:
        return False

    computed_hmac = compute_hmac(raw_body, secret)
    return hmac.compare_digest(computed_hmac.encode("utf-8"), hmac_header.strip().encode("utf-8"))
