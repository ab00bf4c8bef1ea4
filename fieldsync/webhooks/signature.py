"""HMAC-SHA256 verification of ServiceM8 webhook signatures."""

import hashlib
import hmac

SIGNATURE_PREFIX = "sha256="


def compute_signature(body: bytes, secret: str) -> str:
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def verify_signature(body: bytes, signature: str, secret: str) -> bool:
    """Check a hex signature (optionally ``sha256=`` prefixed) in constant time."""
    provided = signature.strip().removeprefix(SIGNATURE_PREFIX).lower()
    return hmac.compare_digest(compute_signature(body, secret), provided)
