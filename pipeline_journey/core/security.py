"""
Security utilities for outbound webhooks and dispatch claims.
"""
import hashlib
import hmac
import secrets


def generate_secure_token(length: int = 32) -> str:
    """Generate an opaque random token (claim tokens, idempotency keys)."""
    return secrets.token_urlsafe(length)


def sign_payload(secret: str, timestamp: str, body: bytes) -> str:
    """
    HMAC-SHA256 signature over "<timestamp>.<body>".

    Receivers recompute it with the shared secret to verify origin and
    reject stale timestamps.
    """
    message = timestamp.encode("utf-8") + b"." + body
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def verify_signature(secret: str, timestamp: str, body: bytes, signature: str) -> bool:
    expected = sign_payload(secret, timestamp, body)
    return hmac.compare_digest(expected, signature)
