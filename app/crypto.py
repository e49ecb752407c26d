"""Token generation, hashing and constant-time comparison helpers."""

import base64
import hashlib
import hmac
import secrets
from typing import Union


DEFAULT_TOKEN_BYTES = 32


def generate_token(byte_length: int = DEFAULT_TOKEN_BYTES) -> str:
    """Generate a URL-safe random token without padding.

    Used for session tokens and OAuth state values.
    """
    if byte_length <= 0:
        raise ValueError("byte_length must be a positive integer")
    raw = secrets.token_bytes(byte_length)
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def hash_token(token: str) -> str:
    """Return the SHA-256 hex digest of a token (64 lowercase hex chars)."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _as_bytes(value: Union[str, bytes]) -> bytes:
    if isinstance(value, bytes):
        return value
    return value.encode("utf-8")


def constant_time_equals(a: Union[str, bytes], b: Union[str, bytes]) -> bool:
    """Compare two secrets without leaking where they first differ.

    A length mismatch returns False straight away; token lengths are fixed
    and public, so only the contents need timing protection.
    """
    a_bytes = _as_bytes(a)
    b_bytes = _as_bytes(b)
    if len(a_bytes) != len(b_bytes):
        return False
    return hmac.compare_digest(a_bytes, b_bytes)
