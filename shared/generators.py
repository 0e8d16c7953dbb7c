"""
Random token generators — pure, side-effect-free functions.

All generators use cryptographically secure sources (``secrets`` module).
"""

from __future__ import annotations

import secrets


def generate_secure_token(length: int = 32) -> str:
    """Generate a cryptographically secure URL-safe random token.

    Args:
        length: Number of random bytes before base64 encoding (default 32).
            The resulting string will be longer than *length* characters.

    Returns:
        URL-safe base64-encoded token string.
    """
    return secrets.token_urlsafe(length)


def generate_verification_token() -> str:
    """Generate a one-time verification token (128 bits of randomness)."""
    return generate_secure_token(16)


def generate_lock_owner() -> str:
    """Opaque owner value for a distributed lock."""
    return secrets.token_hex(8)
