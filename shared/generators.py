"""
Random code and token generators — pure, side-effect-free functions.

All generators use cryptographically secure sources (``secrets`` module).
"""

from __future__ import annotations

import secrets
import string
from uuid import uuid4


def generate_otp_code(length: int = 6) -> str:
    """Generate a cryptographically secure numeric OTP.

    Args:
        length: Number of digits (default 6).

    Returns:
        String of random decimal digits.
    """
    return "".join(secrets.choice(string.digits) for _ in range(length))


def generate_session_token(nbytes: int = 32) -> str:
    """Generate an opaque verification-session token.

    Args:
        nbytes: Number of random bytes (default 32, i.e. 256 bits).

    Returns:
        Hex string of ``2 * nbytes`` characters.
    """
    return secrets.token_hex(nbytes)


def generate_token_id() -> str:
    """Generate a ``jti`` for a token pair (uuid4, 32 hex characters)."""
    return uuid4().hex
