"""
Identifier and input validators — framework-agnostic, pure functions.

Used by the request DTOs so malformed input is rejected before any auth flow
runs, and by the orchestrator to classify a login identifier.
"""

from __future__ import annotations

import re
from typing import Optional

import validators as _validators

IDENTIFIER_EMAIL = "email"
IDENTIFIER_PHONE = "phone"
IDENTIFIER_TYPES = (IDENTIFIER_EMAIL, IDENTIFIER_PHONE)

# E.164: leading +, country code without a leading zero, at most 15 digits
_E164_RE = re.compile(r"^\+[1-9]\d{1,14}$")


def validate_email(email: str) -> bool:
    """Return True if *email* is a syntactically valid address."""
    return bool(_validators.email(email))


def validate_phone(phone: str) -> bool:
    """Return True if *phone* is in E.164 format (e.g. ``+919876543210``)."""
    return bool(_E164_RE.match(phone))


def validate_otp_code(code: str, length: int = 6) -> bool:
    """Return True if *code* is exactly *length* decimal digits."""
    return len(code) == length and code.isascii() and code.isdigit()


def normalize_email(email: str) -> str:
    """Trim and lowercase an email address for storage and lookup."""
    return email.strip().lower()


def classify_identifier(identifier: str) -> Optional[str]:
    """Return ``"email"`` or ``"phone"`` for a valid identifier, else None."""
    value = identifier.strip()
    if validate_phone(value):
        return IDENTIFIER_PHONE
    if validate_email(value):
        return IDENTIFIER_EMAIL
    return None


def validate_identifier(identifier: str, identifier_type: str) -> bool:
    """Return True if *identifier* is well-formed for *identifier_type*."""
    if identifier_type == IDENTIFIER_EMAIL:
        return validate_email(identifier)
    if identifier_type == IDENTIFIER_PHONE:
        return validate_phone(identifier)
    return False
