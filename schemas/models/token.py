"""
Refresh token document model.

Maps to the `refresh-tokens` MongoDB collection.

_id is the token pair's jti. token_hash stores SHA-256(refresh_token); the
signed token itself is never stored. revoked flips to True exactly once,
either when the token is rotated or when the user logs out.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from schemas.models.base import StringIdDoc


class RefreshTokenDoc(StringIdDoc):
    """Document model for the `refresh-tokens` collection."""

    user_id: str
    token_hash: str
    expires_at: datetime
    revoked: bool = False
    created_at: Optional[datetime] = None
    revoked_at: Optional[datetime] = None
