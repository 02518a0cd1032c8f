"""
User document model.

Maps to the `users` MongoDB collection.

A user only exists once both identifiers were proven during registration, so
email_verified / phone_verified / onboarding_completed are True for every
document the onboarding flow writes. The fields stay explicit because the
JWT carries onboardingCompleted and the profile endpoint reports them.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from schemas.models.base import MongoBaseModel

UserType = Literal["student", "working_professional", "team_manager"]
UserRole = Literal["individual", "team_manager"]
Theme = Literal["light", "dark", "system"]
Language = Literal["en", "hi"]


class UserDoc(MongoBaseModel):
    """Document model for the `users` collection."""

    email: str
    phone: str
    password_hash: Optional[str] = None
    full_name: Optional[str] = None
    user_name: Optional[str] = None
    user_type: UserType = "student"
    user_role: UserRole = "individual"
    country: Optional[str] = None
    timezone: Optional[str] = None
    theme: Theme = "system"
    language: Language = "en"
    email_verified: bool = False
    phone_verified: bool = False
    onboarding_completed: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    last_login_at: Optional[datetime] = None

    @staticmethod
    def role_for(user_type: str) -> str:
        """Team managers get their own role; everyone else is an individual."""
        return "team_manager" if user_type == "team_manager" else "individual"

    @property
    def user_id(self) -> str:
        return str(self.id)
