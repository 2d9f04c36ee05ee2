"""
presskit/models/user.py
Account models: tiers, registration and profile payloads.
"""

import re
from enum import Enum
from typing import Annotated, Literal, Optional

from pydantic import AfterValidator, EmailStr, Field

from presskit.models.base import ApiModel

USERNAME_PATTERN = re.compile(r"^[a-zA-Z0-9_-]+$")
PASSWORD_SPECIALS = re.compile(r'[!@#$%^&*(),.?":{}|<>]')


class Tier(str, Enum):
    FREE = "free"
    PREMIUM = "premium"
    PRO = "pro"
    ENTERPRISE = "enterprise"


# Maximum EPKs per tier; None means unlimited.
TIER_LIMITS = {
    Tier.FREE: 1,
    Tier.PREMIUM: 3,
    Tier.PRO: 5,
    Tier.ENTERPRISE: None,
}


def check_password_strength(value: str) -> str:
    if len(value) < 8:
        raise ValueError("Password must be at least 8 characters long")
    if not (
        re.search(r"[a-z]", value)
        and re.search(r"[A-Z]", value)
        and re.search(r"\d", value)
        and PASSWORD_SPECIALS.search(value)
    ):
        raise ValueError(
            "Password must contain at least one uppercase letter, one lowercase letter, one number, and one special character"
        )
    return value


def check_username(value: str) -> str:
    if not 3 <= len(value) <= 30:
        raise ValueError("Username must be between 3 and 30 characters")
    if not USERNAME_PATTERN.match(value):
        raise ValueError("Username can only contain letters, numbers, underscores, and hyphens")
    return value.lower()


Email = Annotated[EmailStr, AfterValidator(str.lower)]
Username = Annotated[str, AfterValidator(check_username)]
Password = Annotated[str, AfterValidator(check_password_strength)]


class Profile(ApiModel):
    first_name: Optional[str] = Field(default=None, max_length=50)
    last_name: Optional[str] = Field(default=None, max_length=50)
    avatar: Optional[str] = None
    bio: Optional[str] = Field(default=None, max_length=500)


class UserSettings(ApiModel):
    notifications: Optional[bool] = None
    privacy: Optional[Literal["public", "private"]] = None


class RegisterRequest(ApiModel):
    email: Email
    username: Username
    password: Password
    first_name: Optional[str] = Field(default=None, max_length=50)
    last_name: Optional[str] = Field(default=None, max_length=50)


class LoginRequest(ApiModel):
    email: Email
    password: str = Field(min_length=1)


class UpdateMeRequest(ApiModel):
    username: Optional[Username] = None
    profile: Optional[Profile] = None
    settings: Optional[UserSettings] = None


class UpdatePasswordRequest(ApiModel):
    current_password: str = Field(min_length=1)
    new_password: Password


class ForgotPasswordRequest(ApiModel):
    email: Email


class ResetPasswordRequest(ApiModel):
    token: str = Field(min_length=1)
    password: Password


class TokenRequest(ApiModel):
    token: str = Field(min_length=1)


class RefreshTokenRequest(ApiModel):
    refresh_token: str = Field(min_length=1)
