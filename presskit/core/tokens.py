"""Signed bearer tokens (PyJWT, HS256)."""

import re
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional, Union
from uuid import uuid4

import jwt

from presskit.core.config import Settings

ALGORITHM = "HS256"

_DURATION = re.compile(r"^\s*(\d+)\s*([smhd]?)\s*$")
_UNIT_SECONDS = {"": 1, "s": 1, "m": 60, "h": 3600, "d": 86400}


def parse_duration(value: Union[str, int]) -> timedelta:
    """Turn ``"7d"``, ``"24h"``, ``"30m"``, ``"45s"`` or bare seconds into a timedelta."""
    if isinstance(value, int):
        return timedelta(seconds=value)
    match = _DURATION.match(value)
    if not match:
        raise ValueError(f"Invalid duration: {value!r}")
    amount, unit = match.groups()
    return timedelta(seconds=int(amount) * _UNIT_SECONDS[unit])


def extract_token_from_header(header: Optional[str]) -> Optional[str]:
    if not header or not header.startswith("Bearer "):
        return None
    token = header[len("Bearer "):].strip()
    return token or None


def decode_token(token: str) -> Optional[dict]:
    """Read claims without verifying signature or expiry."""
    try:
        return jwt.decode(token, options={"verify_signature": False, "verify_exp": False})
    except jwt.DecodeError:
        return None


def get_token_expiration(token: str) -> Optional[datetime]:
    claims = decode_token(token)
    if not claims or "exp" not in claims:
        return None
    return datetime.fromtimestamp(claims["exp"], timezone.utc)


def is_token_expired(token: str, now: Optional[datetime] = None) -> bool:
    expires = get_token_expiration(token)
    if expires is None:
        return True
    return expires <= (now or datetime.now(timezone.utc))


class TokenService:
    def __init__(self, settings: Settings):
        self.secret = settings.JWT_SECRET
        self.refresh_secret = settings.JWT_REFRESH_SECRET
        self.expires_in = parse_duration(settings.JWT_EXPIRES_IN)
        self.refresh_expires_in = parse_duration(settings.JWT_REFRESH_EXPIRES_IN)

    @staticmethod
    def _sign(subject_id: str, secret: str, lifetime: timedelta, **claims) -> str:
        now = datetime.now(timezone.utc)
        payload = {"id": subject_id, "iat": now, "exp": now + lifetime, "jti": uuid4().hex, **claims}
        return jwt.encode(payload, secret, algorithm=ALGORITHM)

    def generate_auth_tokens(self, subject_id: str) -> Dict[str, str]:
        return {
            "token": self._sign(subject_id, self.secret, self.expires_in),
            "refreshToken": self._sign(subject_id, self.refresh_secret, self.refresh_expires_in),
        }

    def generate_temp_token(self, subject_id: str, expires_in: Union[str, int], purpose: Optional[str] = None) -> str:
        """Short-lived token signed with the access secret; ``purpose`` keeps it out of bearer auth."""
        claims = {"purpose": purpose} if purpose else {}
        return self._sign(subject_id, self.secret, parse_duration(expires_in), **claims)

    def verify_token(self, token: str) -> dict:
        """Verify an access or temp token; raises ``jwt.ExpiredSignatureError`` / ``jwt.InvalidTokenError``."""
        return jwt.decode(token, self.secret, algorithms=[ALGORITHM])

    def verify_refresh_token(self, token: str) -> dict:
        return jwt.decode(token, self.refresh_secret, algorithms=[ALGORITHM])

    @staticmethod
    def remaining_lifetime(token: str) -> int:
        """Seconds until ``token`` expires, floored at zero."""
        expires = get_token_expiration(token)
        if expires is None:
            return 0
        return max(0, int((expires - datetime.now(timezone.utc)).total_seconds()))
