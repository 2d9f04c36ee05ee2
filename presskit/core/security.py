"""Password hashing and input sanitization helpers."""

import re
from typing import Any

import bcrypt

BCRYPT_ROUNDS = 12

_TAG = re.compile(r"<[^>]*>")


def hash_password(password: str, rounds: int = BCRYPT_ROUNDS) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def sanitize(value: Any) -> Any:
    """Strip HTML tags from every string in a (possibly nested) JSON value."""
    if isinstance(value, str):
        return _TAG.sub("", value).strip()
    if isinstance(value, list):
        return [sanitize(v) for v in value]
    if isinstance(value, dict):
        return {k: sanitize(v) for k, v in value.items()}
    return value
