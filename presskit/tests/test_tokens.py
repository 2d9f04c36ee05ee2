from datetime import datetime, timedelta, timezone

import jwt
import pytest

from presskit.core.tokens import (
    TokenService,
    decode_token,
    extract_token_from_header,
    get_token_expiration,
    is_token_expired,
    parse_duration,
)


@pytest.mark.parametrize(
    "value, expected",
    [
        ("7d", timedelta(days=7)),
        ("24h", timedelta(hours=24)),
        ("30m", timedelta(minutes=30)),
        ("45s", timedelta(seconds=45)),
        ("90", timedelta(seconds=90)),
        (600, timedelta(minutes=10)),
    ],
)
def test_parse_duration(value, expected):
    assert parse_duration(value) == expected


def test_parse_duration_rejects_garbage():
    with pytest.raises(ValueError):
        parse_duration("soon")


@pytest.mark.parametrize(
    "header, expected",
    [
        ("Bearer abc.def", "abc.def"),
        ("Bearer   ", None),
        ("Basic abc", None),
        ("", None),
        (None, None),
    ],
)
def test_extract_token_from_header(header, expected):
    assert extract_token_from_header(header) == expected


def test_auth_tokens_use_separate_secrets(settings):
    tokens = TokenService(settings)
    pair = tokens.generate_auth_tokens("u1")

    assert tokens.verify_token(pair["token"])["id"] == "u1"
    assert tokens.verify_refresh_token(pair["refreshToken"])["id"] == "u1"
    with pytest.raises(jwt.InvalidSignatureError):
        tokens.verify_refresh_token(pair["token"])
    with pytest.raises(jwt.InvalidSignatureError):
        tokens.verify_token(pair["refreshToken"])


def test_tokens_are_unique_per_issue(settings):
    tokens = TokenService(settings)
    first = decode_token(tokens.generate_auth_tokens("u1")["token"])
    second = decode_token(tokens.generate_auth_tokens("u1")["token"])
    assert first["jti"] != second["jti"]


def test_temp_token_carries_purpose_and_lifetime(settings):
    tokens = TokenService(settings)
    token = tokens.generate_temp_token("u1", "1h", purpose="password_reset")
    claims = tokens.verify_token(token)
    assert claims["purpose"] == "password_reset"

    remaining = tokens.remaining_lifetime(token)
    assert 3590 <= remaining <= 3600


def test_expiry_helpers(settings):
    tokens = TokenService(settings)
    token = tokens.generate_temp_token("u1", "10m")
    expires = get_token_expiration(token)
    assert expires > datetime.now(timezone.utc)
    assert not is_token_expired(token)
    assert is_token_expired(token, now=expires + timedelta(seconds=1))

    assert decode_token("not-a-jwt") is None
    assert get_token_expiration("not-a-jwt") is None
    assert is_token_expired("not-a-jwt")
    assert TokenService.remaining_lifetime("not-a-jwt") == 0


def test_expired_bearer_is_rejected_with_expired_message(client, register_user, settings):
    account = register_user()
    stale = TokenService._sign(account["user"]["id"], settings.JWT_SECRET, timedelta(seconds=-5))
    resp = client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {stale}"})
    assert resp.status_code == 401
    assert resp.json()["error"] == "Token expired"


def test_forged_bearer_is_rejected(client, register_user):
    account = register_user()
    forged = jwt.encode({"id": account["user"]["id"]}, "someone-elses-secret", algorithm="HS256")
    resp = client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {forged}"})
    assert resp.status_code == 401
    assert resp.json()["error"] == "Invalid token"
