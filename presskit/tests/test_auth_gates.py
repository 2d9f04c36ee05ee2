"""Tier and verified-email gates layered on bearer authentication."""

import pytest
from fastapi import Depends

from presskit.core.auth import AuthContext, require_tiers, require_verified_email
from presskit.features.users.service import PURPOSE_VERIFY
from presskit.models.user import Tier


@pytest.fixture
def gated_client(app, client):
    @app.get("/gated/pro")
    def pro_only(auth: AuthContext = Depends(require_tiers(Tier.PRO, Tier.ENTERPRISE))):
        return {"userId": auth.user_id}

    @app.get("/gated/verified")
    def verified_only(auth: AuthContext = Depends(require_verified_email)):
        return {"userId": auth.user_id}

    return client


def test_tier_gate_rejects_free_users(gated_client, register_user):
    account = register_user()
    resp = gated_client.get("/gated/pro", headers=account["headers"])
    assert resp.status_code == 403
    assert resp.json()["error"] == "User tier free is not authorized to access this route"


def test_tier_gate_admits_listed_tier(gated_client, register_user, services):
    account = register_user()
    services.users.set_tier(account["user"]["id"], Tier.ENTERPRISE)
    resp = gated_client.get("/gated/pro", headers=account["headers"])
    assert resp.status_code == 200
    assert resp.json() == {"userId": account["user"]["id"]}


def test_tier_gate_still_requires_a_token(gated_client):
    resp = gated_client.get("/gated/pro")
    assert resp.status_code == 401
    assert resp.json()["error"] == "Not authorized to access this route"


def test_verified_email_gate(gated_client, register_user, services):
    account = register_user()
    resp = gated_client.get("/gated/verified", headers=account["headers"])
    assert resp.status_code == 403
    assert resp.json()["error"] == "Please verify your email address to access this route"

    verify_token = services.tokens.generate_temp_token(account["user"]["id"], "24h", purpose=PURPOSE_VERIFY)
    assert gated_client.post("/api/v1/auth/verify-email", json={"token": verify_token}).status_code == 200
    assert gated_client.get("/gated/verified", headers=account["headers"]).status_code == 200
