"""
Bearer-token authentication and authorization gates for routes.

``get_auth_context`` authenticates; ``require_tiers`` and
``require_verified_email`` are independent gates layered on top of it.
"""
from dataclasses import dataclass
from typing import Any, Dict

import jwt
from fastapi import Depends
from starlette.requests import Request

from presskit.core.errors import PermissionError, UnauthorizedError
from presskit.core.tokens import extract_token_from_header
from presskit.dependencies import Services, get_services


@dataclass(frozen=True)
class AuthContext:
    """The authenticated caller, threaded explicitly into handlers."""
    user: Dict[str, Any]
    token: str

    @property
    def user_id(self) -> str:
        return self.user["id"]


def get_auth_context(request: Request, services: Services = Depends(get_services)) -> AuthContext:
    token = extract_token_from_header(request.headers.get("Authorization"))
    if not token:
        raise UnauthorizedError("Not authorized to access this route")

    if services.users.is_blacklisted(token):
        raise UnauthorizedError("Token has been revoked")

    claims = services.tokens.verify_token(token)
    if claims.get("purpose") or not claims.get("id"):
        raise jwt.InvalidTokenError("not an access token")

    user = services.users.get(claims["id"])
    if user is None:
        raise UnauthorizedError("User not found")
    if not user["isActive"]:
        raise UnauthorizedError("User account is deactivated")

    request.state.user_id = user["id"]
    return AuthContext(user=user, token=token)


def require_tiers(*tiers: str):
    """Gate a route on the caller's tier."""
    allowed = {getattr(t, "value", t) for t in tiers}

    def dependency(auth: AuthContext = Depends(get_auth_context)) -> AuthContext:
        tier = auth.user.get("tier")
        if tier not in allowed:
            raise PermissionError(f"User tier {tier} is not authorized to access this route")
        return auth

    return dependency


def require_verified_email(auth: AuthContext = Depends(get_auth_context)) -> AuthContext:
    if not (auth.user.get("settings") or {}).get("emailVerified"):
        raise PermissionError("Please verify your email address to access this route")
    return auth
