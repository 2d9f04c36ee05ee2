"""
Accounts: registration, login/logout, profile and password flows.

Passwords are bcrypt-hashed before they reach the store and never leave
this module; every returned user document omits the hash.
"""
import logging
from typing import Any, Dict, Mapping, Optional, Tuple

import jwt
from sqlalchemy import insert, or_, select, update

from presskit.core.cache import Cache
from presskit.core.database import Database, users
from presskit.core.errors import BadRequestError, ExternalServiceError, NotFoundError, UnauthorizedError
from presskit.core.security import hash_password, sanitize, verify_password
from presskit.core.tokens import TokenService
from presskit.features.billing.service import BillingService, free_subscription
from presskit.features.crud import is_valid_id, new_id, row_to_document, utc_now
from presskit.features.notifications.service import NotificationService
from presskit.models.user import RegisterRequest, Tier, UpdateMeRequest

logger = logging.getLogger("presskit")

VERIFY_TOKEN_TTL = "24h"
RESET_TOKEN_TTL = "1h"

PURPOSE_VERIFY = "verify_email"
PURPOSE_RESET = "reset_password"


def serialize_user(row: Mapping[str, Any]) -> Dict[str, Any]:
    return row_to_document(row, exclude=("password_hash", "stripe_customer_id"))


def blacklist_key(token: str) -> str:
    return f"blacklist_{token}"


class UserService:
    def __init__(
        self,
        db: Database,
        cache: Cache,
        tokens: TokenService,
        notifications: NotificationService,
        billing: BillingService,
        bcrypt_rounds: int = 12,
    ):
        self.db = db
        self.cache = cache
        self.tokens = tokens
        self.notifications = notifications
        self.billing = billing
        self.bcrypt_rounds = bcrypt_rounds

    def _row(self, session, user_id: str) -> Optional[Mapping[str, Any]]:
        if not is_valid_id(user_id):
            return None
        return session.execute(select(users).where(users.c.id == user_id)).mappings().first()

    def _subject(self, claims: Mapping[str, Any], purpose: Optional[str] = None) -> str:
        if claims.get("purpose") != purpose or not claims.get("id"):
            raise jwt.InvalidTokenError("token purpose mismatch")
        return claims["id"]

    def get(self, user_id: str) -> Optional[Dict[str, Any]]:
        with self.db.session() as session:
            row = self._row(session, user_id)
        return serialize_user(row) if row is not None else None

    # -- registration & sessions -------------------------------------------

    def register(self, payload: RegisterRequest) -> Tuple[Dict[str, Any], Dict[str, str]]:
        with self.db.session() as session:
            clash = session.execute(
                select(users.c.email, users.c.username).where(
                    or_(users.c.email == payload.email, users.c.username == payload.username)
                )
            ).first()
        if clash is not None:
            field = "email" if clash.email == payload.email else "username"
            raise BadRequestError(f"User already exists with this {field}")

        name = " ".join(p for p in (payload.first_name, payload.last_name) if p) or payload.username
        customer_id = self.billing.create_customer(payload.email, name)

        now = utc_now()
        values = {
            "id": new_id(),
            "email": payload.email,
            "username": payload.username,
            "password_hash": hash_password(payload.password, self.bcrypt_rounds),
            "tier": Tier.FREE.value,
            "profile": sanitize({"firstName": payload.first_name, "lastName": payload.last_name, "avatar": None, "bio": None}),
            "subscription": free_subscription(customer_id),
            "settings": {"notifications": True, "privacy": "public", "emailVerified": False},
            "stripe_customer_id": customer_id,
            "is_active": True,
            "last_login": now,
            "created_at": now,
            "updated_at": now,
        }
        with self.db.session() as session:
            session.execute(insert(users).values(**values))
            user = serialize_user(self._row(session, values["id"]))

        verify_token = self.tokens.generate_temp_token(user["id"], VERIFY_TOKEN_TTL, purpose=PURPOSE_VERIFY)
        try:
            self.notifications.send_welcome(user, verify_token)
        except ExternalServiceError:
            logger.warning("auth.welcome_email_failed", extra={"user_id": user["id"]})

        logger.info("auth.registered", extra={"user_id": user["id"], "billing": customer_id is not None})
        return user, self.tokens.generate_auth_tokens(user["id"])

    def login(self, email: str, password: str) -> Tuple[Dict[str, Any], Dict[str, str]]:
        with self.db.session() as session:
            row = session.execute(select(users).where(users.c.email == email.lower())).mappings().first()
            if row is None or not verify_password(password, row["password_hash"]):
                raise UnauthorizedError("Invalid credentials")
            if not row["is_active"]:
                raise UnauthorizedError("Your account has been deactivated")
            now = utc_now()
            session.execute(update(users).where(users.c.id == row["id"]).values(last_login=now))
            user = serialize_user(self._row(session, row["id"]))

        logger.info("auth.login", extra={"user_id": user["id"]})
        return user, self.tokens.generate_auth_tokens(user["id"])

    def logout(self, token: str) -> None:
        """Blacklist ``token`` until it would have expired anyway."""
        ttl = self.tokens.remaining_lifetime(token)
        if ttl > 0:
            self.cache.set(blacklist_key(token), True, ttl=ttl)

    def is_blacklisted(self, token: str) -> bool:
        return self.cache.exists(blacklist_key(token))

    def refresh(self, refresh_token: str) -> Dict[str, str]:
        claims = self.tokens.verify_refresh_token(refresh_token)
        user = self.get(self._subject(claims))
        if user is None:
            raise UnauthorizedError("User not found")
        if not user["isActive"]:
            raise UnauthorizedError("User account is deactivated")
        return self.tokens.generate_auth_tokens(user["id"])

    # -- profile -----------------------------------------------------------

    def update_me(self, user: Mapping[str, Any], payload: UpdateMeRequest) -> Dict[str, Any]:
        values: Dict[str, Any] = {"updated_at": utc_now()}
        with self.db.session() as session:
            if payload.username and payload.username != user["username"]:
                taken = session.execute(
                    select(users.c.id).where(users.c.username == payload.username, users.c.id != user["id"])
                ).first()
                if taken is not None:
                    raise BadRequestError("Username is already taken")
                values["username"] = payload.username
            if payload.profile is not None:
                changes = sanitize(payload.profile.to_document(exclude_unset=True))
                values["profile"] = {**(user.get("profile") or {}), **changes}
            if payload.settings is not None:
                changes = payload.settings.to_document(exclude_unset=True)
                values["settings"] = {**(user.get("settings") or {}), **changes}
            session.execute(update(users).where(users.c.id == user["id"]).values(**values))
            return serialize_user(self._row(session, user["id"]))

    def update_password(self, user: Mapping[str, Any], current_password: str, new_password: str) -> Dict[str, str]:
        with self.db.session() as session:
            row = self._row(session, user["id"])
            if row is None or not verify_password(current_password, row["password_hash"]):
                raise UnauthorizedError("Current password is incorrect")
            session.execute(
                update(users)
                .where(users.c.id == user["id"])
                .values(password_hash=hash_password(new_password, self.bcrypt_rounds), updated_at=utc_now())
            )
        logger.info("auth.password_changed", extra={"user_id": user["id"]})
        return self.tokens.generate_auth_tokens(user["id"])

    # -- email-token flows ---------------------------------------------------

    def forgot_password(self, email: str) -> None:
        with self.db.session() as session:
            row = session.execute(select(users).where(users.c.email == email.lower())).mappings().first()
        if row is None:
            raise NotFoundError("No user found with that email")
        token = self.tokens.generate_temp_token(row["id"], RESET_TOKEN_TTL, purpose=PURPOSE_RESET)
        self.notifications.send_password_reset(serialize_user(row), token)
        logger.info("auth.reset_requested", extra={"user_id": row["id"]})

    def reset_password(self, token: str, password: str) -> Dict[str, str]:
        if self.is_blacklisted(token):
            raise UnauthorizedError("Reset link has already been used")
        user_id = self._subject(self.tokens.verify_token(token), PURPOSE_RESET)
        with self.db.session() as session:
            if self._row(session, user_id) is None:
                raise BadRequestError("Invalid or expired reset token")
            session.execute(
                update(users)
                .where(users.c.id == user_id)
                .values(password_hash=hash_password(password, self.bcrypt_rounds), updated_at=utc_now())
            )
        self.logout(token)
        logger.info("auth.password_reset", extra={"user_id": user_id})
        return self.tokens.generate_auth_tokens(user_id)

    def verify_email(self, token: str) -> Dict[str, Any]:
        user_id = self._subject(self.tokens.verify_token(token), PURPOSE_VERIFY)
        with self.db.session() as session:
            row = self._row(session, user_id)
            if row is None:
                raise BadRequestError("Invalid or expired verification token")
            user_settings = dict(row["settings"] or {}, emailVerified=True)
            session.execute(update(users).where(users.c.id == user_id).values(settings=user_settings, updated_at=utc_now()))
            return serialize_user(self._row(session, user_id))

    def resend_verification(self, user: Mapping[str, Any]) -> None:
        if (user.get("settings") or {}).get("emailVerified"):
            raise BadRequestError("Email is already verified")
        token = self.tokens.generate_temp_token(user["id"], VERIFY_TOKEN_TTL, purpose=PURPOSE_VERIFY)
        self.notifications.send_welcome(user, token)

    # -- administration ----------------------------------------------------

    def set_tier(self, user_id: str, tier: Tier) -> None:
        with self.db.session() as session:
            session.execute(update(users).where(users.c.id == user_id).values(tier=tier.value, updated_at=utc_now()))

    def set_active(self, user_id: str, active: bool) -> None:
        with self.db.session() as session:
            session.execute(update(users).where(users.c.id == user_id).values(is_active=active, updated_at=utc_now()))
