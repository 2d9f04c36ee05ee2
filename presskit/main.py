"""
Application factory.

``create_app`` is the composition root: it builds the store, cache, mailer,
asset host and payment provider (or accepts injected ones), wires the
middleware stack and mounts the routers under /api/v1.
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.engine import Engine

from presskit.api import auth, billing, contact, epks, health
from presskit.core.cache import Cache
from presskit.core.config import Settings, get_settings
from presskit.core.database import Database, build_engine
from presskit.core.errors import register_error_handlers
from presskit.core.middleware.request_id import RequestIdMiddleware
from presskit.core.middleware.security_headers import SecurityHeadersMiddleware
from presskit.core.middleware.size_limit import RequestSizeLimitMiddleware
from presskit.core.rate_limit import RateLimitMiddleware, build_rate_limit_policies
from presskit.dependencies import Services
from presskit.features.billing.provider import BillingProvider
from presskit.features.billing.stripe_provider import StripeProvider
from presskit.features.media.provider import AssetHost
from presskit.features.media.s3_provider import S3AssetHost
from presskit.features.notifications.mailer import Mailer, SmtpMailer

API_PREFIX = "/api/v1"

logger = logging.getLogger("presskit")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting PressKit Pro API...", extra={"env": app.state.settings.ENV})
    app.state.services.db.create_all()
    try:
        yield
    finally:
        logger.info("Stopping PressKit Pro API...")


def create_app(
    settings: Optional[Settings] = None,
    *,
    engine: Optional[Engine] = None,
    cache: Optional[Cache] = None,
    mailer: Optional[Mailer] = None,
    assets: Optional[AssetHost] = None,
    payments: Optional[BillingProvider] = None,
) -> FastAPI:
    settings = settings or get_settings()

    if assets is None and settings.ASSET_BUCKET:
        assets = S3AssetHost.from_settings(settings)
    if payments is None and settings.STRIPE_SECRET_KEY:
        payments = StripeProvider(settings.STRIPE_SECRET_KEY, settings.STRIPE_WEBHOOK_SECRET)

    services = Services(
        settings,
        Database(engine if engine is not None else build_engine(settings.DATABASE_URL)),
        cache if cache is not None else Cache.from_url(settings.REDIS_URL, settings.CACHE_PREFIX),
        mailer if mailer is not None else SmtpMailer(settings),
        assets=assets,
        payments=payments,
    )

    app = FastAPI(title="PressKit Pro API", version="1.0.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.services = services

    register_error_handlers(app)

    # Last added runs first: request id wraps everything, size check runs last.
    app.add_middleware(
        RequestSizeLimitMiddleware,
        max_bytes=settings.MAX_REQUEST_BYTES,
        max_upload_bytes=settings.MAX_UPLOAD_BYTES,
    )
    app.add_middleware(
        RateLimitMiddleware,
        policies=build_rate_limit_policies(settings),
        enabled=settings.RATE_LIMIT_ENABLED,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-Requested-With"],
        max_age=86400,
    )
    app.add_middleware(SecurityHeadersMiddleware, hsts=settings.is_production)
    app.add_middleware(RequestIdMiddleware)

    app.include_router(health.root_router)
    app.include_router(health.router, prefix=API_PREFIX)
    app.include_router(auth.router, prefix=API_PREFIX)
    app.include_router(epks.router, prefix=API_PREFIX)
    app.include_router(contact.router, prefix=API_PREFIX)
    app.include_router(billing.router, prefix=API_PREFIX)

    return app


app = create_app()
