"""
Service container built once per application by ``create_app``.

Route handlers reach collaborators through ``get_services`` instead of
module-level client singletons.
"""
from typing import Optional

from starlette.requests import Request

from presskit.core.cache import Cache
from presskit.core.config import Settings
from presskit.core.database import Database
from presskit.core.tokens import TokenService
from presskit.features.analytics.service import AnalyticsService
from presskit.features.billing.provider import BillingProvider
from presskit.features.billing.service import BillingService
from presskit.features.contact.service import ContactService
from presskit.features.epks.service import EPKService
from presskit.features.media.provider import AssetHost
from presskit.features.media.service import MediaStore
from presskit.features.notifications.mailer import Mailer
from presskit.features.notifications.service import NotificationService
from presskit.features.users.service import UserService


class Services:
    def __init__(
        self,
        settings: Settings,
        db: Database,
        cache: Cache,
        mailer: Mailer,
        assets: Optional[AssetHost] = None,
        payments: Optional[BillingProvider] = None,
    ):
        self.settings = settings
        self.db = db
        self.cache = cache
        self.mailer = mailer
        self.assets = assets
        self.payments = payments

        self.tokens = TokenService(settings)
        self.notifications = NotificationService(mailer, settings.CLIENT_URL)
        self.analytics = AnalyticsService(db, cache, enabled=settings.ENABLE_ANALYTICS)
        self.media = MediaStore(assets, settings.ASSET_FOLDER)
        self.billing = BillingService(db, payments, settings, self.notifications)
        self.users = UserService(db, cache, self.tokens, self.notifications, self.billing, settings.BCRYPT_ROUNDS)
        self.epks = EPKService(db, cache, self.analytics, self.media)
        self.contact = ContactService(db, self.analytics, self.notifications)


def get_services(request: Request) -> Services:
    return request.app.state.services
