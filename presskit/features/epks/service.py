"""
EPK service: quota and ownership rules plus the cache-aside public read path.

Ownership is an explicit comparison of the EPK's user_id against the
authenticated user's id in every mutating action.
"""
import logging
import re
from typing import Any, Dict, Mapping, Optional, Sequence

from sqlalchemy import delete, func, insert, select, update

from presskit.core.cache import Cache
from presskit.core.database import Database, contact_inquiries, epk_analytics, epks, users
from presskit.core.errors import BadRequestError, NotFoundError, PermissionError, duplicate_value_message
from presskit.core.responses import Page
from presskit.core.security import sanitize
from presskit.features.analytics.service import AnalyticsService
from presskit.features.crud import CrudService, new_id, row_to_document, utc_now
from presskit.features.media.service import IncomingFile, MediaStore
from presskit.models.epk import EPKCreate, EPKStatus, EPKUpdate, MediaKind
from presskit.models.user import TIER_LIMITS, Tier

logger = logging.getLogger("presskit")

EPK_CACHE_TTL = 3600

_NON_ALNUM = re.compile(r"[^a-z0-9]+")

BLOCK_FIELDS = ("bio", "press_kit", "contact", "customization", "seo")


def slugify(title: str) -> str:
    """Lowercase, collapse every run of non-alphanumerics to one hyphen, trim hyphens."""
    return _NON_ALNUM.sub("-", title.lower()).strip("-")


def epk_cache_key(epk_id: str) -> str:
    return f"epk_{epk_id}"


def slug_cache_key(slug: str) -> str:
    return f"epk_slug_{slug}"


def serialize_epk(row: Mapping[str, Any]) -> Dict[str, Any]:
    return row_to_document(row)


def serialize_public_epk(row: Mapping[str, Any]) -> Dict[str, Any]:
    doc = row_to_document(row, exclude=("username", "profile"))
    doc["user"] = {"id": row["user_id"], "username": row["username"], "profile": row["profile"]}
    return doc


def media_field(kind: MediaKind) -> str:
    return "photos" if kind == MediaKind.IMAGE else "music"


class EPKService(CrudService):
    def __init__(self, db: Database, cache: Cache, analytics: AnalyticsService, media: MediaStore):
        super().__init__(db, epks, serialize_epk)
        self.cache = cache
        self.analytics = analytics
        self.media = media

    # -- helpers -----------------------------------------------------------

    def _owned(self, session, user: Mapping[str, Any], epk_id: str, action: str) -> Mapping[str, Any]:
        row = self._load(session, epk_id)
        if str(row["user_id"]) != str(user["id"]):
            raise PermissionError(f"Not authorized to {action} this EPK")
        return row

    def _slug_for(self, session, title: str, exclude_id: Optional[str] = None) -> str:
        slug = slugify(title)
        if not slug:
            raise BadRequestError("Title must contain at least one letter or number")
        query = select(epks.c.id).where(epks.c.slug == slug)
        if exclude_id:
            query = query.where(epks.c.id != exclude_id)
        if session.execute(query.limit(1)).first() is not None:
            raise BadRequestError(duplicate_value_message("slug"))
        return slug

    def invalidate(self, epk_id: str, *slugs: str) -> None:
        self.cache.delete(epk_cache_key(epk_id), *[slug_cache_key(s) for s in slugs if s])

    def _public_row(self, session, **criteria) -> Optional[Mapping[str, Any]]:
        query = (
            select(epks, users.c.username, users.c.profile)
            .join(users, users.c.id == epks.c.user_id)
            .where(epks.c.status == EPKStatus.PUBLISHED.value)
        )
        for key, value in criteria.items():
            query = query.where(epks.c[key] == value)
        return session.execute(query).mappings().first()

    # -- operations --------------------------------------------------------

    def create_for(self, user: Mapping[str, Any], payload: EPKCreate) -> dict:
        tier = user.get("tier") or Tier.FREE.value
        limit = TIER_LIMITS[Tier(tier)]
        with self.db.session() as session:
            owned = session.execute(select(func.count()).select_from(epks).where(epks.c.user_id == user["id"])).scalar_one()
            if limit is not None and owned >= limit:
                raise PermissionError(
                    f"You have reached the maximum number of EPKs allowed for your {tier} tier",
                    code="quota_exceeded",
                )

            title = sanitize(payload.title)
            now = utc_now()
            values = {
                "id": new_id(),
                "user_id": user["id"],
                "title": title,
                "slug": self._slug_for(session, title),
                "status": payload.status.value,
                "description": sanitize(payload.description),
                "photos": [],
                "music": [],
                "analytics": {"views": 0, "uniqueVisitors": 0, "lastViewed": None},
                "created_at": now,
                "updated_at": now,
            }
            for name in BLOCK_FIELDS:
                values[name] = sanitize(getattr(payload, name).to_document())

            session.execute(insert(epks).values(**values))
            self.analytics.initialize(session, values["id"])
            created = self.serializer(self._load(session, values["id"]))

        logger.info("epk.created", extra={"epk_id": created["id"], "user_id": user["id"], "tier": tier})
        return created

    def list_for(self, user: Mapping[str, Any], page: int, limit: int, sort: Optional[str], filters: Mapping[str, Any]) -> Page:
        return self.list(page=page, limit=limit, sort=sort, filters=filters, where=[epks.c.user_id == user["id"]])

    def get_for(self, user: Mapping[str, Any], epk_id: str) -> dict:
        row = self.get_one(epk_id)
        if row["status"] != EPKStatus.PUBLISHED.value and row["userId"] != user["id"]:
            raise PermissionError("Not authorized to view this EPK")
        return row

    def get_by_slug(self, slug: str, ip: Optional[str] = None, user_agent: Optional[str] = None, referrer: Optional[str] = None) -> dict:
        """Public read: cached slug -> id mapping, page-view tracking, then cache-aside document."""
        loaded: Optional[dict] = None
        epk_id = self.cache.get(slug_cache_key(slug))
        if epk_id is None:
            with self.db.session() as session:
                row = self._public_row(session, slug=slug)
            if row is None:
                raise NotFoundError("EPK not found")
            loaded = serialize_public_epk(row)
            epk_id = loaded["id"]
            self.cache.set(slug_cache_key(slug), epk_id, ttl=EPK_CACHE_TTL)

        self.analytics.track_page_view(epk_id, ip, user_agent, referrer)

        cached = self.cache.get(epk_cache_key(epk_id))
        if cached is not None:
            return cached

        if loaded is None:
            with self.db.session() as session:
                row = self._public_row(session, id=epk_id)
            if row is None:
                self.cache.delete(slug_cache_key(slug))
                raise NotFoundError("EPK not found")
            loaded = serialize_public_epk(row)

        self.cache.set(epk_cache_key(epk_id), loaded, ttl=EPK_CACHE_TTL)
        return loaded

    def update_for(self, user: Mapping[str, Any], epk_id: str, payload: EPKUpdate) -> dict:
        fields = payload.model_fields_set
        with self.db.session() as session:
            row = self._owned(session, user, epk_id, "update")
            values: Dict[str, Any] = {"updated_at": utc_now()}
            if "title" in fields and payload.title is not None:
                title = sanitize(payload.title)
                values["title"] = title
                if title != row["title"]:
                    values["slug"] = self._slug_for(session, title, exclude_id=epk_id)
            if "description" in fields:
                values["description"] = sanitize(payload.description)
            if "status" in fields and payload.status is not None:
                values["status"] = payload.status.value
            for name in BLOCK_FIELDS:
                block = getattr(payload, name)
                if name in fields and block is not None:
                    values[name] = sanitize(block.to_document())

            session.execute(update(epks).where(epks.c.id == epk_id).values(**values))
            updated = self.serializer(self._load(session, epk_id))

        self.invalidate(epk_id, row["slug"], updated["slug"])
        logger.info("epk.updated", extra={"epk_id": epk_id, "user_id": user["id"], "fields": sorted(fields)})
        return updated

    def delete_for(self, user: Mapping[str, Any], epk_id: str) -> None:
        """Each step is idempotent, so a failed deletion can simply be retried."""
        with self.db.session() as session:
            row = self._owned(session, user, epk_id, "delete")

        media_ids = [item["publicId"] for item in (row["photos"] or []) + (row["music"] or []) if item.get("publicId")]
        self.media.purge(media_ids)

        with self.db.session() as session:
            session.execute(delete(contact_inquiries).where(contact_inquiries.c.epk_id == epk_id))
            session.execute(delete(epk_analytics).where(epk_analytics.c.epk_id == epk_id))
            session.execute(delete(epks).where(epks.c.id == epk_id))

        self.invalidate(epk_id, row["slug"])
        self.analytics.clear_analytics(epk_id)
        logger.info("epk.deleted", extra={"epk_id": epk_id, "user_id": user["id"], "media": len(media_ids)})

    def add_media(self, user: Mapping[str, Any], epk_id: str, kind: MediaKind, files: Sequence[IncomingFile]) -> dict:
        with self.db.session() as session:
            self._owned(session, user, epk_id, "modify")

        items = self.media.upload_all(epk_id, files, kind.value)
        field = media_field(kind)

        with self.db.session() as session:
            row = self._load(session, epk_id)
            session.execute(
                update(epks)
                .where(epks.c.id == epk_id)
                .values(**{field: list(row[field] or []) + items, "updated_at": utc_now()})
            )
            updated = self.serializer(self._load(session, epk_id))

        self.invalidate(epk_id, updated["slug"])
        return updated

    def remove_media(self, user: Mapping[str, Any], epk_id: str, public_id: str, kind: MediaKind) -> dict:
        field = media_field(kind)
        with self.db.session() as session:
            row = self._owned(session, user, epk_id, "modify")
        if not any(item.get("publicId") == public_id for item in row[field] or []):
            raise NotFoundError("Media not found")

        self.media.delete(public_id)

        with self.db.session() as session:
            current = self._load(session, epk_id)
            remaining = [item for item in current[field] or [] if item.get("publicId") != public_id]
            session.execute(update(epks).where(epks.c.id == epk_id).values(**{field: remaining, "updated_at": utc_now()}))
            updated = self.serializer(self._load(session, epk_id))

        self.invalidate(epk_id, updated["slug"])
        return updated

    def analytics_for(self, user: Mapping[str, Any], epk_id: str) -> dict:
        with self.db.session() as session:
            self._owned(session, user, epk_id, "view analytics for")
        return self.analytics.get_epk_analytics(epk_id)

    def track_interaction(self, epk_id: str, kind: str) -> None:
        with self.db.session() as session:
            self._load(session, epk_id)
        self.analytics.track_interaction(epk_id, kind)
