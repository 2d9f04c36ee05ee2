"""
EPK analytics.

Hot-path tracking only touches the cache (counters plus a buffered event
hash); ``process_events`` later folds buffered events into the persisted
per-EPK summary row.
"""
import logging
from collections import defaultdict
from copy import deepcopy
from datetime import date, datetime
from typing import Any, Callable, Dict, Optional, Union

from sqlalchemy import delete, insert, select, update

from presskit.core.cache import Cache
from presskit.core.database import Database, epk_analytics, epks
from presskit.features.crud import iso, new_id, utc_now

logger = logging.getLogger("presskit")

EVENTS_KEY = "analytics_events"
UNIQUE_VISITOR_TTL = 24 * 3600

INTERACTION_TYPES = ("click", "scroll", "play", "pause", "download", "contact_form")

# Interaction types that roll up into the persisted engagement block.
ENGAGEMENT_FIELDS = {
    "play": "musicPlays",
    "download": "downloadCount",
    "contact_form": "contactFormSubmissions",
}


def empty_page_views() -> Dict[str, Any]:
    return {"total": 0, "unique": 0, "daily": []}


def empty_engagement() -> Dict[str, Any]:
    return {
        "averageTimeOnPage": 0,
        "bounceRate": 0,
        "musicPlays": 0,
        "downloadCount": 0,
        "contactFormSubmissions": 0,
    }


def update_daily_views(page_views: Dict[str, Any], day: Union[date, str], views: int = 1, unique: int = 0) -> Dict[str, Any]:
    """Return ``page_views`` with ``day``'s bucket incremented (or appended) and totals bumped."""
    key = day.isoformat() if isinstance(day, date) else day
    result = deepcopy(page_views) if page_views else empty_page_views()
    daily = result.setdefault("daily", [])
    for bucket in daily:
        if bucket["date"] == key:
            bucket["views"] += views
            bucket["unique"] += unique
            break
    else:
        daily.append({"date": key, "views": views, "unique": unique})
    result["total"] = result.get("total", 0) + views
    result["unique"] = result.get("unique", 0) + unique
    return result


def analytics_row(epk_id: str) -> Dict[str, Any]:
    now = utc_now()
    return {
        "id": new_id(),
        "epk_id": epk_id,
        "page_views": empty_page_views(),
        "engagement": empty_engagement(),
        "demographics": {"countries": [], "cities": [], "devices": [], "browsers": []},
        "traffic": {"sources": [], "referrers": []},
        "content_performance": {"topPhotos": [], "topTracks": []},
        "period_summary": {},
        "last_updated": now,
        "created_at": now,
        "updated_at": now,
    }


class AnalyticsService:
    def __init__(self, db: Database, cache: Cache, enabled: bool = True, clock: Callable[[], datetime] = utc_now):
        self.db = db
        self.cache = cache
        self.enabled = enabled
        self.clock = clock

    def initialize(self, session, epk_id: str) -> None:
        """Create the summary row inside the caller's EPK-creation transaction."""
        session.execute(insert(epk_analytics).values(**analytics_row(epk_id)))

    def _buffer(self, epk_id: str, event: Dict[str, Any]) -> None:
        event = {"epkId": epk_id, "timestamp": iso(self.clock()), **event}
        self.cache.hset(EVENTS_KEY, f"{epk_id}:{new_id()}", event)

    def track_page_view(self, epk_id: str, ip: Optional[str], user_agent: Optional[str] = None, referrer: Optional[str] = None) -> None:
        if not self.enabled:
            return
        self.cache.incr(f"page_views_{epk_id}")
        marker = f"unique_visitors_{epk_id}_{ip or 'unknown'}"
        unique = not self.cache.exists(marker)
        if unique:
            self.cache.set(marker, True, ttl=UNIQUE_VISITOR_TTL)
            self.cache.incr(f"unique_visitors_{epk_id}")
        self._buffer(
            epk_id,
            {"type": "page_view", "unique": unique, "ip": ip, "userAgent": user_agent, "referrer": referrer},
        )

    def track_interaction(self, epk_id: str, kind: str, details: Optional[Dict[str, Any]] = None) -> None:
        if not self.enabled:
            return
        if kind not in INTERACTION_TYPES:
            raise ValueError(f"Unknown interaction type: {kind}")
        self.cache.incr(f"interaction_{kind}_{epk_id}")
        self._buffer(epk_id, {"type": kind, "details": details or {}})

    def _summary(self, epk_id: str) -> Optional[Dict[str, Any]]:
        with self.db.session() as session:
            row = session.execute(select(epk_analytics).where(epk_analytics.c.epk_id == epk_id)).mappings().first()
        if row is None:
            return None
        return {
            "pageViews": row["page_views"],
            "engagement": row["engagement"],
            "lastUpdated": iso(row["last_updated"]),
        }

    def get_epk_analytics(self, epk_id: str) -> Dict[str, Any]:
        page_views = self.cache.get_int(f"page_views_{epk_id}")
        interactions = {kind: self.cache.get_int(f"interaction_{kind}_{epk_id}") for kind in INTERACTION_TYPES}
        engaged = sum(interactions.values())
        return {
            "pageViews": page_views,
            "uniqueVisitors": self.cache.get_int(f"unique_visitors_{epk_id}"),
            "interactions": interactions,
            "engagementRate": round(engaged / page_views, 4) if page_views else 0,
            "summary": self._summary(epk_id),
        }

    def process_events(self) -> int:
        """Fold buffered events into the persisted summaries; returns how many were consumed."""
        events = self.cache.hgetall(EVENTS_KEY)
        if not events:
            return 0

        by_epk: Dict[str, list] = defaultdict(list)
        for field, event in events.items():
            by_epk[event.get("epkId") or field.split(":", 1)[0]].append(event)

        with self.db.session() as session:
            known = set(
                session.execute(select(epks.c.id).where(epks.c.id.in_(list(by_epk)))).scalars().all()
            )
            for epk_id, batch in by_epk.items():
                if epk_id not in known:
                    logger.info("analytics.orphan_events", extra={"epk_id": epk_id, "count": len(batch)})
                    continue
                self._apply(session, epk_id, batch)

        self.cache.hdel(EVENTS_KEY, events.keys())
        self.cache.delete(*[f"epk_{epk_id}" for epk_id in by_epk if epk_id in known])
        logger.info("analytics.processed", extra={"count": len(events), "epks": len(by_epk)})
        return len(events)

    def _apply(self, session, epk_id: str, batch: list) -> None:
        row = session.execute(select(epk_analytics).where(epk_analytics.c.epk_id == epk_id)).mappings().first()
        if row is None:
            self.initialize(session, epk_id)
            row = session.execute(select(epk_analytics).where(epk_analytics.c.epk_id == epk_id)).mappings().first()

        page_views = row["page_views"]
        engagement = dict(empty_engagement(), **(row["engagement"] or {}))
        for event in batch:
            kind = event.get("type")
            if kind == "page_view":
                day = (event.get("timestamp") or iso(self.clock()))[:10]
                page_views = update_daily_views(page_views, day, 1, 1 if event.get("unique") else 0)
            elif kind in ENGAGEMENT_FIELDS:
                engagement[ENGAGEMENT_FIELDS[kind]] += 1

        now = self.clock()
        session.execute(
            update(epk_analytics)
            .where(epk_analytics.c.epk_id == epk_id)
            .values(page_views=page_views, engagement=engagement, last_updated=now, updated_at=now)
        )
        # Keep the denormalized counters on the EPK document in step.
        session.execute(
            update(epks)
            .where(epks.c.id == epk_id)
            .values(analytics={"views": page_views["total"], "uniqueVisitors": page_views["unique"], "lastViewed": iso(now)})
        )

    def clear_analytics(self, epk_id: str) -> None:
        """Purge cached counters, buffered events and the persisted summary for one EPK."""
        self.cache.delete(f"page_views_{epk_id}", f"unique_visitors_{epk_id}")
        self.cache.delete(*[f"interaction_{kind}_{epk_id}" for kind in INTERACTION_TYPES])
        self.cache.clear(f"unique_visitors_{epk_id}_*")
        pending = [field for field in self.cache.hgetall(EVENTS_KEY) if field.startswith(f"{epk_id}:")]
        self.cache.hdel(EVENTS_KEY, pending)
        with self.db.session() as session:
            session.execute(delete(epk_analytics).where(epk_analytics.c.epk_id == epk_id))
