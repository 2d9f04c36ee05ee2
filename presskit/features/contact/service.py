"""
Contact inquiries: public submission and the owner-side inbox.

Lifecycle: new -> read -> replied -> archived (archived reachable from any
state). readAt / respondedAt are stamped once, on the first transition.
"""
import logging
from datetime import datetime
from typing import Any, Dict, Mapping, Optional

from sqlalchemy import func, insert, select, update

from presskit.core.database import Database, contact_inquiries, epks, users
from presskit.core.errors import ExternalServiceError, NotFoundError, PermissionError
from presskit.core.responses import Page
from presskit.core.security import sanitize
from presskit.features.analytics.service import AnalyticsService
from presskit.features.crud import CrudService, check_pagination, is_valid_id, iso, new_id, row_to_document, utc_now
from presskit.features.notifications.service import NotificationService
from presskit.models.contact import ContactSubmission, InquiryStatus, InquiryType

logger = logging.getLogger("presskit")


def serialize_inquiry(row: Mapping[str, Any]) -> Dict[str, Any]:
    doc = row_to_document(row, exclude=("request_metadata", "epk_title", "epk_slug"))
    doc["metadata"] = row["request_metadata"]
    if "epk_title" in row:
        doc["epk"] = {"id": row["epk_id"], "title": row["epk_title"], "slug": row["epk_slug"]}
    return doc


def status_changes(current: Mapping[str, Any], status: InquiryStatus, now: datetime) -> Dict[str, Any]:
    """Column values for moving ``current`` to ``status``; timestamps are only set once."""
    changes: Dict[str, Any] = {"status": status.value, "updated_at": now}
    if status == InquiryStatus.READ and current.get("read_at") is None:
        changes["read_at"] = now
    if status == InquiryStatus.REPLIED and current.get("responded_at") is None:
        changes["responded_at"] = now
    return changes


def empty_stats() -> Dict[str, int]:
    stats = {"total": 0}
    stats.update({s.value: 0 for s in InquiryStatus})
    stats.update({t.value: 0 for t in InquiryType})
    return stats


class ContactService(CrudService):
    def __init__(self, db: Database, analytics: AnalyticsService, notifications: NotificationService):
        super().__init__(db, contact_inquiries, serialize_inquiry)
        self.analytics = analytics
        self.notifications = notifications

    def _owned(self, session, user: Mapping[str, Any], inquiry_id: str):
        inquiry = self._load(session, inquiry_id)
        epk = session.execute(select(epks).where(epks.c.id == inquiry["epk_id"])).mappings().first()
        if epk is None or str(epk["user_id"]) != str(user["id"]):
            raise PermissionError("Not authorized to manage this inquiry")
        return inquiry, epk

    def submit(self, epk_id: str, payload: ContactSubmission, metadata: Optional[Dict[str, Any]] = None) -> dict:
        if not is_valid_id(epk_id):
            raise NotFoundError("EPK not found")
        with self.db.session() as session:
            epk = session.execute(
                select(epks.c.id, epks.c.title, epks.c.contact, users.c.email.label("owner_email"))
                .join(users, users.c.id == epks.c.user_id)
                .where(epks.c.id == epk_id)
            ).mappings().first()
            if epk is None:
                raise NotFoundError("EPK not found")

            clean = sanitize(payload.model_dump(exclude_none=True))
            now = utc_now()
            values = {
                "id": new_id(),
                "epk_id": epk_id,
                "type": payload.type.value,
                "status": InquiryStatus.NEW.value,
                "priority": "medium",
                "sender": {k: clean[k] for k in ("name", "email", "phone", "company", "role") if k in clean},
                "subject": clean["subject"],
                "message": clean["message"],
                "request_metadata": metadata or {},
                "attachments": [],
                "notes": [],
                "response_history": [],
                "created_at": now,
                "updated_at": now,
            }
            session.execute(insert(contact_inquiries).values(**values))
            inquiry = self.serializer(self._load(session, values["id"]))

        self.analytics.track_interaction(epk_id, "contact_form", {"inquiryId": inquiry["id"]})

        recipient = (epk["contact"] or {}).get("email") or epk["owner_email"]
        try:
            self.notifications.send_contact_notification(recipient, epk, inquiry)
        except ExternalServiceError:
            # The inquiry is stored and visible in the inbox even if the relay is down.
            logger.warning("contact.notification_failed", extra={"epk_id": epk_id, "inquiry_id": inquiry["id"]})

        logger.info("contact.submitted", extra={"epk_id": epk_id, "inquiry_id": inquiry["id"], "inquiry_type": inquiry["type"]})
        return inquiry

    def list_received(
        self,
        user: Mapping[str, Any],
        page: int = 1,
        limit: int = 10,
        status: Optional[InquiryStatus] = None,
        inquiry_type: Optional[InquiryType] = None,
    ) -> Page:
        check_pagination(page, limit)
        clauses = [epks.c.user_id == user["id"]]
        if status is not None:
            clauses.append(contact_inquiries.c.status == status.value)
        if inquiry_type is not None:
            clauses.append(contact_inquiries.c.type == inquiry_type.value)

        joined = contact_inquiries.join(epks, epks.c.id == contact_inquiries.c.epk_id)
        with self.db.session() as session:
            total = session.execute(select(func.count()).select_from(joined).where(*clauses)).scalar_one()
            rows = session.execute(
                select(contact_inquiries, epks.c.title.label("epk_title"), epks.c.slug.label("epk_slug"))
                .select_from(joined)
                .where(*clauses)
                .order_by(contact_inquiries.c.created_at.desc())
                .offset((page - 1) * limit)
                .limit(limit)
            ).mappings().all()
        return Page(items=[self.serializer(r) for r in rows], page=page, limit=limit, total=total)

    def update_status(self, user: Mapping[str, Any], inquiry_id: str, status: InquiryStatus, note: Optional[str] = None) -> dict:
        now = utc_now()
        with self.db.session() as session:
            inquiry, _ = self._owned(session, user, inquiry_id)
            values = status_changes(inquiry, status, now)
            if note:
                values["notes"] = list(inquiry["notes"] or []) + [
                    {"content": sanitize(note), "createdBy": user["id"], "createdAt": iso(now)}
                ]
            session.execute(update(contact_inquiries).where(contact_inquiries.c.id == inquiry_id).values(**values))
            updated = self.serializer(self._load(session, inquiry_id))
        logger.info("contact.status_changed", extra={"inquiry_id": inquiry_id, "status": status.value})
        return updated

    def respond(self, user: Mapping[str, Any], inquiry_id: str, message: str) -> dict:
        now = utc_now()
        message = sanitize(message)
        with self.db.session() as session:
            inquiry, epk = self._owned(session, user, inquiry_id)

        # Send first: a relay failure leaves the inquiry untouched and the call retryable.
        self.notifications.send_inquiry_response(self.serializer(inquiry), epk, message)

        with self.db.session() as session:
            current = self._load(session, inquiry_id)
            values = status_changes(current, InquiryStatus.REPLIED, now)
            values["response_history"] = list(current["response_history"] or []) + [
                {"message": message, "sentBy": user["id"], "sentAt": iso(now)}
            ]
            session.execute(update(contact_inquiries).where(contact_inquiries.c.id == inquiry_id).values(**values))
            updated = self.serializer(self._load(session, inquiry_id))
        logger.info("contact.responded", extra={"inquiry_id": inquiry_id})
        return updated

    def stats(self, user: Mapping[str, Any]) -> Dict[str, int]:
        """Status and type counts across every inquiry on the user's EPKs, in one grouped query."""
        with self.db.session() as session:
            rows = session.execute(
                select(contact_inquiries.c.status, contact_inquiries.c.type, func.count())
                .select_from(contact_inquiries.join(epks, epks.c.id == contact_inquiries.c.epk_id))
                .where(epks.c.user_id == user["id"])
                .group_by(contact_inquiries.c.status, contact_inquiries.c.type)
            ).all()
        stats = empty_stats()
        for status, kind, count in rows:
            stats["total"] += count
            if status in stats:
                stats[status] += count
            if kind in stats:
                stats[kind] += count
        return stats
