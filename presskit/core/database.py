"""
Database configuration and connection management.

This module provides:
- SQLAlchemy Core table definitions for every persisted entity
- Engine construction with connection retries for startup
- A small Database handle passed to services by the composition root
"""
import logging
import time
from contextlib import contextmanager
from typing import Callable, Iterator, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    create_engine,
    inspect,
    text,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool
from sqlalchemy.sql import func

logger = logging.getLogger("presskit")

# SQLAlchemy metadata for table definitions
metadata = MetaData()

# Connection pooling configuration
POOL_SIZE = 10
MAX_OVERFLOW = 20
POOL_TIMEOUT = 30
POOL_RECYCLE = 3600  # Recycle connections after 1 hour

CONNECT_BASE_DELAY = 1.0
CONNECT_MAX_DELAY = 30.0


class DatabaseConnectionError(RuntimeError):
    """Raised when the store cannot be reached after all retries."""


def build_engine(database_url: str) -> Engine:
    """Create an engine with pooling suited to the URL's backend."""
    if database_url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in database_url or database_url == "sqlite://":
            kwargs["poolclass"] = StaticPool
        return create_engine(database_url, **kwargs)

    return create_engine(
        database_url,
        poolclass=QueuePool,
        pool_size=POOL_SIZE,
        max_overflow=MAX_OVERFLOW,
        pool_timeout=POOL_TIMEOUT,
        pool_recycle=POOL_RECYCLE,
        pool_pre_ping=True,
    )


def retry_delay(attempt: int) -> float:
    """Backoff before retry number ``attempt`` (1-based): 1s, 2s, 4s ... capped at 30s."""
    return min(CONNECT_BASE_DELAY * (2 ** (attempt - 1)), CONNECT_MAX_DELAY)


def connect_with_retry(
    database_url: str,
    retries: int = 5,
    sleep: Callable[[float], None] = time.sleep,
) -> Engine:
    """Build an engine and prove it can connect, retrying with exponential backoff."""
    engine = build_engine(database_url)
    for attempt in range(1, retries + 1):
        try:
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            logger.info("db.connected", extra={"attempt": attempt})
            return engine
        except OperationalError as exc:
            logger.warning("db.connect_failed", extra={"attempt": attempt, "error_message": str(exc.orig)})
            if attempt == retries:
                break
            sleep(retry_delay(attempt))
    engine.dispose()
    raise DatabaseConnectionError(f"Could not connect to database after {retries} attempts")


class Database:
    """Engine plus session factory, shared by every service."""

    def __init__(self, engine: Engine):
        self.engine = engine
        self._session_factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    @contextmanager
    def session(self) -> Iterator[Session]:
        """
        Context manager for database sessions.

        Commits on success, rolls back and re-raises on failure.
        """
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def create_all(self) -> None:
        """Create all tables defined in metadata (idempotent)."""
        metadata.create_all(bind=self.engine)

    def check_connection(self) -> bool:
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except OperationalError as exc:
            logger.warning("db.check_failed", extra={"error_message": str(exc.orig)})
            return False

    def has_table(self, name: str) -> bool:
        return inspect(self.engine).has_table(name)


def get_database(url: Optional[str] = None) -> Database:
    from presskit.core.config import settings

    return Database(build_engine(url or settings.DATABASE_URL))


# Users
users = Table(
    "users",
    metadata,
    Column("id", String(32), primary_key=True),
    Column("email", String(255), nullable=False),
    Column("username", String(30), nullable=False),
    Column("password_hash", String(255), nullable=False),
    Column("tier", String(20), nullable=False, server_default="free"),
    Column("profile", JSON, nullable=False),
    Column("subscription", JSON, nullable=False),
    Column("settings", JSON, nullable=False),
    Column("stripe_customer_id", String(255), nullable=True),
    Column("is_active", Boolean, nullable=False, server_default="1"),
    Column("last_login", DateTime(timezone=True), nullable=True),
    Column("created_at", DateTime(timezone=True), server_default=func.now(), nullable=False),
    Column("updated_at", DateTime(timezone=True), server_default=func.now(), nullable=False),
    UniqueConstraint("email", name="uq_users_email"),
    UniqueConstraint("username", name="uq_users_username"),
    Index("idx_users_stripe_customer_id", "stripe_customer_id"),
)

# Electronic press kits
epks = Table(
    "epks",
    metadata,
    Column("id", String(32), primary_key=True),
    Column("user_id", String(32), ForeignKey("users.id"), nullable=False),
    Column("title", String(100), nullable=False),
    Column("slug", String(120), nullable=False),
    Column("status", String(20), nullable=False, server_default="draft"),
    Column("description", Text, nullable=True),
    Column("bio", JSON, nullable=False),
    Column("photos", JSON, nullable=False),
    Column("music", JSON, nullable=False),
    Column("press_kit", JSON, nullable=False),
    Column("contact", JSON, nullable=False),
    Column("customization", JSON, nullable=False),
    Column("analytics", JSON, nullable=False),
    Column("seo", JSON, nullable=False),
    Column("created_at", DateTime(timezone=True), server_default=func.now(), nullable=False),
    Column("updated_at", DateTime(timezone=True), server_default=func.now(), nullable=False),
    UniqueConstraint("slug", name="uq_epks_slug"),
    Index("idx_epks_user_id", "user_id"),
    Index("idx_epks_status", "status"),
    Index("idx_epks_created_at", "created_at"),
)

# Contact-form inquiries
contact_inquiries = Table(
    "contact_inquiries",
    metadata,
    Column("id", String(32), primary_key=True),
    Column("epk_id", String(32), ForeignKey("epks.id", ondelete="CASCADE"), nullable=False),
    Column("type", String(20), nullable=False, server_default="other"),
    Column("status", String(20), nullable=False, server_default="new"),
    Column("priority", String(10), nullable=False, server_default="medium"),
    Column("sender", JSON, nullable=False),
    Column("subject", String(200), nullable=False),
    Column("message", Text, nullable=False),
    Column("request_metadata", JSON, nullable=False),
    Column("attachments", JSON, nullable=False),
    Column("notes", JSON, nullable=False),
    Column("response_history", JSON, nullable=False),
    Column("read_at", DateTime(timezone=True), nullable=True),
    Column("responded_at", DateTime(timezone=True), nullable=True),
    Column("created_at", DateTime(timezone=True), server_default=func.now(), nullable=False),
    Column("updated_at", DateTime(timezone=True), server_default=func.now(), nullable=False),
    Index("idx_inquiries_epk_status", "epk_id", "status"),
    Index("idx_inquiries_created_at", "created_at"),
)

# Persisted per-EPK analytics summary
epk_analytics = Table(
    "epk_analytics",
    metadata,
    Column("id", String(32), primary_key=True),
    Column("epk_id", String(32), ForeignKey("epks.id", ondelete="CASCADE"), nullable=False),
    Column("page_views", JSON, nullable=False),
    Column("engagement", JSON, nullable=False),
    Column("demographics", JSON, nullable=False),
    Column("traffic", JSON, nullable=False),
    Column("content_performance", JSON, nullable=False),
    Column("period_summary", JSON, nullable=False),
    Column("last_updated", DateTime(timezone=True), nullable=True),
    Column("created_at", DateTime(timezone=True), server_default=func.now(), nullable=False),
    Column("updated_at", DateTime(timezone=True), server_default=func.now(), nullable=False),
    UniqueConstraint("epk_id", name="uq_epk_analytics_epk_id"),
)

# Payment-processor webhook ledger
billing_events = Table(
    "billing_events",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("stripe_event_id", String(255), nullable=False),
    Column("event_type", String(100), nullable=False),
    Column("received_at", DateTime(timezone=True), server_default=func.now(), nullable=False),
    Column("processed", Boolean, nullable=False, server_default="0"),
    Column("processed_at", DateTime(timezone=True), nullable=True),
    Column("error", Text, nullable=True),
    UniqueConstraint("stripe_event_id", name="uq_billing_events_stripe_event_id"),
    Index("idx_billing_events_type", "event_type"),
)
