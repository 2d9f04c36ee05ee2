"""
Generic table-backed CRUD service.

Resource services subclass CrudService and layer ownership/quota rules on
top; the base only knows how to page, filter, sort and serialize rows.
"""
import re
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional
from uuid import uuid4

from sqlalchemy import Boolean, Integer, String, Table, Text, delete, func, insert, select, update

from presskit.core.database import Database
from presskit.core.errors import BadRequestError, NotFoundError
from presskit.core.responses import Page

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 10
MAX_LIMIT = 100
DEFAULT_SORT = "-created_at"

_ID_PATTERN = re.compile(r"^[0-9a-f]{32}$")
_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")

# Query parameters that drive paging rather than filtering.
RESERVED_PARAMS = {"page", "limit", "sort", "fields"}


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid4().hex


def is_valid_id(value: Any) -> bool:
    return isinstance(value, str) and bool(_ID_PATTERN.match(value))


def to_snake(name: str) -> str:
    return _CAMEL_BOUNDARY.sub("_", name).lower()


def to_camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def iso(value: Optional[datetime]) -> Optional[str]:
    """ISO-8601 in UTC; naive values (SQLite) are taken to be UTC already."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def row_to_document(row: Mapping[str, Any], exclude: Iterable[str] = ()) -> Dict[str, Any]:
    """Camel-case the column names and make every value JSON-safe."""
    skip = set(exclude)
    doc: Dict[str, Any] = {}
    for key, value in row.items():
        if key in skip:
            continue
        if isinstance(value, datetime):
            value = iso(value)
        elif isinstance(value, date):
            value = value.isoformat()
        doc[to_camel(key)] = value
    return doc


def check_pagination(page: int, limit: int) -> None:
    if page < 1:
        raise BadRequestError("Page must be a positive integer")
    if not 1 <= limit <= MAX_LIMIT:
        raise BadRequestError(f"Limit must be between 1 and {MAX_LIMIT}")


class CrudService:
    def __init__(self, db: Database, table: Table, serializer: Optional[Callable[[Mapping[str, Any]], dict]] = None):
        self.db = db
        self.table = table
        self.serializer = serializer or row_to_document

    # -- helpers -----------------------------------------------------------

    def _column(self, name: str):
        column_name = to_snake(name)
        return self.table.c.get(column_name)

    def _coerce(self, column, value: Any) -> Any:
        if not isinstance(value, str):
            return value
        if isinstance(column.type, Boolean):
            return value.lower() in ("1", "true", "yes")
        if isinstance(column.type, Integer):
            try:
                return int(value)
            except ValueError:
                raise BadRequestError(f"Invalid value for {column.name}")
        return value

    def _criteria(self, filters: Optional[Mapping[str, Any]]) -> List[Any]:
        """Equality filters on known scalar columns; unknown keys are ignored."""
        clauses = []
        for key, value in (filters or {}).items():
            if key in RESERVED_PARAMS or value is None:
                continue
            column = self._column(key)
            if column is None or not isinstance(column.type, (String, Text, Boolean, Integer)):
                continue
            clauses.append(column == self._coerce(column, value))
        return clauses

    def _order_by(self, sort: Optional[str]):
        clauses = []
        for part in (sort or DEFAULT_SORT).split(","):
            part = part.strip()
            if not part:
                continue
            descending = part.startswith("-")
            column = self._column(part.lstrip("-+"))
            if column is None:
                raise BadRequestError(f"Cannot sort by {part.lstrip('-+')}")
            clauses.append(column.desc() if descending else column.asc())
        return clauses

    def _load(self, session, record_id: str) -> Mapping[str, Any]:
        if not is_valid_id(record_id):
            raise NotFoundError("Resource not found")
        row = session.execute(select(self.table).where(self.table.c.id == record_id)).mappings().first()
        if row is None:
            raise NotFoundError("Resource not found")
        return row

    def _stamp(self, values: Dict[str, Any], creating: bool = False) -> Dict[str, Any]:
        now = utc_now()
        stamped = dict(values)
        if creating:
            stamped.setdefault("id", new_id())
            if "created_at" in self.table.c:
                stamped.setdefault("created_at", now)
        if "updated_at" in self.table.c:
            stamped["updated_at"] = now
        return stamped

    # -- operations --------------------------------------------------------

    def create(self, values: Dict[str, Any]) -> dict:
        row = self._stamp(values, creating=True)
        with self.db.session() as session:
            session.execute(insert(self.table).values(**row))
            return self.serializer(self._load(session, row["id"]))

    def list(
        self,
        page: int = DEFAULT_PAGE,
        limit: int = DEFAULT_LIMIT,
        sort: Optional[str] = None,
        filters: Optional[Mapping[str, Any]] = None,
        where: Iterable[Any] = (),
    ) -> Page:
        check_pagination(page, limit)
        clauses = [*where, *self._criteria(filters)]
        with self.db.session() as session:
            total = session.execute(select(func.count()).select_from(self.table).where(*clauses)).scalar_one()
            rows = session.execute(
                select(self.table)
                .where(*clauses)
                .order_by(*self._order_by(sort))
                .offset((page - 1) * limit)
                .limit(limit)
            ).mappings().all()
        return Page(items=[self.serializer(r) for r in rows], page=page, limit=limit, total=total)

    def get_one(self, record_id: str) -> dict:
        with self.db.session() as session:
            return self.serializer(self._load(session, record_id))

    def update(self, record_id: str, values: Dict[str, Any]) -> dict:
        with self.db.session() as session:
            self._load(session, record_id)
            session.execute(update(self.table).where(self.table.c.id == record_id).values(**self._stamp(values)))
            return self.serializer(self._load(session, record_id))

    def delete(self, record_id: str) -> None:
        with self.db.session() as session:
            self._load(session, record_id)
            session.execute(delete(self.table).where(self.table.c.id == record_id))

    def get_by_field(self, field: str, value: Any) -> Optional[dict]:
        column = self._column(field)
        if column is None:
            raise BadRequestError(f"Unknown field: {field}")
        with self.db.session() as session:
            row = session.execute(select(self.table).where(column == value).limit(1)).mappings().first()
        return self.serializer(row) if row is not None else None

    def exists(self, **criteria: Any) -> bool:
        clauses = [self._column(k) == v for k, v in criteria.items()]
        with self.db.session() as session:
            found = session.execute(select(self.table.c.id).where(*clauses).limit(1)).first()
        return found is not None

    def bulk_create(self, rows: Iterable[Dict[str, Any]]) -> List[dict]:
        stamped = [self._stamp(r, creating=True) for r in rows]
        if not stamped:
            return []
        with self.db.session() as session:
            session.execute(insert(self.table), stamped)
            ids = [r["id"] for r in stamped]
            found = session.execute(select(self.table).where(self.table.c.id.in_(ids))).mappings().all()
        by_id = {r["id"]: r for r in found}
        return [self.serializer(by_id[i]) for i in ids]

    def bulk_update(self, filters: Mapping[str, Any], values: Dict[str, Any]) -> int:
        clauses = self._criteria(filters)
        if not clauses:
            raise BadRequestError("Bulk update requires at least one filter")
        with self.db.session() as session:
            result = session.execute(update(self.table).where(*clauses).values(**self._stamp(values)))
        return result.rowcount

    def bulk_delete(self, filters: Mapping[str, Any]) -> int:
        clauses = self._criteria(filters)
        if not clauses:
            raise BadRequestError("Bulk delete requires at least one filter")
        with self.db.session() as session:
            result = session.execute(delete(self.table).where(*clauses))
        return result.rowcount
