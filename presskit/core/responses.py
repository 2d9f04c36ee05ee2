"""Uniform success envelope: ``{success, data?, message?, meta?}``."""

import math
from dataclasses import dataclass, field
from typing import Any, List, Optional

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse


@dataclass
class Page:
    items: List[Any] = field(default_factory=list)
    page: int = 1
    limit: int = 10
    total: int = 0

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0

    def meta(self) -> dict:
        return {"page": self.page, "limit": self.limit, "total": self.total, "totalPages": self.total_pages}


def success(data: Any = None, message: Optional[str] = None, status_code: int = 200) -> JSONResponse:
    body: dict = {"success": True}
    if data is not None:
        body["data"] = data
    if message:
        body["message"] = message
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body))


def created(data: Any = None, message: Optional[str] = "Resource created successfully") -> JSONResponse:
    return success(data, message, status_code=201)


def paginated(page: Page, message: Optional[str] = None) -> JSONResponse:
    body: dict = {"success": True, "data": page.items, "meta": page.meta()}
    if message:
        body["message"] = message
    return JSONResponse(status_code=200, content=jsonable_encoder(body))
