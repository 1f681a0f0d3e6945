from typing import Any

from pydantic import BaseModel


class ErrorResponse(BaseModel):
    detail: Any
    code: str | None = None
    request_id: str | None = None


class PaginationMeta(BaseModel):
    total_items: int
    total_pages: int
    page: int
    limit: int
