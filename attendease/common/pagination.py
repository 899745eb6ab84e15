"""Page-based pagination for list endpoints: ``{"data": [...], "meta": {...}}``."""

import math
from typing import Any, Generic, Optional, Sequence, TypeVar

from fastapi import Query
from pydantic import BaseModel
from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from attendease.common.constants import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from attendease.common.filters import _get_column, apply_sorting

T = TypeVar("T")


# ── FastAPI dependency ──────────────────────────────────────────────

class PaginationParams:
    """Inject via ``Depends()`` on any list endpoint."""

    def __init__(
        self,
        page: int = Query(default=1, ge=1, description="Page number (1-indexed)"),
        page_size: int = Query(
            default=DEFAULT_PAGE_SIZE,
            ge=1,
            le=MAX_PAGE_SIZE,
            description=f"Items per page (max {MAX_PAGE_SIZE})",
        ),
        sort: Optional[str] = Query(
            default=None,
            description='Sort field; prefix "-" for DESC (e.g. "-date")',
        ),
    ) -> None:
        self.page = page
        self.page_size = page_size
        self.sort = sort

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size


def page_params(page: int = 1, page_size: int = DEFAULT_PAGE_SIZE, sort: Optional[str] = None) -> PaginationParams:
    """Build ``PaginationParams`` outside a request (service calls, tests)."""
    return PaginationParams(page=page, page_size=page_size, sort=sort)


# ── Response envelope ───────────────────────────────────────────────

class PaginationMeta(BaseModel):
    page: int
    page_size: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool

    @classmethod
    def build(cls, params: PaginationParams, total: int) -> "PaginationMeta":
        total_pages = math.ceil(total / params.page_size) if total else 0
        return cls(
            page=params.page,
            page_size=params.page_size,
            total=total,
            total_pages=total_pages,
            has_next=params.page < total_pages,
            has_prev=params.page > 1,
        )


class PaginatedResponse(BaseModel, Generic[T]):
    data: Sequence[T]
    meta: PaginationMeta


# ── SQLAlchemy helper ───────────────────────────────────────────────

async def paginate(
    session: AsyncSession,
    query: Select,
    params: PaginationParams,
    *,
    model: Any = None,
    schema: Optional[type[BaseModel]] = None,
) -> PaginatedResponse:
    """
    Run *query* for one page and count the full result set.

    ``params.sort`` naming a mapped column of *model* replaces the query's
    own ORDER BY; otherwise the query's ordering is kept. With *schema*,
    each row is converted with ``schema.model_validate``.
    """
    count_q = select(func.count()).select_from(query.order_by(None).subquery())
    total: int = (await session.execute(count_q)).scalar_one()

    if params.sort and model is not None and _get_column(model, params.sort.lstrip("-")) is not None:
        query = apply_sorting(query.order_by(None), model, params.sort)

    rows = (
        await session.execute(query.offset(params.offset).limit(params.page_size))
    ).scalars().all()
    if schema is not None:
        rows = [schema.model_validate(row) for row in rows]

    return PaginatedResponse(data=rows, meta=PaginationMeta.build(params, total))
