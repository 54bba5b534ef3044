"""Pagination helpers for list endpoints.

Offset pagination (page/limit) for browsable lists and cursor pagination for
feeds that change while being read. Both operate on SQLAlchemy ``Select``
statements and return plain dataclasses the web layer serialises.

Interface Contract:
- validate_options(options) -> PaginationOptions (page >= 1, 1 <= limit <= 100)
- paginate_with_count(session, stmt, options) -> PaginatedResult
- paginate_with_cursor(session, stmt, options, cursor_column) -> CursorPaginatedResult
"""

from __future__ import annotations

import math
import time
from dataclasses import asdict, dataclass, field, replace
from typing import Any, Callable, Literal, Sequence

from sqlalchemy import func, select
from sqlalchemy.orm import Session
from sqlalchemy.sql import Select

DEFAULT_LIMIT = 25
MAX_LIMIT = 100
MIN_LIMIT = 1
MAX_PAGES_TO_SHOW = 5

OrderDirection = Literal["asc", "desc"]


@dataclass
class PaginationOptions:
    page: int = 1
    limit: int = DEFAULT_LIMIT
    order_by: str | None = None
    order_direction: OrderDirection = "asc"


@dataclass
class CursorPaginationOptions:
    limit: int = DEFAULT_LIMIT
    cursor: Any = None
    order_by: str | None = None
    order_direction: OrderDirection = "asc"


@dataclass
class PageInfo:
    page: int
    limit: int
    total: int
    total_pages: int
    has_next_page: bool
    has_prev_page: bool
    next_page: int | None
    prev_page: int | None


@dataclass
class CursorInfo:
    limit: int
    has_next_page: bool
    has_prev_page: bool
    next_cursor: Any
    prev_cursor: Any


@dataclass
class QueryMeta:
    query_time: float
    cache_hit: bool = False


@dataclass
class PaginatedResult:
    data: list
    pagination: PageInfo
    meta: QueryMeta

    def to_dict(self, serialize: Callable[[Any], Any] | None = None) -> dict[str, Any]:
        items = [serialize(item) for item in self.data] if serialize else list(self.data)
        return {"data": items, "pagination": asdict(self.pagination), "meta": asdict(self.meta)}


@dataclass
class CursorPaginatedResult:
    data: list
    pagination: CursorInfo
    meta: QueryMeta

    def to_dict(self, serialize: Callable[[Any], Any] | None = None) -> dict[str, Any]:
        items = [serialize(item) for item in self.data] if serialize else list(self.data)
        return {"data": items, "pagination": asdict(self.pagination), "meta": asdict(self.meta)}


@dataclass
class PaginationMeta:
    showing_from: int
    showing_to: int
    showing_text: str
    page_numbers: list[int] = field(default_factory=list)
    show_first_last: bool = False


@dataclass
class PerformanceReport:
    average_query_time: float
    slowest_query: float
    fastest_query: float
    cache_hit_rate: float
    recommended_page_size: int
    performance_grade: Literal["A", "B", "C", "D", "F"]


def _clamp_limit(limit: int | None) -> int:
    return min(max(MIN_LIMIT, limit or DEFAULT_LIMIT), MAX_LIMIT)


def validate_options(options: PaginationOptions) -> PaginationOptions:
    """Clamp page and limit into range; a missing or zero limit becomes the default."""
    return replace(options, page=max(1, options.page or 1), limit=_clamp_limit(options.limit))


def build_offset(options: PaginationOptions) -> int:
    validated = validate_options(options)
    return (validated.page - 1) * validated.limit


def _order_column(stmt: Select, order_by: str):
    entity = stmt.column_descriptions[0]["entity"]
    return getattr(entity, order_by)


def apply_pagination(stmt: Select, options: PaginationOptions) -> Select:
    """Add limit, offset (only when past the first page) and ordering."""
    validated = validate_options(options)
    stmt = stmt.limit(validated.limit)
    offset = build_offset(validated)
    if offset > 0:
        stmt = stmt.offset(offset)
    if validated.order_by:
        column = _order_column(stmt, validated.order_by)
        stmt = stmt.order_by(column.desc() if validated.order_direction == "desc" else column.asc())
    return stmt


def create_paginated_result(
    data: Sequence,
    total: int,
    options: PaginationOptions,
    query_time: float,
    cache_hit: bool = False,
) -> PaginatedResult:
    validated = validate_options(options)
    page, limit = validated.page, validated.limit
    total_pages = math.ceil(total / limit)
    return PaginatedResult(
        data=list(data),
        pagination=PageInfo(
            page=page,
            limit=limit,
            total=total,
            total_pages=total_pages,
            has_next_page=page < total_pages,
            has_prev_page=page > 1,
            next_page=page + 1 if page < total_pages else None,
            prev_page=page - 1 if page > 1 else None,
        ),
        meta=QueryMeta(query_time=query_time, cache_hit=cache_hit),
    )


def apply_cursor(stmt: Select, options: CursorPaginationOptions) -> Select:
    """Fetch one row beyond the limit so the caller can tell if more exist."""
    limit = _clamp_limit(options.limit)
    stmt = stmt.limit(limit + 1)
    if options.order_by:
        column = _order_column(stmt, options.order_by)
        if options.cursor is not None:
            stmt = stmt.where(column < options.cursor if options.order_direction == "desc" else column > options.cursor)
        stmt = stmt.order_by(column.desc() if options.order_direction == "desc" else column.asc())
    return stmt


def create_cursor_paginated_result(
    data: Sequence,
    options: CursorPaginationOptions,
    query_time: float,
    get_cursor_value: Callable[[Any], Any],
    cache_hit: bool = False,
) -> CursorPaginatedResult:
    limit = _clamp_limit(options.limit)
    rows = list(data)
    has_next = len(rows) > limit
    kept = rows[:limit] if has_next else rows
    next_cursor = get_cursor_value(kept[-1]) if has_next and kept else None
    return CursorPaginatedResult(
        data=kept,
        pagination=CursorInfo(
            limit=limit,
            has_next_page=has_next,
            has_prev_page=options.cursor is not None,
            next_cursor=next_cursor,
            prev_cursor=options.cursor,
        ),
        meta=QueryMeta(query_time=query_time, cache_hit=cache_hit),
    )


def paginate_with_count(session: Session, stmt: Select, options: PaginationOptions) -> PaginatedResult:
    """Run a page query plus a count over the same filters."""
    start = time.perf_counter()
    total = session.scalar(select(func.count()).select_from(stmt.order_by(None).subquery())) or 0
    rows = session.scalars(apply_pagination(stmt, options)).all()
    query_time = (time.perf_counter() - start) * 1000
    return create_paginated_result(rows, total, options, query_time)


def paginate_with_cursor(
    session: Session,
    stmt: Select,
    options: CursorPaginationOptions,
    get_cursor_value: Callable[[Any], Any] | None = None,
) -> CursorPaginatedResult:
    if get_cursor_value is None:
        if not options.order_by:
            raise ValueError("order_by is required for cursor pagination")
        get_cursor_value = lambda row: getattr(row, options.order_by)  # noqa: E731
    start = time.perf_counter()
    rows = session.scalars(apply_cursor(stmt, options)).all()
    query_time = (time.perf_counter() - start) * 1000
    return create_cursor_paginated_result(rows, options, query_time, get_cursor_value)


def generate_pagination_meta(pagination: PageInfo) -> PaginationMeta:
    """Text and page-number window for a pager widget."""
    page, limit, total, total_pages = pagination.page, pagination.limit, pagination.total, pagination.total_pages
    showing_from = min((page - 1) * limit + 1, total)
    showing_to = min(page * limit, total)
    if total == 0:
        showing_text = "No results found"
    else:
        showing_text = f"Showing {showing_from}-{showing_to} of {total} results"

    half = MAX_PAGES_TO_SHOW // 2
    start_page = max(1, page - half)
    end_page = min(total_pages, page + half)
    # Shift the window when it is clipped at either edge
    if end_page - start_page + 1 < MAX_PAGES_TO_SHOW:
        if start_page == 1:
            end_page = min(total_pages, start_page + MAX_PAGES_TO_SHOW - 1)
        else:
            start_page = max(1, end_page - MAX_PAGES_TO_SHOW + 1)

    return PaginationMeta(
        showing_from=showing_from,
        showing_to=showing_to,
        showing_text=showing_text,
        page_numbers=list(range(start_page, end_page + 1)),
        show_first_last=total_pages > MAX_PAGES_TO_SHOW,
    )


def calculate_optimal_page_size(
    average_item_size: float,
    target_response_time: float = 1000,
    max_memory_usage: int = 5 * 1024 * 1024,
) -> int:
    # ~10ms of processing per item
    time_limit = math.floor(target_response_time / 10)
    if average_item_size <= 0:
        memory_limit = time_limit
    else:
        memory_limit = math.floor(max_memory_usage / average_item_size)
    return min(max(MIN_LIMIT, min(memory_limit, time_limit)), MAX_LIMIT)


def analyze_pagination_performance(results: Sequence[PaginatedResult]) -> PerformanceReport:
    if not results:
        return PerformanceReport(0, 0, 0, 0, DEFAULT_LIMIT, "F")

    times = [r.meta.query_time for r in results]
    average = sum(times) / len(times)
    hit_rate = sum(1 for r in results if r.meta.cache_hit) / len(results)

    recommended = DEFAULT_LIMIT
    if average > 2000:
        recommended = max(10, math.floor(DEFAULT_LIMIT * 0.6))
    elif average < 500:
        recommended = min(MAX_LIMIT, math.floor(DEFAULT_LIMIT * 1.5))

    if average < 500 and hit_rate > 0.8:
        grade = "A"
    elif average < 1000 and hit_rate > 0.6:
        grade = "B"
    elif average < 2000 and hit_rate > 0.4:
        grade = "C"
    elif average < 3000:
        grade = "D"
    else:
        grade = "F"

    return PerformanceReport(
        average_query_time=average,
        slowest_query=max(times),
        fastest_query=min(times),
        cache_hit_rate=hit_rate,
        recommended_page_size=recommended,
        performance_grade=grade,
    )
