"""Sorting and page slicing for catalog listings."""
from __future__ import annotations

import math
from typing import List, Optional, Tuple

from sqlalchemy import case, func, select

from models.author import Author
from models.book import Book, BookStatus, book_authors
from models.search import SearchParamError

DEFAULT_PAGE = 1
DEFAULT_PER_PAGE = 20
MAX_PER_PAGE = 100

PAGE_ERROR = "page must be a positive integer"
PER_PAGE_ERROR = f"per_page must be an integer between 1 and {MAX_PER_PAGE}"

# Alphabetically first author of each copy
_first_author_name = (
    select(func.min(Author.name))
    .select_from(Author)
    .join(book_authors, book_authors.c.author_id == Author.id)
    .where(book_authors.c.book_id == Book.id)
    .correlate(Book)
    .scalar_subquery()
)

# Declaration order of BookStatus, not alphabetical
_status_rank = case(
    *[(Book.status == status, rank) for rank, status in enumerate(BookStatus)],
    else_=len(BookStatus),
)

# Sorting allowlist: API field -> SQL expression
SORT_COLUMNS = {
    "title": Book.title,
    "author": _first_author_name,
    "isbn": Book.isbn,
    "published_date": Book.published_date,
    "status": _status_rank,
    "borrowed_until": Book.borrowed_until,
    "created_at": Book.created_at,
    "updated_at": Book.updated_at,
}
DEFAULT_SORT = "title"


def parse_sort(sort_param: Optional[str]) -> List:
    fields = [s.strip() for s in (sort_param or "").split(",") if s.strip()]
    if not fields:
        fields = [DEFAULT_SORT]
    order_by = []
    for f in fields:
        desc = f.startswith("-")
        key = f[1:] if desc else f
        col = SORT_COLUMNS.get(key)
        if col is None:
            valid = ", ".join(SORT_COLUMNS)
            raise SearchParamError(f"Invalid sort field: {key}. Valid fields are: {valid}")
        order_by.append(col.desc() if desc else col.asc())
    return order_by


def _to_int(raw) -> int:
    """Integer part of a numeric string; fractions truncate toward zero."""
    try:
        return int(str(raw).strip())
    except ValueError:
        value = float(str(raw).strip())
        if not math.isfinite(value):
            raise ValueError(raw)
        return int(value)


def parse_page(raw) -> int:
    if raw is None:
        return DEFAULT_PAGE
    try:
        page = _to_int(raw)
    except ValueError:
        raise SearchParamError(PAGE_ERROR)
    if page < 1:
        raise SearchParamError(PAGE_ERROR)
    return page


def parse_per_page(raw) -> int:
    if raw is None:
        return DEFAULT_PER_PAGE
    try:
        per_page = _to_int(raw)
    except ValueError:
        raise SearchParamError(PER_PAGE_ERROR)
    if not 1 <= per_page <= MAX_PER_PAGE:
        raise SearchParamError(PER_PAGE_ERROR)
    return per_page


def page_meta(total_count: int, page: int, per_page: int) -> dict:
    total_pages = math.ceil(total_count / per_page) if total_count else 0
    return {
        "current_page": page,
        "per_page": per_page,
        "total_count": total_count,
        "total_pages": total_pages,
        "has_next_page": page < total_pages,
        "has_previous_page": page > 1,
    }


def paginate(query, page: int, per_page: int, order_by=None) -> Tuple[list, dict]:
    """Slice an ordered query into one page plus its metadata."""
    total = query.order_by(None).count()
    offset = (page - 1) * per_page
    if offset >= total:
        # Past the last page; also keeps huge offsets away from the driver
        return [], page_meta(total, page, per_page)
    if order_by:
        query = query.order_by(*order_by)
    rows = query.offset(offset).limit(per_page).all()
    return rows, page_meta(total, page, per_page)
