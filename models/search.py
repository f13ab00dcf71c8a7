"""
Catalog search filters.

``build_search_query`` turns the ``filter[...]`` parameters of a search
request into one SQLAlchemy query over ``Book``:

- ``q``: substring of title, any author name, or isbn. Surrounding quotes
  are stripped. The key counts as a search parameter even when blank.
- ``title`` / ``author`` / ``isbn``: comma-separated tokens, OR-ed, at most
  ``MAX_FILTER_TOKENS`` each. A value with no tokens left after cleaning
  adds nothing and does not count as a search parameter.
- ``status``: one of the ``BookStatus`` values, exact and lowercase.
- ``borrowed_until``: ``YYYY-MM-DD``; keeps copies with no due date or one
  due no later than that day.

Different keys are AND-ed. Matching is case-insensitive.
"""
from __future__ import annotations

import re
from datetime import date, datetime, time
from typing import List, Mapping, Optional

from sqlalchemy import or_, func

from models.author import Author
from models.book import Book, BookStatus

FILTER_KEYS = ("q", "title", "author", "isbn", "status", "borrowed_until")
MAX_FILTER_TOKENS = 10

MISSING_FILTER = "At least one search parameter is required"
INVALID_DATE = "Invalid date format. Please use YYYY-MM-DD."

_QUOTES = re.compile(r"""^["']|["']$""")
_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class SearchParamError(ValueError):
    """Bad search, sort or pagination input; reported as a 400."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


def clean_query_text(raw: str) -> str:
    return _QUOTES.sub("", raw or "").strip()


def clean_tokens(raw: Optional[str]) -> List[str]:
    return [t.strip() for t in (raw or "").split(",") if t.strip()]


def parse_iso_date(raw: str) -> date:
    value = (raw or "").strip()
    if not _ISO_DATE.match(value):
        raise SearchParamError(INVALID_DATE)
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        raise SearchParamError(INVALID_DATE)


def _like(term: str) -> str:
    return f"%{term.lower()}%"


def _title_matches(term: str):
    return func.lower(Book.title).like(_like(term))


def _isbn_matches(term: str):
    return func.lower(Book.isbn).like(_like(term))


def _author_matches(term: str):
    # EXISTS over the join table; no duplicate rows, so counts stay exact
    return Book.authors.any(func.lower(Author.name).like(_like(term)))


_TOKEN_FIELDS = {
    "title": _title_matches,
    "author": _author_matches,
    "isbn": _isbn_matches,
}


def _token_filter(field: str, raw: Optional[str]):
    tokens = clean_tokens(raw)
    if len(tokens) > MAX_FILTER_TOKENS:
        raise SearchParamError(
            f"Too many {field} filters. Maximum {MAX_FILTER_TOKENS} allowed."
        )
    if not tokens:
        return None
    match = _TOKEN_FIELDS[field]
    return or_(*[match(t) for t in tokens])


def parse_status(raw: str) -> BookStatus:
    try:
        return BookStatus(raw)
    except ValueError:
        valid = ", ".join(s.value for s in BookStatus)
        raise SearchParamError(f"Invalid status. Must be: {valid}")


def search_criteria(filters: Mapping[str, Optional[str]]) -> list:
    """Validate ``filters`` and return the list of SQL criteria to AND together.

    Raises SearchParamError on the first bad value, in the order of
    ``FILTER_KEYS``, or when no key counts as a search parameter.
    """
    criteria = []
    present = False

    if "q" in filters:
        present = True
        text = clean_query_text(filters.get("q"))
        if text:
            criteria.append(or_(_title_matches(text), _author_matches(text), _isbn_matches(text)))

    for field in ("title", "author", "isbn"):
        if field in filters:
            clause = _token_filter(field, filters.get(field))
            if clause is not None:
                criteria.append(clause)
                present = True

    status_raw = (filters.get("status") or "").strip()
    if status_raw:
        criteria.append(Book.status == parse_status(status_raw))
        present = True

    due_raw = (filters.get("borrowed_until") or "").strip()
    if due_raw:
        cutoff = datetime.combine(parse_iso_date(due_raw), time.min)
        criteria.append(or_(Book.borrowed_until.is_(None), Book.borrowed_until <= cutoff))
        present = True

    if not present:
        raise SearchParamError(MISSING_FILTER)
    return criteria


def build_search_query(session, filters: Mapping[str, Optional[str]]):
    """Query over Book with every active filter applied."""
    return session.query(Book).filter(*search_criteria(filters))
