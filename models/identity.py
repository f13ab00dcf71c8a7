"""
Copy identity for book records.

A work is ``(title, isbn, author set)``. Several records may share a work,
each one a physical copy with its own ``copy_number``. An isbn, however,
belongs to exactly one work: reusing it for another title or another set of
authors is rejected.

The rules here are pure functions over snapshots of existing records.
Database access lives in ``session_lookup``; ``IdentityResolver`` takes any
callable with the same shape.
"""
from __future__ import annotations

from enum import Enum
from typing import Callable, Iterable, List, NamedTuple, Optional, Sequence

from marshmallow import ValidationError
from sqlalchemy import select

from models.book import Book, book_authors

ISBN_TAKEN = "has already been taken"
COPY_NUMBER_TAKEN = "copy {copy_number} of this book already exists"


class ExistingCopy(NamedTuple):
    id: str
    title: str
    isbn: str
    copy_number: int
    author_ids: tuple


class IdentityCheck(str, Enum):
    UNIQUE = "unique"
    DUPLICATE_OF_EXISTING_COPY = "duplicate_of_existing_copy"
    CONFLICTS_WITH_DIFFERENT_BOOK = "conflicts_with_different_book"

    @property
    def allowed(self) -> bool:
        return self is not IdentityCheck.CONFLICTS_WITH_DIFFERENT_BOOK


Lookup = Callable[[str], Iterable[ExistingCopy]]


def _author_key(author_ids: Iterable) -> tuple:
    return tuple(sorted(str(a) for a in author_ids))


def _same_work(copy: ExistingCopy, title: str, isbn: str, key: tuple) -> bool:
    return copy.title == title and copy.isbn == isbn and _author_key(copy.author_ids) == key


def classify(
    title: str,
    isbn: str,
    author_ids: Iterable,
    excluding_id: Optional[str],
    existing: Iterable[ExistingCopy],
) -> IdentityCheck:
    """Decide whether a candidate may use ``isbn``.

    ``existing`` may hold any records; only those carrying ``isbn`` (other
    than ``excluding_id``) are considered. One exact work match is enough to
    make the candidate a legitimate extra copy, even if unrelated records
    also carry the isbn.
    """
    key = _author_key(author_ids)
    others = [c for c in existing if c.isbn == isbn and c.id != excluding_id]
    if not others:
        return IdentityCheck.UNIQUE
    if any(_same_work(c, title, isbn, key) for c in others):
        return IdentityCheck.DUPLICATE_OF_EXISTING_COPY
    return IdentityCheck.CONFLICTS_WITH_DIFFERENT_BOOK


def next_copy_number(
    title: str,
    isbn: str,
    author_ids: Iterable,
    existing: Iterable[ExistingCopy],
) -> int:
    key = _author_key(author_ids)
    if not key:
        return 1
    numbers = [c.copy_number for c in existing if _same_work(c, title, isbn, key)]
    return max(numbers) + 1 if numbers else 1


def copy_number_taken(
    title: str,
    isbn: str,
    copy_number: int,
    excluding_id: Optional[str],
    existing: Iterable[ExistingCopy],
) -> bool:
    """Whether another record already has ``(title, isbn, copy_number)``."""
    return any(
        c.title == title and c.isbn == isbn and c.copy_number == copy_number and c.id != excluding_id
        for c in existing
    )


def session_lookup(session, lock: bool = False) -> Lookup:
    """Lookup backed by the database.

    With ``lock=True`` the matching rows are read ``FOR UPDATE`` so that two
    creations of the same work serialize on PostgreSQL; SQLite ignores the
    hint and serializes writers on its own. The unique constraint on
    ``(title, isbn, copy_number)`` catches anything that slips through.
    """

    def lookup(isbn: str) -> List[ExistingCopy]:
        stmt = select(Book.id, Book.title, Book.isbn, Book.copy_number).where(Book.isbn == isbn)
        if lock:
            stmt = stmt.with_for_update()
        rows = session.execute(stmt).all()
        if not rows:
            return []
        links = session.execute(
            select(book_authors.c.book_id, book_authors.c.author_id).where(
                book_authors.c.book_id.in_([r.id for r in rows])
            )
        ).all()
        by_book = {}
        for book_id, author_id in links:
            by_book.setdefault(book_id, []).append(author_id)
        return [
            ExistingCopy(r.id, r.title, r.isbn, r.copy_number, _author_key(by_book.get(r.id, ())))
            for r in rows
        ]

    return lookup


class IdentityResolver:
    def __init__(self, lookup: Lookup):
        self.lookup = lookup

    def check(
        self,
        title: str,
        isbn: str,
        author_ids: Sequence,
        excluding_id: Optional[str] = None,
    ) -> IdentityCheck:
        """Classify the candidate, raising on an isbn clash."""
        result = classify(title, isbn, author_ids, excluding_id, self.lookup(isbn))
        if not result.allowed:
            raise ValidationError(ISBN_TAKEN, field_name="isbn")
        return result

    def check_copy_number(
        self,
        title: str,
        isbn: str,
        copy_number: int,
        excluding_id: Optional[str] = None,
    ) -> None:
        """Raise if another record already holds this copy number of the work."""
        if copy_number_taken(title, isbn, copy_number, excluding_id, self.lookup(isbn)):
            raise ValidationError(
                COPY_NUMBER_TAKEN.format(copy_number=copy_number), field_name="copy_number"
            )

    def assign_copy_number(self, title: str, isbn: str, author_ids: Sequence) -> int:
        if not (title and isbn and author_ids):
            return 1
        return next_copy_number(title, isbn, author_ids, self.lookup(isbn))
