"""Daily sweep returning borrowed or reserved copies whose due date has passed."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterator, Optional

from sqlalchemy.exc import SQLAlchemyError

from models.base_model import utcnow
from models.book import Book, BookStatus
from models.lending import DEFAULT_POLICY, LendingPolicy, return_book

logger = logging.getLogger(__name__)

BATCH_SIZE = 500


def overdue_books(session, now: datetime, batch_size: int = BATCH_SIZE) -> Iterator[Book]:
    """Yield overdue copies, reading them ``batch_size`` rows at a time by id."""
    last_id = None
    while True:
        query = (
            session.query(Book)
            .filter(Book.status.in_((BookStatus.BORROWED, BookStatus.RESERVED)))
            .filter(Book.borrowed_until.isnot(None), Book.borrowed_until < now)
        )
        if last_id is not None:
            query = query.filter(Book.id > last_id)
        batch = query.order_by(Book.id).limit(batch_size).all()
        if not batch:
            return
        last_id = batch[-1].id
        yield from batch


def expire_overdue_books(
    session,
    now: Optional[datetime] = None,
    policy: Optional[LendingPolicy] = None,
    batch_size: int = BATCH_SIZE,
) -> int:
    """Return every overdue copy; returns how many were expired.

    A copy that fails is logged and left for the next run.
    """
    now = now or utcnow()
    policy = policy or DEFAULT_POLICY
    logger.info("Starting overdue sweep at %s", now.isoformat())

    expired = 0
    for book in overdue_books(session, now, batch_size):
        label = f"{book.title} (ID: {book.id})"
        try:
            ok = return_book(session, book, policy, now=now)
        except SQLAlchemyError:
            logger.exception("Failed to expire book: %s", label)
            continue
        if ok:
            logger.info("Expired book: %s", label)
            expired += 1
        else:
            logger.warning("Failed to expire book: %s", label)

    logger.info("Overdue sweep completed: %d books expired", expired)
    return expired
