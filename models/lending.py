"""
Lending state machine for a single copy.

    available --reserve--> reserved --return / cancel_reservation--> available
    available --borrow---> borrowed --return--------------------> available

Every transition is one conditional UPDATE guarded by the allowed source
states, so ``status`` and ``borrowed_until`` always change together and two
racing callers cannot both win. A rejected transition returns False and
leaves the row alone.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Tuple

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError

from models.base_model import utcnow
from models.book import Book, BookStatus

logger = logging.getLogger(__name__)

DEFAULT_RESERVATION_PERIOD = timedelta(days=1)
DEFAULT_LOAN_PERIOD = timedelta(weeks=1)


@dataclass(frozen=True)
class LendingPolicy:
    reservation_period: timedelta = DEFAULT_RESERVATION_PERIOD
    loan_period: timedelta = DEFAULT_LOAN_PERIOD

    @classmethod
    def from_config(cls, config) -> "LendingPolicy":
        return cls(
            reservation_period=timedelta(hours=int(config.get("RESERVATION_PERIOD_HOURS", 24))),
            loan_period=timedelta(days=int(config.get("LOAN_PERIOD_DAYS", 7))),
        )


DEFAULT_POLICY = LendingPolicy()


def _transition(
    session,
    book: Book,
    allowed_from: Tuple[BookStatus, ...],
    to_status: BookStatus,
    borrowed_until: Optional[datetime],
    now: datetime,
) -> bool:
    stmt = (
        update(Book)
        .where(Book.id == book.id, Book.status.in_(allowed_from))
        .values(status=to_status, borrowed_until=borrowed_until, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    try:
        changed = session.execute(stmt).rowcount == 1
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        raise
    # Pull the row back so the caller's object matches what was stored
    session.refresh(book)
    if not changed:
        logger.debug(
            "Rejected %s -> %s for book %s (status is %s)",
            "/".join(s.value for s in allowed_from), to_status.value, book.id, book.status.value,
        )
    return changed


def reserve(session, book: Book, policy: Optional[LendingPolicy] = None, now: Optional[datetime] = None) -> bool:
    now = now or utcnow()
    policy = policy or DEFAULT_POLICY
    return _transition(
        session, book, (BookStatus.AVAILABLE,), BookStatus.RESERVED, now + policy.reservation_period, now
    )


def borrow(session, book: Book, policy: Optional[LendingPolicy] = None, now: Optional[datetime] = None) -> bool:
    now = now or utcnow()
    policy = policy or DEFAULT_POLICY
    return _transition(
        session, book, (BookStatus.AVAILABLE,), BookStatus.BORROWED, now + policy.loan_period, now
    )


def return_book(session, book: Book, policy: Optional[LendingPolicy] = None, now: Optional[datetime] = None) -> bool:
    return _transition(
        session, book, (BookStatus.BORROWED, BookStatus.RESERVED), BookStatus.AVAILABLE, None, now or utcnow()
    )


def cancel_reservation(
    session, book: Book, policy: Optional[LendingPolicy] = None, now: Optional[datetime] = None
) -> bool:
    return _transition(session, book, (BookStatus.RESERVED,), BookStatus.AVAILABLE, None, now or utcnow())


# Route name -> operation, used by the HTTP layer
OPERATIONS = {
    "reserve": reserve,
    "borrow": borrow,
    "return": return_book,
    "cancel_reservation": cancel_reservation,
}
