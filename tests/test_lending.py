# tests/test_lending.py
from datetime import datetime, timedelta

import pytest

from models.book import BookStatus
from models.lending import (
    LendingPolicy,
    borrow,
    cancel_reservation,
    reserve,
    return_book,
)

NOW = datetime(2025, 3, 1, 12, 0, 0)


def assert_consistent(book):
    assert (book.status == BookStatus.AVAILABLE) == (book.borrowed_until is None)


def test_reserve_available_copy(session, make_book):
    book = make_book()
    assert reserve(session, book, now=NOW) is True
    assert book.status == BookStatus.RESERVED
    assert book.borrowed_until == NOW + timedelta(days=1)
    assert_consistent(book)


def test_borrow_available_copy(session, make_book):
    book = make_book()
    assert borrow(session, book, now=NOW) is True
    assert book.status == BookStatus.BORROWED
    assert book.borrowed_until == NOW + timedelta(weeks=1)
    assert_consistent(book)


def test_reserve_then_borrow_is_rejected(session, make_book):
    book = make_book()
    assert reserve(session, book, now=NOW) is True
    assert borrow(session, book, now=NOW) is False
    assert book.status == BookStatus.RESERVED
    assert book.borrowed_until == NOW + timedelta(days=1)


def test_borrowed_copy_cannot_be_reserved(session, make_book):
    book = make_book()
    borrow(session, book, now=NOW)
    assert reserve(session, book, now=NOW) is False
    assert book.status == BookStatus.BORROWED


@pytest.mark.parametrize("start", [BookStatus.BORROWED, BookStatus.RESERVED])
def test_return_clears_due_date(session, make_book, start):
    book = make_book(status=start, borrowed_until=NOW)
    assert return_book(session, book) is True
    assert book.status == BookStatus.AVAILABLE
    assert book.borrowed_until is None


def test_return_available_copy_is_rejected(session, make_book):
    book = make_book()
    before = book.updated_at
    assert return_book(session, book) is False
    assert book.status == BookStatus.AVAILABLE
    assert book.updated_at == before


def test_cancel_reservation(session, make_book):
    book = make_book()
    reserve(session, book, now=NOW)
    assert cancel_reservation(session, book) is True
    assert book.status == BookStatus.AVAILABLE
    assert book.borrowed_until is None


def test_cancel_reservation_requires_reserved(session, make_book):
    book = make_book()
    borrow(session, book, now=NOW)
    assert cancel_reservation(session, book) is False
    assert book.status == BookStatus.BORROWED
    assert book.borrowed_until == NOW + timedelta(weeks=1)


def test_custom_policy(session, make_book):
    policy = LendingPolicy(reservation_period=timedelta(hours=2), loan_period=timedelta(days=21))
    reserved, borrowed = make_book(), make_book()
    reserve(session, reserved, policy, now=NOW)
    borrow(session, borrowed, policy, now=NOW)
    assert reserved.borrowed_until == NOW + timedelta(hours=2)
    assert borrowed.borrowed_until == NOW + timedelta(days=21)


def test_policy_from_config():
    policy = LendingPolicy.from_config({"RESERVATION_PERIOD_HOURS": 48, "LOAN_PERIOD_DAYS": 14})
    assert policy.reservation_period == timedelta(days=2)
    assert policy.loan_period == timedelta(days=14)


def test_state_is_persisted(session, make_book):
    book = make_book()
    borrow(session, book, now=NOW)
    session.expire_all()
    stored = session.get(type(book), book.id)
    assert stored.status == BookStatus.BORROWED
    assert stored.borrowed_until == NOW + timedelta(weeks=1)



def test_explicit_none_policy_uses_defaults(session, make_book):
    book = make_book()
    assert borrow(session, book, None, now=NOW) is True
    assert book.borrowed_until == NOW + timedelta(weeks=1)
