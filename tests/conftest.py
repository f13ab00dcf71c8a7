# tests/conftest.py
import itertools
from datetime import date

import pytest

from api import create_app
from models import storage
from models.author import Author
from models.book import Book, BookStatus


@pytest.fixture
def app():
    """Fresh app bound to its own in-memory database."""
    app = create_app("testing")
    yield app
    storage.close()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def session(app):
    """The same scoped session the API uses."""
    return storage.get_session()


@pytest.fixture
def make_author(session):
    """Create and commit an author."""
    counter = itertools.count(1)

    def _make(name=None):
        author = Author(name=name or f"Test Author {next(counter)}")
        session.add(author)
        session.commit()
        return author

    return _make


@pytest.fixture
def make_book(session, make_author):
    """Create and commit a copy directly, bypassing the API."""
    counter = itertools.count(1)

    def _make(
        title=None,
        isbn=None,
        authors=None,
        copy_number=1,
        status=BookStatus.AVAILABLE,
        borrowed_until=None,
        published_date=date(2000, 1, 1),
    ):
        n = next(counter)
        book = Book(
            title=title or f"Test Book {n}",
            isbn=isbn or f"978000000{n:04d}",
            copy_number=copy_number,
            status=status,
            borrowed_until=borrowed_until,
            published_date=published_date,
        )
        book.authors = authors if authors is not None else [make_author()]
        session.add(book)
        session.commit()
        return book

    return _make


def book_payload(title, isbn, authors, published_date="2001-02-03"):
    return {
        "title": title,
        "isbn": isbn,
        "published_date": published_date,
        "author_ids": [a.id for a in authors],
    }
