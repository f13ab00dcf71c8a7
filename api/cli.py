"""Flask CLI commands: `flask expire-overdue` for the daily scheduler, `flask seed` for demo data."""
from datetime import date

import click
from flask import current_app

from models import storage
from models.author import Author
from models.book import Book
from models.expiration import expire_overdue_books
from models.identity import IdentityResolver, session_lookup

# (title, isbn, published, authors, copies)
SEED_BOOKS = [
    ("The Great Gatsby", "9780743273565", date(1925, 4, 10), ["F. Scott Fitzgerald"], 2),
    ("Great Expectations", "9780141439563", date(1861, 8, 1), ["Charles Dickens"], 1),
    ("Harry Potter and the Philosopher's Stone", "9780747532699", date(1997, 6, 26), ["J.K. Rowling"], 3),
    ("Harry Potter and the Chamber of Secrets", "9780747538493", date(1998, 7, 2), ["J.K. Rowling"], 1),
    ("The Shining", "9780307743657", date(1977, 1, 28), ["Stephen King"], 1),
    ("It", "9781501142970", date(1986, 9, 15), ["Stephen King"], 2),
    ("Murder on the Orient Express", "9780062693662", date(1934, 1, 1), ["Agatha Christie"], 1),
    ("Nineteen Eighty-Four", "9780451524935", date(1949, 6, 8), ["George Orwell"], 2),
    ("Pride and Prejudice", "9780141439518", date(1813, 1, 28), ["Jane Austen"], 1),
    ("Good Omens", "9780060853983", date(1990, 5, 1), ["Terry Pratchett", "Neil Gaiman"], 1),
]


def seed_catalog(session) -> int:
    """Insert the demo catalog, reusing authors by name. Returns copies created."""
    authors = {a.name: a for a in session.query(Author).all()}
    resolver = IdentityResolver(session_lookup(session))
    created = 0
    for title, isbn, published, names, copies in SEED_BOOKS:
        for name in names:
            if name not in authors:
                authors[name] = Author(name=name)
                session.add(authors[name])
        session.flush()
        work_authors = [authors[n] for n in names]
        ids = [a.id for a in work_authors]
        for _ in range(copies):
            resolver.check(title, isbn, ids)
            book = Book(
                title=title,
                isbn=isbn,
                published_date=published,
                copy_number=resolver.assign_copy_number(title, isbn, ids),
            )
            book.authors = work_authors
            session.add(book)
            session.flush()
            created += 1
    return created


def register_commands(app):
    @app.cli.command("expire-overdue")
    def expire_overdue():
        """Return every borrowed or reserved copy whose due date has passed."""
        count = expire_overdue_books(
            storage.get_session(), policy=current_app.extensions["lending_policy"]
        )
        click.echo(f"{count} books expired")

    @app.cli.command("seed")
    def seed():
        """Load a small demo catalog."""
        with storage.transaction() as session:
            created = seed_catalog(session)
        click.echo(f"Seeded {created} book copies")
