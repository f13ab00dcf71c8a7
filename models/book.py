from enum import Enum

from sqlalchemy import (
    Column,
    String,
    Integer,
    ForeignKey,
    Table,
    Date,
    DateTime,
    CheckConstraint,
    Index,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.types import Enum as SAEnum

from models.base_model import BaseModel, Base


class BookStatus(str, Enum):
    AVAILABLE = "available"
    BORROWED = "borrowed"
    RESERVED = "reserved"


# Association table; neither side owns the other. CASCADE on both FKs so join
# rows go away with whichever endpoint is deleted.
book_authors = Table(
    "book_authors",
    Base.metadata,
    Column("book_id", String(36), ForeignKey("books.id", ondelete="CASCADE"), primary_key=True),
    Column("author_id", String(36), ForeignKey("authors.id", ondelete="CASCADE"), primary_key=True),
)


class Book(BaseModel, Base):
    """One physical copy of a work (title + isbn + author set)."""

    __tablename__ = "books"

    title = Column(String(255), nullable=False)
    # Shared by every copy of the same work, so not unique on its own
    isbn = Column(String(32), nullable=False, index=True)
    copy_number = Column(Integer, nullable=False, default=1)
    published_date = Column(Date, nullable=False)
    status = Column(
        SAEnum(
            BookStatus,
            name="book_status",
            native_enum=False,
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=False,
        default=BookStatus.AVAILABLE,
    )
    borrowed_until = Column(DateTime, nullable=True)

    authors = relationship("Author", secondary=book_authors, back_populates="books")

    __table_args__ = (
        UniqueConstraint("title", "isbn", "copy_number", name="uq_books_title_isbn_copy"),
        CheckConstraint("copy_number >= 1", name="ck_books_copy_number_positive"),
        Index("ix_books_title", "title"),
        Index("ix_books_status_due", "status", "borrowed_until"),
    )

    @property
    def author_ids(self) -> list:
        return sorted(a.id for a in self.authors)

    def is_available(self) -> bool:
        return self.status == BookStatus.AVAILABLE
