from __future__ import annotations

import logging
from typing import Dict, List

from flask import Blueprint, request, jsonify, abort, current_app
from marshmallow import ValidationError

from models import storage
from models.author import Author
from models.book import Book, BookStatus
from models.identity import IdentityResolver, session_lookup
from models.lending import OPERATIONS
from models.paging import paginate, parse_page, parse_per_page, parse_sort
from models.schemas.book import BookCreateSchema, BookUpdateSchema, BookOutSchema
from models.search import FILTER_KEYS, build_search_query

logger = logging.getLogger(__name__)

bp = Blueprint("books", __name__)

# Schemas
book_create_schema = BookCreateSchema()
book_update_schema = BookUpdateSchema()
book_out_schema = BookOutSchema()
books_out_schema = BookOutSchema(many=True)

REJECTED_TRANSITIONS = {
    "reserve": "Book is not available for reservation",
    "borrow": "Book is not available for borrowing",
    "return": "Book is not borrowed or reserved",
    "cancel_reservation": "Book is not reserved",
}


def parse_filters() -> Dict[str, str]:
    """Collect filter[...] query parameters, keeping only recognized keys."""
    filters = {}
    for key, value in request.args.items():
        if key.startswith("filter[") and key.endswith("]"):
            name = key[len("filter["):-1]
            if name in FILTER_KEYS:
                filters[name] = value
    return filters


def page_response(query):
    page = parse_page(request.args.get("page"))
    per_page = parse_per_page(request.args.get("per_page"))
    order_by = parse_sort(request.args.get("sort"))
    rows, meta = paginate(query, page, per_page, order_by)
    return jsonify({"books": books_out_schema.dump(rows), "pagination": meta})


def load_authors(session, author_ids: List[str]) -> List[Author]:
    authors = session.query(Author).filter(Author.id.in_(author_ids)).all()
    if len(authors) != len(set(author_ids)):
        raise ValidationError("One or more authors not found", field_name="author_ids")
    return authors


def get_book_or_404(session, book_id: str) -> Book:
    b = session.get(Book, book_id)
    if not b:
        abort(404)
    return b


@bp.get("/books")
def list_books():
    """
    List all book copies with sorting and pagination
    ---
    tags:
      - Books
    parameters:
      - in: query
        name: page
        type: integer
        default: 1
      - in: query
        name: per_page
        type: integer
        default: 20
      - in: query
        name: sort
        type: string
        default: "title"
    responses:
      200:
        description: A page of books
    """
    session = storage.get_session()
    return page_response(session.query(Book))


@bp.get("/books/search")
def search_books():
    """
    Search the catalog
    ---
    tags:
      - Books
    parameters:
      - in: query
        name: "filter[q]"
        type: string
        description: "Substring of title, author name or isbn; surrounding quotes are ignored"
      - in: query
        name: "filter[title]"
        type: string
        description: "Comma-separated, up to 10 values, any may match"
      - in: query
        name: "filter[author]"
        type: string
        description: "Comma-separated, up to 10 values, any may match"
      - in: query
        name: "filter[isbn]"
        type: string
        description: "Comma-separated, up to 10 values, any may match"
      - in: query
        name: "filter[status]"
        type: string
        enum: [available, borrowed, reserved]
      - in: query
        name: "filter[borrowed_until]"
        type: string
        format: date
        description: "Copies with no due date or due on or before this date"
      - in: query
        name: sort
        type: string
        description: "Comma-separated; prefix '-' for desc. Allowed: title, author, isbn, published_date, status, borrowed_until, created_at, updated_at"
        default: "title"
      - in: query
        name: page
        type: integer
        default: 1
      - in: query
        name: per_page
        type: integer
        default: 20
    responses:
      200:
        description: Matching books and pagination metadata
      400:
        description: Missing or invalid search parameter
    """
    session = storage.get_session()
    query = build_search_query(session, parse_filters())
    return page_response(query)


@bp.post("/books")
def create_book():
    """
    Create a book copy
    ---
    tags:
      - Books
    consumes:
      - application/json
    parameters:
      - in: body
        name: body
        required: true
        schema:
          type: object
          required: [title, isbn, published_date, author_ids]
          properties:
            title: { type: string, maxLength: 255 }
            isbn: { type: string }
            published_date: { type: string, format: date }
            author_ids:
              type: array
              items: { type: string }
    responses:
      201:
        description: Created; copy_number is assigned within the work
      409:
        description: A concurrent creation took the same copy number; retry
      422:
        description: Validation error (e.g. isbn already taken by another book)
    """
    session = storage.get_session()
    payload = request.get_json(silent=True) or {}
    data = book_create_schema.load(payload)
    authors = load_authors(session, data["author_ids"])
    author_ids = [a.id for a in authors]

    # Identity check, copy number and insert share one transaction
    resolver = IdentityResolver(session_lookup(session, lock=True))
    resolver.check(data["title"], data["isbn"], author_ids)
    copy_number = resolver.assign_copy_number(data["title"], data["isbn"], author_ids)

    b = Book(
        title=data["title"],
        isbn=data["isbn"],
        published_date=data["published_date"],
        copy_number=copy_number,
        status=BookStatus.AVAILABLE,
    )
    b.authors = authors
    storage.new(b)
    storage.save()
    logger.info("Created book %s copy %d (%s)", b.title, b.copy_number, b.id)

    return jsonify({"data": book_out_schema.dump(b)}), 201


@bp.get("/books/<book_id>")
def get_book(book_id: str):
    """
    Get a single book copy by id
    ---
    tags:
      - Books
    parameters:
      - in: path
        name: book_id
        type: string
        required: true
    responses:
      200:
        description: Book found
      404:
        description: Not found
    """
    session = storage.get_session()
    b = get_book_or_404(session, book_id)
    return jsonify({"data": book_out_schema.dump(b)})


@bp.patch("/books/<book_id>")
def update_book(book_id: str):
    """
    Update a book copy (partial). The copy number never changes.
    ---
    tags:
      - Books
    consumes:
      - application/json
    parameters:
      - in: path
        name: book_id
        type: string
        required: true
      - in: body
        name: body
        required: true
        schema:
          type: object
          properties:
            title: { type: string }
            isbn: { type: string }
            published_date: { type: string, format: date }
            author_ids:
              type: array
              items: { type: string }
    responses:
      200:
        description: Updated
      404:
        description: Not found
      409:
        description: A concurrent change took the same copy number; retry
      422:
        description: Validation error
    """
    session = storage.get_session()
    b = get_book_or_404(session, book_id)

    payload = request.get_json(silent=True) or {}
    data = book_update_schema.load(payload)

    authors = load_authors(session, data["author_ids"]) if "author_ids" in data else list(b.authors)

    if data.keys() & {"title", "isbn", "author_ids"}:
        title, isbn = data.get("title", b.title), data.get("isbn", b.isbn)
        resolver = IdentityResolver(session_lookup(session))
        resolver.check(title, isbn, [a.id for a in authors], excluding_id=b.id)
        # Edits keep the copy number, so it may collide inside the target work
        resolver.check_copy_number(title, isbn, b.copy_number, excluding_id=b.id)

    for field in ["title", "isbn", "published_date"]:
        if field in data:
            setattr(b, field, data[field])
    if "author_ids" in data:
        b.authors = authors

    storage.new(b)
    storage.save()
    return jsonify({"data": book_out_schema.dump(b)})


@bp.delete("/books/<book_id>")
def delete_book(book_id: str):
    """
    Delete a book copy
    ---
    tags:
      - Books
    parameters:
      - in: path
        name: book_id
        type: string
        required: true
    responses:
      204:
        description: Deleted
      404:
        description: Not found
    """
    session = storage.get_session()
    b = get_book_or_404(session, book_id)
    storage.delete(b)
    storage.save()
    return ("", 204)


@bp.post("/books/<book_id>/<operation>")
def change_lending_state(book_id: str, operation: str):
    """
    Reserve, borrow, return, or cancel the reservation of a copy
    ---
    tags:
      - Lending
    parameters:
      - in: path
        name: book_id
        type: string
        required: true
      - in: path
        name: operation
        type: string
        required: true
        enum: [reserve, borrow, return, cancel_reservation]
    responses:
      200:
        description: Transition applied; the updated book is returned
      404:
        description: Unknown book or operation
      422:
        description: The copy is not in a state that allows this operation
    """
    op = OPERATIONS.get(operation)
    if op is None:
        abort(404)
    session = storage.get_session()
    b = get_book_or_404(session, book_id)

    if not op(session, b, current_app.extensions["lending_policy"]):
        abort(422, description=REJECTED_TRANSITIONS[operation])
    return jsonify({"data": book_out_schema.dump(b)})
