from __future__ import annotations

from flask import Blueprint, request, jsonify, abort
from sqlalchemy import func

from models import storage
from models.author import Author
from models.paging import page_meta, parse_page, parse_per_page
from models.schemas.author import (
    AuthorCreateSchema,
    AuthorUpdateSchema,
    AuthorOutSchema,
)
from models.search import SearchParamError

bp = Blueprint("authors", __name__)

create_schema = AuthorCreateSchema()
update_schema = AuthorUpdateSchema()
out_schema = AuthorOutSchema()
out_list_schema = AuthorOutSchema(many=True)


def parse_sort(default="name"):
    sort = request.args.get("sort") or default
    desc = sort.startswith("-")
    key = sort[1:] if desc else sort
    if key != "name":
        raise SearchParamError(f"Invalid sort field: {key}. Valid fields are: name")
    return (Author.name.desc() if desc else Author.name.asc(),)


def get_author_or_404(session, author_id: str) -> Author:
    a = session.get(Author, author_id)
    if not a:
        abort(404)
    return a


@bp.post("/authors")
def create_author():
    """
    Create an author
    ---
    tags: [Authors]
    consumes:
      - application/json
    parameters:
      - in: body
        name: body
        required: true
        schema:
          type: object
          properties:
            name: { type: string, maxLength: 128 }
    responses:
      201: { description: Created }
      422: { description: Validation error }
    """
    data = create_schema.load(request.get_json(silent=True) or {})
    # No uniqueness on Author (names can collide)
    a = Author(name=data["name"].strip())
    storage.new(a)
    storage.save()
    return jsonify({"data": out_schema.dump(a)}), 201


@bp.get("/authors")
def list_authors():
    """
    List authors (supports pagination, sorting, q search)
    ---
    tags: [Authors]
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
        default: name
        description: "Allowed: name or -name"
      - in: query
        name: q
        type: string
    responses:
      200: { description: OK }
    """
    session = storage.get_session()
    page = parse_page(request.args.get("page"))
    per_page = parse_per_page(request.args.get("per_page"))
    order_by = parse_sort()

    query = session.query(Author)
    q = request.args.get("q")
    if q and q.strip():
        qnorm = f"%{q.strip().lower()}%"
        query = query.filter(func.lower(Author.name).like(qnorm))

    total = query.count()
    rows = query.order_by(*order_by).offset((page - 1) * per_page).limit(per_page).all()
    return jsonify({"authors": out_list_schema.dump(rows), "pagination": page_meta(total, page, per_page)})


@bp.get("/authors/<author_id>")
def get_author(author_id: str):
    """
    Get an author by id
    ---
    tags: [Authors]
    parameters:
      - in: path
        name: author_id
        type: string
        required: true
    responses:
      200: { description: OK }
      404: { description: Not found }
    """
    session = storage.get_session()
    a = get_author_or_404(session, author_id)
    return jsonify({"data": out_schema.dump(a)})


@bp.patch("/authors/<author_id>")
def update_author(author_id: str):
    """
    Update an author (partial)
    ---
    tags: [Authors]
    parameters:
      - in: path
        name: author_id
        type: string
        required: true
      - in: body
        name: body
        required: true
        schema:
          type: object
          properties:
            name: { type: string, maxLength: 128 }
    responses:
      200: { description: OK }
      404: { description: Not found }
      422: { description: Validation error }
    """
    session = storage.get_session()
    a = get_author_or_404(session, author_id)
    data = update_schema.load(request.get_json(silent=True) or {})
    if "name" in data:
        a.name = data["name"].strip()
    storage.new(a)
    storage.save()
    return jsonify({"data": out_schema.dump(a)})


@bp.delete("/authors/<author_id>")
def delete_author(author_id: str):
    """
    Delete an author. Refused while any copy would be left without authors.
    ---
    tags: [Authors]
    parameters:
      - in: path
        name: author_id
        type: string
        required: true
    responses:
      204: { description: Deleted }
      404: { description: Not found }
      409: { description: Author is the only author of at least one copy }
    """
    session = storage.get_session()
    a = get_author_or_404(session, author_id)
    if any(len(book.authors) == 1 for book in a.books):
        abort(409, description="Cannot delete the only author of a book.")
    storage.delete(a)
    storage.save()
    return ("", 204)
