from marshmallow import Schema, fields, validate, validates, ValidationError, post_load

from models.schemas.author import AuthorOutSchema
from models.schemas.common import not_blank, normalize_isbn, dedupe_ids


class BookCreateSchema(Schema):
    # status, borrowed_until and copy_number are not accepted here: the first
    # two only move through the lending endpoints, the last is assigned
    title = fields.String(required=True, validate=[not_blank, validate.Length(max=255)])
    isbn = fields.String(required=True, validate=not_blank)
    published_date = fields.Date(required=True)
    author_ids = fields.List(fields.String(), required=True, load_only=True)

    @validates("author_ids")
    def _validate_author_ids(self, value, **kwargs):
        if not value:
            raise ValidationError("must have at least one author")

    @post_load
    def _normalize(self, data, **kwargs):
        if "title" in data:
            data["title"] = data["title"].strip()
        if "isbn" in data:
            data["isbn"] = normalize_isbn(data["isbn"])
        if "author_ids" in data:
            data["author_ids"] = dedupe_ids(data["author_ids"])
        return data


class BookUpdateSchema(BookCreateSchema):
    # All optional, but validate if present
    title = fields.String(validate=[not_blank, validate.Length(max=255)])
    isbn = fields.String(validate=not_blank)
    published_date = fields.Date()
    author_ids = fields.List(fields.String(), load_only=True)


class BookOutSchema(Schema):
    id = fields.String()
    title = fields.String()
    isbn = fields.String()
    copy_number = fields.Integer()
    published_date = fields.Date()
    status = fields.Method("get_status")
    borrowed_until = fields.DateTime(allow_none=True)
    authors = fields.Method("get_authors")
    created_at = fields.DateTime()
    updated_at = fields.DateTime()

    def get_status(self, obj):
        return obj.status.value if obj.status is not None else None

    def get_authors(self, obj):
        authors = sorted(obj.authors, key=lambda a: a.name)
        return AuthorOutSchema(only=("id", "name"), many=True).dump(authors)
