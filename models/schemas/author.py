from marshmallow import Schema, fields, validate

from models.schemas.common import not_blank


class AuthorCreateSchema(Schema):
    name = fields.String(required=True, validate=[not_blank, validate.Length(max=128)])


class AuthorUpdateSchema(Schema):
    name = fields.String(validate=[not_blank, validate.Length(max=128)])


class AuthorOutSchema(Schema):
    id = fields.String()
    name = fields.String()
    created_at = fields.DateTime()
    updated_at = fields.DateTime()
