from flask import jsonify
from werkzeug.exceptions import HTTPException
from marshmallow import ValidationError
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
import logging

from models import storage
from models.search import SearchParamError

logger = logging.getLogger(__name__)


def error_response(message: str, status: int):
    return jsonify({"error": message}), status


def register_error_handlers(app):
    # 400 Bad Request (generic)
    @app.errorhandler(400)
    def bad_request(e):
        message = getattr(e, "description", None) or "Bad request"
        return error_response(message, 400)

    # 404 Not Found
    @app.errorhandler(404)
    def not_found(e):
        return error_response("Record not found", 404)

    # 409 Conflict
    @app.errorhandler(409)
    def conflict(e):
        message = getattr(e, "description", None) or "Conflict"
        return error_response(message, 409)

    # 422 Unprocessable Entity (rejected lending transitions and the like)
    @app.errorhandler(422)
    def unprocessable(e):
        message = getattr(e, "description", None) or "Unprocessable entity"
        return error_response(message, 422)

    # Search, sort and pagination input
    @app.errorhandler(SearchParamError)
    def handle_search_param_error(err: SearchParamError):
        return error_response(err.message, 400)

    # Marshmallow validation errors map to 422 with field-level messages
    @app.errorhandler(ValidationError)
    def handle_validation_error(err: ValidationError):
        storage.rollback()
        messages = err.messages if isinstance(err.messages, dict) else {"base": err.messages}
        return jsonify(messages), 422

    # Integrity errors: unique (title, isbn, copy_number) races, FK violations
    @app.errorhandler(IntegrityError)
    def handle_integrity_error(err: IntegrityError):
        storage.rollback()
        message = str(getattr(err, "orig", err))
        logger.warning("Integrity error: %s", message)
        lower_msg = message.lower()
        if "unique" in lower_msg:
            return error_response("Conflicting copy was created concurrently; please retry.", 409)
        return error_response("Integrity error.", 400)

    @app.errorhandler(SQLAlchemyError)
    def handle_store_error(err: SQLAlchemyError):
        storage.rollback()
        logger.exception("Database error", exc_info=err)
        return error_response("An unexpected error occurred", 500)

    # Werkzeug HTTPExceptions map to their status codes
    @app.errorhandler(HTTPException)
    def handle_http_exception(err: HTTPException):
        return error_response(err.description or err.name, err.code or 400)

    # 500 Internal Error (catch-all)
    @app.errorhandler(Exception)
    def internal_error(err: Exception):
        logger.exception("Unhandled exception", exc_info=err)
        return error_response("An unexpected error occurred", 500)
