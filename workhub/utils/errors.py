"""Standardised API error responses.

Usage
-----
    from workhub.utils.errors import api_error, E

    return api_error(E.NOT_FOUND, "Task not found")
    return api_error(E.VALIDATION_REQUIRED, "title is required")
"""

from __future__ import annotations

import logging

from flask import jsonify
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException

from workhub.core.exceptions import (
    AlreadyConsumedError,
    ConflictError,
    ExpiredError,
    ForbiddenError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from workhub.models import db

logger = logging.getLogger(__name__)


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants (``ERR_`` prefix)."""

    # Validation – HTTP 400
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"

    # Auth – HTTP 401 / 403
    UNAUTHORIZED = "ERR_UNAUTHORIZED"
    FORBIDDEN = "ERR_FORBIDDEN"

    # Not-found – HTTP 404
    NOT_FOUND = "ERR_NOT_FOUND"

    # Conflict – HTTP 409
    CONFLICT_DUPLICATE = "ERR_CONFLICT_DUPLICATE"
    CONFLICT_STATE = "ERR_CONFLICT_STATE"
    ALREADY_CONSUMED = "ERR_ALREADY_CONSUMED"

    # Gone – HTTP 410
    EXPIRED = "ERR_EXPIRED"

    # Server – HTTP 500
    INTERNAL = "ERR_INTERNAL"


# ── Default HTTP status mapping ───────────────────────────────────────
_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.UNAUTHORIZED: 401,
    E.FORBIDDEN: 403,
    E.NOT_FOUND: 404,
    E.CONFLICT_DUPLICATE: 409,
    E.CONFLICT_STATE: 409,
    E.ALREADY_CONSUMED: 409,
    E.EXPIRED: 410,
    E.INTERNAL: 500,
}


def api_error(
    code: str,
    message: str,
    *,
    status: int | None = None,
    details: dict | None = None,
):
    """Return a standard JSON error response.

    Parameters
    ----------
    code : str
        Machine-readable error code (use ``E.*`` constants).
    message : str
        Human-readable explanation.
    status : int, optional
        HTTP status override. Falls back to ``_DEFAULT_STATUS[code]``,
        then to ``400``.
    details : dict, optional
        Extra structured payload (field errors etc.).

    Returns
    -------
    tuple[Response, int]
        ``(jsonify(body), http_status)``, a drop-in for Flask views.
    """

    http_status = status or _DEFAULT_STATUS.get(code, 400)

    body: dict = {
        "error": message,
        "code": code,
    }
    if details:
        body["details"] = details

    return jsonify(body), http_status


def register_error_handlers(app):
    """Map the service exception taxonomy to HTTP responses app-wide."""

    @app.errorhandler(UnauthorizedError)
    def _handle_unauthorized(error):
        db.session.rollback()
        return api_error(E.UNAUTHORIZED, str(error))

    @app.errorhandler(ForbiddenError)
    def _handle_forbidden(error):
        db.session.rollback()
        logger.info("Forbidden: %s capability=%s", error, error.capability)
        return api_error(E.FORBIDDEN, str(error))

    @app.errorhandler(NotFoundError)
    def _handle_not_found(error):
        db.session.rollback()
        return api_error(E.NOT_FOUND, f"{error.resource} not found")

    @app.errorhandler(ValidationError)
    def _handle_validation(error):
        db.session.rollback()
        return api_error(E.VALIDATION_INVALID, str(error), details=error.details)

    @app.errorhandler(ConflictError)
    def _handle_conflict(error):
        db.session.rollback()
        if isinstance(error, AlreadyConsumedError):
            return api_error(E.ALREADY_CONSUMED, str(error))
        return api_error(error.code, str(error))

    @app.errorhandler(ExpiredError)
    def _handle_expired(error):
        db.session.rollback()
        return api_error(E.EXPIRED, str(error))

    @app.errorhandler(SQLAlchemyError)
    def _handle_db_error(error):
        db.session.rollback()
        logger.exception("Database error")
        return api_error(E.INTERNAL, "Internal server error")

    @app.errorhandler(HTTPException)
    def _handle_http(error):
        return jsonify({"error": error.description or error.name}), error.code

    @app.errorhandler(Exception)
    def _handle_unexpected(error):
        db.session.rollback()
        logger.exception("Unexpected error: %s", error)
        return api_error(E.INTERNAL, "Internal server error")
