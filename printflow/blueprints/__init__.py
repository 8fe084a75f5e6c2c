"""
HTTP blueprints for the engine operations.

Every blueprint registers the same exception → response mapping through
``register_error_handlers`` so services can raise and stay HTTP-agnostic:

    NotFoundError     404  ERR_NOT_FOUND
    ValidationError   422  ERR_VALIDATION_RULE
    IncompleteError   409  ERR_INCOMPLETE   (every failing id listed)
    IntegrityError    409  ERR_INTEGRITY    (offending form ids listed)
    PermissionDenied  403  ERR_FORBIDDEN
    SQLAlchemyError   500  ERR_DATABASE
    anything else     500  ERR_INTERNAL
"""

import logging

from flask import g, request
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException

from printflow.core.exceptions import (
    IncompleteError,
    IntegrityError,
    NotFoundError,
    PermissionDenied,
    ValidationError,
)
from printflow.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def register_error_handlers(bp):
    """Attach the engine's exception handlers to a blueprint."""

    @bp.errorhandler(NotFoundError)
    def _handle_not_found(error: NotFoundError):
        return api_error(E.NOT_FOUND, str(error))

    @bp.errorhandler(ValidationError)
    def _handle_validation(error: ValidationError):
        return api_error(E.VALIDATION_RULE, str(error), details=error.details)

    @bp.errorhandler(IncompleteError)
    def _handle_incomplete(error: IncompleteError):
        return api_error(
            E.INCOMPLETE, str(error),
            details={
                "failing_ids": error.failing_ids,
                "forms": {str(k): v for k, v in error.details.items()},
            },
        )

    @bp.errorhandler(IntegrityError)
    def _handle_integrity(error: IntegrityError):
        logger.warning("Dependency integrity error endpoint=%s: %s", request.endpoint, error)
        return api_error(E.INTEGRITY, str(error), details={"form_ids": error.form_ids})

    @bp.errorhandler(PermissionDenied)
    def _handle_forbidden(error: PermissionDenied):
        logger.warning(
            "Access denied: role=%s action=%s path=%s",
            error.role, error.action, request.path,
            extra={"role": error.role, "request_id": getattr(g, "request_id", None)},
        )
        return api_error(E.FORBIDDEN, str(error), details={"action": error.action})

    @bp.errorhandler(SQLAlchemyError)
    def _handle_db(error: SQLAlchemyError):
        logger.exception("Database error in %s endpoint=%s", bp.name, request.endpoint)
        return api_error(E.DATABASE, "Database error")

    @bp.errorhandler(Exception)
    def _handle_unexpected(error: Exception):
        if isinstance(error, HTTPException):
            return error
        logger.exception("Unexpected error in %s endpoint=%s", bp.name, request.endpoint)
        return api_error(E.INTERNAL, "Internal server error")
