import logging
from typing import Any, Optional

from flask import jsonify
from werkzeug.exceptions import HTTPException

logger = logging.getLogger(__name__)


class AppError(Exception):
    """Error that maps directly onto an HTTP response"""

    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None, details: Any = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.details = details

    def to_dict(self) -> dict:
        data = {"message": self.message}
        if self.details is not None:
            data["details"] = self.details
        return data


class ValidationError(AppError):
    status_code = 400


class ConflictError(ValidationError):
    status_code = 409


class AuthError(AppError):
    status_code = 401


class OwnershipError(AppError):
    status_code = 403


class NotFoundError(AppError):
    status_code = 404


class UpstreamError(AppError):
    """The metadata provider was unreachable or rejected the request"""

    status_code = 502

    @classmethod
    def from_status(cls, upstream_status: Optional[int], message: str) -> "UpstreamError":
        if upstream_status is None:
            return cls(message, 504)
        if upstream_status in (401, 403):
            return cls(message, 401)
        if upstream_status == 404:
            return cls(message, 404)
        if upstream_status >= 500:
            return cls(message, 502)
        return cls(message, 500)


class InternalError(AppError):
    status_code = 500


def from_schema_error(error) -> ValidationError:
    """Translate a pydantic ValidationError into a 400"""
    details = [
        {"field": ".".join(str(part) for part in err["loc"]), "message": err["msg"]}
        for err in error.errors()
    ]
    message = details[0]["message"] if details else "Invalid request"
    return ValidationError(message, details=details)


def register_error_handlers(app):
    @app.errorhandler(AppError)
    def handle_app_error(error):
        if error.status_code >= 500:
            logger.error(f"{error.__class__.__name__}: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(Exception)
    def handle_unexpected_error(error):
        if isinstance(error, HTTPException):
            return jsonify({"message": error.description}), error.code

        logger.exception("Unhandled error while processing request")
        return (
            jsonify(
                {
                    "message": "Internal server error",
                    "details": error.__class__.__name__,
                }
            ),
            500,
        )
