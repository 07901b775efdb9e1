"""
Application error taxonomy shared by both services.

Each error carries the HTTP status it maps to; common.api turns them into
JSON responses. Broker and store failures are not wrapped: they propagate
as whatever the client library raised.
"""

from __future__ import annotations


class AppError(Exception):
    """Base for expected, user-facing failures."""

    status_code = 500

    def __init__(self, message: str = "internal error") -> None:
        super().__init__(message)
        self.message = message


class ValidationError(AppError):
    """Input has the wrong shape or violates a business rule."""

    status_code = 400


class AuthorizeError(AppError):
    """Credential missing or rejected by the auth service."""

    status_code = 403


class NotFoundError(AppError):
    status_code = 404


class APIError(AppError):
    """A downstream service call failed."""

    status_code = 500
