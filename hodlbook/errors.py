"""Errors raised by the API layer."""

from __future__ import annotations

from http import HTTPStatus
from typing import Any


class APIError(Exception):
    """An error that becomes an HTTP response with a JSON body."""

    def __init__(self, status: int, message: str, details: str = "") -> None:
        super().__init__(message)
        self.status = status
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ConfigurationError(ValueError):
    """A component was built without something it needs."""


def bad_request(message: str, details: str = "") -> APIError:
    return APIError(HTTPStatus.BAD_REQUEST, message, details)


def not_found(message: str) -> APIError:
    return APIError(HTTPStatus.NOT_FOUND, message)


def internal_error(message: str) -> APIError:
    return APIError(HTTPStatus.INTERNAL_SERVER_ERROR, message)


def service_unavailable(message: str) -> APIError:
    return APIError(HTTPStatus.SERVICE_UNAVAILABLE, message)