"""
shared/utils/errors.py
Service exceptions. Routes raise these; main.py turns them into JSON responses.
"""

from typing import Any, Optional


class ServiceError(Exception):
    status_code = 500

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        body = {"detail": self.message}
        if self.details is not None:
            body["details"] = self.details
        return body


class ValidationError(ServiceError):
    """Missing or malformed request fields."""
    status_code = 400


class NotFoundError(ServiceError):
    status_code = 404


class DataStoreError(ServiceError):
    """The database rejected a read or write on the request path."""
    status_code = 500


class DeliveryError(Exception):
    """An outbound channel is misconfigured or its provider call failed."""
