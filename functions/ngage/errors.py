"""
Typed error categories for the Ngage service.

Every failure surfaced to callers is an NgageError (or is categorized into
one) so the API, the callables and the retry helper can treat errors by
category rather than by concrete exception class.
"""

from __future__ import annotations

import logging
from enum import StrEnum
from typing import Any, Dict, List, Optional

import redis
import requests
from google.api_core import exceptions as google_exceptions

logger = logging.getLogger(__name__)


class ErrorType(StrEnum):
    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"
    VALIDATION = "validation"
    NETWORK = "network"
    STORAGE = "storage"
    DATABASE = "database"
    FILE = "file"
    INTEGRATION = "integration"
    RATE_LIMIT = "rate_limit"
    UNKNOWN = "unknown"


USER_MESSAGES: Dict[ErrorType, str] = {
    ErrorType.AUTHENTICATION: "Authentication failed. Please check your credentials and try again.",
    ErrorType.AUTHORIZATION: "You don't have permission to perform this action.",
    ErrorType.VALIDATION: "Please check your input and try again.",
    ErrorType.NETWORK: "Network connection failed. Please check your internet connection.",
    ErrorType.STORAGE: "File storage error. Please try again later.",
    ErrorType.DATABASE: "Database error. Please try again later.",
    ErrorType.FILE: "File operation failed. Please check the file and try again.",
    ErrorType.INTEGRATION: "External service integration failed. Please try again later.",
    ErrorType.RATE_LIMIT: "Too many requests. Please wait a moment and try again.",
    ErrorType.UNKNOWN: "An unexpected error occurred. Please try again later.",
}


class NgageError(Exception):
    """Base exception for Ngage."""

    error_type = ErrorType.UNKNOWN
    status_code = 500

    def __init__(
        self,
        message: str,
        user_message: Optional[str] = None,
        code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.user_message = user_message or USER_MESSAGES[self.error_type]
        self.code = code
        self.context = context or {}
        super().__init__(self.message)


class AuthenticationError(NgageError):
    error_type = ErrorType.AUTHENTICATION
    status_code = 401


class AuthorizationError(NgageError):
    error_type = ErrorType.AUTHORIZATION
    status_code = 403


class ValidationError(NgageError):
    error_type = ErrorType.VALIDATION
    status_code = 400

    def __init__(self, message: str, errors: Optional[List[str]] = None, **kwargs):
        self.errors = list(errors or [])
        kwargs.setdefault("user_message", message)
        super().__init__(message, **kwargs)


class NotFoundError(NgageError):
    """A referenced document does not exist."""

    error_type = ErrorType.VALIDATION
    status_code = 404

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("user_message", message)
        super().__init__(message, **kwargs)


class OperationError(NgageError):
    """The operation is not allowed in the record's current state."""

    error_type = ErrorType.VALIDATION
    status_code = 409

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("user_message", message)
        super().__init__(message, **kwargs)


class NetworkError(NgageError):
    error_type = ErrorType.NETWORK
    status_code = 503

    def __init__(self, message: str, http_status: Optional[int] = None, **kwargs):
        self.http_status = http_status
        super().__init__(message, **kwargs)


class StorageError(NgageError):
    error_type = ErrorType.STORAGE
    status_code = 502


class DatabaseError(NgageError):
    error_type = ErrorType.DATABASE
    status_code = 503


class FileError(NgageError):
    error_type = ErrorType.FILE
    status_code = 400


class IntegrationError(NgageError):
    error_type = ErrorType.INTEGRATION
    status_code = 502

    def __init__(self, message: str, service: Optional[str] = None, **kwargs):
        self.service = service
        super().__init__(message, **kwargs)


class RateLimitError(NgageError):
    error_type = ErrorType.RATE_LIMIT
    status_code = 429

    def __init__(self, message: str, retry_after: Optional[float] = None, **kwargs):
        self.retry_after = retry_after
        super().__init__(message, **kwargs)


def categorize_error(exc: BaseException) -> ErrorType:
    """Maps any exception onto one of the coarse error categories."""
    if isinstance(exc, NgageError):
        return exc.error_type
    if isinstance(exc, (google_exceptions.TooManyRequests, google_exceptions.ResourceExhausted)):
        return ErrorType.RATE_LIMIT
    if isinstance(
        exc, (google_exceptions.ServiceUnavailable, google_exceptions.DeadlineExceeded)
    ):
        return ErrorType.NETWORK
    if isinstance(exc, (google_exceptions.Unauthenticated,)):
        return ErrorType.AUTHENTICATION
    if isinstance(exc, (google_exceptions.PermissionDenied,)):
        return ErrorType.AUTHORIZATION
    if isinstance(exc, google_exceptions.GoogleAPICallError):
        return ErrorType.DATABASE
    if isinstance(exc, (requests.ConnectionError, requests.Timeout)):
        return ErrorType.NETWORK
    if isinstance(exc, (redis.ConnectionError, redis.TimeoutError, ConnectionError, TimeoutError)):
        return ErrorType.NETWORK
    if isinstance(exc, (FileNotFoundError, IsADirectoryError)):
        return ErrorType.FILE
    return ErrorType.UNKNOWN


def user_message_for(exc: BaseException) -> str:
    if isinstance(exc, NgageError):
        return exc.user_message
    return USER_MESSAGES[categorize_error(exc)]


def translate_google_error(exc: google_exceptions.GoogleAPICallError) -> NgageError:
    """Wraps a Firestore/Storage client error in the matching Ngage error."""
    category = categorize_error(exc)
    message = str(exc)
    if category == ErrorType.RATE_LIMIT:
        return RateLimitError(message)
    if category == ErrorType.NETWORK:
        return NetworkError(message, http_status=getattr(exc, "code", None))
    if category == ErrorType.AUTHENTICATION:
        return AuthenticationError(message)
    if category == ErrorType.AUTHORIZATION:
        return AuthorizationError(message)
    if isinstance(exc, google_exceptions.NotFound):
        return NotFoundError(message)
    return DatabaseError(message)


def handle_error(exc: BaseException, context: str = "") -> str:
    """Logs an error with its category and returns the user-facing message."""
    category = categorize_error(exc)
    if category in (ErrorType.VALIDATION, ErrorType.AUTHORIZATION):
        logger.warning("%s error%s: %s", category, f" in {context}" if context else "", exc)
    else:
        logger.error(
            "%s error%s: %s",
            category,
            f" in {context}" if context else "",
            exc,
            exc_info=exc,
        )
    return user_message_for(exc)
