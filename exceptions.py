#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Custom exception classes and error handling utilities for the YouTube Lens backend.

Every failure surfaced to the browser client ends up in the uniform
``{success, data, message}`` envelope. The exceptions here carry the HTTP
status that envelope is sent with.
"""

from typing import Any, Optional

from fastapi import HTTPException, status
from pydantic import ValidationError

from models import ApiResponse


# --- Base Exception Classes ---

class AppBaseError(Exception):
    """Base class for all application-specific exceptions.

    Attributes:
        message: Human-readable error message
        error_code: Machine-readable error code
        http_status_code: HTTP status code to use in API responses
    """

    def __init__(self, message: str, error_code: Optional[str] = None,
                 http_status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR):
        """Initialize the exception.

        Args:
            message: Human-readable error message
            error_code: Machine-readable error code
            http_status_code: HTTP status code to use in API responses
        """
        self.message = message
        self.error_code = error_code or self.__class__.__name__.upper()
        self.http_status_code = http_status_code
        super().__init__(message)

    def to_envelope(self, data: Any = None) -> dict:
        """Render this error as the client-facing response envelope.

        Args:
            data: Payload to echo back (e.g. the unfiltered results)

        Returns:
            dict: ``{"success": False, "data": ..., "message": ...}``
        """
        return ApiResponse(success=False, data=data, message=self.message).model_dump()


# --- Client Input Errors ---

class InvalidInputError(AppBaseError):
    """Raised when the client input is missing or malformed."""

    def __init__(self, message: str = "Invalid input"):
        super().__init__(
            message=message,
            error_code="INVALID_INPUT",
            http_status_code=status.HTTP_400_BAD_REQUEST
        )


class NoApiKeysError(AppBaseError):
    """Raised when a request needs YouTube access but carries no API key."""

    def __init__(self, message: str = "At least one YouTube API key is required."):
        super().__init__(
            message=message,
            error_code="NO_API_KEYS",
            http_status_code=status.HTTP_400_BAD_REQUEST
        )


class AuthenticationError(AppBaseError):
    """Raised when admin credentials do not match."""

    def __init__(self, message: str = "Invalid admin credentials."):
        super().__init__(
            message=message,
            error_code="AUTHENTICATION_FAILED",
            http_status_code=status.HTTP_401_UNAUTHORIZED
        )


# --- Upstream Errors ---

class KeysExhaustedError(AppBaseError):
    """Raised when every key in the pool hit a quota or auth failure."""

    def __init__(self, message: str = "All API keys are exhausted. Please add a new API key."):
        super().__init__(
            message=message,
            error_code="KEYS_EXHAUSTED",
            http_status_code=status.HTTP_500_INTERNAL_SERVER_ERROR
        )


class UpstreamAPIError(AppBaseError):
    """Raised when the YouTube API answers with a non-retryable error status.

    Attributes:
        upstream_status: The HTTP status YouTube answered with
    """

    def __init__(self, message: str = "YouTube API request failed.", upstream_status: Optional[int] = None):
        super().__init__(
            message=message,
            error_code="UPSTREAM_API_ERROR",
            http_status_code=status.HTTP_500_INTERNAL_SERVER_ERROR
        )
        self.upstream_status = upstream_status


class UpstreamTransportError(AppBaseError):
    """Raised when the YouTube API could not be reached or answered garbage."""

    def __init__(self, message: str = "Could not reach the YouTube API."):
        super().__init__(
            message=message,
            error_code="UPSTREAM_TRANSPORT_ERROR",
            http_status_code=status.HTTP_500_INTERNAL_SERVER_ERROR
        )


class VideoUrlError(AppBaseError):
    """Raised when an analyze URL holds no recognizable video id.

    Reported as a processing failure (500), matching how the client has
    always treated a rejected analyze request.
    """

    def __init__(self, message: str = "Please enter a valid YouTube video URL."):
        super().__init__(
            message=message,
            error_code="INVALID_VIDEO_URL",
            http_status_code=status.HTTP_500_INTERNAL_SERVER_ERROR
        )


class TranslationError(AppBaseError):
    """Raised when no translation provider produced a result."""

    def __init__(self, message: str = "Translation failed with every provider."):
        super().__init__(
            message=message,
            error_code="TRANSLATION_FAILED",
            http_status_code=status.HTTP_500_INTERNAL_SERVER_ERROR
        )


# --- Error Handling Utilities ---

def _format_validation_error(error: ValidationError) -> str:
    """Summarize a pydantic ValidationError as one readable line."""
    parts = []
    for item in error.errors():
        location = ".".join(str(loc) for loc in item.get("loc", ()) if loc != "__root__")
        message = item.get("msg", "invalid value")
        parts.append(f"{location}: {message}" if location else message)
    return "; ".join(parts) or "Invalid input"


def handle_exception(exception: Exception) -> AppBaseError:
    """Convert any exception to an AppBaseError carrying the right status.

    Args:
        exception: The exception to handle

    Returns:
        AppBaseError: Application error with message and HTTP status
    """
    if isinstance(exception, AppBaseError):
        return exception

    elif isinstance(exception, ValidationError):
        return InvalidInputError(_format_validation_error(exception))

    elif isinstance(exception, ValueError):
        # Treat ValueError as InvalidInputError
        return InvalidInputError(str(exception))

    elif isinstance(exception, HTTPException):
        return AppBaseError(str(exception.detail), http_status_code=exception.status_code)

    else:
        # Unknown exception, report as internal server error
        return AppBaseError(
            str(exception) or f"Internal server error: {type(exception).__name__}",
            error_code="INTERNAL_SERVER_ERROR"
        )
