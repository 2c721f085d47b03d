"""Custom exceptions and error handling utilities."""
from fastapi import HTTPException, status
from typing import Optional


class AppException(Exception):
    """Base exception for application errors."""
    pass


class NotFoundError(AppException):
    """Raised when a recording is not found."""
    pass


class WriteConflictError(AppException):
    """Raised when a recording kept changing underneath every write attempt."""
    pass


class RemoteFetchError(AppException):
    """Raised when the remote recording service cannot provide a manifest."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


def not_found_error(resource: str, identifier: Optional[str] = None) -> HTTPException:
    """
    Create a standardized 404 error.

    Args:
        resource: Name of the resource (e.g., "Recording")
        identifier: Optional identifier that was not found

    Returns:
        HTTPException with 404 status
    """
    message = f"{resource} not found"
    if identifier:
        message += f": {identifier}"
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=message)


def validation_error(message: str) -> HTTPException:
    """
    Create a standardized 400 validation error.

    Args:
        message: Validation error message

    Returns:
        HTTPException with 400 status
    """
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=message)


def conflict_error(message: str) -> HTTPException:
    """Create a 409 error; the recorder re-queues the batch and retries on its next flush."""
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=message)


def bad_gateway_error(message: str) -> HTTPException:
    """
    Create a standardized 502 error for upstream failures.

    The replay viewer shows this as "failed to load", distinct from
    "no recording available".
    """
    return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=message)
