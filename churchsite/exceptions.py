"""
Custom Exception Classes for the church site

This module defines the engagement error taxonomy and gives every error
a status code and a machine-readable error code so responses stay
consistent across the church blog and community blog endpoints.
"""

import enum
from typing import Any

from fastapi import status


class ErrorCode(str, enum.Enum):
    """Machine-readable error codes surfaced in error responses."""

    # Authentication / authorization
    AUTH_FAILED = "AUTH_FAILED"
    AUTH_REQUIRED = "AUTH_REQUIRED"
    AUTH_PERMISSION_DENIED = "AUTH_PERMISSION_DENIED"

    # Resources
    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    POST_NOT_FOUND = "RESOURCE_POST_NOT_FOUND"
    LIKE_NOT_FOUND = "RESOURCE_LIKE_NOT_FOUND"

    # Validation / conflicts
    VALIDATION_FAILED = "VALIDATION_FAILED"
    VALIDATION_DUPLICATE_RESOURCE = "VALIDATION_DUPLICATE_RESOURCE"
    LIKE_ALREADY_EXISTS = "LIKE_ALREADY_EXISTS"

    # Throttling
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"

    # Infrastructure
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


class ChurchSiteError(Exception):
    """Base exception class for all church site exceptions"""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)


# ============================================================================
# Authentication & Authorization Exceptions
# ============================================================================


class UnauthorizedError(ChurchSiteError):
    """Raised when an action needs a resolved viewer identity"""

    def __init__(self, message: str = "Authentication required"):
        super().__init__(
            message=message,
            status_code=status.HTTP_401_UNAUTHORIZED,
            error_code=ErrorCode.AUTH_REQUIRED,
        )


class AuthorizationError(ChurchSiteError):
    """Raised when user lacks permission for an action"""

    def __init__(self, message: str = "You do not have permission to perform this action"):
        super().__init__(
            message=message,
            status_code=status.HTTP_403_FORBIDDEN,
            error_code=ErrorCode.AUTH_PERMISSION_DENIED,
        )


# ============================================================================
# Resource Not Found Exceptions
# ============================================================================


class NotFoundError(ChurchSiteError):
    """Base class for resource not found errors"""

    def __init__(
        self,
        resource_type: str,
        resource_id: Any | None = None,
        error_code: ErrorCode = ErrorCode.RESOURCE_NOT_FOUND,
    ):
        message = f"{resource_type} not found"
        if resource_id is not None:
            message = f"{resource_type} '{resource_id}' not found"
        super().__init__(
            message=message,
            status_code=status.HTTP_404_NOT_FOUND,
            error_code=error_code,
            details={"resource_type": resource_type, "resource_id": resource_id},
        )


class PostNotFoundError(NotFoundError):
    """Raised when no blog post matches a slug or id"""

    def __init__(self, slug_or_id: Any | None = None):
        super().__init__(resource_type="Blog post", resource_id=slug_or_id, error_code=ErrorCode.POST_NOT_FOUND)


class LikeNotFoundError(NotFoundError):
    """Raised when unliking a post the user has not liked"""

    def __init__(self, post_id: Any | None = None):
        super().__init__(resource_type="Like", resource_id=post_id, error_code=ErrorCode.LIKE_NOT_FOUND)


# ============================================================================
# Validation & Conflict Exceptions
# ============================================================================


class ValidationError(ChurchSiteError):
    """Raised when input validation fails"""

    def __init__(self, message: str, field: str | None = None, details: dict[str, Any] | None = None):
        error_details = details or {}
        if field:
            error_details["field"] = field
        super().__init__(
            message=message,
            status_code=status.HTTP_400_BAD_REQUEST,
            error_code=ErrorCode.VALIDATION_FAILED,
            details=error_details,
        )


class ConflictError(ChurchSiteError):
    """Raised when attempting to create a duplicate resource"""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(
            message=message,
            status_code=status.HTTP_409_CONFLICT,
            error_code=ErrorCode.VALIDATION_DUPLICATE_RESOURCE,
            details=details or {},
        )


class AlreadyLikedError(ConflictError):
    """Raised when a user likes a post twice"""

    def __init__(self, post_id: Any):
        super().__init__(message="Already liked", details={"post_id": post_id})
        self.error_code = ErrorCode.LIKE_ALREADY_EXISTS


# ============================================================================
# Dependency Exceptions
# ============================================================================


class DependencyUnavailableError(ChurchSiteError):
    """Raised when the view store, cache or database cannot be reached"""

    def __init__(self, dependency: str, message: str | None = None):
        super().__init__(
            message=message or f"{dependency} is unavailable",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            error_code=ErrorCode.SERVICE_UNAVAILABLE,
            details={"dependency": dependency},
        )
