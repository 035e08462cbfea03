"""
Identity-specific exceptions.

Exception Hierarchy:
    ExternalServiceError (502)
    └── IdentityProviderError - OAuth server or user directory failure

    PermissionDeniedError (403)
    └── TokenVerificationError - Bearer token inactive or lacking a role

    NotAuthenticatedError (401) - No bearer token or customer session
"""

from __future__ import annotations

from core.exceptions import (
    BaseApplicationError,
    ExternalServiceError,
    PermissionDeniedError,
)


class IdentityProviderError(ExternalServiceError):
    """
    Raised when the OAuth server or user directory cannot be used.

    Covers network failures, non-2xx responses and discovery documents
    missing a required endpoint.
    """

    default_error_code: str = "IDENTITY_PROVIDER_ERROR"


class TokenVerificationError(PermissionDeniedError):
    """
    Raised when a bearer token is inactive, issued for another client,
    or missing the required client role.
    """

    default_error_code: str = "TOKEN_VERIFICATION_FAILED"


class NotAuthenticatedError(BaseApplicationError):
    """Raised when a request carries neither a bearer token nor a customer session."""

    default_error_code: str = "NOT_AUTHENTICATED"
    status_code: int = 401
