"""API error classes.

Every rejected operation surfaces as one of these: a stable human-readable
message, a machine-readable code, and an ErrorKind from a closed set.
"""

from enum import StrEnum


class ErrorKind(StrEnum):
    """Closed classification of every failure the API can report."""

    VALIDATION = "validation"
    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    EXTERNAL_DEPENDENCY = "external_dependency"
    RATE_LIMITED = "rate_limited"
    INTERNAL = "internal"


# Single message for every token failure (not found, expired, consumed,
# wrong type). Security: callers must not learn which case occurred.
INVALID_TOKEN_MESSAGE = "Invalid or expired token"


class APIError(Exception):
    """Base class for API errors.

    All API errors have a code, message, kind and HTTP status.
    Subclasses set default status_code and kind.

    Attributes:
        code: Machine-readable error code (e.g., "NOT_FOUND").
        message: Human-readable error message.
        status_code: HTTP status code to return.
        kind: ErrorKind classification.
        details: Optional list of additional error details.
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: list[dict] | None = None,
        kind: ErrorKind = ErrorKind.INTERNAL,
    ) -> None:
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details
        self.kind = kind
        super().__init__(message)


class ValidationError(APIError):
    """Field validation failed (400).

    Use for malformed or out-of-policy input. Raised before any state change.
    """

    def __init__(
        self,
        message: str,
        details: list[dict] | None = None,
    ) -> None:
        super().__init__(
            code="VALIDATION_ERROR",
            message=message,
            status_code=400,
            details=details,
            kind=ErrorKind.VALIDATION,
        )


class UnauthorizedError(APIError):
    """Authentication required or credentials rejected (401).

    Messages stay generic so a caller cannot tell which part was wrong.
    """

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(
            code="UNAUTHORIZED",
            message=message,
            status_code=401,
            kind=ErrorKind.AUTHENTICATION,
        )


class NotFoundError(APIError):
    """Resource not found (404)."""

    def __init__(self, resource: str, resource_id: str | None = None) -> None:
        if resource_id:
            message = f"{resource} with id '{resource_id}' not found"
        else:
            message = f"{resource} not found"
        super().__init__(
            code="NOT_FOUND",
            message=message,
            status_code=404,
            kind=ErrorKind.NOT_FOUND,
        )


class ConflictError(APIError):
    """Duplicate or conflicting resource (400).

    Accepts custom code for specific conflict types (EMAIL_ALREADY_EXISTS).
    """

    def __init__(
        self,
        code: str,
        message: str,
        details: list[dict] | None = None,
    ) -> None:
        super().__init__(
            code=code,
            message=message,
            status_code=400,
            details=details,
            kind=ErrorKind.CONFLICT,
        )


class InvalidTokenError(APIError):
    """Token absent, expired, already consumed or of the wrong type (400)."""

    def __init__(self) -> None:
        super().__init__(
            code="INVALID_TOKEN",
            message=INVALID_TOKEN_MESSAGE,
            status_code=400,
            kind=ErrorKind.AUTHENTICATION,
        )


class ExternalServiceError(APIError):
    """A collaborator (email, storage, payments) failed (502).

    Args:
        message: Caller-safe description of what could not be completed.
    """

    def __init__(self, message: str) -> None:
        super().__init__(
            code="EXTERNAL_SERVICE_ERROR",
            message=message,
            status_code=502,
            kind=ErrorKind.EXTERNAL_DEPENDENCY,
        )


class InternalError(APIError):
    """Unexpected server error (500).

    Use for unhandled exceptions. Never expose stack traces to clients.
    """

    def __init__(self, message: str = "An unexpected error occurred") -> None:
        super().__init__(
            code="INTERNAL_ERROR",
            message=message,
            status_code=500,
            kind=ErrorKind.INTERNAL,
        )


class AccountLinkingBlockedError(APIError):
    """External identity cannot be linked to an existing account (403).

    Pre-hijack defense: an account with the same email exists but one or
    both sides haven't verified the email, so linking is unsafe.
    """

    def __init__(self) -> None:
        super().__init__(
            code="ACCOUNT_LINKING_BLOCKED",
            message=(
                "Account linking blocked by email verification. "
                "Please sign in with your original method first."
            ),
            status_code=403,
            kind=ErrorKind.AUTHORIZATION,
        )
