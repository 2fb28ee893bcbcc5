"""API error classes.

Every error raised to the request-handling layer carries a machine-readable
code, a human-readable message, and the HTTP status it maps to. Driver-level
failures live in ``linkauth.backends.errors`` and are translated here only
where the caller can act on them (duplicate email).
"""


class APIError(Exception):
    """Base class for API errors.

    All API errors have a code, message, and HTTP status.
    Subclasses set default status_code.

    Attributes:
        code: Machine-readable error code (e.g., "NOT_FOUND").
        message: Human-readable error message.
        status_code: HTTP status code to return.
        details: Optional list of additional error details.
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: list[dict] | None = None,
    ) -> None:
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details
        super().__init__(message)


class ValidationError(APIError):
    """Field validation failed (400).

    Raised before any database I/O for missing or malformed input.
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
        )


class NoValidFieldsError(ValidationError):
    """Profile update contained no allow-listed fields (400)."""

    def __init__(self, message: str = "No valid fields to update") -> None:
        super().__init__(message)
        self.code = "NO_VALID_FIELDS"


class UnauthorizedError(APIError):
    """Authentication required (401).

    The message stays generic; callers that need the concrete reason read it
    from the subclass before the error reaches the HTTP boundary.
    """

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(
            code="UNAUTHORIZED",
            message=message,
            status_code=401,
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
        )


class ConflictError(APIError):
    """Duplicate or conflicting resource (409).

    Accepts custom code for specific conflict types.
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
            status_code=409,
            details=details,
        )


class DuplicateEmailError(ConflictError):
    """A user with this email already exists (409).

    Raised when the backend reports a uniqueness violation on users.email.
    """

    def __init__(self, email: str) -> None:
        super().__init__(
            code="DUPLICATE_EMAIL",
            message="An account with this email already exists",
            details=[{"field": "email", "value": email}],
        )


class InvalidOrExpiredLinkError(APIError):
    """Magic link is unknown, used, or expired (400).

    One message for every case so responses never reveal whether a token
    exists.
    """

    def __init__(self) -> None:
        super().__init__(
            code="INVALID_OR_EXPIRED_LINK",
            message="Invalid or expired magic link",
            status_code=400,
        )


class InvalidOrExpiredTokenError(APIError):
    """Token is unknown, revoked, used, expired, or of another type (400)."""

    def __init__(self) -> None:
        super().__init__(
            code="INVALID_OR_EXPIRED_TOKEN",
            message="Invalid or expired token",
            status_code=400,
        )

