"""Tests for API error classes.

HTTP status codes and machine-readable error codes.
"""

from linkauth.core.errors import (
    APIError,
    ConflictError,
    DuplicateEmailError,
    InvalidOrExpiredLinkError,
    InvalidOrExpiredTokenError,
    NoValidFieldsError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)


class TestAPIError:
    """Tests for base APIError class."""

    def test_api_error_has_required_attributes(self):
        """APIError should have code, message, status_code, details."""
        error = APIError(
            code="TEST_ERROR",
            message="Test message",
            status_code=418,
            details=[{"field": "test"}],
        )
        assert error.code == "TEST_ERROR"
        assert error.message == "Test message"
        assert error.status_code == 418
        assert error.details == [{"field": "test"}]

    def test_api_error_defaults_to_500(self):
        """APIError should default to 500 status code."""
        error = APIError(code="TEST", message="Test")
        assert error.status_code == 500
        assert error.details is None

    def test_api_error_is_exception(self):
        """APIError should be an Exception subclass."""
        error = APIError(code="TEST", message="Test")
        assert isinstance(error, Exception)
        assert str(error) == "Test"


class TestValidationErrors:
    """Tests for ValidationError and NoValidFieldsError (400)."""

    def test_validation_error(self):
        """ValidationError has VALIDATION_ERROR code and passes details."""
        details = [{"field": "email", "message": "invalid email"}]
        error = ValidationError("Validation failed", details=details)
        assert error.code == "VALIDATION_ERROR"
        assert error.status_code == 400
        assert error.details == details

    def test_no_valid_fields_is_validation_error(self):
        """NoValidFieldsError is a 400 with its own code."""
        error = NoValidFieldsError()
        assert isinstance(error, ValidationError)
        assert error.code == "NO_VALID_FIELDS"
        assert error.status_code == 400
        assert error.message == "No valid fields to update"


class TestUnauthorizedError:
    """Tests for UnauthorizedError (401)."""

    def test_defaults(self):
        """UNAUTHORIZED code, 401 status, generic message."""
        error = UnauthorizedError()
        assert error.code == "UNAUTHORIZED"
        assert error.status_code == 401
        assert error.message == "Authentication required"

    def test_custom_message(self):
        """UnauthorizedError should accept custom message."""
        assert UnauthorizedError("Session ended").message == "Session ended"


class TestNotFoundError:
    """Tests for NotFoundError (404)."""

    def test_resource_only(self):
        """Message names the resource."""
        error = NotFoundError("User")
        assert error.code == "NOT_FOUND"
        assert error.status_code == 404
        assert error.message == "User not found"

    def test_resource_and_id(self):
        """Message includes the resource id."""
        assert NotFoundError("User", "abc-123").message == "User with id 'abc-123' not found"


class TestConflictErrors:
    """Tests for ConflictError and DuplicateEmailError (409)."""

    def test_conflict_error_accepts_custom_code(self):
        """ConflictError should accept custom error code."""
        error = ConflictError(code="DUPLICATE", message="Duplicate found")
        assert error.code == "DUPLICATE"
        assert error.status_code == 409

    def test_duplicate_email(self):
        """DuplicateEmailError carries the offending email in details."""
        error = DuplicateEmailError("alice@example.com")
        assert isinstance(error, ConflictError)
        assert error.code == "DUPLICATE_EMAIL"
        assert error.details == [{"field": "email", "value": "alice@example.com"}]


class TestInvalidOrExpiredErrors:
    """Tests for the uniform link and token failures (400)."""

    def test_link_error(self):
        """Magic-link failures share one code and message."""
        error = InvalidOrExpiredLinkError()
        assert error.code == "INVALID_OR_EXPIRED_LINK"
        assert error.status_code == 400
        assert error.message == "Invalid or expired magic link"

    def test_token_error(self):
        """Token failures share one code and message."""
        error = InvalidOrExpiredTokenError()
        assert error.code == "INVALID_OR_EXPIRED_TOKEN"
        assert error.status_code == 400
