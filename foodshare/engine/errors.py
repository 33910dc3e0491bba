"""Error taxonomy for foodshare operations.

Every operation failure raised by the engine derives from `FoodShareError`.
The API layer maps each class to an HTTP status code via `status_code`.
"""

from contextlib import contextmanager

from sqlalchemy.exc import SQLAlchemyError


class FoodShareError(Exception):
    """Base class for operation failures surfaced to the user."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class AuthRequiredError(FoodShareError):
    """No session for an operation that requires one."""
    status_code = 401


class PermissionDeniedError(FoodShareError):
    """Session present, but the role or ownership check failed."""
    status_code = 403


class NotFoundError(FoodShareError):
    """The referenced record does not exist."""
    status_code = 404


class InvalidStateError(FoodShareError):
    """The requested transition is illegal for the donation's current status."""
    status_code = 409


class ValidationError(FoodShareError):
    """Missing or malformed required input."""
    status_code = 422


class ProviderError(FoodShareError):
    """The identity service or record store call itself failed."""
    status_code = 503


class ProfileSetupError(ProviderError):
    """The profile for a signed-in identity could not be created.

    The session must be treated as unauthenticated.
    """
    status_code = 401


@contextmanager
def provider_errors(action: str):
    """Re-raise record-store failures as `ProviderError`.

    Args:
        action: What was being attempted, phrased for the user ("claim donation")
    """
    try:
        yield
    except SQLAlchemyError as e:
        raise ProviderError(f"Failed to {action}. Please try again.") from e
