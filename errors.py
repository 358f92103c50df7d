"""Error types shared by repositories, services and the HTTP layer."""


class DomainError(Exception):
    """Base class for expected failures. ``message`` is safe to show clients."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(DomainError):
    """Missing or malformed input."""

    status_code = 400


class UnauthorizedError(DomainError):
    """Bad credentials or a missing/invalid bearer token."""

    status_code = 401


class NotFoundError(DomainError):
    status_code = 404


class ConflictError(DomainError):
    """Uniqueness violation, such as a duplicate email."""

    status_code = 409


class InternalError(DomainError):
    status_code = 500


INVALID_CREDENTIALS = "Invalid email or password"
INVALID_TOKEN = "Unauthorized - Invalid or missing token"


def transaction_not_found(transaction_id: str) -> str:
    return f"Transaction {transaction_id} not found"
