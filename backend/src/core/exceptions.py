"""
Typed errors raised by the access-control services.

Services raise these instead of building HTTP responses; main.py maps them
to status codes. Messages must not carry clinical content.
"""

from typing import Optional


class AccessControlError(Exception):
    """Base class for every error the connection and record services raise."""

    error_code = "ACCESS_CONTROL_ERROR"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class NotFoundError(AccessControlError):
    """Referenced connection, user or resource does not exist."""

    error_code = "NOT_FOUND"


class InvalidTransitionError(AccessControlError):
    """The requested operation's precondition does not hold for the current state."""

    error_code = "INVALID_TRANSITION"

    def __init__(self, message: str, operation: Optional[str] = None, current_state: Optional[str] = None):
        self.operation = operation
        self.current_state = current_state
        super().__init__(message)


class UnauthorizedError(AccessControlError):
    """
    Actor may not perform the operation.

    When ``conceal`` is set the HTTP layer answers exactly like NotFoundError,
    so callers cannot probe for other users' connections or records.
    """

    error_code = "UNAUTHORIZED"

    def __init__(self, message: str, conceal: bool = False):
        self.conceal = conceal
        super().__init__(message)


class AlreadyExistsError(AccessControlError):
    """A connection already exists for the patient/provider pair."""

    error_code = "ALREADY_EXISTS"

    def __init__(self, message: str, existing_id: Optional[int] = None):
        self.existing_id = existing_id
        super().__init__(message)


class StoreConflictError(AccessControlError):
    """The row changed between read and write; the user-level action should be retried."""

    error_code = "STORE_CONFLICT"
