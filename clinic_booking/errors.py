"""Error taxonomy for booking operations.

- ValidationError and ConflictError are expected, user-facing conditions.
- NotFoundError is raised when an id cannot be resolved.
- StorageError wraps any failure of the underlying key-value store.
"""


class BookingError(Exception):
    """Base class for all clinic booking errors."""
    pass


class ValidationError(BookingError):
    """Raised when a date, time or required field is missing or malformed."""
    pass


class ConflictError(BookingError):
    """Raised when an operation conflicts with existing state."""
    pass


class DuplicateBookingError(ConflictError):
    """Raised when the patient already holds an active booking with the doctor on that date."""
    def __init__(self, message: str, existing_id: str):
        super().__init__(message)
        self.existing_id = existing_id


class SlotUnavailableError(ConflictError):
    """Raised when the requested slot is occupied by another appointment."""
    pass


class InvalidTransitionError(ConflictError):
    """Raised when an appointment status change is not allowed."""
    def __init__(self, message: str, current: str, intended: str):
        super().__init__(message)
        self.current = current
        self.intended = intended


class NotFoundError(BookingError):
    """Raised when an appointment, doctor or user id does not exist."""
    pass


class StorageError(BookingError):
    """Raised when the key-value store fails to read or write."""
    pass


class AuthenticationError(BookingError):
    """Raised when credentials do not match a registered user."""
    pass
