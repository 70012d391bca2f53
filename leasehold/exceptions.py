"""Leasehold exception classes."""

class LeaseholdError(Exception):
    """Base exception for all Leasehold errors."""
    pass


class ValidationError(LeaseholdError):
    """Raised when a lock name or lock option is invalid."""
    pass


class TokenGenerationError(LeaseholdError):
    """Raised when no random ownership token can be produced."""
    pass


class StoreError(LeaseholdError):
    """Raised when talking to Redis fails.

    The underlying ``redis`` exception is kept as ``__cause__``.
    """
    pass


class LockError(LeaseholdError):
    """Raised when lock operations fail."""

    def __init__(self, message: str, name: str = None):
        super().__init__(message)
        self.name = name


class LockTimeoutError(LockError):
    """Raised when ``lock()`` gives up waiting after its wait timeout."""
    pass


class LockNotHeldError(LockError):
    """Raised when the lock record is absent or owned by another token."""
    pass


class LockLostError(LockNotHeldError):
    """Raised when acquiring through a handle whose lock was already lost."""
    pass


class ContextError(LeaseholdError):
    """Raised when the operation context ended before the operation did."""
    pass


class ContextCancelledError(ContextError):
    """Raised when the operation context was cancelled."""
    pass


class DeadlineExceededError(ContextError):
    """Raised when the operation context's deadline passed."""
    pass
