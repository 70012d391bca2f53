"""Leasehold - Redis-backed distributed locks with lease renewal."""

import logging

from .client import AsyncClient, Client
from .context import Context, background
from .exceptions import (
    LeaseholdError,
    ValidationError,
    TokenGenerationError,
    StoreError,
    LockError,
    LockTimeoutError,
    LockNotHeldError,
    LockLostError,
    ContextError,
    ContextCancelledError,
    DeadlineExceededError,
)
from .lock import AsyncLock, Lock
from .logger import Logger, NoopLogger, StandardLogger
from .models import (
    LockOptions,
    LockState,
)

logging.getLogger("leasehold").addHandler(logging.NullHandler())

__version__ = "1.0.0"
__all__ = [
    "Client",
    "AsyncClient",
    "Lock",
    "AsyncLock",
    "Context",
    "background",
    "Logger",
    "StandardLogger",
    "NoopLogger",
    "LockOptions",
    "LockState",
    "LeaseholdError",
    "ValidationError",
    "TokenGenerationError",
    "StoreError",
    "LockError",
    "LockTimeoutError",
    "LockNotHeldError",
    "LockLostError",
    "ContextError",
    "ContextCancelledError",
    "DeadlineExceededError",
]
