"""Leasehold Python client."""

import os
from typing import Optional

import redis
import redis.asyncio

from .exceptions import ValidationError
from .lock import AsyncLock, Lock
from .logger import Logger, StandardLogger
from .models import DEFAULT_KEY_PREFIX, LockOptions
from .scripts import AsyncLockScripts, LockScripts

REDIS_URL_ENV = "LEASEHOLD_REDIS_URL"
KEY_PREFIX_ENV = "LEASEHOLD_KEY_PREFIX"
DEFAULT_REDIS_URL = "redis://localhost:6379/0"


def _validate_lock_name(name: str) -> None:
    """Validate lock name format."""
    if not isinstance(name, str) or not name:
        raise ValidationError("Lock name must be a non-empty string")


def _build_options(options: Optional[LockOptions], overrides: dict) -> LockOptions:
    options = options or LockOptions()
    if overrides:
        options = options.replace(**overrides)
    return options


class Client:
    """Factory for Redis-backed distributed locks."""

    def __init__(
        self,
        redis_client: redis.Redis,
        key_prefix: str = DEFAULT_KEY_PREFIX,
        logger: Optional[Logger] = None,
    ):
        """Initialize the Leasehold client.

        Args:
            redis_client: Connection used by every lock built here
            key_prefix: Namespace prepended to every lock name
            logger: Lifecycle logger handed to each lock
        """
        self.redis = redis_client
        self.key_prefix = key_prefix
        self.logger = logger or StandardLogger()
        self.scripts = LockScripts(redis_client)
        self._owns_connection = False

    @classmethod
    def from_url(cls, url: str, key_prefix: str = DEFAULT_KEY_PREFIX, logger: Optional[Logger] = None, **kwargs) -> "Client":
        """Connect to Redis at ``url``; the client closes the connection."""
        client = cls(redis.Redis.from_url(url, **kwargs), key_prefix=key_prefix, logger=logger)
        client._owns_connection = True
        return client

    @classmethod
    def from_env(cls, logger: Optional[Logger] = None, **kwargs) -> "Client":
        """Build a client from ``LEASEHOLD_REDIS_URL`` and ``LEASEHOLD_KEY_PREFIX``."""
        url = os.environ.get(REDIS_URL_ENV, DEFAULT_REDIS_URL)
        key_prefix = os.environ.get(KEY_PREFIX_ENV, DEFAULT_KEY_PREFIX)
        return cls.from_url(url, key_prefix=key_prefix, logger=logger, **kwargs)

    def new_lock(self, name: str, options: Optional[LockOptions] = None, **overrides) -> Lock:
        """Create a lock handle.

        Args:
            name: Lock name, namespaced with the client's key prefix
            options: Base lock options
            **overrides: ``LockOptions`` fields replacing those in ``options``

        Returns:
            A new idle Lock with its own ownership token
        """
        _validate_lock_name(name)
        return Lock(self.scripts, f"{self.key_prefix}{name}", _build_options(options, overrides), self.logger)

    def close(self) -> None:
        """Close the Redis connection if this client opened it."""
        if self._owns_connection:
            self.redis.close()

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()


class AsyncClient:
    """Async factory for Redis-backed distributed locks."""

    def __init__(
        self,
        redis_client: redis.asyncio.Redis,
        key_prefix: str = DEFAULT_KEY_PREFIX,
        logger: Optional[Logger] = None,
    ):
        """Initialize the async Leasehold client.

        Args:
            redis_client: ``redis.asyncio`` connection used by every lock built here
            key_prefix: Namespace prepended to every lock name
            logger: Lifecycle logger handed to each lock
        """
        self.redis = redis_client
        self.key_prefix = key_prefix
        self.logger = logger or StandardLogger()
        self.scripts = AsyncLockScripts(redis_client)
        self._owns_connection = False

    @classmethod
    def from_url(cls, url: str, key_prefix: str = DEFAULT_KEY_PREFIX, logger: Optional[Logger] = None, **kwargs) -> "AsyncClient":
        """Connect to Redis at ``url``; the client closes the connection."""
        client = cls(redis.asyncio.Redis.from_url(url, **kwargs), key_prefix=key_prefix, logger=logger)
        client._owns_connection = True
        return client

    @classmethod
    def from_env(cls, logger: Optional[Logger] = None, **kwargs) -> "AsyncClient":
        """Build a client from ``LEASEHOLD_REDIS_URL`` and ``LEASEHOLD_KEY_PREFIX``."""
        url = os.environ.get(REDIS_URL_ENV, DEFAULT_REDIS_URL)
        key_prefix = os.environ.get(KEY_PREFIX_ENV, DEFAULT_KEY_PREFIX)
        return cls.from_url(url, key_prefix=key_prefix, logger=logger, **kwargs)

    def new_lock(self, name: str, options: Optional[LockOptions] = None, **overrides) -> AsyncLock:
        """Create an async lock handle."""
        _validate_lock_name(name)
        return AsyncLock(self.scripts, f"{self.key_prefix}{name}", _build_options(options, overrides), self.logger)

    async def close(self) -> None:
        """Close the Redis connection if this client opened it."""
        if self._owns_connection:
            await self.redis.aclose()

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()
