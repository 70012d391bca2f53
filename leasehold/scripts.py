"""Atomic Lua scripts guarding the remote lock record.

The record is a hash at the lock key whose ``owner`` field holds the token
of the current holder, with a millisecond TTL set by Redis. These scripts
are the only code that touches it, so every check-then-write happens inside
one atomic script run.
"""

from redis.exceptions import RedisError

from .exceptions import StoreError

# param: KEYS[1] - lock key
# param: ARGV[1] - token of the acquiring handle
# param: ARGV[2] - TTL in milliseconds
# returns: 1 if created, otherwise 0
TRY_LOCK_SCRIPT = """
if redis.call('exists', KEYS[1]) == 0 then
    redis.call('hset', KEYS[1], 'owner', ARGV[1])
    redis.call('pexpire', KEYS[1], ARGV[2])
    return 1
end
return 0
"""

# param: KEYS[1] - lock key
# param: ARGV[1] - token of the releasing handle
# returns: 1 if deleted, otherwise 0
UNLOCK_SCRIPT = """
if redis.call('hget', KEYS[1], 'owner') == ARGV[1] then
    return redis.call('del', KEYS[1])
end
return 0
"""

# param: KEYS[1] - lock key
# param: ARGV[1] - token of the refreshing handle
# param: ARGV[2] - new TTL in milliseconds
# returns: 1 if the TTL was reset, otherwise 0
REFRESH_SCRIPT = """
if redis.call('hget', KEYS[1], 'owner') == ARGV[1] then
    return redis.call('pexpire', KEYS[1], ARGV[2])
end
return 0
"""


class LockScripts:
    """The three lock scripts registered on a blocking Redis client."""

    def __init__(self, redis):
        self._try_lock = redis.register_script(TRY_LOCK_SCRIPT)
        self._unlock = redis.register_script(UNLOCK_SCRIPT)
        self._refresh = redis.register_script(REFRESH_SCRIPT)

    def try_lock(self, key: str, token: str, ttl_ms: int) -> bool:
        try:
            return bool(self._try_lock(keys=[key], args=[token, ttl_ms]))
        except RedisError as e:
            raise StoreError(f"Redis error acquiring lock '{key}': {e}") from e

    def unlock(self, key: str, token: str) -> bool:
        try:
            return bool(self._unlock(keys=[key], args=[token]))
        except RedisError as e:
            raise StoreError(f"Redis error releasing lock '{key}': {e}") from e

    def refresh(self, key: str, token: str, ttl_ms: int) -> bool:
        try:
            return bool(self._refresh(keys=[key], args=[token, ttl_ms]))
        except RedisError as e:
            raise StoreError(f"Redis error refreshing lock '{key}': {e}") from e


class AsyncLockScripts:
    """The three lock scripts registered on a ``redis.asyncio`` client."""

    def __init__(self, redis):
        self._try_lock = redis.register_script(TRY_LOCK_SCRIPT)
        self._unlock = redis.register_script(UNLOCK_SCRIPT)
        self._refresh = redis.register_script(REFRESH_SCRIPT)

    async def try_lock(self, key: str, token: str, ttl_ms: int) -> bool:
        try:
            return bool(await self._try_lock(keys=[key], args=[token, ttl_ms]))
        except RedisError as e:
            raise StoreError(f"Redis error acquiring lock '{key}': {e}") from e

    async def unlock(self, key: str, token: str) -> bool:
        try:
            return bool(await self._unlock(keys=[key], args=[token]))
        except RedisError as e:
            raise StoreError(f"Redis error releasing lock '{key}': {e}") from e

    async def refresh(self, key: str, token: str, ttl_ms: int) -> bool:
        try:
            return bool(await self._refresh(keys=[key], args=[token, ttl_ms]))
        except RedisError as e:
            raise StoreError(f"Redis error refreshing lock '{key}': {e}") from e
