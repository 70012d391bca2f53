"""Tests for the atomic lock scripts."""

from __future__ import annotations

import pytest
import redis

from leasehold import StoreError
from leasehold.scripts import LockScripts

KEY = "scripts:resource"


@pytest.fixture
def scripts(redis_client) -> LockScripts:
    return LockScripts(redis_client)


def test_try_lock_creates_owned_record_with_ttl(scripts, redis_client) -> None:
    assert scripts.try_lock(KEY, "token-a", 5000) is True

    assert redis_client.hget(KEY, "owner") == b"token-a"
    assert 4000 < redis_client.pttl(KEY) <= 5000


def test_try_lock_never_overwrites_existing_record(scripts, redis_client) -> None:
    scripts.try_lock(KEY, "token-a", 5000)

    assert scripts.try_lock(KEY, "token-b", 60000) is False
    assert scripts.try_lock(KEY, "token-a", 60000) is False
    assert redis_client.hget(KEY, "owner") == b"token-a"
    assert redis_client.pttl(KEY) <= 5000


def test_unlock_deletes_only_for_owner(scripts, redis_client) -> None:
    scripts.try_lock(KEY, "token-a", 5000)

    assert scripts.unlock(KEY, "token-b") is False
    assert redis_client.exists(KEY) == 1

    assert scripts.unlock(KEY, "token-a") is True
    assert redis_client.exists(KEY) == 0


def test_unlock_missing_record(scripts) -> None:
    assert scripts.unlock(KEY, "token-a") is False


def test_refresh_resets_ttl_only_for_owner(scripts, redis_client) -> None:
    scripts.try_lock(KEY, "token-a", 1000)

    assert scripts.refresh(KEY, "token-b", 60000) is False
    assert redis_client.pttl(KEY) <= 1000

    assert scripts.refresh(KEY, "token-a", 60000) is True
    assert redis_client.pttl(KEY) > 50000


def test_refresh_missing_record(scripts, redis_client) -> None:
    assert scripts.refresh(KEY, "token-a", 1000) is False
    assert redis_client.exists(KEY) == 0


def test_redis_failures_raise_store_error(scripts, fake_server) -> None:
    fake_server.connected = False

    for call in (
        lambda: scripts.try_lock(KEY, "token-a", 1000),
        lambda: scripts.unlock(KEY, "token-a"),
        lambda: scripts.refresh(KEY, "token-a", 1000),
    ):
        with pytest.raises(StoreError) as exc_info:
            call()
        assert isinstance(exc_info.value.__cause__, redis.exceptions.ConnectionError)
