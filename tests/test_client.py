"""Tests for the lock client factories and lifecycle logging."""

from __future__ import annotations

import logging
from unittest.mock import MagicMock, patch

import pytest

from leasehold import (
    AsyncClient,
    AsyncLock,
    Client,
    Lock,
    LockOptions,
    LockTimeoutError,
    NoopLogger,
    StandardLogger,
    StoreError,
    ValidationError,
)
from leasehold.client import DEFAULT_REDIS_URL, KEY_PREFIX_ENV, REDIS_URL_ENV
from leasehold.models import DEFAULT_KEY_PREFIX


def test_new_lock_namespaces_name(client: Client) -> None:
    lock = client.new_lock("orders")

    assert isinstance(lock, Lock)
    assert lock.name == "test:orders"


def test_default_key_prefix(redis_client) -> None:
    assert Client(redis_client).new_lock("orders").name == f"{DEFAULT_KEY_PREFIX}orders"


def test_each_lock_gets_its_own_token(client: Client) -> None:
    assert client.new_lock("a").token != client.new_lock("a").token


def test_new_lock_applies_options_and_overrides(client: Client) -> None:
    base = LockOptions(lease_time=10, wait_timeout=1)

    lock = client.new_lock("opts", base, watchdog=True)

    assert lock.options == LockOptions(lease_time=10, wait_timeout=1, watchdog=True)


@pytest.mark.parametrize("name", ["", None, 42])
def test_invalid_lock_name(client: Client, name) -> None:
    with pytest.raises(ValidationError):
        client.new_lock(name)


def test_unknown_override_is_rejected(client: Client) -> None:
    with pytest.raises(ValidationError):
        client.new_lock("opts", ttl=5)


def test_from_url_owns_connection() -> None:
    connection = MagicMock()
    with patch("leasehold.client.redis.Redis.from_url", return_value=connection) as from_url:
        with Client.from_url("redis://cache:6379/1", key_prefix="app:") as client:
            assert client.key_prefix == "app:"

    from_url.assert_called_once_with("redis://cache:6379/1")
    connection.close.assert_called_once()


def test_injected_connection_is_not_closed(redis_client) -> None:
    connection = MagicMock(wraps=redis_client)

    Client(connection).close()

    connection.close.assert_not_called()


def test_from_env_reads_url_and_prefix(monkeypatch) -> None:
    monkeypatch.setenv(REDIS_URL_ENV, "redis://env-host:6380/2")
    monkeypatch.setenv(KEY_PREFIX_ENV, "env:")

    with patch("leasehold.client.redis.Redis.from_url", return_value=MagicMock()) as from_url:
        client = Client.from_env()

    from_url.assert_called_once_with("redis://env-host:6380/2")
    assert client.key_prefix == "env:"


def test_from_env_defaults(monkeypatch) -> None:
    monkeypatch.delenv(REDIS_URL_ENV, raising=False)
    monkeypatch.delenv(KEY_PREFIX_ENV, raising=False)

    with patch("leasehold.client.redis.Redis.from_url", return_value=MagicMock()) as from_url:
        client = Client.from_env()

    from_url.assert_called_once_with(DEFAULT_REDIS_URL)
    assert client.key_prefix == DEFAULT_KEY_PREFIX


def test_async_client_builds_async_locks(async_client: AsyncClient) -> None:
    lock = async_client.new_lock("orders", lease_time=5)

    assert isinstance(lock, AsyncLock)
    assert lock.name == "test:orders"
    assert lock.options.lease_time == 5.0


def test_client_logger_is_shared_with_locks(redis_client) -> None:
    logger = NoopLogger()

    assert Client(redis_client, logger=logger).new_lock("x").logger is logger


def test_standard_logger_records_lifecycle(client: Client, caplog) -> None:
    caplog.set_level(logging.DEBUG, logger="leasehold")
    holder = client.new_lock("logged")
    waiter = client.new_lock("logged", wait_timeout=0.2)

    holder.lock()
    with pytest.raises(LockTimeoutError):
        waiter.lock()
    holder.unlock()

    messages = [(r.levelname, r.getMessage()) for r in caplog.records]
    assert ("DEBUG", "Attempting to acquire lock: test:logged") in messages
    assert ("INFO", "Acquired lock: test:logged") in messages
    assert ("WARNING", "Timed out waiting for lock: test:logged") in messages
    assert ("INFO", "Released lock: test:logged") in messages


def test_lock_logs_store_failure(client: Client, fake_server, caplog) -> None:
    caplog.set_level(logging.ERROR, logger="leasehold")
    fake_server.connected = False

    with pytest.raises(StoreError):
        client.new_lock("unreachable").lock()

    errors = [r.getMessage() for r in caplog.records if r.levelname == "ERROR"]
    assert any(m.startswith("Failed to acquire lock: test:unreachable, error:") for m in errors)


def test_standard_logger_wraps_given_logger() -> None:
    target = MagicMock(spec=logging.Logger)
    logger = StandardLogger(target)

    logger.warn(None, "lock %s", "x")
    logger.error(None, "lock %s", "y")

    target.warning.assert_called_once_with("lock %s", "x")
    target.error.assert_called_once_with("lock %s", "y")


def test_noop_logger_does_not_change_behaviour(redis_client, caplog) -> None:
    caplog.set_level(logging.DEBUG, logger="leasehold")
    client = Client(redis_client, key_prefix="quiet:", logger=NoopLogger())

    with client.new_lock("silent") as lock:
        assert client.new_lock("silent").try_lock() is False

    assert lock.state.value == "idle"
    assert [r for r in caplog.records if r.name.startswith("leasehold")] == []
