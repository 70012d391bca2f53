"""Pytest configuration and fixtures for Leasehold tests"""
import fakeredis
import pytest

from leasehold import AsyncClient, Client


@pytest.fixture
def fake_server():
    """An isolated in-process Redis server with Lua scripting"""
    return fakeredis.FakeServer()


@pytest.fixture
def redis_client(fake_server):
    """Blocking connection to the fake server"""
    return fakeredis.FakeRedis(server=fake_server)


@pytest.fixture
def client(redis_client):
    """Lock client using the test key prefix"""
    return Client(redis_client, key_prefix="test:")


@pytest.fixture
def async_redis_client(fake_server):
    """Asyncio connection to the fake server"""
    return fakeredis.FakeAsyncRedis(server=fake_server)


@pytest.fixture
def async_client(async_redis_client):
    """Async lock client using the test key prefix"""
    return AsyncClient(async_redis_client, key_prefix="test:")
