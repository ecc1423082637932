# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Test fixtures for pgtriggers tests.

Provides in-memory stand-ins for asyncpg connections and pools, plus
helpers for waiting on asynchronous notification delivery.
"""

import asyncio
import os
from collections import defaultdict
from typing import Any, Callable, Dict, List

import pytest


class FakeTransaction:
    """Records start/commit/rollback on the owning connection."""

    def __init__(self, connection: "FakeConnection"):
        self.connection = connection

    async def start(self) -> None:
        if self.connection.fail_begin:
            raise RuntimeError("BEGIN failed")
        self.connection.events.append("BEGIN")

    async def commit(self) -> None:
        if self.connection.fail_commit:
            raise RuntimeError("commit failed")
        self.connection.events.append("COMMIT")
        self.connection.committed.extend(self.connection.pending)
        self.connection.pending = []

    async def rollback(self) -> None:
        self.connection.events.append("ROLLBACK")
        self.connection.pending = []


class FakeConnection:
    """
    Minimal asyncpg.Connection stand-in.

    Statements matching ``fail_on`` raise. ``notify()`` simulates a
    server-side NOTIFY and ``drop()`` a lost connection.
    """

    def __init__(self, fail_on: str | None = None, rows: List[Dict[str, Any]] | None = None):
        self.fail_on = fail_on
        self.rows = rows or []
        self.fail_commit = False
        self.fail_begin = False
        self.events: List[str] = []
        self.pending: List[str] = []
        self.committed: List[str] = []
        self.listeners: Dict[str, List[Callable]] = defaultdict(list)
        self.listen_calls: List[str] = []
        self.unlisten_calls: List[str] = []
        self.termination_listeners: List[Callable] = []
        self.closed = False
        self.terminated = False
        self.remove_listener_error: BaseException | None = None
        self.remove_listener_delay: float = 0.0
        self.close_error: BaseException | None = None

    async def execute(self, query: str, *args: Any) -> str:
        if self.fail_on and self.fail_on in query:
            raise RuntimeError(f"statement failed: {self.fail_on}")
        self.events.append(query)
        self.pending.append(query)
        return "OK"

    async def fetch(self, query: str, *args: Any) -> List[Dict[str, Any]]:
        self.events.append(query)
        return self.rows

    async def fetchrow(self, query: str, *args: Any) -> Dict[str, Any] | None:
        return self.rows[0] if self.rows else None

    async def fetchval(self, query: str, *args: Any) -> Any:
        return next(iter(self.rows[0].values())) if self.rows else None

    def transaction(self) -> FakeTransaction:
        return FakeTransaction(self)

    async def add_listener(self, channel: str, callback: Callable) -> None:
        self.listen_calls.append(channel)
        self.listeners[channel].append(callback)

    async def remove_listener(self, channel: str, callback: Callable) -> None:
        if self.remove_listener_delay:
            await asyncio.sleep(self.remove_listener_delay)
        if self.remove_listener_error is not None:
            raise self.remove_listener_error
        self.unlisten_calls.append(channel)
        if callback in self.listeners.get(channel, []):
            self.listeners[channel].remove(callback)
        if not self.listeners.get(channel):
            self.listeners.pop(channel, None)

    def add_termination_listener(self, callback: Callable) -> None:
        self.termination_listeners.append(callback)

    async def close(self) -> None:
        if self.close_error is not None:
            raise self.close_error
        self.closed = True
        for callback in self.termination_listeners:
            callback(self)

    def terminate(self) -> None:
        self.terminated = True

    def is_closed(self) -> bool:
        return self.closed

    def notify(self, channel: str, payload: str) -> None:
        """Simulate a NOTIFY arriving from the server."""
        for callback in list(self.listeners.get(channel, [])):
            callback(self, 4242, channel, payload)

    def drop(self) -> None:
        """Simulate the server closing the connection."""
        for callback in self.termination_listeners:
            callback(self)


class _Acquire:
    def __init__(self, pool: "FakePool"):
        self.pool = pool
        self.connection: FakeConnection | None = None

    async def __aenter__(self) -> FakeConnection:
        if self.pool.acquire_error is not None:
            raise self.pool.acquire_error
        self.connection = self.pool.factory()
        self.pool.connections.append(self.connection)
        self.pool.in_use += 1
        return self.connection

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.pool.in_use -= 1
        self.pool.released += 1


class FakePool:
    """Minimal asyncpg.Pool stand-in handing out a fresh connection per acquire."""

    def __init__(self, factory: Callable[[], FakeConnection] = FakeConnection):
        self.factory = factory
        self.connections: List[FakeConnection] = []
        self.in_use = 0
        self.released = 0
        self.closed = False
        self.terminated = False
        self.close_error: BaseException | None = None
        self.acquire_error: BaseException | None = None

    def acquire(self, timeout: float | None = None) -> _Acquire:
        return _Acquire(self)

    async def close(self) -> None:
        if self.close_error is not None:
            raise self.close_error
        self.closed = True

    def terminate(self) -> None:
        self.terminated = True


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> bool:
    """Poll predicate until it is true or timeout expires."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while loop.time() < deadline:
        if predicate():
            return True
        await asyncio.sleep(0.01)
    return predicate()


def pg_payload(operation: str, data: Dict[str, Any]) -> str:
    """Build a payload shaped like the one json_build_object produces."""
    import json

    return json.dumps(
        {
            "operation": operation,
            "timestamp": "2026-10-16T12:34:56.789012+00:00",
            "data": data,
        }
    )


@pytest.fixture
def fake_pool() -> FakePool:
    return FakePool()


@pytest.fixture
def listen_connection() -> FakeConnection:
    return FakeConnection()


@pytest.fixture
def patched_asyncpg(monkeypatch, fake_pool: FakePool, listen_connection: FakeConnection):
    """
    Route asyncpg.create_pool and asyncpg.connect to the fakes.

    Returns a dict of call counters.
    """
    import asyncpg

    calls = {"create_pool": 0, "connect": 0}

    async def fake_create_pool(*args: Any, **kwargs: Any) -> FakePool:
        calls["create_pool"] += 1
        await asyncio.sleep(0)
        return fake_pool

    async def fake_connect(*args: Any, **kwargs: Any) -> FakeConnection:
        calls["connect"] += 1
        return listen_connection

    monkeypatch.setattr(asyncpg, "create_pool", fake_create_pool)
    monkeypatch.setattr(asyncpg, "connect", fake_connect)
    return calls


@pytest.fixture
def database_url() -> str:
    """Database URL for tests that need a real PostgreSQL server."""
    url = os.getenv("TEST_DATABASE_URL") or os.getenv("DATABASE_URL")
    if not url:
        pytest.skip("Neither TEST_DATABASE_URL nor DATABASE_URL is set")
    return url
