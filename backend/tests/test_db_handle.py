from __future__ import annotations

import logging

import pytest

from app.core.errors import AppHTTPException
from app.core.logging import StructuredLogger
from app.db.handle import ConnectionState, DatabaseConnectionError, DatabaseHandle

from .fixture_routes import BAD_DATABASE_URL


class FakeConnection:
    def __init__(self, engine: "FakeEngine") -> None:
        self.engine = engine

    async def __aenter__(self):
        if self.engine.connect_error is not None:
            raise self.engine.connect_error
        self.engine.connect_calls += 1
        return self

    async def __aexit__(self, *exc):
        return False

    async def execute(self, statement):
        return None


class FakeEngine:
    def __init__(self, connect_error=None, dispose_error=None) -> None:
        self.connect_error = connect_error
        self.dispose_error = dispose_error
        self.connect_calls = 0
        self.dispose_calls = 0

    def connect(self):
        return FakeConnection(self)

    async def dispose(self):
        self.dispose_calls += 1
        if self.dispose_error is not None:
            raise self.dispose_error


def _db_records(caplog, level=logging.INFO):
    return [r for r in caplog.records if r.name == "test.db" and r.levelno == level]


@pytest.mark.asyncio
async def test_initialize_connects_and_logs(caplog):
    handle = DatabaseHandle.from_url("sqlite+aiosqlite:///:memory:", StructuredLogger("test.db"))

    await handle.initialize()

    assert handle.state is ConnectionState.CONNECTED
    assert [r.getMessage() for r in _db_records(caplog)] == ["Base de données connectée."]
    await handle.teardown()


@pytest.mark.asyncio
async def test_initialize_failure_is_logged_and_raised(caplog):
    handle = DatabaseHandle.from_url(BAD_DATABASE_URL, StructuredLogger("test.db"))

    with pytest.raises(DatabaseConnectionError) as excinfo:
        await handle.initialize()

    assert isinstance(excinfo.value, ConnectionError)
    assert excinfo.value.__cause__ is not None
    assert handle.state is ConnectionState.DISCONNECTED

    errors = _db_records(caplog, logging.ERROR)
    assert len(errors) == 1
    assert "OperationalError" in errors[0].detail


@pytest.mark.asyncio
async def test_initialize_is_a_noop_once_connected():
    engine = FakeEngine()
    handle = DatabaseHandle(engine, StructuredLogger("test.db"))

    await handle.initialize()
    await handle.initialize()

    assert engine.connect_calls == 1


@pytest.mark.asyncio
async def test_teardown_twice_closes_once(caplog):
    engine = FakeEngine()
    handle = DatabaseHandle(engine, StructuredLogger("test.db"))
    await handle.initialize()

    await handle.teardown()
    await handle.teardown()

    assert engine.dispose_calls == 1
    assert handle.state is ConnectionState.DISCONNECTED
    messages = [r.getMessage() for r in _db_records(caplog)]
    assert messages[-2:] == ["Base de données déconnectée.", "Base de données déjà déconnectée."]


@pytest.mark.asyncio
async def test_teardown_without_connect_is_safe():
    engine = FakeEngine()
    handle = DatabaseHandle(engine, StructuredLogger("test.db"))

    await handle.teardown()
    await handle.teardown()

    assert engine.dispose_calls == 1
    assert handle.state is ConnectionState.DISCONNECTED


@pytest.mark.asyncio
async def test_teardown_failure_is_logged_not_raised(caplog):
    engine = FakeEngine(dispose_error=RuntimeError("socket gone"))
    handle = DatabaseHandle(engine, StructuredLogger("test.db"))
    await handle.initialize()

    await handle.teardown()

    assert handle.state is ConnectionState.DISCONNECTED
    errors = _db_records(caplog, logging.ERROR)
    assert len(errors) == 1
    assert errors[0].detail == "RuntimeError: socket gone"


@pytest.mark.asyncio
async def test_session_requires_connected_state():
    handle = DatabaseHandle(FakeEngine(), StructuredLogger("test.db"))

    with pytest.raises(AppHTTPException) as excinfo:
        async with handle.session():
            pass

    assert excinfo.value.status_code == 503
    assert excinfo.value.detail["code"] == "DATABASE_UNAVAILABLE"


@pytest.mark.asyncio
async def test_ping_reflects_connection():
    engine = FakeEngine()
    handle = DatabaseHandle(engine, StructuredLogger("test.db"))

    assert await handle.ping() is False
    await handle.initialize()
    assert await handle.ping() is True

    engine.connect_error = OSError("down")
    assert await handle.ping() is False
