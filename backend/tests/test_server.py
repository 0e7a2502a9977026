from __future__ import annotations

import asyncio
import logging
import os
import signal
import socket
import sys

import pytest

import app.server as server_module
from app.server import ManagedServer, ServerStartupError, build_server, run, serve_until_stopped

from .fixture_routes import BAD_DATABASE_URL


class SignalingServer:
    """Faux serveur : démarre, reçoit SIGTERM, puis attend should_exit comme uvicorn."""

    def __init__(self, app):
        self.app = app
        self.should_exit = False
        self.force_exit = False
        self.served = False

    async def serve(self):
        self.served = True
        os.kill(os.getpid(), signal.SIGTERM)
        while not self.should_exit:
            await asyncio.sleep(0.01)


@pytest.mark.asyncio
async def test_boot_aborts_before_listening_when_database_is_unreachable(make_settings, monkeypatch, caplog):
    def no_server(*args, **kwargs):
        raise AssertionError("le serveur ne doit pas être construit")

    monkeypatch.setattr(server_module, "build_server", no_server)

    code = await run(make_settings(DATABASE_URL=BAD_DATABASE_URL))

    assert code == 1
    messages = [r.getMessage() for r in caplog.records if r.levelno == logging.ERROR]
    assert any("Erreur de connexion à la base de données" in m for m in messages)
    assert any("Démarrage interrompu" in m for m in messages)


@pytest.mark.asyncio
@pytest.mark.skipif(sys.platform == "win32", reason="signaux POSIX")
async def test_run_serves_until_sigterm_then_disconnects(make_settings, monkeypatch):
    built = {}

    def fake_build_server(app, settings):
        built["server"] = SignalingServer(app)
        return built["server"]

    monkeypatch.setattr(server_module, "build_server", fake_build_server)

    code = await asyncio.wait_for(run(make_settings()), 5)

    assert code == 0
    server = built["server"]
    assert server.served is True
    assert server.app.state.db.state.value == "disconnected"


def test_build_server_uses_settings(make_settings, make_app):
    settings = make_settings(PORT=5123, HOST="127.0.0.1", SHUTDOWN_TIMEOUT_SECONDS=7)

    server = build_server(make_app(), settings)

    assert isinstance(server, ManagedServer)
    assert server.config.port == 5123
    assert server.config.host == "127.0.0.1"
    assert server.config.timeout_graceful_shutdown == 7


def test_default_port_is_5000(make_settings):
    assert make_settings().PORT == 5000


def test_managed_server_leaves_signal_handlers_alone(make_settings, make_app):
    server = build_server(make_app(), make_settings())
    before = signal.getsignal(signal.SIGTERM)

    with server.capture_signals():
        assert signal.getsignal(signal.SIGTERM) is before


@pytest.mark.asyncio
@pytest.mark.skipif(sys.platform == "win32", reason="signaux POSIX")
async def test_port_already_in_use_exits_one_and_disconnects(make_settings, monkeypatch):
    taken = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    taken.bind(("127.0.0.1", 0))
    taken.listen(1)
    port = taken.getsockname()[1]

    built = {}
    real_build_server = server_module.build_server

    def capturing_build_server(app, settings):
        built["app"] = app
        return real_build_server(app, settings)

    monkeypatch.setattr(server_module, "build_server", capturing_build_server)

    try:
        code = await asyncio.wait_for(run(make_settings(HOST="127.0.0.1", PORT=port)), 10)
    finally:
        taken.close()

    assert code == 1
    assert built["app"].state.db.state.value == "disconnected"


@pytest.mark.asyncio
async def test_uvicorn_system_exit_becomes_startup_error():
    class ExitingServer:
        async def serve(self):
            raise SystemExit(3)

    with pytest.raises(ServerStartupError) as excinfo:
        await serve_until_stopped(ExitingServer())

    assert isinstance(excinfo.value.__cause__, SystemExit)


def test_importing_the_factory_module_builds_no_app():
    import app.main as main_module

    assert not hasattr(main_module, "app")
    assert "app.asgi" not in sys.modules
