from __future__ import annotations

import asyncio
import contextlib
import sys
from typing import Optional

import uvicorn

from app.core.lifecycle import EXIT_FAULT, ProcessSupervisor
from app.core.logging import StructuredLogger, setup_logging, teardown_logging
from app.core.settings import Settings, settings as default_settings
from app.db.handle import DatabaseConnectionError, DatabaseHandle
from app.main import create_app

"""
Point d’entrée process (serveur HTTP).

Rôle (fonctionnel) :
- Câblage explicite, dans l’ordre : logger -> handle DB (logger injecté) -> app (logger + DB).
- La base doit être connectée AVANT l’ouverture du port : un échec de connexion est fatal,
  loggé, et le process sort en code 1 sans jamais écouter.
- Lance uvicorn et installe le ProcessSupervisor (signaux + fautes -> arrêt ordonné).

Usage :
    python -m app.server
    api-server            (script déclaré dans pyproject.toml)
"""


class ManagedServer(uvicorn.Server):
    """uvicorn.Server sans gestion des signaux : le ProcessSupervisor s’en charge."""

    @contextlib.contextmanager
    def capture_signals(self):
        yield

    def install_signal_handlers(self) -> None:
        pass


class ServerStartupError(RuntimeError):
    """uvicorn a quitté via sys.exit (ex : port déjà utilisé) ; traité comme une faute."""


async def serve_until_stopped(server) -> None:
    # uvicorn sort par sys.exit en cas d’échec de bind : on le convertit en faute supervisée
    try:
        await server.serve()
    except SystemExit as exc:
        raise ServerStartupError(f"uvicorn a quitté avec le code {exc.code}") from exc


def build_server(app, settings: Settings) -> ManagedServer:
    config = uvicorn.Config(
        app,
        host=settings.HOST,
        port=settings.PORT,
        log_config=None,  # logging JSON déjà configuré (app.core.logging)
        timeout_graceful_shutdown=int(settings.SHUTDOWN_TIMEOUT_SECONDS),
    )
    return ManagedServer(config)


async def run(settings: Optional[Settings] = None) -> int:
    """Démarre le service et retourne le code de sortie du process."""
    settings = settings or default_settings
    logger = StructuredLogger("app")

    db = DatabaseHandle.from_url(settings.DATABASE_URL, StructuredLogger("app.db"))
    try:
        await db.initialize()
    except DatabaseConnectionError as exc:
        logger.error("Démarrage interrompu : base de données injoignable.", str(exc))
        await db.teardown()
        return EXIT_FAULT

    app = create_app(settings, db=db, logger=logger, manage_db_lifecycle=False)
    server = build_server(app, settings)

    supervisor = ProcessSupervisor(
        logger,
        server,
        resources=[db],
        shutdown_timeout=settings.SHUTDOWN_TIMEOUT_SECONDS,
    )
    supervisor.install(asyncio.get_running_loop())
    try:
        supervisor.supervise(asyncio.ensure_future(serve_until_stopped(server)))
        logger.log(f"Démarrage de {settings.APP_NAME} sur {settings.HOST}:{settings.PORT}{settings.API_PREFIX}")
        return await supervisor.wait()
    finally:
        supervisor.uninstall()


def main() -> None:
    setup_logging(default_settings.LOG_LEVEL)
    try:
        code = asyncio.run(run(default_settings))
    finally:
        teardown_logging()
    sys.exit(code)


if __name__ == "__main__":
    main()
