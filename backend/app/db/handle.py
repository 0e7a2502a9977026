from __future__ import annotations

import enum
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from app.core.errors import AppHTTPException
from app.core.logging import StructuredLogger

"""
DB Handle.

Rôle (fonctionnel) :
- Possède l’engine SQLAlchemy async du process (composition : pas d’héritage du client).
- Expose le cycle de vie de la connexion :
  - initialize() : connexion + SELECT 1, log de succès ; échec => log d’erreur + DatabaseConnectionError
  - teardown()   : libération best-effort des connexions, idempotente
- Fournit les sessions AsyncSession aux endpoints, uniquement une fois l’état `connected` atteint.

Notes :
- Une seule instance par process, construite par la racine de composition (app.server, ou app.asgi pour uvicorn).
- L’état n’est écrit que pendant initialize() et teardown().
- expire_on_commit=False : les objets restent utilisables après commit.
"""


class ConnectionState(str, enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class DatabaseConnectionError(ConnectionError):
    """Échec de connexion à la base au démarrage (fatal : le boot est interrompu)."""


class DatabaseHandle:
    def __init__(self, engine: AsyncEngine, logger: StructuredLogger) -> None:
        self.engine = engine
        self.logger = logger
        self.state = ConnectionState.DISCONNECTED
        self._disposed = False
        self._sessionmaker = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)

    @classmethod
    def from_url(cls, url: str, logger: StructuredLogger, **engine_kwargs) -> "DatabaseHandle":
        # echo=False : pas de SQL brut dans les logs (on garde les logs applicatifs JSON)
        engine_kwargs.setdefault("echo", False)
        return cls(create_async_engine(url, **engine_kwargs), logger)

    @property
    def is_connected(self) -> bool:
        return self.state is ConnectionState.CONNECTED

    async def initialize(self) -> None:
        """Établit la connexion. Sans effet si déjà connecté."""
        if self.is_connected:
            return

        self.state = ConnectionState.CONNECTING
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except Exception as exc:
            self.state = ConnectionState.DISCONNECTED
            self.logger.error("Erreur de connexion à la base de données :", f"{type(exc).__name__}: {exc}")
            raise DatabaseConnectionError(f"{type(exc).__name__}: {exc}") from exc

        self._disposed = False
        self.state = ConnectionState.CONNECTED
        self.logger.log("Base de données connectée.")

    async def teardown(self) -> None:
        """Libère les connexions (best-effort). Un second appel ne fait que logger."""
        if self._disposed:
            self.state = ConnectionState.DISCONNECTED
            self.logger.log("Base de données déjà déconnectée.")
            return

        try:
            await self.engine.dispose()
        except Exception as exc:
            self.logger.error("Erreur à la fermeture de la base de données :", f"{type(exc).__name__}: {exc}")
        finally:
            self._disposed = True
            self.state = ConnectionState.DISCONNECTED

        self.logger.log("Base de données déconnectée.")

    def _require_connected(self) -> None:
        if not self.is_connected:
            raise AppHTTPException(
                503,
                "DATABASE_UNAVAILABLE",
                "Base de données indisponible",
                details={"state": self.state.value},
            )

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """Session DB ; refuse (503) tant que la connexion n’est pas établie."""
        self._require_connected()
        async with self._sessionmaker() as session:
            yield session

    async def ping(self) -> bool:
        if not self.is_connected:
            return False
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except Exception as exc:
            self.logger.error("Ping base de données en échec :", f"{type(exc).__name__}: {exc}")
            return False
        return True

