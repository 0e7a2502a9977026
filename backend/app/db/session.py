from __future__ import annotations

from typing import AsyncIterator

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.handle import DatabaseHandle

"""
DB Session.

Rôle (fonctionnel) :
- Expose `get_db()` comme dépendance FastAPI (Depends(get_db)).
- Récupère le DatabaseHandle du process via request.app.state.db (posé par create_app).
- Refuse la requête (503 DATABASE_UNAVAILABLE) tant que la connexion n’est pas établie.
"""


def get_handle(request: Request) -> DatabaseHandle:
    return request.app.state.db


async def get_db(request: Request) -> AsyncIterator[AsyncSession]:
    """Dépendance FastAPI : yield une session DB et garantit sa fermeture."""
    async with get_handle(request).session() as session:
        yield session
