from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter

from app.api.deps import DbHandleDep
from app.core.responses import EnvelopeRoute
from app.db.handle import DatabaseHandle

"""
API System Status.

Rôle (fonctionnel) :
- Expose un endpoint de statut (readiness) pour la plateforme.
- Vérifie la disponibilité de la base (SELECT 1 via le handle).
- Format constant, 200 même si la base est KO : c’est le champ `ok` qui porte l’état.
"""

router = APIRouter(prefix="/system", tags=["system"], route_class=EnvelopeRoute)


@router.get("/status")
async def system_status(db: DatabaseHandle = DbHandleDep):
    db_ok = await db.ping()

    return {
        "ok": db_ok,
        "db": {"ok": db_ok, "state": db.state.value},
        "ts": datetime.now(timezone.utc).isoformat(),
    }
