from fastapi import APIRouter, Request

from app.core.responses import EnvelopeRoute

"""
API Health.

Rôle (fonctionnel) :
- Endpoint simple (liveness) pour vérifier que l’API répond.
- Expose l’env et l’état de connexion DB, sans requête vers la base.
"""

router = APIRouter(route_class=EnvelopeRoute)


@router.get("/health")
def health(request: Request):
    settings = request.app.state.settings
    return {
        "status": "ok",
        "app": settings.APP_NAME,
        "env": settings.ENV,
        "db": request.app.state.db.state.value,
    }
