from fastapi import APIRouter

from app.api.health import router as health_router
from app.api.status import router as status_router
from app.core.responses import EnvelopeRoute

"""
Router principal de l’API.

Rôle (fonctionnel) :
- Regroupe les routeurs (health, system).
- Sert de point d’entrée unique pour l’inclusion dans l’application FastAPI,
  sous le préfixe API_PREFIX (ex : /api/v1).
"""

api_router = APIRouter(route_class=EnvelopeRoute)

api_router.include_router(health_router, tags=["health"])
api_router.include_router(status_router)
