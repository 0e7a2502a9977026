from app.core.logging import setup_logging
from app.core.settings import settings
from app.main import create_app

"""
Cible ASGI pour un lancement direct par uvicorn.

Usage :
    uvicorn app.asgi:app

Notes :
- Le lifespan de l’app gère alors la base (initialize au démarrage, teardown à l’arrêt).
- app.server n’importe pas ce module : un seul DatabaseHandle par process.
"""

# --- Logging (niveau depuis .env si dispo) ---
setup_logging(settings.LOG_LEVEL)

app = create_app(settings)
