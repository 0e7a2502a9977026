"""
app

Package racine du service API.

Rôle (fonctionnel) :
- Bootstrap d’un service HTTP : logging, configuration, connexion DB gérée, erreurs normalisées,
  supervision du process.
- Sert de point d’ancrage pour les imports : `from app...`

Organisation (haute-level) :
- app.api      : routes FastAPI (health, statut système, dépendances)
- app.core     : briques transverses (settings, logs, erreurs, rate-limit, réponses, cycle de vie)
- app.db       : DatabaseHandle (engine SQLAlchemy async) + dépendance de session
- app.schemas  : schémas Pydantic (base des payloads entrants)
- app.main     : create_app (racine de composition des requêtes)
- app.server   : point d’entrée process (uvicorn + ProcessSupervisor)
- app.asgi     : app module-level pour `uvicorn app.asgi:app` (non importé par app.server)
"""
