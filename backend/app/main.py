from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from app.api.router import api_router
from app.core.errors import AppHTTPException, ErrorNormalizer
from app.core.logging import StructuredLogger
from app.core.rate_limit import InMemoryRateLimiter
from app.core.request_id import REQUEST_ID_HEADER, bind_request_id, reset_request_id
from app.core.responses import UTF8JSONResponse
from app.core.settings import Settings, settings as default_settings
from app.db.handle import DatabaseHandle
from app.schemas.base import reset_payload_mode, set_payload_mode

"""
Application FastAPI (racine de composition des requêtes).

Rôle (fonctionnel) :
- Assemble explicitement (sans conteneur DI) : logger, handle DB, normaliseur d’erreurs, rate limiter.
- Enregistre les politiques globales, dans cet ordre de traitement :
  1. observabilité : request_id propagé (X-Request-Id) + log JSON par requête (timing, status, ip)
  2. forme des payloads : mode strict (refus des champs inconnus) / lenient (suppression)
  3. rate limit : fenêtre fixe par client
  4. enveloppe des succès (EnvelopeRoute)
  5. normalisation des erreurs (ErrorNormalizer)
- Monte les routes sous API_PREFIX (ex : /api/v1).

Ce fichier ne contient pas de logique métier.
Le serveur (uvicorn + superviseur de process) est lancé par app.server.
"""

# logger dédié observabilité HTTP (séparé du reste)
http_log = logging.getLogger("app.http")


def create_app(
    settings: Optional[Settings] = None,
    db: Optional[DatabaseHandle] = None,
    logger: Optional[StructuredLogger] = None,
    *,
    manage_db_lifecycle: bool = True,
) -> FastAPI:
    """
    Construit l’application.

    - db absent : un DatabaseHandle est créé depuis settings.DATABASE_URL.
    - manage_db_lifecycle=True : le lifespan initialise la base au démarrage et la libère à l’arrêt
      (cas `uvicorn app.asgi:app`). app.server passe False : le superviseur possède le handle.
    """
    settings = settings or default_settings
    logger = logger or StructuredLogger("app")
    db = db or DatabaseHandle.from_url(settings.DATABASE_URL, StructuredLogger("app.db"))

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if manage_db_lifecycle:
            # Échec => exception => uvicorn n’ouvre pas le port
            await db.initialize()
        yield
        if manage_db_lifecycle:
            await db.teardown()

    app = FastAPI(
        title=settings.APP_NAME,
        debug=settings.DEBUG,
        default_response_class=UTF8JSONResponse,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.db = db

    normalizer = ErrorNormalizer(logger, expose_details=not settings.is_production)
    rate_limiter = InMemoryRateLimiter(settings.RATE_LIMIT_LIMIT, settings.RATE_LIMIT_WINDOW_SECONDS)
    app.state.rate_limiter = rate_limiter

    # --- Routers ---
    app.include_router(api_router, prefix=settings.API_PREFIX)

    # Starlette : le dernier middleware ajouté est le plus externe.
    # Ordre d’ajout = de l’intérieur vers l’extérieur.

    # --- Normalisation des erreurs (handlers + filet 500) ---
    normalizer.install(app)

    # --- Rate limit ---
    @app.middleware("http")
    async def rate_limit_middleware(request: Request, call_next):
        # Jamais de limite sur les préflights CORS
        if not settings.RATE_LIMIT_ENABLED or request.method == "OPTIONS":
            return await call_next(request)

        try:
            state = rate_limiter.check(request)
        except AppHTTPException as exc:
            return normalizer.render(request, exc)

        response = await call_next(request)
        for key, value in state.headers().items():
            response.headers[key] = value
        return response

    # --- Forme des payloads (strict / lenient) ---
    @app.middleware("http")
    async def payload_policy_middleware(request: Request, call_next):
        token = set_payload_mode(settings.VALIDATION_MODE)
        try:
            return await call_next(request)
        finally:
            reset_payload_mode(token)

    # --- Observabilité : request_id + timing + log structuré ---
    @app.middleware("http")
    async def request_observability(request: Request, call_next):
        rid, token = bind_request_id(request.headers.get(REQUEST_ID_HEADER))
        request.state.request_id = rid

        start = time.perf_counter()
        response = None
        try:
            response = await call_next(request)
            response.headers[REQUEST_ID_HEADER] = rid
            return response
        finally:
            duration_ms = int((time.perf_counter() - start) * 1000)

            # Slow request => WARNING, sinon INFO
            level = logging.WARNING if duration_ms >= settings.SLOW_REQUEST_MS else logging.INFO
            http_log.log(
                level,
                "request",
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": getattr(response, "status_code", None),
                    "duration_ms": duration_ms,
                    "client_ip": request.client.host if request.client else None,
                },
            )

            reset_request_id(token)

    # --- CORS (désactivé par défaut), le plus externe pour répondre aux préflights ---
    if settings.CORS_ENABLED:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.allowed_origins,
            allow_credentials=True,
            allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH"],
            allow_headers=["*"],
            expose_headers=[REQUEST_ID_HEADER],
        )

    return app

