from __future__ import annotations

import uuid
from typing import Any, Dict, Optional, Tuple

from fastapi import FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.logging import StructuredLogger
from app.core.request_id import get_request_id
from app.core.responses import UTF8JSONResponse, now_iso

"""
Core Errors.

Rôle (fonctionnel) :
- Standardise le format des erreurs renvoyées par l’API (payload homogène).
- Fournit une exception applicative (AppHTTPException) pour lever des erreurs de façon cohérente.
- ErrorNormalizer : intercepte toute erreur issue du traitement d’une requête, la convertit
  en enveloppe d’erreur, émet exactement un log d’erreur, et ne relance jamais.

Convention de réponse (exemple) :
{
  "success": false,
  "error": {
    "code": "NOT_FOUND",
    "message": "Ressource introuvable",
    "status": 404,
    "request_id": "...",
    "timestamp": "...",
    "details": {...}
  }
}

Politique :
- Erreur non reconnue => 500 INTERNAL_ERROR + message générique (stacktrace côté logs uniquement).
- Config production => `details` supprimé des réponses.
"""

GENERIC_MESSAGE = "Erreur interne du serveur"


def error_payload(
    *,
    code: str,
    message: str,
    status: int,
    request_id: str,
    details: Optional[Any] = None,
) -> Dict[str, Any]:
    """Construit un payload d’erreur homogène pour l’API."""
    payload: Dict[str, Any] = {
        "success": False,
        "error": {
            "code": code,
            "message": message,
            "status": status,
            "request_id": request_id,
            "timestamp": now_iso(),
        },
    }
    if details is not None:
        payload["error"]["details"] = details
    return payload


class AppHTTPException(HTTPException):
    """
    Exception applicative standardisée.

    Exemple :
        raise AppHTTPException(503, "DATABASE_UNAVAILABLE", "Base de données indisponible")
    """

    def __init__(
        self,
        status_code: int,
        code: str,
        message: str,
        details: Any = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        super().__init__(
            status_code=status_code,
            detail={"code": code, "message": message, "details": details},
            headers=headers,
        )


class ErrorNormalizer:
    """
    Normaliseur global des erreurs de requête.

    - normalize() : erreur quelconque -> (status, code, message, details).
    - render() : log (1 record) + réponse JSON enveloppée.
    - install() : branche les handlers FastAPI et le filet 500 (middleware).
    """

    def __init__(self, logger: StructuredLogger, *, expose_details: bool = True) -> None:
        self.logger = logger
        self.expose_details = expose_details

    def normalize(self, exc: BaseException) -> Tuple[int, str, str, Any]:
        if isinstance(exc, RequestValidationError):
            return 422, "VALIDATION_ERROR", "Requête invalide", jsonable_encoder(exc.errors())

        # Erreur de schéma levée dans un handler (hors validation d’entrée)
        if isinstance(exc, ValidationError):
            return (
                422,
                "VALIDATION_ERROR",
                "Données invalides",
                jsonable_encoder(exc.errors(include_url=False)),
            )

        if isinstance(exc, StarletteHTTPException):
            if isinstance(exc.detail, dict):
                return (
                    exc.status_code,
                    str(exc.detail.get("code", "HTTP_ERROR")),
                    str(exc.detail.get("message", "Erreur HTTP")),
                    exc.detail.get("details", None),
                )
            code = "NOT_FOUND" if exc.status_code == 404 else "HTTP_ERROR"
            return exc.status_code, code, str(exc.detail), None

        return 500, "INTERNAL_ERROR", GENERIC_MESSAGE, None

    def render(self, request: Request, exc: BaseException) -> UTF8JSONResponse:
        rid = getattr(request.state, "request_id", None) or get_request_id() or str(uuid.uuid4())
        status, code, message, details = self.normalize(exc)

        # Stacktrace réservée aux erreurs non prévues (pas aux AppHTTPException 5xx volontaires)
        if status >= 500 and not isinstance(exc, StarletteHTTPException):
            self.logger.error(
                f"Unhandled error: {type(exc).__name__}: {exc}",
                exc_info=(type(exc), exc, exc.__traceback__),
            )
        else:
            self.logger.error(f"{status} {code}: {message}", detail=details)

        headers = getattr(exc, "headers", None) if isinstance(exc, StarletteHTTPException) else None

        return UTF8JSONResponse(
            status_code=status,
            content=error_payload(
                code=code,
                message=message,
                status=status,
                request_id=rid,
                details=details if self.expose_details else None,
            ),
            headers=headers,
        )

    def install(self, app: FastAPI) -> None:
        async def handle(request: Request, exc: Exception) -> UTF8JSONResponse:
            return self.render(request, exc)

        app.add_exception_handler(StarletteHTTPException, handle)
        app.add_exception_handler(RequestValidationError, handle)
        app.add_exception_handler(ValidationError, handle)

        # Filet 500 en middleware : un handler `Exception` passerait par ServerErrorMiddleware,
        # qui relance l’exception après la réponse.
        @app.middleware("http")
        async def error_normalization(request: Request, call_next):
            try:
                return await call_next(request)
            except Exception as exc:
                return self.render(request, exc)
