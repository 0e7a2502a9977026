from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Callable, Coroutine

from fastapi import Request, Response
from fastapi.routing import APIRoute
from starlette.responses import JSONResponse

from app.core.request_id import get_request_id

"""
Core Responses.

Rôle (fonctionnel) :
- Réponse JSON avec charset UTF-8 explicite (cohérent sur tous les endpoints).
- Mise en forme uniforme des succès : chaque payload JSON renvoyé par un endpoint
  est enveloppé dans {"success": true, "status", "data", "request_id", "timestamp"}.

Convention (exemple) :
{
  "success": true,
  "status": 200,
  "data": {...},
  "request_id": "...",
  "timestamp": "..."
}

Notes :
- L’enveloppe est posée par EnvelopeRoute (route_class des routers) : seules les
  réponses JSON 2xx/3xx sont concernées, les erreurs passent par app.core.errors.
- Les réponses non JSON (fichiers, streaming, 204) sont laissées telles quelles.
"""


class UTF8JSONResponse(JSONResponse):
    media_type = "application/json; charset=utf-8"


def now_iso() -> str:
    """Timestamp ISO-8601 en UTC (succès comme erreurs)."""
    return datetime.now(timezone.utc).isoformat()


def success_payload(data: Any, *, status: int, request_id: str | None) -> dict[str, Any]:
    return {
        "success": True,
        "status": status,
        "data": data,
        "request_id": request_id,
        "timestamp": now_iso(),
    }


def _is_json(response: Response) -> bool:
    media_type = (response.media_type or response.headers.get("content-type") or "").lower()
    return media_type.startswith("application/json")


class EnvelopeRoute(APIRoute):
    """
    Route FastAPI qui enveloppe les réponses JSON de succès.

    Usage :
        router = APIRouter(route_class=EnvelopeRoute)
    """

    def get_route_handler(self) -> Callable[[Request], Coroutine[Any, Any, Response]]:
        original = super().get_route_handler()

        async def envelope_handler(request: Request) -> Response:
            response = await original(request)

            if response.status_code >= 400 or not _is_json(response):
                return response

            body = getattr(response, "body", b"")
            if not body:
                return response

            data = json.loads(body)
            rid = getattr(request.state, "request_id", None) or get_request_id()

            wrapped = UTF8JSONResponse(
                status_code=response.status_code,
                content=success_payload(data, status=response.status_code, request_id=rid),
                background=response.background,
            )
            # Conserver les headers posés par l’endpoint (hors longueur / type recalculés)
            for key, value in response.headers.items():
                if key.lower() not in ("content-length", "content-type"):
                    wrapped.headers.append(key, value)
            return wrapped

        return envelope_handler
