from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from .request_id import get_request_id

"""
Core Logging.

Rôle (fonctionnel) :
- Configure un logging JSON uniforme pour tout le process (API + uvicorn).
- Injecte le request_id dans chaque log pour corréler les événements d’une même requête.
- Fournit StructuredLogger : la façade log()/error() injectée dans les composants
  (handle DB, normaliseur d’erreurs, superviseur).

Cycle de vie :
- setup_logging() une fois au démarrage du process.
- teardown_logging() à la sortie (flush + fermeture des handlers).
"""

# Extras reconnus (fournis via logger.info(..., extra={...}))
_EXTRA_KEYS = (
    "method",
    "path",
    "status_code",
    "duration_ms",
    "client_ip",
    "detail",
    "cause",
    "state",
)


class RequestIdFilter(logging.Filter):
    """Ajoute request_id au LogRecord (valeur '-' hors requête)."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = get_request_id() or "-"
        return True


class JsonFormatter(logging.Formatter):
    """Formateur JSON (1 event = 1 ligne JSON)."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "request_id": getattr(record, "request_id", "-"),
            "msg": record.getMessage(),
        }

        for key in _EXTRA_KEYS:
            if hasattr(record, key):
                payload[key] = getattr(record, key)

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        # default=str : un extra non sérialisable ne doit pas faire tomber le log
        return json.dumps(payload, ensure_ascii=False, default=str)


def setup_logging(level: str = "INFO") -> None:
    """
    Initialise le logging global (root) en JSON et aligne uvicorn dessus.

    - Nettoie les handlers existants pour éviter les doublons (--reload, double appel).
    - StreamHandler stdout + JsonFormatter + RequestIdFilter.
    """
    lvl = level.upper()

    root = logging.getLogger()
    root.setLevel(lvl)

    if root.handlers:
        root.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())
    handler.addFilter(RequestIdFilter())
    root.addHandler(handler)

    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logger = logging.getLogger(name)
        logger.handlers = root.handlers
        logger.propagate = False
        logger.setLevel(lvl)


def teardown_logging() -> None:
    """Flush et ferme les handlers du root logger (dernier appel avant exit)."""
    root = logging.getLogger()
    for handler in list(root.handlers):
        handler.flush()
        handler.close()
        root.removeHandler(handler)


class StructuredLogger:
    """
    Façade log()/error() au-dessus d’un logging.Logger nommé.

    Ne lève jamais vers l’appelant : les erreurs d’émission sont absorbées par
    logging.Handler.handleError, et seuls des extras connus sont transmis
    (pas de collision avec les attributs du LogRecord).
    """

    def __init__(self, name: str = "app") -> None:
        self._logger = logging.getLogger(name)

    @property
    def name(self) -> str:
        return self._logger.name

    def log(self, message: str, *, cause: str | None = None) -> None:
        extra = {"cause": cause} if cause is not None else None
        self._logger.info("%s", message, extra=extra)

    def warning(self, message: str) -> None:
        self._logger.warning("%s", message)

    def error(
        self,
        message: str,
        detail: Any = None,
        *,
        exc_info: Any = None,
        cause: str | None = None,
    ) -> None:
        extra: dict[str, Any] = {}
        if detail is not None:
            extra["detail"] = detail
        if cause is not None:
            extra["cause"] = cause
        self._logger.error("%s", message, exc_info=exc_info, extra=extra or None)
