from __future__ import annotations

import math
import time
from dataclasses import dataclass
from threading import Lock
from typing import Callable, Dict

from fastapi import Request

from app.core.errors import AppHTTPException

"""
Core Rate Limit.

Rôle (fonctionnel) :
- Protège l’API contre les rafales de requêtes avec une fenêtre fixe :
  au plus `limit` requêtes par fenêtre de `window_seconds`, par client (IP).
- La requête limit+1 d’une même fenêtre est refusée (429 RATE_LIMITED).
- Expose l’état du compteur pour les headers X-RateLimit-*.

Notes :
- Implémentation in-memory (un process). Plusieurs workers => un compteur par worker.
- Les buckets expirés sont purgés au plus une fois par fenêtre pour éviter
  une croissance illimitée du dictionnaire sans rescanner à chaque nouveau client.
"""


@dataclass
class _Bucket:
    """État minimal d’un compteur sur une fenêtre fixe."""
    window_start: float
    count: int


@dataclass(frozen=True)
class RateLimitState:
    limit: int
    remaining: int
    reset_after: float

    def headers(self) -> Dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(math.ceil(self.reset_after)),
        }


class InMemoryRateLimiter:
    """
    Rate limiter à fenêtre fixe (best-effort).

    Principe :
    - Un compteur par clé client sur une fenêtre de `window_seconds`.
    - Réinitialisation du compteur à chaque nouvelle fenêtre.
    - AppHTTPException(429) + Retry-After si la limite est dépassée.
    """

    def __init__(
        self,
        limit: int,
        window_seconds: float,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._lock = Lock()
        self._buckets: Dict[str, _Bucket] = {}
        self._last_purge = clock()

    def client_key(self, request: Request) -> str:
        """IP client (derrière un reverse proxy : lancer uvicorn avec --proxy-headers)."""
        return request.client.host if request.client else "unknown"

    def _purge(self, now: float) -> None:
        expired = [k for k, b in self._buckets.items() if now - b.window_start >= self.window_seconds]
        for key in expired:
            del self._buckets[key]

    def hit(self, key: str) -> RateLimitState:
        """Compte une requête pour `key`. Lève 429 si la limite de la fenêtre est dépassée."""
        now = self._clock()

        with self._lock:
            bucket = self._buckets.get(key)

            if bucket is None or (now - bucket.window_start) >= self.window_seconds:
                # Purge au plus une fois par fenêtre
                if now - self._last_purge >= self.window_seconds:
                    self._purge(now)
                    self._last_purge = now
                bucket = _Bucket(window_start=now, count=0)
                self._buckets[key] = bucket

            bucket.count += 1
            reset_after = max(0.0, self.window_seconds - (now - bucket.window_start))

            if bucket.count > self.limit:
                state = RateLimitState(limit=self.limit, remaining=0, reset_after=reset_after)
                raise AppHTTPException(
                    429,
                    "RATE_LIMITED",
                    f"Trop de requêtes (limite : {self.limit} / {self.window_seconds:g}s).",
                    details={"limit": self.limit, "window_seconds": self.window_seconds},
                    headers={**state.headers(), "Retry-After": str(math.ceil(reset_after))},
                )

            return RateLimitState(
                limit=self.limit,
                remaining=self.limit - bucket.count,
                reset_after=reset_after,
            )

    def check(self, request: Request) -> RateLimitState:
        return self.hit(self.client_key(request))

    def reset(self) -> None:
        with self._lock:
            self._buckets.clear()
