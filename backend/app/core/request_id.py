from __future__ import annotations

import uuid
from contextvars import ContextVar, Token

"""
Core Request ID.

Rôle (fonctionnel) :
- Porte l’identifiant de corrélation (request_id) de la requête en cours dans un ContextVar.
- Sert aux logs (RequestIdFilter), aux enveloppes de réponse et aux erreurs normalisées.

Notes :
- Le middleware HTTP lie le request_id avant call_next puis le délie en sortie (token),
  ce qui évite qu’une valeur “fuie” d’une requête à l’autre sur la même event loop.
- Hors requête (boot, arrêt, signaux), get_request_id() retourne None.
"""

REQUEST_ID_HEADER = "X-Request-Id"

_request_id: ContextVar[str | None] = ContextVar("request_id", default=None)


def get_request_id() -> str | None:
    return _request_id.get()


def bind_request_id(incoming: str | None = None) -> tuple[str, Token]:
    """
    Lie un request_id au contexte courant.

    - Header entrant non vide : nettoyé et réutilisé.
    - Sinon : UUID4 généré.

    Retourne (request_id, token) ; le token sert à reset_request_id().
    """
    rid = (incoming or "").strip() or str(uuid.uuid4())
    return rid, _request_id.set(rid)


def reset_request_id(token: Token) -> None:
    _request_id.reset(token)
