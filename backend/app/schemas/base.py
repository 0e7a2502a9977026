from __future__ import annotations

from contextvars import ContextVar, Token
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, model_validator
from pydantic_core import PydanticCustomError

"""
Schema de base des payloads entrants.

Rôle (fonctionnel) :
- Applique la politique de forme des payloads à tous les bodies de requête :
  - mode "strict"  : champ inconnu => erreur de validation (422, type extra_forbidden)
  - mode "lenient" : champ inconnu => supprimé silencieusement
- Laisse Pydantic coercer les types (mode lax : "42" -> 42, "true" -> True).

Notes :
- Le mode est lu dans un ContextVar posé par le middleware de l’app pour chaque requête
  (réglage VALIDATION_MODE). Hors requête, le mode par défaut est "strict".
- S’applique aussi aux sous-modèles (tout RequestSchema imbriqué).
"""

PayloadMode = Literal["strict", "lenient"]

_payload_mode: ContextVar[PayloadMode] = ContextVar("payload_mode", default="strict")


def get_payload_mode() -> PayloadMode:
    return _payload_mode.get()


def set_payload_mode(mode: PayloadMode) -> Token:
    if mode not in ("strict", "lenient"):
        raise ValueError(f"Mode de validation inconnu : {mode!r}")
    return _payload_mode.set(mode)


def reset_payload_mode(token: Token) -> None:
    _payload_mode.reset(token)


class RequestSchema(BaseModel):
    """Base des bodies de requête (hériter de RequestSchema plutôt que BaseModel)."""

    # "ignore" : le mode lenient supprime ; le mode strict refuse avant (validator ci-dessous)
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    @model_validator(mode="before")
    @classmethod
    def _enforce_payload_shape(cls, data: Any) -> Any:
        if get_payload_mode() != "strict" or not isinstance(data, dict):
            return data

        allowed: set[str] = set()
        for name, field in cls.model_fields.items():
            allowed.add(name)
            if field.alias:
                allowed.add(field.alias)
            if isinstance(field.validation_alias, str):
                allowed.add(field.validation_alias)

        unknown = sorted(str(k) for k in data if k not in allowed)
        if unknown:
            raise PydanticCustomError(
                "extra_forbidden",
                "Champs non autorisés : {fields}",
                {"fields": ", ".join(unknown)},
            )
        return data
