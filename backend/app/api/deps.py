from __future__ import annotations

from fastapi import Depends

from app.db.session import get_db, get_handle

"""
Dépendances API.

Rôle (fonctionnel) :
- Centralise les dépendances réutilisables sur les routes.
- Ici : accès au handle DB du process et aux sessions (refusées tant que la base n’est pas connectée).
"""

# Handle DB (état, ping)
DbHandleDep = Depends(get_handle)

# Session AsyncSession prête à l’emploi
DbSessionDep = Depends(get_db)
