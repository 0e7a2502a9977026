"""
app.db

Package base de données : handle de connexion et sessions.

Contenu :
- handle : DatabaseHandle (cycle de vie initialize/teardown de l’engine SQLAlchemy async).
- session : dépendance FastAPI get_db (Depends(get_db)).
"""
