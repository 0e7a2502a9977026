"""
app.schemas

Package des schémas API (Pydantic).

Rôle (fonctionnel) :
- base.RequestSchema : base commune des bodies de requête, porte la politique de forme
  (strict : champs inconnus refusés / lenient : champs inconnus supprimés).

Usage :
- Les endpoints déclarent leurs bodies en héritant de RequestSchema, pas de BaseModel.
"""
