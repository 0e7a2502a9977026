"""
app.core

Package “cœur” : tout ce qui est transversal (cross-cutting concerns) et ne dépend d’aucun endpoint.

- settings
  Configuration via variables d’environnement (port, préfixe, CORS, rate limit, mode de validation, DB).

- logging
  Logging JSON du process (setup/teardown) + façade StructuredLogger (log/error) injectée partout.

- request_id
  Identifiant de corrélation (X-Request-Id) porté par un ContextVar.

- responses
  Réponse JSON UTF-8 et enveloppe uniforme des succès (EnvelopeRoute).

- errors
  Enveloppe d’erreur uniforme, AppHTTPException et ErrorNormalizer (1 erreur = 1 log + 1 réponse).

- rate_limit
  Limitation de débit à fenêtre fixe, par client.

- lifecycle
  ProcessSupervisor : signaux et fautes du process -> arrêt ordonné (serveur, ressources, code de sortie).
"""
