"""
sitekeeper — Publica el contenido de un sitio personal directo a GitHub.

El contenido (posts, proyectos, galería, configuración) se edita fuera
y se publica como commits sobre el repo del sitio, autenticando como
GitHub App con una private key que vive cifrada en disco.

- auth/        → Vault de la key, sesión y broker de tokens
- publishing/  → Cliente de la Git Data API, pipeline y fachada
- builders/    → Change-sets por dominio (blog, proyectos, fotos...)
- utils/       → Logger y validadores

Uso:
    python -m sitekeeper setup --key-file app.private-key.pem
    python -m sitekeeper projects list.json --upload https://x.dev=cover.png
    python -m sitekeeper status
"""

__version__ = "1.0.0"
