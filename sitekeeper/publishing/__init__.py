"""
publishing/ — Publicar cambios como commits en GitHub.

Módulos:
- changes.py       → FileChange y ChangeSet
- github_client.py → Git Data API (refs, blobs, trees, commits, contents)
- pipeline.py      → blob → tree → commit → ref
- publisher.py     → Fachada por dominio para la CLI
"""
