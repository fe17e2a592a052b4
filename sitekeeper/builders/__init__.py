"""
builders/ — Traducen estado editado a ChangeSets.

Módulos:
- base.py         → StagedUpload, deduplicación por hash, diff de assets
- listings.py     → Proyectos y shares
- pictures.py     → Galería de fotos
- site_content.py → Configuración del sitio
- blog.py         → Posts del blog
- about.py        → Página about
"""
