"""
blog.py — Builder de posts del blog.

Cada post es un directorio dentro de public/blogs/:

    public/blogs/index.json             ← listado de todos los posts
    public/blogs/{slug}/index.md        ← contenido markdown
    public/blogs/{slug}/config.json     ← metadata (título, fecha, tags...)
    public/blogs/{slug}/{sha256}.{ext}  ← imágenes del post y portada

El editor inserta imágenes nuevas como `local-image:{id}` dentro del
markdown. Al publicar, cada placeholder se reemplaza por la URL final
/blogs/{slug}/{sha256}{ext}. Dos placeholders con los mismos bytes
apuntan al mismo archivo.

Casos:
    - Post nuevo: index.md + config.json + imágenes + index.json
    - Edición: además borra imágenes que el post ya no usa
    - Renombre (slug distinto al original): borra index.md/config.json
      del slug viejo y sus imágenes no referenciadas
    - Borrado: quita archivos del post, sus imágenes y su entrada del índice

Uso:
    from sitekeeper.builders.blog import BlogBuilder, BlogPost
    builder = BlogBuilder()
    change_set, post, index = builder.build_publish(post, index, images={"a1": upload})
"""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timezone
from typing import Any

from sitekeeper.builders.base import (
    AssetScope,
    AssetStager,
    StagedUpload,
    assemble,
    dump_listing,
    orphaned_assets,
)
from sitekeeper.publishing.changes import ChangeSet, FileChange
from sitekeeper.utils.logger import get_logger
from sitekeeper.utils.validators import validate_post_meta

logger = get_logger("sitekeeper.blog")

BLOG_DIR = "public/blogs"
INDEX_PATH = f"{BLOG_DIR}/index.json"

# ![alt](local-image:abc123)
PLACEHOLDER_PATTERN = re.compile(r"local-image:([A-Za-z0-9_\-]+)")


@dataclass
class BlogPost:
    """
    Un post del blog.

    Campos:
        slug: Identificador y nombre de directorio
        title: Título
        content: Markdown (no va en config.json)
        date: Fecha ISO 8601
        summary: Resumen para el listado
        tags: Etiquetas
        category: Categoría
        cover: URL de la portada
        hidden: Oculto del listado público
    """
    slug: str
    title: str
    content: str = ""
    date: str = ""
    summary: str = ""
    tags: list[str] = field(default_factory=list)
    category: str = ""
    cover: str = ""
    hidden: bool = False

    def to_meta(self) -> dict[str, Any]:
        """Metadata para config.json e index.json (todo menos el markdown)."""
        meta = asdict(self)
        del meta["content"]
        return meta

    @classmethod
    def from_meta(cls, meta: dict[str, Any], content: str = "") -> BlogPost:
        campos = {f for f in cls.__dataclass_fields__ if f != "content"}
        datos = {k: v for k, v in meta.items() if k in campos}
        return cls(content=content, **datos)

    @property
    def scope(self) -> AssetScope:
        return post_scope(self.slug)

    def asset_urls(self, scope: AssetScope | None = None) -> list[str]:
        """URLs de assets bajo `scope` (por defecto el del post) + portada."""
        scope = scope or self.scope
        patron = re.compile(re.escape(scope.url_prefix) + r"[^\s)\"'<>]+")
        urls = patron.findall(self.content)
        if self.cover:
            urls.append(self.cover)
        return urls


def post_scope(slug: str) -> AssetScope:
    return AssetScope(f"/blogs/{slug}/")


def post_paths(slug: str) -> tuple[str, str]:
    """(index.md, config.json) de un slug."""
    return f"{BLOG_DIR}/{slug}/index.md", f"{BLOG_DIR}/{slug}/config.json"


def _date_key(entry: dict[str, Any]) -> tuple[int, float, str]:
    """Fecha comparable: ISO 8601 parseada (sin zona se asume UTC)."""
    fecha = str(entry.get("date") or "")
    if not fecha:
        return 0, 0.0, ""
    try:
        parsed = datetime.fromisoformat(fecha.replace("Z", "+00:00"))
    except ValueError:
        return 1, 0.0, fecha
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return 2, parsed.timestamp(), fecha


def _sorted_index(entries: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Más recientes primero; fechas ilegibles y sin fecha al final."""
    return sorted(entries, key=_date_key, reverse=True)


class BlogBuilder:
    """Change-sets para publicar, editar y borrar posts."""

    def build_publish(
        self,
        post: BlogPost,
        index: list[dict[str, Any]],
        images: dict[str, StagedUpload] | None = None,
        cover: StagedUpload | None = None,
        previous: BlogPost | None = None,
    ) -> tuple[ChangeSet, BlogPost, list[dict[str, Any]]]:
        """
        Arma el change-set para publicar (o re-publicar) un post.

        Args:
            post: Post editado; su markdown puede tener placeholders.
            index: index.json tal como está publicado.
            images: {id del placeholder: StagedUpload}.
            cover: Portada nueva.
            previous: Versión publicada del post (None si es nuevo).

        Returns:
            (ChangeSet, post final, índice final)

        Raises:
            ValueError: Metadata inválida o placeholder sin upload.
        """
        valido, error = validate_post_meta(post.to_meta())
        if not valido:
            raise ValueError(error)

        images = images or {}
        stager = AssetStager(post.scope)

        def sustituir(match: re.Match) -> str:
            image_id = match.group(1)
            upload = images.get(image_id)
            if upload is None:
                raise ValueError(f"La imagen {image_id} no tiene archivo pendiente")
            return stager.stage(upload)

        contenido = PLACEHOLDER_PATTERN.sub(sustituir, post.content)
        portada = stager.stage(cover) if cover is not None else post.cover
        final = replace(post, content=contenido, cover=portada)

        md_path, config_path = post_paths(final.slug)
        writes = [
            FileChange.text(md_path, final.content),
            FileChange.text(config_path, dump_listing(final.to_meta())),
        ]

        deletes: list[FileChange] = []
        slugs_reemplazados = {final.slug}
        if previous is not None:
            # Tras un renombre el markdown puede seguir apuntando al directorio viejo
            deletes += orphaned_assets(
                previous.scope, previous.asset_urls(), final.asset_urls(previous.scope)
            )
            if previous.slug != final.slug:
                logger.info(f"Renombrando post: {previous.slug} → {final.slug}")
                deletes += [FileChange.delete(p) for p in post_paths(previous.slug)]
                slugs_reemplazados.add(previous.slug)

        nuevo_indice = [e for e in index if e.get("slug") not in slugs_reemplazados]
        nuevo_indice.append(final.to_meta())
        nuevo_indice = _sorted_index(nuevo_indice)

        verbo = "update" if previous is not None else "publish"
        change_set = assemble(
            f"chore: {verbo} blog post {final.slug}",
            writes,
            stager.changes,
            [FileChange.text(INDEX_PATH, dump_listing(nuevo_indice))],
            deletes,
        )
        return change_set, final, nuevo_indice

    def build_delete(
        self,
        slug: str,
        index: list[dict[str, Any]],
        previous: BlogPost | None = None,
    ) -> tuple[ChangeSet, list[dict[str, Any]]]:
        """
        Arma el change-set para borrar un post.

        Args:
            slug: Post a borrar.
            index: index.json publicado.
            previous: Versión publicada (para saber qué imágenes borrar).

        Raises:
            ValueError: El slug no existe ni en el índice ni como post.
        """
        en_indice = any(e.get("slug") == slug for e in index)
        if not en_indice and previous is None:
            raise ValueError(f"No existe el post: {slug}")

        deletes = [FileChange.delete(p) for p in post_paths(slug)]
        if previous is not None:
            deletes += orphaned_assets(post_scope(slug), previous.asset_urls(), [])

        nuevo_indice = [e for e in index if e.get("slug") != slug]
        change_set = assemble(
            f"chore: delete blog post {slug}",
            [FileChange.text(INDEX_PATH, dump_listing(nuevo_indice))],
            deletes,
        )
        return change_set, nuevo_indice
