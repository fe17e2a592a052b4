"""
pictures.py — Builder del muro de fotos (galería astro).

Cada grupo de fotos tiene un id y una o varias imágenes. Los grupos
viejos usan un solo campo "image"; al tocar un grupo se normaliza a
la lista "images" y se quita "image".

Los uploads llegan con clave "{id}::{índice}":
    "m31::0" → primera foto del grupo m31
    "m31::2" → tercera foto (si el índice es igual al largo, se agrega)

Archivos:
    src/app/astro/list.json
    public/images/astro/{sha256}{ext}
"""

from __future__ import annotations

import copy
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

logger = get_logger("sitekeeper.builders")

SLOT_SEPARATOR = "::"


def parse_slot(key: str) -> tuple[str, int]:
    """'m31::2' → ('m31', 2). Sin índice o índice inválido → 0."""
    group_id, _, index = key.partition(SLOT_SEPARATOR)
    try:
        return group_id, max(0, int(index))
    except ValueError:
        return group_id, 0


def picture_urls(picture: dict[str, Any]) -> list[str]:
    """Todas las URLs de un grupo (formato viejo o nuevo)."""
    urls = []
    if picture.get("image"):
        urls.append(picture["image"])
    urls.extend(picture.get("images") or [])
    return urls


class PicturesBuilder:
    """Change-sets para src/app/astro/list.json y sus imágenes."""

    LISTING_PATH = "src/app/astro/list.json"

    def __init__(self) -> None:
        self.scope = AssetScope("/images/astro/")
        self.message = "chore: update astro pictures"

    @staticmethod
    def _current_images(picture: dict[str, Any]) -> list[str]:
        images = picture.get("images") or []
        if images:
            return list(images)
        return [picture["image"]] if picture.get("image") else []

    def build(
        self,
        previous: list[dict[str, Any]],
        current: list[dict[str, Any]],
        uploads: dict[str, StagedUpload] | None = None,
    ) -> tuple[ChangeSet, list[dict[str, Any]]]:
        """
        Args:
            previous: Listado publicado.
            current: Listado editado.
            uploads: {"{id}::{índice}": StagedUpload}.

        Returns:
            (ChangeSet, listado final)
        """
        actualizado = copy.deepcopy(current)
        por_id = {p.get("id"): p for p in actualizado}
        stager = AssetStager(self.scope)

        # En orden de índice para que "g::3" no se pierda si llega antes que "g::2"
        ordenados = sorted((uploads or {}).items(), key=lambda item: parse_slot(item[0]))
        for clave, upload in ordenados:
            group_id, index = parse_slot(clave)
            picture = por_id.get(group_id)
            if picture is None:
                logger.warning(f"Upload ignorado, el grupo ya no existe: {clave}")
                continue

            images = self._current_images(picture)
            if index > len(images):
                logger.warning(f"Upload ignorado, índice fuera de rango: {clave}")
                continue

            url = stager.stage(upload)
            if index == len(images):
                images.append(url)
            else:
                images[index] = url
            picture.pop("image", None)
            picture["images"] = images

        previas = [url for p in previous for url in picture_urls(p)]
        actuales = [url for p in actualizado for url in picture_urls(p)]
        deletes = orphaned_assets(self.scope, previas, actuales)

        listing = FileChange.text(self.LISTING_PATH, dump_listing(actualizado))
        return assemble(self.message, [listing], stager.changes, deletes), actualizado
