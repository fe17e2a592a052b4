"""
listings.py — Builders de listados con una imagen por item.

Proyectos y shares funcionan igual: un list.json con items
identificados por su url, y cada item tiene UNA imagen (image o logo).
El UI manda los uploads pendientes con la url del item como clave.

    ProjectsBuilder → src/app/projects/list.json, /images/projects/
    SharesBuilder   → src/app/share/list.json,    /images/share/
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


class KeyedListBuilder:
    """
    Builder genérico para listados de items con una imagen.

    Args:
        listing_path: Ruta del list.json en el repo.
        scope: Zona de assets del dominio.
        key_field: Campo que identifica cada item (slot de upload).
        image_field: Campo con la URL de la imagen.
        message: Mensaje del commit.
    """

    def __init__(
        self,
        listing_path: str,
        scope: AssetScope,
        key_field: str,
        image_field: str,
        message: str,
    ):
        self.listing_path = listing_path
        self.scope = scope
        self.key_field = key_field
        self.image_field = image_field
        self.message = message

    def _image_urls(self, items: list[dict[str, Any]]) -> list[str]:
        return [item.get(self.image_field, "") for item in items]

    def build(
        self,
        previous: list[dict[str, Any]],
        current: list[dict[str, Any]],
        uploads: dict[str, StagedUpload] | None = None,
    ) -> tuple[ChangeSet, list[dict[str, Any]]]:
        """
        Arma el change-set del listado.

        Args:
            previous: Listado tal como está publicado.
            current: Listado editado.
            uploads: {valor de key_field: StagedUpload}.

        Returns:
            (ChangeSet, listado final con las URLs de las imágenes nuevas)
        """
        actualizado = copy.deepcopy(current)
        por_clave = {item.get(self.key_field): item for item in actualizado}
        stager = AssetStager(self.scope)

        for clave, upload in (uploads or {}).items():
            item = por_clave.get(clave)
            if item is None:
                logger.warning(f"Upload ignorado, el item ya no existe: {clave}")
                continue
            item[self.image_field] = stager.stage(upload)

        deletes = orphaned_assets(
            self.scope,
            self._image_urls(previous),
            self._image_urls(actualizado),
        )
        listing = FileChange.text(self.listing_path, dump_listing(actualizado))
        return assemble(self.message, [listing], stager.changes, deletes), actualizado


class ProjectsBuilder(KeyedListBuilder):
    """Lista de proyectos (cada proyecto tiene una imagen)."""

    LISTING_PATH = "src/app/projects/list.json"

    def __init__(self) -> None:
        super().__init__(
            listing_path=self.LISTING_PATH,
            scope=AssetScope("/images/projects/"),
            key_field="url",
            image_field="image",
            message="chore: update projects list",
        )


class SharesBuilder(KeyedListBuilder):
    """Lista de recursos compartidos (cada uno con su logo)."""

    LISTING_PATH = "src/app/share/list.json"

    def __init__(self) -> None:
        super().__init__(
            listing_path=self.LISTING_PATH,
            scope=AssetScope("/images/share/"),
            key_field="url",
            image_field="logo",
            message="chore: update share list",
        )
