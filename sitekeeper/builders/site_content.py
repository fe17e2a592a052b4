"""
site_content.py — Builder de la configuración del sitio.

Un commit de configuración siempre reescribe:
    src/config/site-content.json
    src/config/card-styles.json

Y opcionalmente:
    public/favicon.png            ← favicon nuevo (ruta fija)
    public/images/avatar.png      ← avatar nuevo (ruta fija)
    public/images/art/...         ← imágenes de arte (por hash)
    public/images/background/...  ← fondos (por hash)
    public/images/social-buttons/ ← íconos de botones sociales (por hash)

Las colecciones de imágenes son listas de dicts con "id" y la URL.
Se borran las URLs que estaban publicadas y ya no aparecen, más las
que el UI marque explícitamente como removidas (si siguen dentro del
prefijo y nadie más las usa).
"""

from __future__ import annotations

import copy
from dataclasses import dataclass
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


@dataclass(frozen=True)
class ImageCollection:
    """Lista de imágenes dentro de site-content.json."""
    field: str
    scope: AssetScope
    url_field: str = "url"
    key_field: str = "id"

    def items(self, content: dict[str, Any]) -> list[dict[str, Any]]:
        return [i for i in (content.get(self.field) or []) if isinstance(i, dict)]

    def urls(self, content: dict[str, Any]) -> list[str]:
        return [i.get(self.url_field, "") for i in self.items(content)]


ART_IMAGES = ImageCollection("artImages", AssetScope("/images/art/"))
BACKGROUND_IMAGES = ImageCollection("backgroundImages", AssetScope("/images/background/"))
SOCIAL_BUTTONS = ImageCollection(
    "socialButtons", AssetScope("/images/social-buttons/"), url_field="image"
)


class SiteContentBuilder:
    """Change-sets para la configuración general del sitio."""

    SITE_CONTENT_PATH = "src/config/site-content.json"
    CARD_STYLES_PATH = "src/config/card-styles.json"
    FAVICON_PATH = "public/favicon.png"
    AVATAR_PATH = "public/images/avatar.png"

    message = "chore: update site configuration via web editor"

    def _apply_uploads(
        self,
        collection: ImageCollection,
        content: dict[str, Any],
        uploads: dict[str, StagedUpload] | None,
        stager: AssetStager,
    ) -> None:
        por_id = {i.get(collection.key_field): i for i in collection.items(content)}
        for clave, upload in (uploads or {}).items():
            item = por_id.get(clave)
            if item is None:
                logger.warning(f"Upload ignorado ({collection.field}), no existe: {clave}")
                continue
            item[collection.url_field] = stager.stage(upload)

    def build(
        self,
        previous_content: dict[str, Any],
        content: dict[str, Any],
        card_styles: dict[str, Any],
        favicon: StagedUpload | None = None,
        avatar: StagedUpload | None = None,
        art_uploads: dict[str, StagedUpload] | None = None,
        removed_art: list[dict[str, Any]] | None = None,
        background_uploads: dict[str, StagedUpload] | None = None,
        removed_backgrounds: list[dict[str, Any]] | None = None,
        social_button_uploads: dict[str, StagedUpload] | None = None,
    ) -> tuple[ChangeSet, dict[str, Any]]:
        """
        Arma el change-set de configuración.

        Args:
            previous_content: site-content.json tal como está publicado.
            content: site-content.json editado.
            card_styles: card-styles.json editado (se reescribe completo).
            favicon / avatar: Reemplazos de los assets singleton.
            *_uploads: {id del item: StagedUpload} por colección.
            removed_*: Items que el UI quitó explícitamente.

        Returns:
            (ChangeSet, site content final)
        """
        actualizado = copy.deepcopy(content)
        singletons = AssetStager(AssetScope("/"))
        if favicon is not None:
            singletons.stage_at(favicon, self.FAVICON_PATH)
        if avatar is not None:
            singletons.stage_at(avatar, self.AVATAR_PATH)

        grupos = [singletons.changes]
        plan = [
            (ART_IMAGES, art_uploads, removed_art),
            (BACKGROUND_IMAGES, background_uploads, removed_backgrounds),
            (SOCIAL_BUTTONS, social_button_uploads, None),
        ]
        for collection, uploads, removed in plan:
            stager = AssetStager(collection.scope)
            self._apply_uploads(collection, actualizado, uploads, stager)

            previas = collection.urls(previous_content or {})
            previas += [i.get(collection.url_field, "") for i in (removed or [])]
            deletes = orphaned_assets(collection.scope, previas, collection.urls(actualizado))
            grupos += [stager.changes, deletes]

        listados = [
            FileChange.text(self.SITE_CONTENT_PATH, dump_listing(actualizado)),
            FileChange.text(self.CARD_STYLES_PATH, dump_listing(card_styles)),
        ]
        return assemble(self.message, listados, *grupos), actualizado
