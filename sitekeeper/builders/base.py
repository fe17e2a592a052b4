"""
base.py — Piezas comunes de los builders de change-sets.

Todos los builders hacen lo mismo con distinto dominio:
    1. Aplicar los uploads pendientes al estado editado
       (cada imagen nueva se guarda como {sha256}{ext}, así dos
       slots con los mismos bytes comparten un solo archivo)
    2. Serializar el listado JSON del dominio
    3. Comparar URLs de assets del estado publicado vs el editado
       y borrar las que ya nadie usa, SOLO si están bajo el prefijo
       del dominio (no borramos assets de otros dominios)

El diff siempre es contra el estado que se cargó originalmente, no
contra estados intermedios: quitar y volver a poner una imagen en la
misma sesión termina en un solo write, sin delete.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable

from sitekeeper.publishing.changes import ChangeSet, FileChange
from sitekeeper.utils.logger import get_logger

logger = get_logger("sitekeeper.builders")

DEFAULT_EXTENSION = ".png"


@dataclass(frozen=True)
class StagedUpload:
    """
    Archivo binario pendiente de publicar.

    Campos:
        data: Bytes del archivo
        filename: Nombre original (solo se usa su extensión)
    """
    data: bytes
    filename: str = "upload.png"

    @classmethod
    def from_path(cls, path: str | Path) -> StagedUpload:
        path = Path(path)
        return cls(data=path.read_bytes(), filename=path.name)

    @property
    def content_hash(self) -> str:
        return hashlib.sha256(self.data).hexdigest()

    @property
    def extension(self) -> str:
        return Path(self.filename).suffix.lower() or DEFAULT_EXTENSION

    @property
    def hashed_name(self) -> str:
        return f"{self.content_hash}{self.extension}"


def dump_listing(data: Any) -> str:
    """JSON con tabs y sin escapar unicode, igual que el sitio."""
    return json.dumps(data, indent="\t", ensure_ascii=False)


@dataclass(frozen=True)
class AssetScope:
    """
    Zona de assets que le pertenece a un dominio.

    Ejemplo:
        AssetScope("/images/projects/")
        URL pública  → /images/projects/abc.png
        Ruta en repo → public/images/projects/abc.png
    """
    url_prefix: str
    public_dir: str = "public"

    def owns(self, url: str) -> bool:
        return isinstance(url, str) and url.startswith(self.url_prefix)

    def url_for(self, filename: str) -> str:
        return f"{self.url_prefix}{filename}"

    def repo_path(self, url: str) -> str:
        return f"{self.public_dir}/{url.lstrip('/')}"


class AssetStager:
    """
    Acumula writes de assets sin duplicar bytes idénticos.

    Uso:
        stager = AssetStager(scope)
        url = stager.stage(upload)      # write nuevo
        url2 = stager.stage(upload)     # mismo hash → misma URL, sin write
        changes = stager.changes
    """

    def __init__(self, scope: AssetScope):
        self._scope = scope
        self._por_hash: dict[str, str] = {}
        self._changes: list[FileChange] = []

    @property
    def changes(self) -> list[FileChange]:
        return list(self._changes)

    def stage(self, upload: StagedUpload) -> str:
        url = self._por_hash.get(upload.content_hash)
        if url is not None:
            return url
        url = self._scope.url_for(upload.hashed_name)
        self._changes.append(FileChange.binary(self._scope.repo_path(url), upload.data))
        self._por_hash[upload.content_hash] = url
        return url

    def stage_at(self, upload: StagedUpload, repo_path: str) -> None:
        """Asset singleton con ruta fija (favicon, avatar)."""
        self._changes.append(FileChange.binary(repo_path, upload.data))


def unique(urls: Iterable[str]) -> list[str]:
    """Quita duplicados y vacíos conservando el orden."""
    vistos: set[str] = set()
    resultado = []
    for url in urls:
        if url and isinstance(url, str) and url not in vistos:
            vistos.add(url)
            resultado.append(url)
    return resultado


def orphaned_assets(
    scope: AssetScope,
    previous_urls: Iterable[str],
    current_urls: Iterable[str],
) -> list[FileChange]:
    """
    Deletes para URLs que estaban publicadas y ya no se usan.

    Solo se consideran URLs dentro del prefijo del dominio.
    """
    actuales = set(unique(current_urls))
    deletes = []
    for url in unique(previous_urls):
        if url in actuales or not scope.owns(url):
            continue
        deletes.append(FileChange.delete(scope.repo_path(url)))
    return deletes


def assemble(message: str, *groups: Iterable[FileChange]) -> ChangeSet:
    """
    Junta grupos de cambios en un ChangeSet.

    Un delete cuyo path también se escribe en este commit se descarta
    (el write gana), y un delete repetido cuenta una sola vez. Dos
    writes al mismo path siguen siendo un error.
    """
    cambios = [c for group in groups for c in group]
    escritos = {c.path for c in cambios if c.is_write}
    change_set = ChangeSet(message)
    for change in cambios:
        if change.is_delete and (change.path in escritos or change.path in change_set):
            continue
        change_set.add(change)
    logger.info(
        f"Change-set listo: {len(change_set.writes)} write, "
        f"{len(change_set.deletes)} delete"
    )
    return change_set
