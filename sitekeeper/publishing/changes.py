"""
changes.py — Descripción de lo que cambia en el próximo commit.

Un ChangeSet es la lista ordenada de FileChange + el mensaje del
commit. Los builders de cada dominio lo producen y el pipeline git
lo consume sin saber de dónde salió.

Reglas:
    - Un path aparece como máximo una vez por ChangeSet
    - Los writes llevan su contenido YA resuelto (bytes en memoria)
    - Los deletes no llevan contenido
"""

from __future__ import annotations

import base64
from dataclasses import dataclass, field

WRITE = "write"
DELETE = "delete"

TEXT = "utf-8"
BINARY = "base64"


def normalize_path(path: str) -> str:
    """'/public/favicon.png' → 'public/favicon.png'."""
    limpio = path.replace("\\", "/").strip().lstrip("/")
    if not limpio or limpio.endswith("/"):
        raise ValueError(f"Ruta de archivo inválida: {path!r}")
    if any(parte in ("", ".", "..") for parte in limpio.split("/")):
        raise ValueError(f"Ruta de archivo inválida: {path!r}")
    return limpio


@dataclass(frozen=True)
class FileChange:
    """
    Un cambio a nivel de archivo en el repositorio.

    Campos:
        path: Ruta relativa al repo
        operation: "write" o "delete"
        content: Bytes del archivo (solo en write)
        encoding: "utf-8" para texto, "base64" para binario
    """
    path: str
    operation: str
    content: bytes | None = None
    encoding: str = BINARY

    def __post_init__(self):
        object.__setattr__(self, "path", normalize_path(self.path))
        if self.operation == WRITE:
            if self.content is None:
                raise ValueError(f"Write sin contenido: {self.path}")
            if self.encoding not in (TEXT, BINARY):
                raise ValueError(f"Encoding desconocido: {self.encoding}")
        elif self.operation == DELETE:
            if self.content is not None:
                raise ValueError(f"Delete con contenido: {self.path}")
        else:
            raise ValueError(f"Operación desconocida: {self.operation}")

    @classmethod
    def text(cls, path: str, text: str) -> FileChange:
        return cls(path, WRITE, text.encode("utf-8"), TEXT)

    @classmethod
    def binary(cls, path: str, data: bytes) -> FileChange:
        return cls(path, WRITE, bytes(data), BINARY)

    @classmethod
    def delete(cls, path: str) -> FileChange:
        return cls(path, DELETE)

    @property
    def is_write(self) -> bool:
        return self.operation == WRITE

    @property
    def is_delete(self) -> bool:
        return self.operation == DELETE

    def to_base64(self) -> str:
        """Contenido listo para /git/blobs: siempre base64, sea texto o binario."""
        if self.content is None:
            raise ValueError(f"{self.path} no tiene contenido")
        return base64.b64encode(self.content).decode("ascii")


@dataclass
class ChangeSet:
    """
    Lista ordenada de cambios + mensaje de commit.

    Uso:
        cs = ChangeSet("chore: update projects")
        cs.add(FileChange.text("src/app/projects/list.json", "[]"))
        cs.add(FileChange.delete("public/images/projects/abc.png"))
    """
    message: str
    changes: list[FileChange] = field(default_factory=list)

    def __post_init__(self):
        vistos: set[str] = set()
        for change in self.changes:
            if change.path in vistos:
                raise ValueError(f"Path duplicado en el change-set: {change.path}")
            vistos.add(change.path)

    def __len__(self) -> int:
        return len(self.changes)

    def __iter__(self):
        return iter(self.changes)

    def __contains__(self, path: str) -> bool:
        return self.get(path) is not None

    def get(self, path: str) -> FileChange | None:
        path = normalize_path(path)
        for change in self.changes:
            if change.path == path:
                return change
        return None

    def add(self, change: FileChange) -> None:
        """Agrega un cambio. Un path repetido es un bug del builder."""
        if change.path in self:
            raise ValueError(f"Path duplicado en el change-set: {change.path}")
        self.changes.append(change)

    @property
    def writes(self) -> list[FileChange]:
        return [c for c in self.changes if c.is_write]

    @property
    def deletes(self) -> list[FileChange]:
        return [c for c in self.changes if c.is_delete]

    @property
    def paths(self) -> list[str]:
        return [c.path for c in self.changes]
