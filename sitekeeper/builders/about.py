"""
about.py — Builder de la página "about".

Solo texto: un JSON con título, descripción y el markdown de la
página. No tiene assets propios, así que no hay nada que borrar.
"""

from __future__ import annotations

from typing import Any

from sitekeeper.builders.base import assemble, dump_listing
from sitekeeper.publishing.changes import ChangeSet, FileChange


class AboutBuilder:
    """Change-set de src/app/about/list.json."""

    LISTING_PATH = "src/app/about/list.json"

    message = "chore: update about page"

    def build(self, data: dict[str, Any]) -> ChangeSet:
        if not isinstance(data, dict):
            raise ValueError("Los datos de about deben ser un objeto JSON")
        return assemble(
            self.message,
            [FileChange.text(self.LISTING_PATH, dump_listing(data))],
        )
