from __future__ import annotations

import json
import logging
from pathlib import Path

from turntalker.ports import CatalogSourcePort
from turntalker.services.catalog import CatalogEntry, entries_from_payload


class JsonCatalogSource(CatalogSourcePort):
    """Catalog read from a local file in the same shape the remote endpoint serves."""

    def __init__(self, path: Path):
        self._path = path

    def fetch(self) -> list[CatalogEntry]:
        if not self._path.exists():
            raise FileNotFoundError(f"catalog file not found: {self._path}")
        data = json.loads(self._path.read_text(encoding="utf-8"))
        entries = entries_from_payload(data)
        logging.info("Catalog file %s: %d entries.", self._path, len(entries))
        return entries
