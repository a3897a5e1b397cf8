from __future__ import annotations

import logging
from typing import Optional

import httpx

from turntalker.ports import CatalogSourcePort
from turntalker.services.catalog import CatalogEntry, entries_from_payload


class HttpCatalogSource(CatalogSourcePort):
    def __init__(self, url: str, timeout_s: float = 10.0, transport: Optional[httpx.BaseTransport] = None):
        self._url = url
        self._timeout_s = timeout_s
        self._transport = transport

    def fetch(self) -> list[CatalogEntry]:
        logging.info("Fetching response catalog from %s", self._url)
        with httpx.Client(timeout=self._timeout_s, transport=self._transport) as client:
            r = client.get(self._url, headers={"Accept": "application/json"})
            r.raise_for_status()
            entries = entries_from_payload(r.json())
        logging.info("Catalog fetch returned %d entries.", len(entries))
        return entries
