from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from turntalker.ports import CatalogSourcePort


DEFAULT_REPLY = "I'm sorry, I didn't understand that. Could you please rephrase?"


@dataclass(frozen=True)
class CatalogEntry:
    trigger: str
    reply: str


def entries_from_payload(data: Any) -> list[CatalogEntry]:
    """Accept a list of items or {"response": [...]}; items use message/text or trigger/reply."""
    if isinstance(data, dict):
        data = data.get("response", data.get("entries", []))
    if not isinstance(data, list):
        raise ValueError(f"catalog payload is {type(data).__name__}, expected a list")
    entries: list[CatalogEntry] = []
    for i, item in enumerate(data):
        if not isinstance(item, dict):
            logging.warning("Catalog item %d is not an object; skipped.", i)
            continue
        trigger = item.get("message", item.get("trigger"))
        reply = item.get("text", item.get("reply"))
        if not isinstance(trigger, str) or not isinstance(reply, str):
            logging.warning("Catalog item %d lacks trigger or reply; skipped.", i)
            continue
        entries.append(CatalogEntry(trigger, reply))
    return entries


def _words(text: str) -> list[str]:
    return [w for w in text.split() if w]


def overlap_score(utterance_words: list[str], trigger: str) -> tuple[float, int]:
    """Share of trigger words that some utterance word contains or is contained in."""
    trigger_words = _words(trigger.lower())
    if not trigger_words:
        return 0.0, 0
    matched = 0
    for tw in trigger_words:
        if any(tw in uw or uw in tw for uw in utterance_words):
            matched += 1
    return matched / len(trigger_words), matched


class ResponseCatalog:
    """Fixed set of trigger/reply pairs, loaded once, queried with `match`."""

    def __init__(
        self,
        entries: Optional[Iterable[CatalogEntry]] = None,
        default_reply: str = DEFAULT_REPLY,
        threshold: float = 0.5,
    ) -> None:
        self._entries: list[CatalogEntry] = [e for e in (entries or []) if e.trigger.strip()]
        self._default_reply = default_reply
        self._threshold = threshold
        self.loaded = entries is not None

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def entries(self) -> tuple[CatalogEntry, ...]:
        return tuple(self._entries)

    def load(self, source: CatalogSourcePort) -> bool:
        try:
            fetched = source.fetch()
        except Exception as e:
            logging.error("Catalog load failed; replies fall back to default: %s", e)
            self._entries = []
            self.loaded = False
            return False
        self._entries = [e for e in fetched if e.trigger.strip()]
        self.loaded = True
        logging.info("Catalog loaded: %d entries.", len(self._entries))
        return True

    def match(self, utterance: str) -> str:
        entry = self.find(utterance)
        return entry.reply if entry else self._default_reply

    def find(self, utterance: str) -> Optional[CatalogEntry]:
        if not self._entries:
            return None
        normalized = (utterance or "").lower().strip()

        for e in self._entries:
            if e.trigger.lower().strip() == normalized:
                logging.info("Catalog: exact match on %r.", e.trigger)
                return e

        if normalized:
            for e in self._entries:
                trigger = e.trigger.lower()
                if trigger in normalized or normalized in trigger:
                    logging.info("Catalog: phrase match on %r.", e.trigger)
                    return e

        utterance_words = _words(normalized)
        best: Optional[CatalogEntry] = None
        best_score = 0.0
        for e in self._entries:
            score, matched = overlap_score(utterance_words, e.trigger)
            if matched and score > best_score:
                best, best_score = e, score
        if best is not None and best_score >= self._threshold:
            logging.info("Catalog: word match on %r (score %.2f).", best.trigger, best_score)
            return best

        logging.info("Catalog: no match above %.2f; using first entry.", self._threshold)
        return self._entries[0]
