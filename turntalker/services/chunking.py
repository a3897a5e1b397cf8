from __future__ import annotations

import re


_MARKUP = re.compile(r"[*_`#]")
_ASIDE = re.compile(r"\(.+?\)")
_SPACES = re.compile(r"\s+")
_SENT_END = re.compile(r"(?<=[.!?])\s+")


def sanitize_reply(text: str, max_chars: int = 500) -> str:
    """Strip markup and parenthetical asides, then cap the length."""
    cleaned = _MARKUP.sub("", text or "")
    cleaned = _ASIDE.sub("", cleaned)
    cleaned = _SPACES.sub(" ", cleaned).strip()
    if max_chars > 0:
        cleaned = cleaned[:max_chars].rstrip()
    return cleaned


def split_sentences(text: str) -> list[str]:
    return [s.strip() for s in _SENT_END.split(text) if s.strip()]


def chunk_reply(text: str, max_chars: int = 500) -> list[str]:
    return split_sentences(sanitize_reply(text, max_chars))
