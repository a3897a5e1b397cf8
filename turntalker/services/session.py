from __future__ import annotations

import enum
import itertools
from dataclasses import dataclass, field
from typing import Iterator, Optional


class Mode(str, enum.Enum):
    IDLE = "idle"
    LISTENING = "listening"
    THINKING = "thinking"
    SPEAKING = "speaking"


@dataclass(frozen=True)
class ConversationEntry:
    role: str
    content: str


class ConversationLog:
    """Append-only record of the session's turns."""

    def __init__(self) -> None:
        self._entries: list[ConversationEntry] = []

    def append(self, role: str, content: str) -> ConversationEntry:
        if role not in ("user", "assistant"):
            raise ValueError(f"unknown role: {role!r}")
        entry = ConversationEntry(role, content)
        self._entries.append(entry)
        return entry

    def entries(self) -> tuple[ConversationEntry, ...]:
        return tuple(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[ConversationEntry]:
        return iter(tuple(self._entries))


_queue_ids = itertools.count(1)


@dataclass
class UtteranceQueue:
    """Sentence chunks of one reply plus a cursor into them."""

    chunks: list[str]
    cursor: int = 0
    ident: int = field(default_factory=lambda: next(_queue_ids))

    def current(self) -> Optional[str]:
        if self.cursor < len(self.chunks):
            return self.chunks[self.cursor]
        return None

    def advance(self) -> Optional[str]:
        self.cursor += 1
        return self.current()

    @property
    def exhausted(self) -> bool:
        return self.cursor >= len(self.chunks)


@dataclass
class Session:
    started: bool = False
    muted: bool = False
    mode: Mode = Mode.IDLE
    pending_transcript: str = ""
    last_resolved_transcript: str = ""
    log: ConversationLog = field(default_factory=ConversationLog)


@dataclass(frozen=True)
class AssistantView:
    """Read-only picture of the controller for the presentation layer."""

    started: bool
    muted: bool
    mode: Mode
    conversation: tuple[ConversationEntry, ...]
    partial_transcript: str
    mic_armed: bool
    recognition_supported: bool
    error: Optional[str] = None
