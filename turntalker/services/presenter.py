from __future__ import annotations

import sys
from typing import Optional, TextIO

from turntalker.services.session import AssistantView, Mode


_LABELS = {"user": "You", "assistant": "Assistant"}


class ConsolePresenter:
    """Prints conversation entries and status changes as they appear."""

    def __init__(self, out: Optional[TextIO] = None):
        self._out = out or sys.stdout
        self._shown = 0
        self._mode: Optional[Mode] = None
        self._muted: Optional[bool] = None
        self._error: Optional[str] = None

    def __call__(self, view: AssistantView) -> None:
        if len(view.conversation) < self._shown:
            self._shown = 0
        for entry in view.conversation[self._shown:]:
            self._write(f"{_LABELS.get(entry.role, entry.role)}: {entry.content}")
        self._shown = len(view.conversation)

        if view.error and view.error != self._error:
            self._write(f"[error] {view.error}")
        self._error = view.error

        if view.mode != self._mode or view.muted != self._muted:
            status = view.mode.value + (" (muted)" if view.muted else "")
            self._write(f"[{status}]")
            self._mode, self._muted = view.mode, view.muted

    def _write(self, line: str) -> None:
        print(line, file=self._out, flush=True)
