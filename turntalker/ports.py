from __future__ import annotations

import abc
from typing import Callable, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from turntalker.services.catalog import CatalogEntry


DeltaCallback = Callable[[str], None]
ErrorCallback = Callable[[str], None]


class ButtonPort(abc.ABC):
    @abc.abstractmethod
    def on_press(self, cb) -> None: ...


class RecognizerPort(abc.ABC):
    """Continuous speech-to-text stream.

    `on_delta` receives the running transcript since the last
    `clear_transcript()`, interim hypotheses included.
    """

    @abc.abstractmethod
    def bind(
        self,
        on_delta: DeltaCallback,
        on_started: Callable[[], None],
        on_stopped: Callable[[], None],
        on_error: ErrorCallback,
    ) -> None: ...

    @abc.abstractmethod
    def is_supported(self) -> bool: ...

    @abc.abstractmethod
    def is_running(self) -> bool: ...

    @abc.abstractmethod
    def start(self) -> None: ...

    @abc.abstractmethod
    def stop(self) -> None: ...

    @abc.abstractmethod
    def clear_transcript(self) -> None: ...


class SynthesizerPort(abc.ABC):
    @abc.abstractmethod
    def start(self) -> None: ...

    @abc.abstractmethod
    def stop(self) -> None: ...

    @abc.abstractmethod
    def speak(
        self,
        text: str,
        on_end: Optional[Callable[[], None]] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> None: ...

    @abc.abstractmethod
    def cancel_all(self) -> None: ...


class CatalogSourcePort(abc.ABC):
    @abc.abstractmethod
    def fetch(self) -> list["CatalogEntry"]: ...


class TimerHandle(abc.ABC):
    @abc.abstractmethod
    def cancel(self) -> None: ...


class SchedulerPort(abc.ABC):
    @abc.abstractmethod
    def post(self, fn: Callable, *args) -> None: ...

    @abc.abstractmethod
    def call_later(self, delay_s: float, fn: Callable, *args) -> TimerHandle: ...
