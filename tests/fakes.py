from __future__ import annotations

from collections import deque
from typing import Callable, Optional

from turntalker.config.loader import PhrasesConfig, TurnConfig
from turntalker.ports import RecognizerPort, SchedulerPort, SynthesizerPort, TimerHandle
from turntalker.services.catalog import CatalogEntry, ResponseCatalog
from turntalker.services.controller import TurnTakingController


class FakeTimer(TimerHandle):
    def __init__(self, due: float, fn: Callable, args: tuple):
        self.due = due
        self.fn = fn
        self.args = args
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeScheduler(SchedulerPort):
    """Manual clock: nothing runs until the test drains or advances it."""

    def __init__(self) -> None:
        self.now = 0.0
        self.posted: deque = deque()
        self.timers: list[FakeTimer] = []

    def post(self, fn, *args) -> None:
        self.posted.append((fn, args))

    def call_later(self, delay_s, fn, *args) -> FakeTimer:
        t = FakeTimer(self.now + delay_s, fn, args)
        self.timers.append(t)
        return t

    def run_pending(self) -> None:
        while self.posted:
            fn, args = self.posted.popleft()
            fn(*args)

    def advance(self, seconds: float, drain: bool = True) -> None:
        target = self.now + seconds
        if drain:
            self.run_pending()
        while True:
            due = [t for t in self.timers if not t.cancelled and t.due <= target]
            if not due:
                break
            t = min(due, key=lambda x: x.due)
            self.timers.remove(t)
            self.now = t.due
            t.fn(*t.args)
            if drain:
                self.run_pending()
        self.now = target

    def active_timers(self) -> list[FakeTimer]:
        return [t for t in self.timers if not t.cancelled]


class FakeRecognizer(RecognizerPort):
    def __init__(self, supported: bool = True) -> None:
        self.supported = supported
        self.running = False
        self.starts = 0
        self.stops = 0
        self.clears = 0

    def bind(self, on_delta, on_started, on_stopped, on_error) -> None:
        self._on_delta = on_delta
        self._on_started = on_started
        self._on_stopped = on_stopped
        self._on_error = on_error

    def is_supported(self) -> bool:
        return self.supported

    def is_running(self) -> bool:
        return self.running

    def start(self) -> None:
        if self.running:
            return
        self.running = True
        self.starts += 1
        self._on_started()

    def stop(self) -> None:
        if not self.running:
            return
        self.running = False
        self.stops += 1
        self._on_stopped()

    def clear_transcript(self) -> None:
        self.clears += 1

    def say(self, text: str) -> None:
        self._on_delta(text)

    def drop(self) -> None:
        """Engine ends its stream cleanly on its own."""
        self.running = False
        self._on_stopped()

    def fail(self, code: str, stopped: bool = True) -> None:
        """Engine-side failure; optionally the engine also stops itself."""
        self.running = False
        self._on_error(code)
        if stopped:
            self._on_stopped()


class FakeSynth(SynthesizerPort):
    def __init__(self) -> None:
        self.spoken: list[str] = []
        self.cancels = 0
        self.current: Optional[tuple[str, Callable, Callable]] = None

    def start(self) -> None:
        pass

    def stop(self) -> None:
        pass

    def speak(self, text, on_end=None, on_error=None) -> None:
        self.spoken.append(text)
        self.current = (text, on_end, on_error)

    def cancel_all(self) -> None:
        self.cancels += 1
        self.current = None

    def finish(self) -> None:
        _, on_end, _ = self.current
        self.current = None
        on_end()

    def fail(self, code: str = "synthesis-failed") -> None:
        _, _, on_error = self.current
        self.current = None
        on_error(code)


class Harness:
    def __init__(self, entries=None, turn: Optional[TurnConfig] = None, supported: bool = True, catalog=None):
        self.scheduler = FakeScheduler()
        self.recognizer = FakeRecognizer(supported)
        self.synth = FakeSynth()
        if catalog is None:
            catalog = ResponseCatalog([CatalogEntry(t, r) for t, r in (entries or [])])
        self.catalog = catalog
        self.turn = turn or TurnConfig(
            silence_ms=1500, barge_in_silence_ms=1000, min_turn_chars=3,
            chunk_gap_ms=120, max_reply_chars=500, barge_in=True,
        )
        self.phrases = PhrasesConfig()
        self.controller = TurnTakingController(
            self.recognizer, self.synth, self.catalog, self.scheduler, self.turn, self.phrases,
        )
        self.views = []
        self.controller.subscribe(self.views.append)

    @property
    def modes(self) -> list[str]:
        out: list[str] = []
        for v in self.views:
            if not out or out[-1] != v.mode.value:
                out.append(v.mode.value)
        return out

    def start(self) -> None:
        self.controller.start()
        self.scheduler.run_pending()

    def say(self, text: str) -> None:
        self.recognizer.say(text)
        self.scheduler.run_pending()

    def finish_chunk(self) -> None:
        self.synth.finish()
        self.scheduler.run_pending()

    def advance(self, seconds: float, drain: bool = True) -> None:
        self.scheduler.advance(seconds, drain)

    def log(self) -> list[tuple[str, str]]:
        return [(e.role, e.content) for e in self.controller.session.log]
