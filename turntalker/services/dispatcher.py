from __future__ import annotations

import logging
import queue
import threading
from typing import Callable, Optional

from turntalker.ports import SchedulerPort, TimerHandle


class _Timer(TimerHandle):
    def __init__(self, dispatcher: "SerialDispatcher", delay_s: float, fn: Callable, args: tuple):
        self._dispatcher = dispatcher
        self._fn = fn
        self._args = args
        self._cancelled = threading.Event()
        self._thr = threading.Timer(max(0.0, delay_s), self._expire)
        self._thr.daemon = True

    def start(self) -> "_Timer":
        self._thr.start()
        return self

    def cancel(self) -> None:
        self._cancelled.set()
        self._thr.cancel()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def _expire(self) -> None:
        self._dispatcher.post(self._fire)

    def _fire(self) -> None:
        # Checked on the worker thread, so a cancel that raced the expiry still wins.
        if not self._cancelled.is_set():
            self._fn(*self._args)


class SerialDispatcher(SchedulerPort):
    """Runs posted callables one at a time on a single worker thread."""

    def __init__(self) -> None:
        self._q: "queue.Queue[Optional[tuple[Callable, tuple]]]" = queue.Queue()
        self._thr: Optional[threading.Thread] = None
        self._running = threading.Event()

    def start(self) -> None:
        if self._running.is_set():
            return
        self._running.set()
        self._thr = threading.Thread(target=self._worker, name="dispatcher", daemon=True)
        self._thr.start()
        logging.info("Dispatcher started.")

    def stop(self, timeout: float = 2.0) -> None:
        if not self._running.is_set():
            return
        self._q.put(None)
        if self._thr and self._thr is not threading.current_thread():
            self._thr.join(timeout)
        self._running.clear()
        self._thr = None
        logging.info("Dispatcher stopped.")

    def post(self, fn: Callable, *args) -> None:
        self._q.put((fn, args))

    def call_later(self, delay_s: float, fn: Callable, *args) -> TimerHandle:
        return _Timer(self, delay_s, fn, args).start()

    def wrap(self, fn: Callable) -> Callable:
        """Callback that forwards its call onto the dispatcher thread."""
        def posted(*args) -> None:
            self.post(fn, *args)
        return posted

    def _worker(self) -> None:
        while True:
            item = self._q.get()
            if item is None:
                break
            fn, args = item
            try:
                fn(*args)
            except Exception:
                logging.exception("Dispatched callback %s failed.", getattr(fn, "__name__", fn))
