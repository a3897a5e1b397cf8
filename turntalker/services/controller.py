from __future__ import annotations

import logging
from typing import Callable, Optional

from turntalker.config.loader import PhrasesConfig, TurnConfig
from turntalker.ports import RecognizerPort, SchedulerPort, SynthesizerPort, TimerHandle
from turntalker.services.catalog import ResponseCatalog
from turntalker.services.chunking import chunk_reply
from turntalker.services.session import AssistantView, Mode, Session, UtteranceQueue


ViewListener = Callable[[AssistantView], None]


class TurnTakingController:
    """Decides turn boundaries, speaks replies chunk by chunk, handles barge-in and mute.

    Every handler is expected to run on the scheduler's single thread; engine
    callbacks are re-posted onto it, so no locking is done here.
    """

    def __init__(
        self,
        recognizer: RecognizerPort,
        synthesizer: SynthesizerPort,
        catalog: ResponseCatalog,
        scheduler: SchedulerPort,
        turn: Optional[TurnConfig] = None,
        phrases: Optional[PhrasesConfig] = None,
    ) -> None:
        self._recognizer = recognizer
        self._synth = synthesizer
        self._catalog = catalog
        self._scheduler = scheduler
        self._turn = turn or TurnConfig()
        self._phrases = phrases or PhrasesConfig()

        self.session = Session()
        self._supported = True
        self._error: Optional[str] = None
        self._mic_armed = False
        self._error_stop = False
        self._resolving = False
        self._turn_seq = 0
        self._silence_timer: Optional[TimerHandle] = None
        self._gap_timer: Optional[TimerHandle] = None
        self._utterances: Optional[UtteranceQueue] = None
        self._listeners: list[ViewListener] = []
        self._last_view: Optional[AssistantView] = None

        recognizer.bind(
            self._posted(self.on_delta),
            self._posted(self.on_recognizer_started),
            self._posted(self.on_recognizer_stopped),
            self._posted(self.on_recognizer_error),
        )

    # ------------------------------------------------------------------ #
    # Commands
    # ------------------------------------------------------------------ #
    def start(self) -> None:
        if self.session.started:
            logging.info("Start ignored; assistant already running.")
            return
        if not self._recognizer.is_supported():
            self._supported = False
            if self._error is None:
                self._error = self._phrases.unsupported
                logging.error("Speech recognition is not available; assistant stays idle.")
                self._notify()
            return
        self._supported = True
        self._error = None
        self.session = Session(started=True, muted=self.session.muted)
        self._resolving = False
        self._recognizer.clear_transcript()
        logging.info("Assistant started%s.", " (muted)" if self.session.muted else "")
        self._enter_listening()
        self._notify()

    def stop(self) -> None:
        s = self.session
        if not s.started:
            return
        self._turn_seq += 1
        self._cancel_silence_timer()
        self._cancel_speech()
        self._disarm_mic()
        s.started = False
        s.pending_transcript = ""
        s.last_resolved_transcript = ""
        self._resolving = False
        self._set_mode(Mode.IDLE)
        logging.info("Assistant stopped.")
        self._notify()

    def toggle_mute(self) -> None:
        s = self.session
        s.muted = not s.muted
        if s.muted:
            logging.info("Muted: speech off, microphone stays on.")
            if s.mode is Mode.SPEAKING:
                self._cancel_speech()
                self._enter_listening()
            elif self._should_listen():
                self._ensure_mic()
        else:
            logging.info("Unmuted.")
        self._notify()

    def poll(self) -> None:
        """Re-arm the microphone if the engine dropped out while it should listen."""
        if self._should_listen() and not self._recognizer.is_running():
            logging.info("Microphone found idle; re-arming.")
            self._ensure_mic()
            self._notify()

    # ------------------------------------------------------------------ #
    # Observation
    # ------------------------------------------------------------------ #
    @property
    def mode(self) -> Mode:
        return self.session.mode

    def subscribe(self, listener: ViewListener) -> None:
        self._listeners.append(listener)

    def snapshot(self) -> AssistantView:
        s = self.session
        return AssistantView(
            started=s.started,
            muted=s.muted,
            mode=s.mode,
            conversation=s.log.entries(),
            partial_transcript=s.pending_transcript,
            mic_armed=self._mic_armed,
            recognition_supported=self._supported,
            error=self._error,
        )

    # ------------------------------------------------------------------ #
    # Recognition events
    # ------------------------------------------------------------------ #
    def on_delta(self, text: str) -> None:
        s = self.session
        if not s.started:
            return
        text = (text or "").strip()
        if not text:
            return
        if s.mode is Mode.THINKING or self._resolving:
            logging.debug("Transcript ignored while resolving a turn: %r", text)
            return
        if text == s.pending_transcript or text == s.last_resolved_transcript:
            return

        if s.mode is Mode.SPEAKING:
            if not self._turn.barge_in:
                return
            logging.info("Barge-in detected: %r", text)
            self._cancel_speech()
            s.pending_transcript = text
            self._enter_listening()
            self._restart_silence_timer(self._turn.barge_in_silence_ms)
        else:
            s.pending_transcript = text
            self._restart_silence_timer(self._turn.silence_ms)
        self._notify()

    def on_recognizer_started(self) -> None:
        self._mic_armed = self._recognizer.is_running()
        if self._mic_armed:
            logging.info("Microphone active.")
        self._notify()

    def on_recognizer_stopped(self) -> None:
        self._mic_armed = self._recognizer.is_running()
        if not self._mic_armed:
            logging.info("Microphone stopped.")
        if self._error_stop:
            # failed run; re-arming is left to poll()
            self._error_stop = False
        elif self._should_listen():
            self._ensure_mic()
        self._notify()

    def on_recognizer_error(self, code: str) -> None:
        logging.warning("Recognition engine error: %s", code)
        self._error_stop = True
        self._mic_armed = self._recognizer.is_running()
        self._notify()

    # ------------------------------------------------------------------ #
    # Turn resolution
    # ------------------------------------------------------------------ #
    def _on_silence(self) -> None:
        self._silence_timer = None
        s = self.session
        if not s.started or s.mode is not Mode.LISTENING:
            return
        if self._resolving:
            logging.info("Turn resolution already in progress; timeout skipped.")
            return
        text = s.pending_transcript.strip()
        if not text or text == s.last_resolved_transcript:
            return
        if len(text) <= self._turn.min_turn_chars:
            logging.info("Input too short to be a turn (%d chars).", len(text))
            return
        self._resolve_turn(text)

    def _resolve_turn(self, text: str) -> None:
        s = self.session
        self._resolving = True
        self._turn_seq += 1
        s.last_resolved_transcript = text
        s.pending_transcript = ""
        self._recognizer.clear_transcript()
        self._disarm_mic()
        self._set_mode(Mode.THINKING)
        logging.info("User turn (%d chars): %s", len(text), text)
        self._scheduler.post(self._finish_turn, self._turn_seq, text)
        self._notify()

    def _finish_turn(self, turn_id: int, text: str) -> None:
        s = self.session
        if turn_id != self._turn_seq or not s.started or s.mode is not Mode.THINKING:
            logging.debug("Dropping result of abandoned turn %d.", turn_id)
            return
        try:
            reply = self._catalog.match(text)
        except Exception as e:
            logging.error("Reply lookup failed: %s", e)
            reply = self._phrases.lookup_error
        s.log.append("user", text)
        s.log.append("assistant", reply)
        self._resolving = False
        logging.info("Assistant reply (%d chars): %s", len(reply), reply[:120])

        if s.muted:
            logging.info("Muted: reply delivered as text only.")
            self._enter_listening()
        else:
            self._speak_reply(reply)
        self._notify()

    # ------------------------------------------------------------------ #
    # Speech delivery
    # ------------------------------------------------------------------ #
    def _speak_reply(self, reply: str) -> None:
        chunks = chunk_reply(reply, self._turn.max_reply_chars)
        if not chunks:
            self._enter_listening()
            return
        self._utterances = UtteranceQueue(chunks)
        self._set_mode(Mode.SPEAKING)
        if self._turn.barge_in:
            self._ensure_mic()
        else:
            self._disarm_mic()
        self._speak_current()

    def _speak_current(self) -> None:
        q = self._utterances
        if q is None or q.exhausted:
            return
        ident = q.ident
        logging.info("Speaking chunk %d/%d.", q.cursor + 1, len(q.chunks))
        try:
            self._synth.speak(
                q.current(),
                on_end=lambda: self._scheduler.post(self._on_chunk_end, ident),
                on_error=lambda code: self._scheduler.post(self._on_chunk_error, ident, code),
            )
        except Exception as e:
            self._on_chunk_error(ident, str(e))

    def _on_chunk_end(self, ident: int) -> None:
        q = self._utterances
        if q is None or q.ident != ident or self.session.mode is not Mode.SPEAKING:
            return
        if q.advance() is None:
            self._utterances = None
            logging.info("Reply finished.")
            self._enter_listening()
            self._notify()
            return
        gap_s = self._turn.chunk_gap_ms / 1000.0
        if gap_s > 0:
            self._gap_timer = self._scheduler.call_later(gap_s, self._speak_next, ident)
        else:
            self._speak_current()

    def _speak_next(self, ident: int) -> None:
        self._gap_timer = None
        q = self._utterances
        if q is None or q.ident != ident or self.session.mode is not Mode.SPEAKING:
            return
        self._speak_current()

    def _on_chunk_error(self, ident: int, code: str) -> None:
        q = self._utterances
        if q is None or q.ident != ident:
            return
        logging.error("Speech synthesis failed (%s); dropping rest of reply.", code)
        self._cancel_speech()
        if self.session.started:
            self._enter_listening()
        self._notify()

    def _cancel_speech(self) -> None:
        if self._gap_timer is not None:
            self._gap_timer.cancel()
            self._gap_timer = None
        self._utterances = None
        self._synth.cancel_all()

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #
    def _enter_listening(self) -> None:
        self._set_mode(Mode.LISTENING)
        self._ensure_mic()

    def _should_listen(self) -> bool:
        s = self.session
        if not s.started or not self._supported:
            return False
        return s.mode is Mode.LISTENING or (s.mode is Mode.SPEAKING and self._turn.barge_in)

    def _ensure_mic(self) -> None:
        if not self.session.started:
            return
        if self._recognizer.is_running():
            self._mic_armed = True
            return
        try:
            self._recognizer.start()
            self._mic_armed = True
            self._error_stop = False
        except Exception as e:
            logging.error("Could not start microphone: %s", e)
            self._mic_armed = False

    def _disarm_mic(self) -> None:
        if self._recognizer.is_running():
            try:
                self._recognizer.stop()
            except Exception as e:
                logging.warning("Could not stop microphone cleanly: %s", e)
        self._mic_armed = False

    def _restart_silence_timer(self, delay_ms: int) -> None:
        self._cancel_silence_timer()
        self._silence_timer = self._scheduler.call_later(delay_ms / 1000.0, self._on_silence)

    def _cancel_silence_timer(self) -> None:
        if self._silence_timer is not None:
            self._silence_timer.cancel()
            self._silence_timer = None

    def _set_mode(self, mode: Mode) -> None:
        if self.session.mode is not mode:
            logging.info("Mode %s -> %s", self.session.mode.value, mode.value)
            self.session.mode = mode

    def _posted(self, fn: Callable) -> Callable:
        def forward(*args) -> None:
            self._scheduler.post(fn, *args)
        return forward

    def _notify(self) -> None:
        view = self.snapshot()
        if view == self._last_view:
            return
        self._last_view = view
        for listener in list(self._listeners):
            try:
                listener(view)
            except Exception:
                logging.exception("View listener failed.")
