from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Callable, Iterator, Optional

from google.api_core import exceptions as gexc
from google.cloud import speech_v1p1beta1 as speech

from turntalker.adapters.recorder_arecord import ARecordStream
from turntalker.ports import DeltaCallback, ErrorCallback, RecognizerPort


def _noop(*_args) -> None:
    pass


def _error_code(e: Exception) -> str:
    status = getattr(e, "grpc_status_code", None)
    if status is not None:
        return getattr(status, "name", str(status))
    return type(e).__name__


class _Run:
    def __init__(self, capture: ARecordStream):
        self.capture = capture
        self.stopped = threading.Event()


class GoogleStreamingRecognizer(RecognizerPort):
    """Continuous recognition: arecord PCM streamed into Cloud Speech `streaming_recognize`.

    The service ends a stream on its own (duration limit, long silence); the
    run then reports `on_stopped` and the owner decides whether to restart.
    """

    def __init__(
        self,
        language: str,
        sample_rate: int,
        alsa_device: Optional[str],
        chunk_ms: int = 100,
        interim_results: bool = True,
        credentials_path: Optional[Path] = None,
    ) -> None:
        self._language = language
        self._rate = sample_rate
        self._device = alsa_device
        self._chunk_ms = chunk_ms
        self._interim_results = interim_results
        self._credentials_path = credentials_path

        self._on_delta: DeltaCallback = _noop
        self._on_started: Callable[[], None] = _noop
        self._on_stopped: Callable[[], None] = _noop
        self._on_error: ErrorCallback = _noop

        self._lock = threading.Lock()
        self._run: Optional[_Run] = None
        self._final = ""
        self._interim = ""
        self._emitted = ""
        self._drop_current = False

    def bind(self, on_delta, on_started, on_stopped, on_error) -> None:
        self._on_delta = on_delta
        self._on_started = on_started
        self._on_stopped = on_stopped
        self._on_error = on_error

    def is_supported(self) -> bool:
        if not ARecordStream.available():
            logging.warning("arecord not found. Install: sudo apt-get install -y alsa-utils")
            return False
        if not self._credentials_path or not self._credentials_path.exists():
            logging.warning("GOOGLE_APPLICATION_CREDENTIALS file not found.")
            return False
        return True

    def is_running(self) -> bool:
        with self._lock:
            return self._run is not None and not self._run.stopped.is_set()

    def start(self) -> None:
        with self._lock:
            if self._run is not None and not self._run.stopped.is_set():
                return
            run = _Run(ARecordStream(self._rate, self._device, self._chunk_ms))
            self._run = run
        threading.Thread(target=self._worker, args=(run,), name="stt-stream", daemon=True).start()

    def stop(self) -> None:
        with self._lock:
            run = self._run
            if run is None or run.stopped.is_set():
                return
            run.stopped.set()
        run.capture.close()

    def clear_transcript(self) -> None:
        with self._lock:
            # Results for an utterance already in flight would repeat the cleared text.
            self._drop_current = bool(self._interim)
            self._final = ""
            self._interim = ""
            self._emitted = ""

    def _audio(self, run: _Run) -> Iterator[speech.StreamingRecognizeRequest]:
        for chunk in run.capture.chunks():
            if run.stopped.is_set():
                return
            yield speech.StreamingRecognizeRequest(audio_content=chunk)

    def _worker(self, run: _Run) -> None:
        error: Optional[str] = None
        self._on_started()
        try:
            run.capture.open()
            client = speech.SpeechClient()
            cfg = speech.RecognitionConfig(
                encoding=speech.RecognitionConfig.AudioEncoding.LINEAR16,
                sample_rate_hertz=self._rate,
                language_code=self._language,
                enable_automatic_punctuation=True,
                audio_channel_count=1,
                model="latest_long",
            )
            streaming_cfg = speech.StreamingRecognitionConfig(
                config=cfg,
                interim_results=self._interim_results,
            )
            logging.info("STT stream opened: lang=%s, rate=%d", self._language, self._rate)
            responses = client.streaming_recognize(config=streaming_cfg, requests=self._audio(run))
            for resp in responses:
                if run.stopped.is_set():
                    break
                for result in resp.results:
                    if result.alternatives:
                        self._update(result.alternatives[0].transcript, result.is_final)
        except gexc.GoogleAPICallError as e:
            if not run.stopped.is_set():
                error = _error_code(e)
                logging.warning("STT stream ended with %s: %s", error, e)
        except Exception as e:
            if not run.stopped.is_set():
                error = type(e).__name__
                logging.error("STT stream failed: %s", e)
        finally:
            run.stopped.set()
            run.capture.close()
        if error:
            self._on_error(error)
        self._on_stopped()

    def _update(self, text: str, is_final: bool) -> None:
        with self._lock:
            if self._drop_current:
                if is_final:
                    self._drop_current = False
                return
            text = text.strip()
            if is_final:
                self._final = f"{self._final} {text}".strip()
                self._interim = ""
            else:
                self._interim = text
            current = f"{self._final} {self._interim}".strip()
            if not current or current == self._emitted:
                return
            self._emitted = current
        self._on_delta(current)
