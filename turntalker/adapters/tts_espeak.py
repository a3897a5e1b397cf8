from __future__ import annotations

import logging
import queue
import subprocess
import threading
from dataclasses import dataclass
from typing import Callable, Optional

from turntalker.ports import ErrorCallback, SynthesizerPort


@dataclass
class _Job:
    text: str
    generation: int
    on_end: Optional[Callable[[], None]]
    on_error: Optional[ErrorCallback]


class EspeakAplayTTS(SynthesizerPort):
    def __init__(self, alsa_device: str, voice: str, rate_wpm: int):
        self._alsa_device = alsa_device
        self._voice = voice
        self._rate_wpm = rate_wpm
        self._q: "queue.Queue[Optional[_Job]]" = queue.Queue()
        self._thr: Optional[threading.Thread] = None
        self._running = threading.Event()
        self._lock = threading.Lock()
        self._generation = 0
        self._procs: list[subprocess.Popen] = []

    def is_available(self) -> bool:
        try:
            subprocess.run(["espeak-ng", "--version"], check=True, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)
            subprocess.run(["aplay", "-D", self._alsa_device, "-q", "-t", "wav", "-"], input=b"", check=True)
            return True
        except (OSError, subprocess.CalledProcessError):
            return False

    def start(self) -> None:
        if self._running.is_set():
            return
        if not self.is_available():
            logging.warning(
                "TTS test failed. Ensure espeak-ng is installed and device exists: aplay -D %s",
                self._alsa_device,
            )
        self._running.set()
        self._thr = threading.Thread(target=self._worker, name="tts", daemon=True)
        self._thr.start()
        logging.info("TTS worker started (device=%s).", self._alsa_device)

    def stop(self) -> None:
        self.cancel_all()
        self._q.put(None)
        self._running.clear()
        logging.info("TTS worker stopping signal sent.")

    def speak(self, text: str, on_end=None, on_error=None) -> None:
        with self._lock:
            generation = self._generation
        logging.info("TTS enqueue → %s", (text or "")[:120].replace("\n", " "))
        self._q.put(_Job(text or "", generation, on_end, on_error))

    def cancel_all(self) -> None:
        with self._lock:
            self._generation += 1
            procs = list(self._procs)
        dropped = 0
        while True:
            try:
                job = self._q.get_nowait()
            except queue.Empty:
                break
            if job is None:
                # keep the shutdown marker
                self._q.put(None)
                break
            dropped += 1
        for p in procs:
            if p.poll() is None:
                p.terminate()
        if procs or dropped:
            logging.info("TTS cancelled (%d playing, %d queued).", len(procs), dropped)

    def _current(self, job: _Job) -> bool:
        with self._lock:
            return job.generation == self._generation

    def _worker(self) -> None:
        while self._running.is_set():
            job = self._q.get()
            if job is None:
                logging.info("TTS worker stopping.")
                break
            if not self._current(job):
                continue
            t = job.text.strip()
            error: Optional[str] = None
            if t:
                error = self._play(t, job.generation)
            if not self._current(job):
                continue
            try:
                if error is None:
                    if job.on_end:
                        job.on_end()
                elif job.on_error:
                    job.on_error(error)
            except Exception:
                logging.exception("TTS callback failed.")

    def _play(self, text: str, generation: Optional[int] = None) -> Optional[str]:
        try:
            espeak = subprocess.Popen(
                ["espeak-ng", "-v", self._voice, "-s", str(self._rate_wpm), "--stdout"],
                stdin=subprocess.PIPE, stdout=subprocess.PIPE, stderr=subprocess.DEVNULL,
            )
            aplay = subprocess.Popen(
                ["aplay", "-D", self._alsa_device, "-q"],
                stdin=espeak.stdout, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL,
            )
        except OSError as e:
            logging.error("TTS pipeline error: %s", e)
            return "unavailable"
        with self._lock:
            self._procs = [espeak, aplay]
            # cancel_all() may have run while the pipeline was spawning
            stale = generation is not None and generation != self._generation
        if stale:
            for p in (espeak, aplay):
                if p.poll() is None:
                    p.terminate()
            with self._lock:
                self._procs = []
            logging.info("TTS chunk cancelled before playback.")
            return "cancelled"
        try:
            espeak.stdin.write(text.encode("utf-8"))
            espeak.stdin.close()
            aplay.wait(timeout=60)
            espeak.wait(timeout=5)
        except (OSError, subprocess.TimeoutExpired) as e:
            logging.error("TTS pipeline error: %s", e)
            for p in (espeak, aplay):
                if p.poll() is None:
                    p.kill()
            return "playback-failed"
        finally:
            with self._lock:
                self._procs = []
        if aplay.returncode != 0:
            return f"aplay-exit-{aplay.returncode}"
        logging.info("TTS played (%d chars).", len(text))
        return None
