from __future__ import annotations

import logging
import os
import shutil
import signal
import subprocess
from dataclasses import dataclass
from typing import Iterator, Optional


@dataclass
class ARecordStream:
    """Raw 16-bit mono PCM from `arecord`, read in fixed-size chunks."""

    rate: int
    device: Optional[str]
    chunk_ms: int = 100
    proc: Optional[subprocess.Popen] = None

    @staticmethod
    def available() -> bool:
        return shutil.which("arecord") is not None

    @property
    def chunk_bytes(self) -> int:
        return int(self.rate * self.chunk_ms / 1000) * 2

    def open(self) -> None:
        if self.proc and self.proc.poll() is None:
            return
        cmd = [
            "arecord",
            "-D", self.device if self.device else "default",
            "-f", "S16_LE",
            "-r", str(self.rate),
            "-c", "1",
            "-t", "raw",
            "-q",
        ]
        logging.info("Starting capture: %s", " ".join(cmd))
        self.proc = subprocess.Popen(cmd, preexec_fn=os.setsid, stdout=subprocess.PIPE, stderr=subprocess.DEVNULL)

    def chunks(self) -> Iterator[bytes]:
        proc = self.proc
        if proc is None or proc.stdout is None:
            return
        while True:
            data = proc.stdout.read(self.chunk_bytes)
            if not data:
                if proc.poll() not in (None, 0, -signal.SIGINT):
                    logging.error("arecord exited with code %s. Check ALSA_DEVICE.", proc.returncode)
                return
            yield data

    def close(self) -> None:
        if not self.proc:
            return
        logging.info("Stopping capture (SIGINT).")
        try:
            os.killpg(os.getpgid(self.proc.pid), signal.SIGINT)
            self.proc.wait(timeout=3)
        except Exception:
            logging.warning("SIGINT stop failed; terminating arecord.")
            try:
                self.proc.terminate()
            except OSError:
                pass
        finally:
            self.proc = None
        logging.info("Capture process finished.")
