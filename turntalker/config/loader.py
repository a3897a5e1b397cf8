from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional


DEFAULT_CATALOG_URL = "https://metaverse.thecivit.com/mk/response"


def _read_json_if_exists(path: Path) -> Dict[str, Any]:
    try:
        if path.exists():
            return json.loads(path.read_text(encoding="utf-8"))
    except Exception as e:
        logging.warning("Ignoring unreadable config file %s: %s", path, e)
    return {}


def _sanitize_device(s: Optional[str]) -> Optional[str]:
    if not s:
        return None
    return s.split('#', 1)[0].strip() or None


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


@dataclass
class AudioCaptureConfig:
    alsa_device: Optional[str] = _sanitize_device(os.getenv("ALSA_DEVICE"))
    sample_rate: int = int(os.getenv("SAMPLE_RATE", "16000"))
    chunk_ms: int = int(os.getenv("CAPTURE_CHUNK_MS", "100"))


@dataclass
class ButtonConfig:
    enabled: bool = _env_bool("MUTE_BUTTON", "0")
    gpio_pin: int = int(os.getenv("BUTTON_GPIO", "17"))
    bounce_ms: int = int(os.getenv("BUTTON_BOUNCE_MS", "50"))


@dataclass
class TTSConfig:
    alsa_device: Optional[str] = _sanitize_device(os.getenv("TTS_ALSA_DEVICE") or "default")
    voice: str = os.getenv("VOICE", "en-us")
    rate_wpm: int = int(os.getenv("SPEAK_RATE_WPM", "160"))


@dataclass
class STTConfig:
    language: str = os.getenv("LANGUAGE_CODE", "en-US")
    interim_results: bool = _env_bool("INTERIM_RESULTS", "1")


@dataclass
class TurnConfig:
    silence_ms: int = int(os.getenv("SILENCE_MS", "1500"))
    barge_in_silence_ms: int = int(os.getenv("BARGE_IN_SILENCE_MS", "1000"))
    min_turn_chars: int = int(os.getenv("MIN_TURN_CHARS", "3"))
    chunk_gap_ms: int = int(os.getenv("CHUNK_GAP_MS", "120"))
    max_reply_chars: int = int(os.getenv("MAX_REPLY_CHARS", "500"))
    match_threshold: float = float(os.getenv("MATCH_THRESHOLD", "0.5"))
    barge_in: bool = _env_bool("BARGE_IN", "1")
    mic_poll_s: float = float(os.getenv("MIC_POLL_S", "2.0"))


@dataclass
class CatalogConfig:
    url: str = os.getenv("CATALOG_URL", DEFAULT_CATALOG_URL)
    file: Optional[Path] = Path(os.environ["CATALOG_FILE"]) if os.getenv("CATALOG_FILE") else None
    timeout_s: float = float(os.getenv("CATALOG_TIMEOUT_S", "10"))


@dataclass
class SecretsConfig:
    google_credentials_path: Optional[Path] = (
        Path(os.environ["GOOGLE_APPLICATION_CREDENTIALS"]) if os.getenv("GOOGLE_APPLICATION_CREDENTIALS") else None
    )


@dataclass
class PhrasesConfig:
    not_understood: str = os.getenv(
        "PHRASE_NOT_UNDERSTOOD", "I'm sorry, I didn't understand that. Could you please rephrase?"
    )
    lookup_error: str = os.getenv(
        "PHRASE_LOOKUP_ERROR", "I couldn't process your request. Please try again."
    )
    unsupported: str = os.getenv(
        "PHRASE_UNSUPPORTED", "Speech recognition is not available on this system."
    )


@dataclass
class AppConfig:
    audio: AudioCaptureConfig = field(default_factory=AudioCaptureConfig)
    button: ButtonConfig = field(default_factory=ButtonConfig)
    tts: TTSConfig = field(default_factory=TTSConfig)
    stt: STTConfig = field(default_factory=STTConfig)
    turn: TurnConfig = field(default_factory=TurnConfig)
    catalog: CatalogConfig = field(default_factory=CatalogConfig)
    secrets: SecretsConfig = field(default_factory=SecretsConfig)
    phrases: PhrasesConfig = field(default_factory=PhrasesConfig)

    @staticmethod
    def load(config_dir: Optional[Path]) -> "AppConfig":
        """
        Load config in layers:
        1) Environment variables (already baked into defaults above).
        2) Optional per-domain JSON files in `config_dir`:
           - audio.json, gpio.json, tts.json, stt.json, turn.json,
             catalog.json, secrets.json, phrases.json
        Keys that are not fields of the section are ignored.
        """
        cfg = AppConfig()
        if not config_dir:
            return cfg

        files_map = {
            "audio.json": cfg.audio,
            "gpio.json": cfg.button,
            "tts.json": cfg.tts,
            "stt.json": cfg.stt,
            "turn.json": cfg.turn,
            "catalog.json": cfg.catalog,
            "secrets.json": cfg.secrets,
            "phrases.json": cfg.phrases,
        }

        for filename, section in files_map.items():
            data = _read_json_if_exists(config_dir / filename)
            if not data:
                continue
            for key, val in data.items():
                if key not in section.__dataclass_fields__:
                    logging.warning("Unknown key %r in %s; ignored.", key, filename)
                    continue
                setattr(section, key, _coerce(getattr(section, key), key, val))
        return cfg


def _coerce(current: Any, key: str, val: Any) -> Any:
    if val is None:
        return None
    # Keep the type of the default; Path fields may default to None
    if isinstance(current, Path) or key in ("file", "google_credentials_path"):
        return Path(val)
    if isinstance(current, bool):
        if isinstance(val, str):
            return val.strip().lower() in ("1", "true", "yes", "on")
        return bool(val)
    if isinstance(current, int):
        return int(val)
    if isinstance(current, float):
        return float(val)
    return val


def resolve_config_dir() -> Optional[Path]:
    # Allow overriding config directory, default to ./config
    candidate = os.getenv("TURNTALKER_CONFIG_DIR") or "config"
    path = Path(candidate)
    return path if path.exists() and path.is_dir() else None
