from __future__ import annotations

import logging
import os
import signal
import sys
import threading

from dotenv import load_dotenv

from turntalker.adapters.catalog_http import HttpCatalogSource
from turntalker.adapters.catalog_json import JsonCatalogSource
from turntalker.adapters.stt_google import GoogleStreamingRecognizer
from turntalker.adapters.tts_espeak import EspeakAplayTTS
from turntalker.config.loader import AppConfig, resolve_config_dir
from turntalker.services.catalog import ResponseCatalog
from turntalker.services.controller import TurnTakingController
from turntalker.services.dispatcher import SerialDispatcher
from turntalker.services.presenter import ConsolePresenter


COMMANDS_HELP = "Commands: m = mute/unmute, s = start, x = stop, q = quit"


def main() -> None:
    load_dotenv()
    level = getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO)
    logging.basicConfig(level=level, format="%(asctime)s | %(levelname)s | %(message)s")

    cfg_dir = resolve_config_dir()
    cfg = AppConfig.load(cfg_dir)

    # Missing credentials or arecord are reported by the controller as unsupported
    creds_path = cfg.secrets.google_credentials_path
    if creds_path:
        os.environ.setdefault("GOOGLE_APPLICATION_CREDENTIALS", str(creds_path))

    # Catalog is fetched once; failure leaves it empty
    catalog = ResponseCatalog(default_reply=cfg.phrases.not_understood, threshold=cfg.turn.match_threshold)
    if cfg.catalog.file:
        source = JsonCatalogSource(cfg.catalog.file)
    else:
        source = HttpCatalogSource(cfg.catalog.url, cfg.catalog.timeout_s)
    catalog.load(source)

    # Wire adapters and services
    dispatcher = SerialDispatcher()
    recognizer = GoogleStreamingRecognizer(
        cfg.stt.language, cfg.audio.sample_rate, cfg.audio.alsa_device,
        cfg.audio.chunk_ms, cfg.stt.interim_results, creds_path,
    )
    tts = EspeakAplayTTS(cfg.tts.alsa_device or "default", cfg.tts.voice, cfg.tts.rate_wpm)
    controller = TurnTakingController(recognizer, tts, catalog, dispatcher, cfg.turn, cfg.phrases)
    controller.subscribe(ConsolePresenter())

    button = None
    if cfg.button.enabled:
        from turntalker.adapters.button_gpiozero import GpioZeroButton

        button = GpioZeroButton(cfg.button.gpio_pin, cfg.button.bounce_ms)
        button.on_press(dispatcher.wrap(controller.toggle_mute))
        logging.info("Mute button on GPIO%d (bounce=%d ms).", cfg.button.gpio_pin, cfg.button.bounce_ms)

    done = threading.Event()

    def shutdown(signum=None, frame=None):
        if done.is_set():
            return
        logging.info("Shutting down%s.", f" on signal {signum}" if signum else "")
        done.set()
        dispatcher.post(controller.stop)
        dispatcher.stop()
        tts.stop()
        if button is not None:
            button.close()

    def poll():
        if not done.is_set():
            controller.poll()
            dispatcher.call_later(cfg.turn.mic_poll_s, poll)

    def on_signal(signum, frame):
        shutdown(signum, frame)
        sys.exit(0)

    signal.signal(signal.SIGTERM, on_signal)
    signal.signal(signal.SIGINT, on_signal)

    tts.start()
    dispatcher.start()
    dispatcher.post(controller.start)
    dispatcher.call_later(cfg.turn.mic_poll_s, poll)
    logging.info("App ready. Catalog entries: %d. %s", len(catalog), COMMANDS_HELP)

    actions = {"m": controller.toggle_mute, "s": controller.start, "x": controller.stop}
    for line in sys.stdin:
        cmd = line.strip().lower()[:1]
        if cmd == "q":
            break
        if cmd in actions:
            dispatcher.post(actions[cmd])
        elif cmd:
            print(COMMANDS_HELP)
    else:
        # stdin closed (service mode): run until signalled
        done.wait()
    shutdown()


if __name__ == "__main__":
    main()
