from __future__ import annotations

from gpiozero import Button

from turntalker.ports import ButtonPort


class GpioZeroButton(ButtonPort):
    """Momentary push button; each press toggles mute."""

    def __init__(self, gpio_pin: int, bounce_ms: int):
        self._btn = Button(gpio_pin, pull_up=True, bounce_time=bounce_ms / 1000.0)

    def on_press(self, cb) -> None:
        self._btn.when_pressed = cb

    def close(self) -> None:
        self._btn.close()
