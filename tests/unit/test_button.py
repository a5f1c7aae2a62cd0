from __future__ import annotations

from serra_device.button import ButtonMonitor
from serra_device.config.loader import ButtonConfig
from serra_device.types import ResetLevel


class _HeldButton:
    """Button held for ``hold_s`` seconds of fake time."""

    def __init__(self, hold_s: float) -> None:
        self.now = 0.0
        self.hold_s = hold_s

    def clock(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.now += seconds

    def is_pressed(self) -> bool:
        return self.now < self.hold_s


def _monitor(button: _HeldButton, *, enabled: bool = True) -> ButtonMonitor:
    config = ButtonConfig(enabled=enabled, network_reset_s=5.0, full_reset_s=10.0, poll_ms=100)
    return ButtonMonitor(config, button.is_pressed, clock=button.clock, sleep=button.sleep)


def test_released_button_returns_immediately() -> None:
    button = _HeldButton(hold_s=0.0)
    assert _monitor(button).check() is ResetLevel.NONE
    assert button.now == 0.0


def test_short_press_does_nothing() -> None:
    assert _monitor(_HeldButton(hold_s=2.0)).check() is ResetLevel.NONE


def test_hold_past_network_threshold() -> None:
    assert _monitor(_HeldButton(hold_s=6.0)).check() is ResetLevel.NETWORK


def test_hold_to_full_threshold_returns_without_release() -> None:
    button = _HeldButton(hold_s=60.0)
    assert _monitor(button).check() is ResetLevel.FULL
    assert 10.0 <= button.now < 10.5


def test_disabled_button_is_ignored() -> None:
    assert _monitor(_HeldButton(hold_s=60.0), enabled=False).check() is ResetLevel.NONE
