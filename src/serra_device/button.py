"""Hold-to-reset button monitor."""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from serra_device.config.loader import ButtonConfig
from serra_device.types import ResetLevel

LOGGER = logging.getLogger(__name__)


class ButtonMonitor:
    """Measures how long the reset button is held.

    ``check`` returns immediately when the button is up. While it is held the
    call blocks, logging a countdown each second, and returns the reset level
    reached on release: NETWORK past ``network_reset_s``, FULL as soon as
    ``full_reset_s`` is reached.
    """

    def __init__(
        self,
        config: ButtonConfig,
        is_pressed: Callable[[], bool],
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._config = config
        self._is_pressed = is_pressed
        self._clock = clock
        self._sleep = sleep

    def check(self) -> ResetLevel:
        if not self._config.enabled or not self._is_pressed():
            return ResetLevel.NONE

        started = self._clock()
        last_announced: Optional[int] = None
        LOGGER.info(
            "Reset button held: release after %.0fs to clear WiFi, hold %.0fs to erase everything",
            self._config.network_reset_s,
            self._config.full_reset_s,
        )
        while self._is_pressed():
            held = self._clock() - started
            if held >= self._config.full_reset_s:
                LOGGER.warning("Full reset threshold reached")
                return ResetLevel.FULL
            second = int(held)
            if second != last_announced:
                last_announced = second
                remaining = self._config.full_reset_s - held
                LOGGER.info("Held %ds, full reset in %.0fs", second, remaining)
            self._sleep(self._config.poll_ms / 1000.0)

        held = self._clock() - started
        if held >= self._config.network_reset_s:
            LOGGER.warning("Network reset requested (held %.1fs)", held)
            return ResetLevel.NETWORK
        LOGGER.info("Button released after %.1fs; no reset", held)
        return ResetLevel.NONE


def never_pressed() -> bool:
    return False


__all__ = ["ButtonMonitor", "never_pressed"]
