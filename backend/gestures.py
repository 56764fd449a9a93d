"""Swipe classification and long-press detection."""

import asyncio
import inspect
import logging
from enum import Enum
from typing import Any, Callable

from config import NavigationConfig

logger = logging.getLogger("swipetree.gestures")


class Gesture(str, Enum):
    """Navigation intents understood by the engine."""
    UP = "up"
    DOWN = "down"
    LEFT = "left"
    RIGHT = "right"
    BACK = "back"
    LONG_PRESS = "long-press"


def classify_swipe(dx: float, dy: float, threshold: float = 40) -> Gesture | None:
    """
    Map a finger displacement to a swipe direction.

    Screen coordinates: positive dy points down, positive dx points right.
    Motions shorter than ``threshold`` on both axes are not swipes.
    """
    adx, ady = abs(dx), abs(dy)
    if max(adx, ady) < threshold:
        return None
    if adx > ady:
        return Gesture.RIGHT if dx > 0 else Gesture.LEFT
    return Gesture.DOWN if dy > 0 else Gesture.UP


class GestureTracker:
    """Follows one touch from start to end.

    A long-press fires after ``long_press_ms`` unless the finger moves
    further than ``long_press_jitter`` first. A touch that produced a
    long-press never also produces a swipe. An async long-press handler runs
    as ``pending`` until it finishes; its failure is logged.
    """

    def __init__(self, config: NavigationConfig | None = None, on_long_press: Callable[[], Any] | None = None):
        self.config = config or NavigationConfig()
        self.on_long_press = on_long_press
        self._timer: asyncio.TimerHandle | None = None
        self._start: tuple[float, float] | None = None
        self._delta = (0.0, 0.0)
        self.long_press_fired = False
        self.pending: asyncio.Future | None = None

    @property
    def active(self) -> bool:
        return self._start is not None

    def touch_start(self, x: float, y: float) -> None:
        self._cancel_timer()
        self._start = (x, y)
        self._delta = (0.0, 0.0)
        self.long_press_fired = False
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.config.long_press_ms / 1000, self._fire_long_press)

    def touch_move(self, x: float, y: float) -> None:
        if self._start is None:
            return
        dx, dy = x - self._start[0], y - self._start[1]
        self._delta = (dx, dy)
        if max(abs(dx), abs(dy)) > self.config.long_press_jitter:
            self._cancel_timer()

    def touch_end(self) -> Gesture | None:
        """Finish the touch and return the swipe it made, if any."""
        if self._start is None:
            return None
        self._cancel_timer()
        self._start = None
        if self.long_press_fired:
            return None
        dx, dy = self._delta
        gesture = classify_swipe(dx, dy, self.config.swipe_threshold)
        if gesture is None:
            logger.debug(f"Ignoring short motion dx={dx}, dy={dy}")
        return gesture

    def touch_cancel(self) -> None:
        self._cancel_timer()
        self._start = None

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _fire_long_press(self) -> None:
        self._timer = None
        self.long_press_fired = True
        logger.debug("Long-press detected")
        if self.on_long_press is None:
            return
        result = self.on_long_press()
        if inspect.isawaitable(result):
            self.pending = asyncio.ensure_future(result)
            self.pending.add_done_callback(self._long_press_done)

    def _long_press_done(self, task: asyncio.Future) -> None:
        if task is self.pending:
            self.pending = None
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Long-press handler failed: {error}", exc_info=error)
