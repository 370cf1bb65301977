"""
Hot-swappable output slot.

The console side holds a ``Slot``; the audio callback holds its
``SlotBackend``. ``Slot.set`` hands a new unit over a bounded queue and the
backend crossfades from the unit it is playing to the new one.
"""

import logging
import math
import queue
from enum import Enum
from typing import Optional

from .units import AudioUnit, Constant

logger = logging.getLogger(__name__)

SLOT_QUEUE_SIZE = 8


class Fade(Enum):
    SMOOTH = "smooth"  # smoothstep crossfade
    POWER = "power"    # equal power crossfade


def _fade_weights(fade: Fade, x: float):
    x = min(max(x, 0.0), 1.0)
    if fade is Fade.POWER:
        return math.cos(x * math.pi / 2.0), math.sin(x * math.pi / 2.0)
    w = x * x * (3.0 - 2.0 * x)
    return 1.0 - w, w


class Slot:

    def __init__(self, outputs: int):
        self.outputs = outputs
        self._queue: queue.Queue = queue.Queue(maxsize=SLOT_QUEUE_SIZE)
        self._backend = SlotBackend(outputs, self._queue)

    def backend(self) -> "SlotBackend":
        return self._backend

    def set(self, fade: Fade, time: float, unit: AudioUnit) -> bool:
        """Request a crossfade to ``unit`` over ``time`` seconds."""
        if unit.inputs != 0 or unit.outputs != self.outputs:
            return False
        unit.set_sample_rate(self._backend.sample_rate)
        unit.allocate()
        try:
            self._queue.put_nowait((fade, max(time, 0.0), unit))
        except queue.Full:
            logger.warning("output slot is busy, dropped a unit")
            return False
        logger.debug("slot swap queued: %s", unit.describe())
        return True


class SlotBackend(AudioUnit):

    inputs = 0

    def __init__(self, outputs: int, updates: queue.Queue):
        super().__init__()
        self.outputs = outputs
        self.updates = updates
        self.current: AudioUnit = Constant([0.0] * outputs)
        self.previous: Optional[AudioUnit] = None
        self._fade = Fade.SMOOTH
        self._fade_samples = 0
        self._position = 0

    def tick(self, frame):
        try:
            fade, time, unit = self.updates.get_nowait()
        except queue.Empty:
            pass
        else:
            self.previous = self.current
            self.current = unit
            self._fade = fade
            self._fade_samples = int(time * self.sample_rate)
            self._position = 0
        out = self.current.tick(())
        if self.previous is None:
            return out
        if self._position >= self._fade_samples:
            self.previous = None
            return out
        old, new = _fade_weights(self._fade, self._position / self._fade_samples)
        self._position += 1
        return [a * old + b * new for a, b in zip(self.previous.tick(()), out)]

    def set_sample_rate(self, sample_rate):
        super().set_sample_rate(sample_rate)
        self.current.set_sample_rate(sample_rate)
