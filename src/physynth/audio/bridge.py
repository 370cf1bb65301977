"""
Audio graph bridge.

Connects the console to the audio device: owns the output ``Slot`` the
device stream plays, the input queues fed by the input stream, and the
device selection verbs. Device failures are logged and leave the streams
that were running untouched.
"""

import logging
import queue
from typing import Optional

from .device import AudioDeviceError, INPUT_QUEUE_SIZE, list_devices, open_input, open_output
from .slot import Fade, Slot
from .units import AudioUnit, DEFAULT_SAMPLE_RATE, InputUnit

logger = logging.getLogger(__name__)

# Crossfade length when a graph is played, in seconds
PLAY_FADE_TIME = 0.1


class AudioBridge:

    def __init__(self, channels: int = 2, sample_rate: Optional[float] = None):
        self.channels = channels
        self.sample_rate = sample_rate or DEFAULT_SAMPLE_RATE
        self.slot = Slot(channels)
        self.slot.backend().set_sample_rate(self.sample_rate)
        self.left: queue.Queue = queue.Queue(maxsize=INPUT_QUEUE_SIZE * channels)
        self.right: queue.Queue = queue.Queue(maxsize=INPUT_QUEUE_SIZE * channels)
        self.out_stream = None
        self.in_stream = None

    def play(self, unit: AudioUnit) -> bool:
        """Crossfade ``unit`` into the output; only generators matching the device channels play."""
        if unit.inputs != 0 or unit.outputs != self.channels:
            return False
        unit = unit.clone()
        unit.set_sample_rate(self.sample_rate)
        return self.slot.set(Fade.SMOOTH, PLAY_FADE_TIME, unit)

    def play_unshared(self, unit: AudioUnit) -> bool:
        """Like ``play`` but hands over ``unit`` itself (backends are never copied)."""
        if unit.inputs != 0 or unit.outputs != self.channels:
            return False
        unit.set_sample_rate(self.sample_rate)
        return self.slot.set(Fade.SMOOTH, PLAY_FADE_TIME, unit)

    def input_unit(self) -> InputUnit:
        return InputUnit(self.left, self.right)

    def set_out_device(self, host=None, device=None, channels=None, sample_rate=None, buffer=None) -> bool:
        slot = Slot(channels if channels and channels > 0 else self.channels)
        try:
            stream, channels, sample_rate = open_output(
                slot.backend(), host, device, slot.outputs, sample_rate, buffer)
        except AudioDeviceError as exc:
            logger.error("could not open output device: %s", exc)
            return False
        self._close(self.out_stream)
        self.out_stream = stream
        self.slot = slot
        self.channels = channels
        self.sample_rate = sample_rate
        logger.info("output device: %d channels at %g Hz", channels, sample_rate)
        return True

    def set_in_device(self, host=None, device=None, channels=None, sample_rate=None, buffer=None) -> bool:
        try:
            stream = open_input(self.left, self.right, host, device, channels, sample_rate, buffer)
        except AudioDeviceError as exc:
            logger.error("could not open input device: %s", exc)
            return False
        self._close(self.in_stream)
        self.in_stream = stream
        return True

    def list_out_devices(self) -> str:
        return self._listing("output")

    def list_in_devices(self) -> str:
        return self._listing("input")

    @staticmethod
    def _listing(kind: str) -> str:
        try:
            lines = list_devices(kind)
        except AudioDeviceError as exc:
            logger.error("could not list %s devices: %s", kind, exc)
            return ""
        return "".join(f"\n// {line}" for line in lines)

    @staticmethod
    def _close(stream) -> None:
        if stream is not None:
            stream.stop()
            stream.close()

    def close(self) -> None:
        self._close(self.out_stream)
        self._close(self.in_stream)
        self.out_stream = None
        self.in_stream = None
