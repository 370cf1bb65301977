"""
Multi-channel sample buffers.

A ``Wave`` is immutable once built by the console: every constructor
returns a new buffer and graphs that play it (``wavech``) hold a reference
rather than a copy.
"""

import logging
import math
import wave as wavfile
from typing import Optional, Sequence

import numpy as np

from .units import AudioUnit

logger = logging.getLogger(__name__)


class Wave:
    """Samples stored as a ``(channels, length)`` float32 array."""

    def __init__(self, samples: np.ndarray, sample_rate: float):
        self.samples = np.asarray(samples, dtype=np.float32)
        if self.samples.ndim != 2:
            raise ValueError("wave samples must be a 2D array")
        self._sample_rate = float(sample_rate)

    # -------------------------------------------------------------------------
    # Constructors
    # -------------------------------------------------------------------------

    @classmethod
    def new(cls, channels: int, sample_rate: float) -> "Wave":
        return cls(np.zeros((channels, 0), dtype=np.float32), sample_rate)

    @classmethod
    def zero(cls, channels: int, sample_rate: float, length: int) -> "Wave":
        return cls(np.zeros((channels, length), dtype=np.float32), sample_rate)

    @classmethod
    def from_samples(cls, sample_rate: float, samples: Sequence[float]) -> "Wave":
        """A mono wave."""
        return cls(np.asarray(samples, dtype=np.float32).reshape(1, -1), sample_rate)

    @classmethod
    def render(cls, sample_rate: float, duration: float, unit: AudioUnit) -> Optional["Wave"]:
        """Tick a generator (a unit with no inputs) for ``duration`` seconds."""
        if unit.inputs != 0 or unit.outputs == 0:
            return None
        if not (math.isfinite(duration) and duration >= 0.0):
            return None
        if not (math.isfinite(sample_rate) and sample_rate > 0.0):
            return None
        unit = unit.clone()
        unit.set_sample_rate(sample_rate)
        unit.allocate()
        length = int(round(duration * sample_rate))
        out = np.zeros((unit.outputs, length), dtype=np.float32)
        for i in range(length):
            out[:, i] = unit.tick(())
        return cls(out, sample_rate)

    @classmethod
    def load(cls, path: str) -> Optional["Wave"]:
        """Read an 8, 16 or 32 bit PCM WAV file; ``None`` if it can't be read."""
        try:
            with wavfile.open(path, "rb") as fp:
                channels = fp.getnchannels()
                width = fp.getsampwidth()
                rate = fp.getframerate()
                raw = fp.readframes(fp.getnframes())
        except (OSError, EOFError, wavfile.Error) as exc:
            logger.error("could not load %s: %s", path, exc)
            return None
        if width == 1:
            data = (np.frombuffer(raw, dtype=np.uint8).astype(np.float32) - 128.0) / 128.0
        elif width == 2:
            data = np.frombuffer(raw, dtype="<i2").astype(np.float32) / 32768.0
        elif width == 4:
            data = np.frombuffer(raw, dtype="<i4").astype(np.float32) / 2147483648.0
        else:
            logger.error("unsupported sample width %d in %s", width, path)
            return None
        return cls(data.reshape(-1, channels).T, rate)

    def save_wav16(self, path: str) -> bool:
        pcm = np.clip(self.samples, -1.0, 1.0)
        pcm = (pcm.T * 32767.0).astype("<i2")
        try:
            with wavfile.open(path, "wb") as fp:
                fp.setnchannels(self.channels())
                fp.setsampwidth(2)
                fp.setframerate(int(round(self._sample_rate)))
                fp.writeframes(pcm.tobytes())
        except (OSError, wavfile.Error) as exc:
            logger.error("could not save %s: %s", path, exc)
            return False
        return True

    # -------------------------------------------------------------------------
    # Access
    # -------------------------------------------------------------------------

    def channels(self) -> int:
        return self.samples.shape[0]

    def len(self) -> int:
        return self.samples.shape[1]

    def sample_rate(self) -> float:
        return self._sample_rate

    def duration(self) -> float:
        return self.len() / self._sample_rate

    def at(self, channel: int, index: int) -> float:
        return float(self.samples[channel, index])

    def channel(self, channel: int) -> Optional[list]:
        if not 0 <= channel < self.channels():
            return None
        return [float(x) for x in self.samples[channel]]

    def __deepcopy__(self, memo):
        return self
