"""
Primitive audio units.

Every unit declares a fixed number of input and output channels and
processes one sample frame per ``tick``. Graphs (``physynth.audio.net``)
wire units together; the console names the constructors it exposes in
``physynth.runtime.builtins``.
"""

import copy
import math
import queue
import random
from typing import List, Optional, Sequence

import numpy as np

from .shared import AtomicTable, Shared

DEFAULT_SAMPLE_RATE = 44100.0


class AudioUnit:
    """Base class for everything that can be ticked one frame at a time."""

    inputs = 0
    outputs = 0

    def __init__(self):
        self.sample_rate = DEFAULT_SAMPLE_RATE

    def tick(self, frame: Sequence[float]) -> List[float]:
        raise NotImplementedError

    def reset(self) -> None:
        """Return to the initial state (oscillator phases, delay lines)."""

    def set_sample_rate(self, sample_rate: float) -> None:
        self.sample_rate = float(sample_rate)

    def allocate(self) -> None:
        """Preallocate buffers so the audio thread never has to."""

    def clone(self) -> "AudioUnit":
        return copy.deepcopy(self)

    def describe(self) -> str:
        return self.__class__.__name__


class Constant(AudioUnit):
    """Outputs fixed values, one per channel."""

    def __init__(self, values: Sequence[float]):
        super().__init__()
        self.values = [float(v) for v in values]
        self.outputs = len(self.values)

    def tick(self, frame):
        return list(self.values)


class Pass(AudioUnit):
    """Passes ``n`` channels through unchanged."""

    def __init__(self, n: int = 1):
        super().__init__()
        self.inputs = self.outputs = n

    def tick(self, frame):
        return list(frame)


class Sink(AudioUnit):
    """Consumes ``n`` channels."""

    def __init__(self, n: int = 1):
        super().__init__()
        self.inputs = n

    def tick(self, frame):
        return []


class Split(AudioUnit):
    """Copies ``inputs`` channels ``splits`` times."""

    def __init__(self, inputs: int, splits: int):
        super().__init__()
        self.inputs = inputs
        self.outputs = inputs * splits

    def tick(self, frame):
        return [frame[i % self.inputs] for i in range(self.outputs)]


class Join(AudioUnit):
    """Averages ``branches`` groups of ``outputs`` channels."""

    def __init__(self, outputs: int, branches: int):
        super().__init__()
        self.outputs = outputs
        self.branches = branches
        self.inputs = outputs * branches

    def tick(self, frame):
        out = []
        for j in range(self.outputs):
            total = sum(frame[j + i * self.outputs] for i in range(self.branches))
            out.append(total / self.branches)
        return out


class Reverse(AudioUnit):
    """Reverses the channel order."""

    def __init__(self, n: int):
        super().__init__()
        self.inputs = self.outputs = n

    def tick(self, frame):
        return list(reversed(frame))


class Binary(AudioUnit):
    """Combines two groups of ``n`` channels element-wise with + - or *."""

    OPS = {
        "+": lambda a, b: a + b,
        "-": lambda a, b: a - b,
        "*": lambda a, b: a * b,
    }

    def __init__(self, op: str, n: int):
        super().__init__()
        self.op = op
        self.inputs = 2 * n
        self.outputs = n

    def tick(self, frame):
        fn = self.OPS[self.op]
        n = self.outputs
        return [fn(frame[i], frame[i + n]) for i in range(n)]

    def describe(self):
        return f"Binary({self.op})"


class Scalar(AudioUnit):
    """Applies a number to every channel: ``x op k`` or ``k op x``."""

    def __init__(self, op: str, value: float, n: int, number_first: bool = False):
        super().__init__()
        self.op = op
        self.value = float(value)
        self.number_first = number_first
        self.inputs = self.outputs = n

    def tick(self, frame):
        fn = Binary.OPS[self.op]
        k = self.value
        if self.number_first:
            return [fn(k, x) for x in frame]
        return [fn(x, k) for x in frame]


class Oscillator(AudioUnit):
    """Band-unlimited oscillator.

    With a fixed ``frequency`` it has no inputs; otherwise its single input
    is the frequency in Hz.
    """

    WAVEFORMS = ("sine", "saw", "square", "triangle")

    def __init__(self, waveform: str, frequency: Optional[float] = None):
        super().__init__()
        if waveform not in self.WAVEFORMS:
            raise ValueError(f"unknown waveform {waveform!r}")
        self.waveform = waveform
        self.frequency = frequency
        self.inputs = 0 if frequency is not None else 1
        self.outputs = 1
        self.phase = 0.0

    def reset(self):
        self.phase = 0.0

    def _shape(self, phase: float) -> float:
        if self.waveform == "sine":
            return math.sin(phase * 2.0 * math.pi)
        if self.waveform == "saw":
            return 2.0 * phase - 1.0
        if self.waveform == "square":
            return 1.0 if phase < 0.5 else -1.0
        return 1.0 - 4.0 * abs(phase - 0.5)

    def tick(self, frame):
        freq = self.frequency if self.frequency is not None else frame[0]
        out = self._shape(self.phase)
        self.phase = (self.phase + freq / self.sample_rate) % 1.0
        return [out]

    def describe(self):
        if self.frequency is None:
            return self.waveform
        return f"{self.waveform}_hz({self.frequency})"


class Noise(AudioUnit):
    """White noise in [-1, 1]."""

    outputs = 1

    def __init__(self, seed: int = 0):
        super().__init__()
        self.seed = seed
        self._rng = random.Random(seed)

    def reset(self):
        self._rng = random.Random(self.seed)

    def tick(self, frame):
        return [self._rng.uniform(-1.0, 1.0)]


class Var(AudioUnit):
    """Outputs the current value of a shared cell."""

    outputs = 1

    def __init__(self, shared: Shared):
        super().__init__()
        self.shared = shared

    def tick(self, frame):
        return [self.shared.value()]


class LowPole(AudioUnit):
    """One-pole lowpass filter with a fixed cutoff."""

    inputs = 1
    outputs = 1

    def __init__(self, cutoff: float):
        super().__init__()
        self.cutoff = float(cutoff)
        self.state = 0.0
        self._update_coefficient()

    def _update_coefficient(self):
        self.coefficient = math.exp(-2.0 * math.pi * self.cutoff / self.sample_rate)

    def set_sample_rate(self, sample_rate):
        super().set_sample_rate(sample_rate)
        self._update_coefficient()

    def reset(self):
        self.state = 0.0

    def tick(self, frame):
        self.state = (1.0 - self.coefficient) * frame[0] + self.coefficient * self.state
        return [self.state]


class Delay(AudioUnit):
    """Delays its input by a fixed time in seconds."""

    inputs = 1
    outputs = 1

    def __init__(self, time: float):
        super().__init__()
        self.time = max(float(time), 0.0)
        self._buffer = None
        self._pos = 0

    def allocate(self):
        length = max(1, int(round(self.time * self.sample_rate)))
        if self._buffer is None or len(self._buffer) != length:
            self._buffer = np.zeros(length, dtype=np.float64)
            self._pos = 0

    def set_sample_rate(self, sample_rate):
        super().set_sample_rate(sample_rate)
        self._buffer = None

    def reset(self):
        if self._buffer is not None:
            self._buffer[:] = 0.0
        self._pos = 0

    def tick(self, frame):
        if self.time == 0.0:
            return [frame[0]]
        self.allocate()
        out = float(self._buffer[self._pos])
        self._buffer[self._pos] = frame[0]
        self._pos = (self._pos + 1) % len(self._buffer)
        return [out]


class WaveChannel(AudioUnit):
    """Plays one channel of a wave, optionally looping."""

    outputs = 1

    def __init__(self, wave, channel: int, loop: bool = False):
        super().__init__()
        self.wave = wave
        self.channel = channel
        self.loop = loop
        self.pos = 0

    def reset(self):
        self.pos = 0

    def tick(self, frame):
        n = self.wave.len()
        if n == 0:
            return [0.0]
        if self.pos >= n:
            if not self.loop:
                return [0.0]
            self.pos = 0
        out = self.wave.at(self.channel, self.pos)
        self.pos += 1
        return [out]


class AtomicSynth(AudioUnit):
    """Wavetable oscillator over a shared table; the input is the frequency in Hz."""

    inputs = 1
    outputs = 1

    def __init__(self, table: AtomicTable):
        super().__init__()
        self.table = table
        self.phase = 0.0

    def reset(self):
        self.phase = 0.0

    def tick(self, frame):
        out = self.table.read_linear(self.phase)
        self.phase = (self.phase + frame[0] / self.sample_rate) % 1.0
        return [out]


class InputUnit(AudioUnit):
    """Device input: left and right samples pulled from bounded queues.

    An empty queue yields silence; the audio thread never waits.
    """

    outputs = 2

    def __init__(self, left: "queue.Queue[float]", right: "queue.Queue[float]"):
        super().__init__()
        self.left = left
        self.right = right

    def __deepcopy__(self, memo):
        return InputUnit(self.left, self.right)

    @staticmethod
    def _pull(q) -> float:
        try:
            return q.get_nowait()
        except queue.Empty:
            return 0.0

    def tick(self, frame):
        return [self._pull(self.left), self._pull(self.right)]
