"""
Values shared between the console thread and the audio thread.

Both types are written by the evaluator and read by the audio callback
without locks: a ``Shared`` holds a single float that is replaced
atomically, and an ``AtomicTable`` is a fixed-size float32 array whose
elements are written one at a time. Copying a graph that references them
keeps the reference, so a cell set from the console is heard by every
graph built from it.
"""

from typing import Iterable, Optional

import numpy as np


class Shared:
    """A float cell shared with the audio thread."""

    __slots__ = ("_value",)

    def __init__(self, value: float = 0.0):
        self._value = float(value)

    def value(self) -> float:
        return self._value

    def set(self, value: float) -> None:
        self._value = float(value)

    def __copy__(self) -> "Shared":
        return self

    def __deepcopy__(self, memo) -> "Shared":
        return self

    def __repr__(self) -> str:
        return f"Shared({self._value!r})"


class AtomicTable:
    """A lookup table shared with the audio thread.

    The length must be a power of two so readers can wrap indices with a mask.
    """

    def __init__(self, values: Iterable[float]):
        data = np.asarray(list(values), dtype=np.float32)
        n = len(data)
        if n == 0 or n & (n - 1):
            raise ValueError(f"table length must be a power of two, got {n}")
        self._data = data
        self._mask = n - 1

    @classmethod
    def try_new(cls, values: Iterable[float]) -> Optional["AtomicTable"]:
        """Build a table, or None when the length is not a power of two."""
        try:
            return cls(values)
        except ValueError:
            return None

    def __len__(self) -> int:
        return len(self._data)

    def at(self, index: int) -> Optional[float]:
        if 0 <= index < len(self._data):
            return float(self._data[index])
        return None

    def set(self, index: int, value: float) -> bool:
        if 0 <= index < len(self._data):
            self._data[index] = value
            return True
        return False

    def read_wrapped(self, index: int) -> float:
        return float(self._data[index & self._mask])

    def read_linear(self, phase: float) -> float:
        """Interpolated read with ``phase`` in [0, 1)."""
        pos = (phase - np.floor(phase)) * len(self._data)
        i = int(pos)
        frac = pos - i
        a = self._data[i & self._mask]
        b = self._data[(i + 1) & self._mask]
        return float(a + (b - a) * frac)

    def __copy__(self) -> "AtomicTable":
        return self

    def __deepcopy__(self, memo) -> "AtomicTable":
        return self

    def __repr__(self) -> str:
        return f"AtomicTable(len: {len(self._data)})"
