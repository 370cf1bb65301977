"""
Runtime values for the console evaluator.

Every bound name holds a ``Value``: the Python object plus the ``Sort`` it
was resolved as. Sorts are tried in ``PRIORITY`` order whenever an
expression is not already known to denote a particular sort.
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, List

import numpy as np


class Sort(Enum):
    """The kinds of value the evaluator knows about."""
    NUMBER = "number"
    GRAPH = "graph"
    ARRAY = "array"
    TABLE = "table"
    NODE = "node"
    BOOL = "bool"
    SHARED = "shared"
    WAVE = "wave"
    SEQUENCER = "sequencer"
    SOURCE = "source"
    EVENT = "event"
    ENTITY = "entity"


# Resolution order for let-bindings and bare expressions
PRIORITY = (
    Sort.NUMBER,
    Sort.GRAPH,
    Sort.ARRAY,
    Sort.TABLE,
    Sort.NODE,
    Sort.BOOL,
    Sort.SHARED,
    Sort.WAVE,
    Sort.SEQUENCER,
    Sort.SOURCE,
    Sort.EVENT,
    Sort.ENTITY,
)


@dataclass
class Value:
    """
    A runtime value with its sort.

    The `data` field holds the Python object (a float, a list of floats,
    a ``Net``, an ``EntityRef``...).
    """
    data: Any
    sort: Sort

    def __repr__(self) -> str:
        return f"Value({self.data!r}, {self.sort.value})"


# Convenience constructors

def number_val(x: float) -> Value:
    return Value(float(x), Sort.NUMBER)


def array_val(xs: List[float]) -> Value:
    return Value([float(x) for x in xs], Sort.ARRAY)


def bool_val(b: bool) -> Value:
    return Value(bool(b), Sort.BOOL)


def graph_val(net) -> Value:
    return Value(net, Sort.GRAPH)


def entity_val(entity) -> Value:
    return Value(entity, Sort.ENTITY)


# =============================================================================
# Formatting
# =============================================================================

def format_number(x: float) -> str:
    """Debug form used in the transcript: ``5.0``, ``1e20``, ``NaN``, ``-inf``."""
    if math.isnan(x):
        return "NaN"
    if math.isinf(x):
        return "inf" if x > 0 else "-inf"
    text = repr(float(x))
    if "e" in text:
        mantissa, exponent = text.split("e")
        text = f"{mantissa}e{int(exponent)}"
    return text


def format_display(x: float) -> str:
    """Plain positional form: ``5``, ``0.25``."""
    if math.isnan(x):
        return "NaN"
    if math.isinf(x):
        return "inf" if x > 0 else "-inf"
    return np.format_float_positional(x, trim="-")


def format_bool(b: bool) -> str:
    return "true" if b else "false"


def format_array(xs: List[float]) -> str:
    return "[" + ", ".join(format_number(x) for x in xs) + "]"


def format_value(value: Value) -> str:
    """The transcript text for a bare expression (without the ``// `` prefix)."""
    data = value.data
    sort = value.sort
    if sort is Sort.NUMBER:
        return format_number(data)
    if sort is Sort.ARRAY:
        return format_array(data)
    if sort is Sort.BOOL:
        return format_bool(data)
    if sort is Sort.GRAPH:
        return data.display().replace("\n", "\n// ") + f"Size           : {data.size()}"
    if sort is Sort.SHARED:
        return f"Shared({format_display(data.value())})"
    if sort is Sort.WAVE:
        return (f"Wave(ch:{data.channels()}, sr:{format_display(data.sample_rate())}, "
                f"len:{data.len()}, dur:{format_display(data.duration())})")
    if sort is Sort.SEQUENCER:
        return (f"Sequencer(outs: {data.outputs}, has_backend: {format_bool(data.has_backend)}, "
                f"replay: {format_bool(data.replay_events())})")
    # NodeId, EventId, Source, EntityRef and AtomicTable format themselves
    return str(data)
