"""
Audio graphs.

A ``Net`` is a network of units with a declared number of global inputs and
outputs. Every node input and every global output reads from a ``Source``:
silence, a global input channel, or an output channel of another node.
Nodes are ticked in dependency order; a net whose wiring contains a cycle
reports ``NetError.CYCLE`` and outputs silence.

Composition (``pipe``, ``stack``, ``branch``, ``bus`` and the arithmetic
operators) copies both operands into a fresh net, so composing never
mutates the operands.
"""

import itertools
import logging
import queue
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Sequence

from .units import AudioUnit, Binary, Scalar

logger = logging.getLogger(__name__)

# Node ids are unique across every net in the process
_node_ids = itertools.count()

# Pending snapshots between a net and its backend
BACKEND_QUEUE_SIZE = 16


@dataclass(frozen=True)
class NodeId:
    value: int

    def __str__(self) -> str:
        return f"NodeId({self.value})"


class SourceKind(Enum):
    ZERO = "Zero"
    GLOBAL = "Global"
    LOCAL = "Local"


@dataclass(frozen=True)
class Source:
    """Where a node input or a global output reads its signal from."""
    kind: SourceKind
    channel: int = 0
    node: Optional[NodeId] = None

    @classmethod
    def zero(cls) -> "Source":
        return cls(SourceKind.ZERO)

    @classmethod
    def global_input(cls, channel: int) -> "Source":
        return cls(SourceKind.GLOBAL, channel)

    @classmethod
    def local(cls, node: NodeId, channel: int) -> "Source":
        return cls(SourceKind.LOCAL, channel, node)

    def __str__(self) -> str:
        if self.kind is SourceKind.ZERO:
            return "Zero"
        if self.kind is SourceKind.GLOBAL:
            return f"Global({self.channel})"
        return f"Local({self.node}, {self.channel})"


class NetError(Enum):
    CYCLE = "Cycle"


class _Node:
    __slots__ = ("unit", "sources")

    def __init__(self, unit: AudioUnit):
        self.unit = unit
        self.sources: List[Source] = [Source.zero()] * unit.inputs


class Net(AudioUnit):
    """A graph of audio units."""

    def __init__(self, inputs: int = 0, outputs: int = 0):
        super().__init__()
        self.inputs = inputs
        self.outputs = outputs
        self._nodes: Dict[NodeId, _Node] = {}
        self._output_sources: List[Source] = [Source.zero()] * outputs
        self._order: Optional[List[NodeId]] = None
        self._error: Optional[NetError] = None
        self._dirty = True
        self._last: Optional[NodeId] = None
        self._backend_queue: Optional[queue.Queue] = None

    @classmethod
    def wrap(cls, unit: AudioUnit) -> "Net":
        """A net containing a single unit wired straight through."""
        if isinstance(unit, Net):
            return unit
        net = cls(unit.inputs, unit.outputs)
        node = net.push(unit)
        net.pipe_input(node)
        net.pipe_output(node)
        net._last = node
        return net

    def __deepcopy__(self, memo) -> "Net":
        import copy
        net = Net(self.inputs, self.outputs)
        net.sample_rate = self.sample_rate
        net._nodes = {}
        for nid, node in self._nodes.items():
            clone = _Node(copy.deepcopy(node.unit, memo))
            clone.sources = list(node.sources)
            net._nodes[nid] = clone
        net._output_sources = list(self._output_sources)
        net._last = self._last
        return net

    # =========================================================================
    # Introspection
    # =========================================================================

    def size(self) -> int:
        return len(self._nodes)

    def contains(self, node: NodeId) -> bool:
        return node in self._nodes

    def inputs_in(self, node: NodeId) -> int:
        return self._nodes[node].unit.inputs

    def outputs_in(self, node: NodeId) -> int:
        return self._nodes[node].unit.outputs

    def node_ids(self) -> List[NodeId]:
        return list(self._nodes)

    def source(self, node: NodeId, channel: int) -> Optional[Source]:
        n = self._nodes.get(node)
        if n is None or not 0 <= channel < len(n.sources):
            return None
        return n.sources[channel]

    def output_source(self, channel: int) -> Optional[Source]:
        if 0 <= channel < self.outputs:
            return self._output_sources[channel]
        return None

    def error(self) -> Optional[NetError]:
        self._prepare()
        return self._error

    @property
    def has_backend(self) -> bool:
        return self._backend_queue is not None

    def display(self) -> str:
        """Summary lines shown in the console transcript."""
        return f"Inputs         : {self.inputs}\nOutputs        : {self.outputs}\n"

    # =========================================================================
    # Editing
    # =========================================================================

    def _invalidate(self) -> None:
        self._dirty = True

    def push(self, unit: AudioUnit) -> NodeId:
        """Add a unit with all of its inputs reading silence."""
        nid = NodeId(next(_node_ids))
        unit.set_sample_rate(self.sample_rate)
        self._nodes[nid] = _Node(unit)
        self._invalidate()
        return nid

    def chain(self, unit: AudioUnit) -> NodeId:
        """Add a unit after the previously chained node and route it to the outputs."""
        nid = self.push(unit)
        previous = self._last if self._last in self._nodes else None
        if previous is not None:
            for ch in range(min(unit.inputs, self.outputs_in(previous))):
                self._nodes[nid].sources[ch] = Source.local(previous, ch)
        else:
            for ch in range(min(unit.inputs, self.inputs)):
                self._nodes[nid].sources[ch] = Source.global_input(ch)
        for ch in range(min(unit.outputs, self.outputs)):
            self._output_sources[ch] = Source.local(nid, ch)
        self._last = nid
        return nid

    def remove(self, node: NodeId) -> Optional[AudioUnit]:
        """Remove a node; everything reading from it reads silence instead."""
        removed = self._nodes.pop(node, None)
        if removed is None:
            return None
        for n in self._nodes.values():
            n.sources = [Source.zero() if s.node == node else s for s in n.sources]
        self._output_sources = [Source.zero() if s.node == node else s
                                for s in self._output_sources]
        self._invalidate()
        return removed.unit

    def replace(self, node: NodeId, unit: AudioUnit) -> Optional[AudioUnit]:
        """Swap the unit of a node for one with the same arity."""
        n = self._nodes.get(node)
        if n is None or n.unit.inputs != unit.inputs or n.unit.outputs != unit.outputs:
            return None
        old = n.unit
        unit.set_sample_rate(self.sample_rate)
        n.unit = unit
        self._invalidate()
        return old

    def connect(self, source: NodeId, source_port: int, target: NodeId, target_port: int) -> bool:
        if source not in self._nodes or target not in self._nodes:
            return False
        if not (0 <= source_port < self.outputs_in(source) and 0 <= target_port < self.inputs_in(target)):
            return False
        self._nodes[target].sources[target_port] = Source.local(source, source_port)
        self._invalidate()
        return True

    def disconnect(self, node: NodeId, port: int) -> bool:
        n = self._nodes.get(node)
        if n is None or not 0 <= port < len(n.sources):
            return False
        n.sources[port] = Source.zero()
        self._invalidate()
        return True

    def connect_input(self, global_input: int, node: NodeId, port: int) -> bool:
        n = self._nodes.get(node)
        if n is None or not (0 <= global_input < self.inputs and 0 <= port < len(n.sources)):
            return False
        n.sources[port] = Source.global_input(global_input)
        self._invalidate()
        return True

    def connect_output(self, node: NodeId, port: int, global_output: int) -> bool:
        if node not in self._nodes:
            return False
        if not (0 <= port < self.outputs_in(node) and 0 <= global_output < self.outputs):
            return False
        self._output_sources[global_output] = Source.local(node, port)
        self._invalidate()
        return True

    def pipe_input(self, node: NodeId) -> bool:
        """Feed the global inputs into a node of matching arity."""
        n = self._nodes.get(node)
        if n is None or n.unit.inputs != self.inputs:
            return False
        n.sources = [Source.global_input(i) for i in range(self.inputs)]
        self._invalidate()
        return True

    def pipe_output(self, node: NodeId) -> bool:
        """Route a node of matching arity to the global outputs."""
        n = self._nodes.get(node)
        if n is None or n.unit.outputs != self.outputs:
            return False
        self._output_sources = [Source.local(node, i) for i in range(self.outputs)]
        self._invalidate()
        return True

    def pipe_all(self, source: NodeId, target: NodeId) -> bool:
        """Connect every output of ``source`` to the same input of ``target``."""
        if source not in self._nodes or target not in self._nodes:
            return False
        if self.outputs_in(source) != self.inputs_in(target):
            return False
        self._nodes[target].sources = [Source.local(source, i)
                                       for i in range(self.inputs_in(target))]
        self._invalidate()
        return True

    def _valid_source(self, source: Source) -> bool:
        if source.kind is SourceKind.GLOBAL:
            return 0 <= source.channel < self.inputs
        if source.kind is SourceKind.LOCAL:
            return source.node in self._nodes and 0 <= source.channel < self.outputs_in(source.node)
        return True

    def set_source(self, node: NodeId, channel: int, source: Source) -> bool:
        n = self._nodes.get(node)
        if n is None or not 0 <= channel < len(n.sources) or not self._valid_source(source):
            return False
        n.sources[channel] = source
        self._invalidate()
        return True

    def set_output_source(self, channel: int, source: Source) -> bool:
        if not 0 <= channel < self.outputs or not self._valid_source(source):
            return False
        self._output_sources[channel] = source
        self._invalidate()
        return True

    # =========================================================================
    # Processing
    # =========================================================================

    def _prepare(self) -> None:
        """Recompute the node order after edits."""
        if not self._dirty:
            return
        self._dirty = False
        pending = {nid: {s.node for s in n.sources if s.kind is SourceKind.LOCAL}
                   for nid, n in self._nodes.items()}
        order = []
        while pending:
            ready = [nid for nid, deps in pending.items() if not deps]
            if not ready:
                self._order = None
                self._error = NetError.CYCLE
                return
            for nid in ready:
                del pending[nid]
                order.append(nid)
            for deps in pending.values():
                deps.difference_update(ready)
        self._order = order
        self._error = None

    def tick(self, frame: Sequence[float]) -> List[float]:
        self._prepare()
        if self._order is None:
            return [0.0] * self.outputs
        values: Dict[NodeId, List[float]] = {}

        def read(source: Source) -> float:
            if source.kind is SourceKind.GLOBAL:
                return frame[source.channel]
            if source.kind is SourceKind.LOCAL:
                return values[source.node][source.channel]
            return 0.0

        for nid in self._order:
            node = self._nodes[nid]
            values[nid] = node.unit.tick([read(s) for s in node.sources])
        return [read(s) for s in self._output_sources]

    def reset(self) -> None:
        for node in self._nodes.values():
            node.unit.reset()

    def set_sample_rate(self, sample_rate: float) -> None:
        super().set_sample_rate(sample_rate)
        for node in self._nodes.values():
            node.unit.set_sample_rate(sample_rate)

    def allocate(self) -> None:
        self._prepare()
        for node in self._nodes.values():
            node.unit.allocate()

    # =========================================================================
    # Backends
    # =========================================================================

    def backend(self) -> Optional["NetBackend"]:
        """Create the playable twin of this net; ``commit`` sends it new versions."""
        if self._backend_queue is not None:
            return None
        self._backend_queue = queue.Queue(maxsize=BACKEND_QUEUE_SIZE)
        return NetBackend(self.clone(), self._backend_queue)

    def commit(self) -> bool:
        """Send a snapshot of the current wiring to the backend without blocking."""
        if self._backend_queue is None:
            return False
        snapshot = self.clone()
        snapshot.allocate()
        try:
            self._backend_queue.put_nowait(snapshot)
        except queue.Full:
            logger.warning("net backend is not keeping up, dropped a commit")
            return False
        return True

    # =========================================================================
    # Composition
    # =========================================================================

    def _absorb(self, other: "Net", input_sources: Sequence[Source]) -> List[Source]:
        """Copy ``other``'s nodes into this net, reading its inputs from ``input_sources``.

        Returns the sources that now carry ``other``'s outputs.
        """
        other = other.clone()
        id_map = {nid: NodeId(next(_node_ids)) for nid in other._nodes}

        def translate(source: Source) -> Source:
            if source.kind is SourceKind.GLOBAL:
                return input_sources[source.channel]
            if source.kind is SourceKind.LOCAL:
                return Source.local(id_map[source.node], source.channel)
            return source

        for nid, node in other._nodes.items():
            new_node = _Node(node.unit)
            new_node.sources = [translate(s) for s in node.sources]
            node.unit.set_sample_rate(self.sample_rate)
            self._nodes[id_map[nid]] = new_node
        self._invalidate()
        return [translate(s) for s in other._output_sources]


def _globals(n: int, offset: int = 0) -> List[Source]:
    return [Source.global_input(offset + i) for i in range(n)]


def pipe(a: Net, b: Net) -> Optional[Net]:
    """``a >> b``: a's outputs feed b's inputs."""
    if a.outputs != b.inputs:
        return None
    net = Net(a.inputs, b.outputs)
    middle = net._absorb(a, _globals(a.inputs))
    net._output_sources = net._absorb(b, middle)
    return net


def stack(a: Net, b: Net) -> Optional[Net]:
    """``a | b``: side by side, inputs and outputs concatenated."""
    net = Net(a.inputs + b.inputs, a.outputs + b.outputs)
    outs = net._absorb(a, _globals(a.inputs))
    outs += net._absorb(b, _globals(b.inputs, a.inputs))
    net._output_sources = outs
    return net


def branch(a: Net, b: Net) -> Optional[Net]:
    """``a ^ b``: same inputs fed to both, outputs concatenated."""
    if a.inputs != b.inputs:
        return None
    net = Net(a.inputs, a.outputs + b.outputs)
    outs = net._absorb(a, _globals(a.inputs))
    outs += net._absorb(b, _globals(b.inputs))
    net._output_sources = outs
    return net


def binary(op: str, a: Net, b: Net) -> Optional[Net]:
    """``a + b``, ``a - b``, ``a * b``: same inputs fed to both, outputs combined."""
    if a.inputs != b.inputs or a.outputs != b.outputs:
        return None
    net = Net(a.inputs, a.outputs)
    outs = net._absorb(a, _globals(a.inputs))
    outs += net._absorb(b, _globals(b.inputs))
    combine = net.push(Binary(op, a.outputs))
    net._nodes[combine].sources = outs
    net._output_sources = [Source.local(combine, i) for i in range(a.outputs)]
    return net


def bus(a: Net, b: Net) -> Optional[Net]:
    """``a & b``: same inputs fed to both, outputs summed."""
    return binary("+", a, b)


def scalar(op: str, graph: Net, value: float, number_first: bool = False) -> Net:
    """Apply a number to every output: ``g * 0.5``, ``0.5 * g``, ``1 - g``."""
    return pipe(graph, Net.wrap(Scalar(op, value, graph.outputs, number_first)))


class NetBackend(AudioUnit):
    """Plays the latest snapshot committed by its net."""

    def __init__(self, net: Net, updates: queue.Queue):
        super().__init__()
        self.net = net
        self.updates = updates
        self.inputs = net.inputs
        self.outputs = net.outputs

    def __deepcopy__(self, memo):
        return self

    def tick(self, frame):
        try:
            snapshot = self.updates.get_nowait()
        except queue.Empty:
            pass
        else:
            snapshot.set_sample_rate(self.sample_rate)
            self.net = snapshot
        return self.net.tick(frame)

    def set_sample_rate(self, sample_rate):
        super().set_sample_rate(sample_rate)
        self.net.set_sample_rate(sample_rate)

    def reset(self):
        self.net.reset()

    def allocate(self):
        self.net.allocate()
