"""
Sort evaluators.

One ``eval_<sort>`` method per sort. Each tries to read an expression as its
sort and returns the Python object on success or ``None`` when the
expression does not denote a value of that sort (or names an index, arity
or handle that is invalid). They never raise for bad input; ``resolve``
tries them in priority order.
"""

import math
from typing import Callable, Dict, List, Optional

import numpy as np

from ..audio.net import Net, Source, bus, binary, branch, pipe, scalar, stack
from ..audio.sequencer import Sequencer
from ..audio.shared import AtomicTable, Shared
from ..audio.wave import Wave
from ..commands import BOOL_FIELDS, InsertDefaults, JointEntities, JointPoints, NUMBER_FIELDS
from ..lang.ast import (
    ArrayLiteral, BinaryOp, Expression, FunctionCall, IndexAccess, Literal,
    MemberAccess, MethodCall, Path, UnaryOp,
)
from ..lang.tokens import TokenType
from ..world import EntityRef, PLACEHOLDER
from .builtins import CONSTANTS, NUMBER_FUNCTIONS, NUMBER_METHODS, UNIT_CONSTRUCTORS, divide, power, remainder
from .context import EvalContext
from .methods import call_entity_method
from .values import PRIORITY, Sort, Value

ARITHMETIC = {
    TokenType.PLUS: lambda a, b: a + b,
    TokenType.MINUS: lambda a, b: a - b,
    TokenType.STAR: lambda a, b: a * b,
    TokenType.SLASH: divide,
    TokenType.PERCENT: remainder,
    TokenType.DOUBLE_STAR: power,
}

COMPARISONS = {
    TokenType.LT: lambda a, b: a < b,
    TokenType.GT: lambda a, b: a > b,
    TokenType.LE: lambda a, b: a <= b,
    TokenType.GE: lambda a, b: a >= b,
    TokenType.EQ: lambda a, b: a == b,
    TokenType.NE: lambda a, b: a != b,
}

GRAPH_OPERATORS = {
    TokenType.PIPE: pipe,
    TokenType.STACK: stack,
    TokenType.BRANCH: branch,
    TokenType.BUS: bus,
    TokenType.PLUS: lambda a, b: binary("+", a, b),
    TokenType.MINUS: lambda a, b: binary("-", a, b),
    TokenType.STAR: lambda a, b: binary("*", a, b),
}

SCALAR_OPERATORS = {
    TokenType.PLUS: "+",
    TokenType.MINUS: "-",
    TokenType.STAR: "*",
}

NUMERIC_LITERALS = (TokenType.INT_LITERAL, TokenType.FLOAT_LITERAL)

# Methods answered with a Number by a receiver of another sort
ARRAY_NUMBER_METHODS = ("len", "first", "last", "get")
WAVE_NUMBER_METHODS = ("len", "channels", "sample_rate", "duration", "at")


def ident(expr: Expression) -> Optional[str]:
    """The name of a single-segment path."""
    if isinstance(expr, Path) and expr.is_ident:
        return expr.name
    return None


def to_index(x: Optional[float]) -> Optional[int]:
    """A Number used as an index or count: truncated, finite and non-negative."""
    if x is None or not math.isfinite(x):
        return None
    n = math.trunc(x)
    return n if n >= 0 else None


def to_rate(x: Optional[float]) -> Optional[float]:
    """A Number used as a sample rate: finite and positive."""
    if x is None or not math.isfinite(x) or x <= 0.0:
        return None
    return x


class SortEvaluator:
    """
    Evaluates expressions against an ``EvalContext``.

    Reads come from the value store and the world; the only mutations are
    the ones methods are documented to perform (commands queued for the
    world, edits of a named graph or sequencer).
    """

    def __init__(self, ctx: EvalContext):
        self.ctx = ctx
        self.evaluators: Dict[Sort, Callable[[Expression], object]] = {
            Sort.NUMBER: self.eval_number,
            Sort.GRAPH: self.eval_graph,
            Sort.ARRAY: self.eval_array,
            Sort.TABLE: self.eval_table,
            Sort.NODE: self.eval_node,
            Sort.BOOL: self.eval_bool,
            Sort.SHARED: self.eval_shared,
            Sort.WAVE: self.eval_wave,
            Sort.SEQUENCER: self.eval_sequencer,
            Sort.SOURCE: self.eval_source,
            Sort.EVENT: self.eval_event,
            Sort.ENTITY: self.eval_entity,
        }

    @property
    def store(self):
        return self.ctx.store

    def resolve(self, expr: Expression) -> Optional[Value]:
        """The first sort in priority order that ``expr`` evaluates as."""
        for sort in PRIORITY:
            data = self.evaluators[sort](expr)
            if data is not None:
                return Value(data, sort)
        return None

    def eval_as(self, sort: Sort, expr: Expression):
        return self.evaluators[sort](expr)

    # =========================================================================
    # Helpers
    # =========================================================================

    def eval_index(self, expr: Expression) -> Optional[int]:
        return to_index(self.eval_number(expr))

    def eval_text(self, expr: Expression) -> Optional[str]:
        if isinstance(expr, Literal) and expr.literal_type == TokenType.STRING_LITERAL:
            return expr.value
        return None

    def eval_numbers(self, args: List[Expression]) -> Optional[List[float]]:
        values = []
        for arg in args:
            x = self.eval_number(arg)
            if x is None:
                return None
            values.append(x)
        return values

    def named(self, expr: Expression, sort: Sort):
        """The stored object itself (not a copy) for a name bound as ``sort``."""
        name = ident(expr)
        if name is None:
            return None
        return self.store.get(name, sort)

    def peek_graph(self, expr: Expression) -> Optional[Net]:
        """A graph to inspect without copying it when it is a name."""
        net = self.named(expr, Sort.GRAPH)
        return net if net is not None else self.eval_graph(expr)

    def entity_key(self, expr: Expression) -> Optional[EntityRef]:
        """Entity receivers for field reads: names and literals only."""
        if isinstance(expr, (Path, Literal)):
            return self.eval_entity(expr)
        return None

    def _is_time(self, expr: Expression) -> bool:
        return ident(expr) == "time" and "time" not in self.store

    # =========================================================================
    # Number
    # =========================================================================

    def eval_number(self, expr: Expression) -> Optional[float]:
        if isinstance(expr, Literal):
            if expr.literal_type in NUMERIC_LITERALS:
                try:
                    return float(expr.value)
                except OverflowError:
                    return math.inf
            return None
        if isinstance(expr, Path):
            name = expr.name
            x = self.store.get(name, Sort.NUMBER)
            if x is not None:
                return x
            if name in CONSTANTS and name not in self.store:
                return CONSTANTS[name]
            return None
        if isinstance(expr, BinaryOp):
            op = ARITHMETIC.get(expr.operator)
            if op is None:
                return None
            left = self.eval_number(expr.left)
            if left is None:
                return None
            right = self.eval_number(expr.right)
            if right is None:
                return None
            return op(left, right)
        if isinstance(expr, UnaryOp):
            if expr.operator != TokenType.MINUS:
                return None
            x = self.eval_number(expr.operand)
            return -x if x is not None else None
        if isinstance(expr, FunctionCall):
            entry = NUMBER_FUNCTIONS.get(expr.callee_name)
            if entry is None or len(expr.arguments) != entry[0]:
                return None
            args = self.eval_numbers(expr.arguments)
            return float(entry[1](*args)) if args is not None else None
        if isinstance(expr, MethodCall):
            return self._number_method(expr)
        if isinstance(expr, MemberAccess):
            if expr.member not in NUMBER_FIELDS:
                return None
            entity = self.entity_key(expr.object)
            if entity is None:
                return None
            value = self.ctx.world.read_property(entity, expr.member)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                return None
            return float(value)
        if isinstance(expr, IndexAccess):
            xs = self.eval_array(expr.object)
            i = self.eval_index(expr.index)
            if xs is None or i is None or i >= len(xs):
                return None
            return xs[i]
        return None

    def _number_method(self, expr: MethodCall) -> Optional[float]:
        method, args, obj = expr.method, expr.arguments, expr.object
        if method in NUMBER_METHODS:
            arity, fn = NUMBER_METHODS[method]
            if len(args) != arity:
                return None
            x = self.eval_number(obj)
            if x is None:
                return None
            rest = self.eval_numbers(args)
            return float(fn(x, *rest)) if rest is not None else None
        if self._is_time(obj):
            return self.ctx.world.elapsed if method == "elapsed" and not args else None
        if method in ARRAY_NUMBER_METHODS:
            xs = self.eval_array(obj)
            if xs is not None:
                return self._array_number(method, xs, args)
        if method in ("len", "at"):
            table = self.eval_table(obj)
            if table is not None:
                if method == "len" and not args:
                    return float(len(table))
                if method == "at" and len(args) == 1:
                    i = self.eval_index(args[0])
                    return table.at(i) if i is not None else None
                return None
        if method in WAVE_NUMBER_METHODS:
            wave = self.eval_wave(obj)
            if wave is not None:
                return self._wave_number(method, wave, args)
        if method in ("inputs", "outputs", "size") and not args:
            net = self.peek_graph(obj)
            if net is not None:
                return float({"inputs": net.inputs, "outputs": net.outputs,
                              "size": net.size()}[method])
        if method == "outputs" and not args:
            seq = self.eval_sequencer(obj)
            return float(seq.outputs) if seq is not None else None
        if method == "value" and not args:
            shared = self.eval_shared(obj)
            return shared.value() if shared is not None else None
        return None

    def _array_number(self, method: str, xs: List[float], args) -> Optional[float]:
        if method == "len":
            return float(len(xs)) if not args else None
        if method == "first":
            return xs[0] if xs and not args else None
        if method == "last":
            return xs[-1] if xs and not args else None
        if len(args) != 1:
            return None
        i = self.eval_index(args[0])
        return xs[i] if i is not None and i < len(xs) else None

    def _wave_number(self, method: str, wave: Wave, args) -> Optional[float]:
        if method == "at":
            if len(args) != 2:
                return None
            ch, i = self.eval_index(args[0]), self.eval_index(args[1])
            if ch is None or i is None or ch >= wave.channels() or i >= wave.len():
                return None
            return wave.at(ch, i)
        if args:
            return None
        return float(getattr(wave, method)())

    # =========================================================================
    # Boolean
    # =========================================================================

    def eval_bool(self, expr: Expression) -> Optional[bool]:
        if isinstance(expr, Literal):
            return expr.value if expr.literal_type == TokenType.BOOL_LITERAL else None
        if isinstance(expr, Path):
            return self.store.get(expr.name, Sort.BOOL)
        if isinstance(expr, BinaryOp):
            if expr.operator in (TokenType.AND, TokenType.OR):
                left = self.eval_bool(expr.left)
                right = self.eval_bool(expr.right)
                if left is None or right is None:
                    return None
                return (left and right) if expr.operator == TokenType.AND else (left or right)
            compare = COMPARISONS.get(expr.operator)
            if compare is None:
                return None
            left = self.eval_number(expr.left)
            right = self.eval_number(expr.right)
            if left is None or right is None:
                return None
            return compare(left, right)
        if isinstance(expr, UnaryOp):
            if expr.operator != TokenType.NOT:
                return None
            b = self.eval_bool(expr.operand)
            return (not b) if b is not None else None
        if isinstance(expr, MemberAccess):
            if expr.member not in BOOL_FIELDS:
                return None
            entity = self.entity_key(expr.object)
            if entity is None:
                return None
            value = self.ctx.world.read_property(entity, expr.member)
            return value if isinstance(value, bool) else None
        if isinstance(expr, MethodCall) and not expr.arguments:
            if self._is_time(expr.object):
                return self.ctx.world.paused if expr.method == "is_paused" else None
            if expr.method == "has_backend":
                net = self.named(expr.object, Sort.GRAPH)
                if net is not None:
                    return net.has_backend
                seq = self.eval_sequencer(expr.object)
                return seq.has_backend if seq is not None else None
            if expr.method == "replay_events":
                seq = self.eval_sequencer(expr.object)
                return seq.replay_events() if seq is not None else None
        return None

    # =========================================================================
    # NumberArray
    # =========================================================================

    def eval_array(self, expr: Expression) -> Optional[List[float]]:
        if isinstance(expr, ArrayLiteral):
            # elements that don't evaluate are left out
            xs = []
            for element in expr.elements:
                x = self.eval_number(element)
                if x is not None:
                    xs.append(x)
            return xs
        if isinstance(expr, Path):
            xs = self.store.get(expr.name, Sort.ARRAY)
            return list(xs) if xs is not None else None
        if isinstance(expr, MethodCall):
            method, args = expr.method, expr.arguments
            if method == "clone" and not args:
                return self.eval_array(expr.object)
            if method == "channel" and len(args) == 1:
                wave = self.eval_wave(expr.object)
                i = self.eval_index(args[0])
                if wave is None or i is None:
                    return None
                return wave.channel(i)
            if method == "tick" and len(args) == 1:
                net = self.eval_graph(expr.object)
                frame = self.eval_array(args[0])
                if net is None or frame is None or len(frame) != net.inputs:
                    return None
                return [float(x) for x in net.tick(frame)]
            if method == "to_floats" and not args:
                entity = self.eval_entity(expr.object)
                if entity is None:
                    return None
                bits = entity.to_bits()
                halves = np.array([bits >> 32, bits & 0xFFFFFFFF], dtype=np.uint32)
                return [float(x) for x in halves.view(np.float32)]
        return None

    # =========================================================================
    # Graph
    # =========================================================================

    def eval_graph(self, expr: Expression) -> Optional[Net]:
        if isinstance(expr, Path):
            net = self.store.get(expr.name, Sort.GRAPH)
            return net.clone() if net is not None else None
        if isinstance(expr, BinaryOp):
            return self._graph_binary(expr)
        if isinstance(expr, UnaryOp):
            if expr.operator != TokenType.MINUS:
                return None
            net = self.eval_graph(expr.operand)
            return scalar("*", net, -1.0) if net is not None else None
        if isinstance(expr, FunctionCall):
            factory = UNIT_CONSTRUCTORS.get(expr.callee_name)
            if factory is None:
                return None
            unit = factory(self, expr.arguments)
            return Net.wrap(unit) if unit is not None else None
        if isinstance(expr, MethodCall):
            return self._graph_method(expr)
        return None

    def _graph_binary(self, expr: BinaryOp) -> Optional[Net]:
        compose = GRAPH_OPERATORS.get(expr.operator)
        if compose is None:
            return None
        scalar_op = SCALAR_OPERATORS.get(expr.operator)
        left = self.eval_graph(expr.left)
        if left is not None:
            right = self.eval_graph(expr.right)
            if right is not None:
                return compose(left, right)
            if scalar_op is None:
                return None
            k = self.eval_number(expr.right)
            return scalar(scalar_op, left, k) if k is not None else None
        if scalar_op is None:
            return None
        k = self.eval_number(expr.left)
        if k is None:
            return None
        right = self.eval_graph(expr.right)
        return scalar(scalar_op, right, k, number_first=True) if right is not None else None

    def _graph_method(self, expr: MethodCall) -> Optional[Net]:
        method, args = expr.method, expr.arguments
        if method == "backend" and not args:
            net = self.named(expr.object, Sort.GRAPH)
            if net is not None:
                backend = net.backend()
                return Net.wrap(backend) if backend is not None else None
            seq = self.named(expr.object, Sort.SEQUENCER)
            if seq is not None:
                backend = seq.backend()
                return Net.wrap(backend) if backend is not None else None
            return None
        if method == "remove" and len(args) == 1:
            net = self.named(expr.object, Sort.GRAPH)
            node = self.eval_node(args[0])
            if net is None or node is None:
                return None
            old = net.remove(node)
            return Net.wrap(old) if old is not None else None
        if method == "replace" and len(args) == 2:
            net = self.named(expr.object, Sort.GRAPH)
            node = self.eval_node(args[0])
            unit = self.eval_graph(args[1])
            if net is None or node is None or unit is None:
                return None
            old = net.replace(node, unit)
            return Net.wrap(old) if old is not None else None
        return None

    # =========================================================================
    # Graph nodes
    # =========================================================================

    def eval_node(self, expr: Expression):
        if isinstance(expr, Path):
            return self.store.get(expr.name, Sort.NODE)
        if isinstance(expr, MethodCall) and expr.method in ("push", "chain") and len(expr.arguments) == 1:
            net = self.named(expr.object, Sort.GRAPH)
            if net is None:
                return None
            unit = self.eval_graph(expr.arguments[0])
            if unit is None:
                return None
            return net.push(unit) if expr.method == "push" else net.chain(unit)
        return None

    # =========================================================================
    # Shared cells, tables, waves
    # =========================================================================

    def eval_shared(self, expr: Expression) -> Optional[Shared]:
        if isinstance(expr, Path):
            return self.store.get(expr.name, Sort.SHARED)
        if isinstance(expr, FunctionCall) and expr.callee_name == "shared" and len(expr.arguments) == 1:
            x = self.eval_number(expr.arguments[0])
            return Shared(x) if x is not None else None
        return None

    def eval_table(self, expr: Expression) -> Optional[AtomicTable]:
        if isinstance(expr, Path):
            return self.store.get(expr.name, Sort.TABLE)
        if (isinstance(expr, FunctionCall) and expr.callee_name == "AtomicTable::new"
                and len(expr.arguments) == 1):
            xs = self.eval_array(expr.arguments[0])
            return AtomicTable.try_new(xs) if xs is not None else None
        return None

    def eval_wave(self, expr: Expression) -> Optional[Wave]:
        if isinstance(expr, Path):
            return self.store.get(expr.name, Sort.WAVE)
        if not isinstance(expr, FunctionCall):
            return None
        name, args = expr.callee_name, expr.arguments
        if name == "Wave::new" and len(args) == 2:
            channels = self.eval_index(args[0])
            sr = to_rate(self.eval_number(args[1]))
            if channels is None or sr is None:
                return None
            return Wave.new(channels, sr)
        if name == "Wave::zero" and len(args) == 3:
            channels = self.eval_index(args[0])
            sr = to_rate(self.eval_number(args[1]))
            length = self.eval_index(args[2])
            if channels is None or sr is None or length is None:
                return None
            return Wave.zero(channels, sr, length)
        if name == "Wave::from_samples" and len(args) == 2:
            sr = to_rate(self.eval_number(args[0]))
            xs = self.eval_array(args[1])
            if sr is None or xs is None:
                return None
            return Wave.from_samples(sr, xs)
        if name == "Wave::render" and len(args) == 3:
            sr = to_rate(self.eval_number(args[0]))
            duration = self.eval_number(args[1])
            net = self.eval_graph(args[2])
            if sr is None or duration is None or net is None:
                return None
            return Wave.render(sr, duration, net)
        if name == "Wave::load" and len(args) == 1:
            path = self.eval_text(args[0])
            return Wave.load(path) if path is not None else None
        return None

    # =========================================================================
    # Sequencer, events, sources
    # =========================================================================

    def eval_sequencer(self, expr: Expression) -> Optional[Sequencer]:
        if isinstance(expr, Path):
            return self.store.get(expr.name, Sort.SEQUENCER)
        if (isinstance(expr, FunctionCall) and expr.callee_name == "Sequencer::new"
                and len(expr.arguments) == 2):
            replay = self.eval_bool(expr.arguments[0])
            outputs = self.eval_index(expr.arguments[1])
            if replay is None or outputs is None:
                return None
            return Sequencer(replay, outputs)
        return None

    def eval_event(self, expr: Expression):
        if isinstance(expr, Path):
            return self.store.get(expr.name, Sort.EVENT)
        if not isinstance(expr, MethodCall) or len(expr.arguments) != 5:
            return None
        if expr.method not in ("push", "push_relative", "push_duration"):
            return None
        seq = self.named(expr.object, Sort.SEQUENCER)
        if seq is None:
            return None
        times = self.eval_numbers(expr.arguments[:4])
        unit = self.eval_graph(expr.arguments[4])
        if times is None or unit is None:
            return None
        return getattr(seq, expr.method)(*times, unit)

    def eval_source(self, expr: Expression) -> Optional[Source]:
        if isinstance(expr, Path):
            if expr.name == "Source::Zero":
                return Source.zero()
            return self.store.get(expr.name, Sort.SOURCE)
        if isinstance(expr, FunctionCall):
            name, args = expr.callee_name, expr.arguments
            if name == "Source::Global" and len(args) == 1:
                i = self.eval_index(args[0])
                return Source.global_input(i) if i is not None else None
            if name == "Source::Local" and len(args) == 2:
                node = self.eval_node(args[0])
                ch = self.eval_index(args[1])
                if node is None or ch is None:
                    return None
                return Source.local(node, ch)
            return None
        if isinstance(expr, MethodCall):
            args = expr.arguments
            if expr.method == "source" and len(args) == 2:
                net = self.peek_graph(expr.object)
                node = self.eval_node(args[0])
                ch = self.eval_index(args[1])
                if net is None or node is None or ch is None:
                    return None
                return net.source(node, ch)
            if expr.method == "output_source" and len(args) == 1:
                net = self.peek_graph(expr.object)
                ch = self.eval_index(args[0])
                if net is None or ch is None:
                    return None
                return net.output_source(ch)
        return None

    # =========================================================================
    # Entities
    # =========================================================================

    def eval_entity(self, expr: Expression) -> Optional[EntityRef]:
        if isinstance(expr, Literal):
            if expr.literal_type == TokenType.INT_LITERAL:
                return EntityRef.try_from_bits(expr.value)
            return None
        if isinstance(expr, Path):
            if expr.name == "Entity::PLACEHOLDER":
                return PLACEHOLDER
            return self.store.get(expr.name, Sort.ENTITY)
        if isinstance(expr, FunctionCall):
            return self._entity_call(expr)
        if isinstance(expr, MethodCall):
            return call_entity_method(self, expr)
        return None

    def _entity_call(self, expr: FunctionCall) -> Optional[EntityRef]:
        name, args = expr.callee_name, expr.arguments
        if name == "Entity::from_bits" and len(args) == 1:
            arg = args[0]
            if isinstance(arg, Literal) and arg.literal_type == TokenType.INT_LITERAL:
                return EntityRef.try_from_bits(arg.value)
            return None
        if name == "Entity::from_floats" and len(args) == 1:
            xs = self.eval_array(args[0])
            if xs is None or len(xs) != 2:
                return None
            hi, lo = (int(b) for b in np.array(xs, dtype=np.float32).view(np.uint32))
            return EntityRef.try_from_bits(hi << 32 | lo)
        if name == "spawn" and len(args) == 1:
            r = self.eval_number(args[0])
            if r is None:
                return None
            entity = self.ctx.world.reserve_entity()
            self.ctx.commands.push(InsertDefaults(entity, r))
            return entity
        if name == "joint" and len(args) == 2:
            first = self.eval_entity(args[0])
            second = self.eval_entity(args[1])
            if first is None or second is None:
                return None
            joint = self.ctx.world.reserve_entity()
            self.ctx.commands.push(JointEntities(joint, first, second))
            return joint
        if name == "joint" and len(args) == 4:
            xs = self.eval_numbers(args)
            if xs is None:
                return None
            joint = self.ctx.world.reserve_entity()
            self.ctx.commands.push(JointPoints(joint, (xs[0], xs[1]), (xs[2], xs[3])))
            return joint
        return None
