"""
Method dispatch for side effects.

Two families live here:

- entity methods, which queue world commands and return the receiver so
  calls chain (``spawn(5).x(10).y(20)``);
- statement methods, which only make sense as a whole statement
  (``g.play()``, ``v.push(4)``, ``s.set(0.5)``) and edit a named value in
  place.

Both take the ``SortEvaluator`` driving the evaluation as their first
argument.
"""

import logging
import math

from ..audio.net import Net
from ..commands import (
    BOOL_PROPERTIES, Despawn, Disjoint, JOINT_PROPERTIES, NUMBER_PROPERTIES,
    ReplaceJoint, SetJointProperty, SetPaused, SetProperty, TEXT_PROPERTIES,
)
from ..lang.ast import MethodCall, Path
from ..world import JointKind
from .values import Sort, format_array

logger = logging.getLogger(__name__)

ENTITY_METHODS = frozenset(
    NUMBER_PROPERTIES + BOOL_PROPERTIES + TEXT_PROPERTIES
    + tuple(JOINT_PROPERTIES) + ("joint_type", "despawn", "disjoint")
)


# =============================================================================
# Entity methods
# =============================================================================

def call_entity_method(ev, expr: MethodCall):
    """Queue the command for an entity method; returns the receiver, or None."""
    method, args = expr.method, expr.arguments
    if method not in ENTITY_METHODS:
        return None
    entity = ev.eval_entity(expr.object)
    if entity is None:
        return None
    commands = ev.ctx.commands

    if method in ("despawn", "disjoint"):
        if not args:
            commands.push(Despawn(entity) if method == "despawn" else Disjoint(entity))
        return None

    if method in NUMBER_PROPERTIES:
        if len(args) != 1:
            return None
        value = ev.eval_number(args[0])
    elif method in BOOL_PROPERTIES:
        if len(args) != 1:
            return None
        value = ev.eval_bool(args[0])
    elif method in TEXT_PROPERTIES:
        if len(args) != 1:
            return None
        value = ev.eval_text(args[0])
    elif method == "joint_type":
        if len(args) != 1:
            return None
        k = ev.eval_number(args[0])
        if k is None:
            return None
        if math.isfinite(k) and 0 <= math.trunc(k) <= 3:
            commands.push(ReplaceJoint(entity, JointKind(math.trunc(k))))
        return entity
    else:
        if len(args) != JOINT_PROPERTIES[method]:
            return None
        values = ev.eval_numbers(args)
        if values is None:
            return None
        commands.push(SetJointProperty(entity, method, tuple(values)))
        return entity

    if value is None:
        return None
    commands.push(SetProperty(entity, method, value))
    return entity


# =============================================================================
# Statement methods
# =============================================================================

def _name(expr):
    if isinstance(expr, Path) and expr.is_ident:
        return expr.name
    return None


def _play(ev, expr):
    net = ev.eval_graph(expr.object)
    if net is not None and not expr.arguments:
        ev.ctx.audio.play(net)
    return True


def _play_backend(ev, expr):
    """Create the backend of a named graph or sequencer once and play it."""
    audio = ev.ctx.audio
    net = ev.named(expr.object, Sort.GRAPH)
    if net is not None:
        if not net.has_backend and net.inputs == 0 and net.outputs == audio.channels:
            audio.play_unshared(Net.wrap(net.backend()))
        return True
    seq = ev.named(expr.object, Sort.SEQUENCER)
    if seq is not None:
        if not seq.has_backend and seq.outputs == audio.channels:
            audio.play_unshared(Net.wrap(seq.backend()))
    return True


def _tick(ev, expr):
    """Tick a named graph in place; optionally write the result into an array."""
    net = ev.named(expr.object, Sort.GRAPH)
    args = expr.arguments
    if net is None or len(args) not in (1, 2):
        return False
    frame = ev.eval_array(args[0])
    if frame is None or len(frame) != net.inputs:
        return True
    out = [float(x) for x in net.tick(frame)]
    if len(args) == 2:
        target = _name(args[1])
        if target is not None and ev.store.get(target, Sort.ARRAY) is not None:
            ev.store.get(target, Sort.ARRAY)[:] = out
    else:
        ev.ctx.emit(format_array(out))
    return True


def _drop(ev, expr):
    name = _name(expr.object)
    if name is None or expr.arguments:
        return False
    ev.store.drop(name)
    return True


def _error(ev, expr):
    net = ev.peek_graph(expr.object)
    if net is None or expr.arguments:
        return False
    error = net.error()
    ev.ctx.emit("None" if error is None else error.value)
    return True


def _time(ev, expr):
    if expr.method in ("pause", "resume") and not expr.arguments:
        ev.ctx.commands.push(SetPaused(expr.method == "pause"))
        return True
    return False


# --- Named array edits ---

def _array_method(ev, xs, expr):
    method, args = expr.method, expr.arguments
    if method == "push" and len(args) == 1:
        x = ev.eval_number(args[0])
        if x is not None:
            xs.append(x)
    elif method == "pop" and not args:
        if xs:
            xs.pop()
    elif method == "insert" and len(args) == 2:
        i, x = ev.eval_index(args[0]), ev.eval_number(args[1])
        if i is not None and x is not None and i < len(xs):
            xs.insert(i, x)
    elif method == "remove" and len(args) == 1:
        i = ev.eval_index(args[0])
        if i is not None and i < len(xs):
            del xs[i]
    elif method == "resize" and len(args) == 2:
        n, x = ev.eval_index(args[0]), ev.eval_number(args[1])
        if n is not None and x is not None:
            del xs[n:]
            xs.extend([x] * (n - len(xs)))
    elif method == "clear" and not args:
        xs.clear()
    else:
        return False
    return True


# --- Named graph edits ---

def _graph_method(ev, net, expr):
    method, args = expr.method, expr.arguments
    if method == "connect" and len(args) == 4:
        src, snk = ev.eval_node(args[0]), ev.eval_node(args[2])
        src_port, snk_port = ev.eval_index(args[1]), ev.eval_index(args[3])
        if None not in (src, snk, src_port, snk_port):
            net.connect(src, src_port, snk, snk_port)
    elif method == "disconnect" and len(args) == 2:
        node, port = ev.eval_node(args[0]), ev.eval_index(args[1])
        if node is not None and port is not None:
            net.disconnect(node, port)
    elif method == "connect_input" and len(args) == 3:
        i, node, port = ev.eval_index(args[0]), ev.eval_node(args[1]), ev.eval_index(args[2])
        if None not in (i, node, port):
            net.connect_input(i, node, port)
    elif method == "connect_output" and len(args) == 3:
        node, port, o = ev.eval_node(args[0]), ev.eval_index(args[1]), ev.eval_index(args[2])
        if None not in (node, port, o):
            net.connect_output(node, port, o)
    elif method == "pipe_all" and len(args) == 2:
        src, snk = ev.eval_node(args[0]), ev.eval_node(args[1])
        if src is not None and snk is not None:
            net.pipe_all(src, snk)
    elif method in ("pipe_input", "pipe_output") and len(args) == 1:
        node = ev.eval_node(args[0])
        if node is not None:
            getattr(net, method)(node)
    elif method == "set_source" and len(args) == 3:
        node, ch, source = ev.eval_node(args[0]), ev.eval_index(args[1]), ev.eval_source(args[2])
        if None not in (node, ch, source):
            net.set_source(node, ch, source)
    elif method == "set_output_source" and len(args) == 2:
        ch, source = ev.eval_index(args[0]), ev.eval_source(args[1])
        if ch is not None and source is not None:
            net.set_output_source(ch, source)
    elif method == "set_sample_rate" and len(args) == 1:
        sr = ev.eval_number(args[0])
        if sr is not None and sr > 0.0:
            net.set_sample_rate(sr)
    elif method in ("reset", "allocate", "commit") and not args:
        getattr(net, method)()
    else:
        return False
    return True


def _shared_method(ev, shared, expr):
    if expr.method == "set" and len(expr.arguments) == 1:
        x = ev.eval_number(expr.arguments[0])
        if x is not None:
            shared.set(x)
        return True
    return False


def _table_method(ev, table, expr):
    if expr.method == "set" and len(expr.arguments) == 2:
        i, x = ev.eval_index(expr.arguments[0]), ev.eval_number(expr.arguments[1])
        if i is not None and x is not None:
            table.set(i, x)
        return True
    return False


def _sequencer_method(ev, seq, expr):
    if expr.method in ("edit", "edit_relative") and len(expr.arguments) == 3:
        event = ev.eval_event(expr.arguments[0])
        times = ev.eval_numbers(expr.arguments[1:])
        if event is not None and times is not None:
            getattr(seq, expr.method)(event, *times)
        return True
    return False


def _wave_method(ev, wave, expr):
    if expr.method == "save_wav16" and len(expr.arguments) == 1:
        path = ev.eval_text(expr.arguments[0])
        if path is not None:
            wave.save_wav16(path)
        return True
    return False


STATEMENT_METHODS = {
    "play": _play,
    "play_backend": _play_backend,
    "tick": _tick,
    "drop": _drop,
    "error": _error,
}

NAMED_METHODS = {
    Sort.ARRAY: _array_method,
    Sort.GRAPH: _graph_method,
    Sort.SHARED: _shared_method,
    Sort.TABLE: _table_method,
    Sort.SEQUENCER: _sequencer_method,
    Sort.WAVE: _wave_method,
}


def exec_method_statement(ev, expr: MethodCall) -> bool:
    """Run a method call used as a statement; False if it should be evaluated instead."""
    name = _name(expr.object)
    if name == "time" and name not in ev.store:
        return _time(ev, expr)
    handler = STATEMENT_METHODS.get(expr.method)
    if handler is not None and handler(ev, expr):
        return True
    if name is None:
        return False
    value = ev.store.lookup(name)
    if value is None or value.sort not in NAMED_METHODS:
        return False
    return NAMED_METHODS[value.sort](ev, value.data, expr)
