"""
Built-in functions, constants, unit constructors and verbs.

Maps console names to their implementations. Number functions are plain
float functions; unit constructors and verbs receive the evaluator and the
unevaluated argument expressions so each can evaluate its arguments as the
sorts it needs.
"""

import logging
import math
import time
from typing import Callable, Dict, List, Optional, Tuple

from ..audio.net import Net
from ..audio.units import (
    AudioUnit, AtomicSynth, Constant, Delay, Join, LowPole, Noise, Oscillator,
    Pass, Reverse, Scalar, Sink, Split, Var, WaveChannel,
)
from ..commands import SetAttraction, SetGravity
from .context import EvaluatorPanic

logger = logging.getLogger(__name__)


# =============================================================================
# Numbers
# =============================================================================

def _guard(fn: Callable[..., float]) -> Callable[..., float]:
    """Follow IEEE results instead of raising on domain or range errors."""
    def wrapper(*args):
        try:
            return float(fn(*args))
        except ValueError:
            return math.nan
        except OverflowError:
            return math.inf
        except ZeroDivisionError:
            return math.nan
    wrapper.__name__ = getattr(fn, "__name__", "builtin")
    return wrapper


def divide(a: float, b: float) -> float:
    if b == 0.0:
        if a == 0.0 or math.isnan(a):
            return math.nan
        return math.copysign(math.inf, a) * math.copysign(1.0, b)
    return a / b


def remainder(a: float, b: float) -> float:
    """Remainder with the sign of the dividend."""
    if b == 0.0 or math.isinf(a):
        return math.nan
    return math.fmod(a, b)


def power(a: float, b: float) -> float:
    try:
        return math.pow(a, b)
    except OverflowError:
        return math.inf
    except (ValueError, ZeroDivisionError):
        if a == 0.0 and b < 0.0:
            return math.inf
        return math.nan


def _signum(x: float) -> float:
    if math.isnan(x):
        return math.nan
    return math.copysign(1.0, x)


def _integral(fn: Callable[[float], float]) -> Callable[[float], float]:
    def wrapper(x: float) -> float:
        return float(fn(x)) if math.isfinite(x) else x
    wrapper.__name__ = fn.__name__
    return wrapper


def _log(fn: Callable[[float], float]) -> Callable[[float], float]:
    """Logarithm with -inf at zero and NaN below it."""
    def wrapper(x: float) -> float:
        if x == 0.0:
            return -math.inf
        if x < 0.0 or math.isnan(x):
            return math.nan
        return fn(x)
    wrapper.__name__ = fn.__name__
    return wrapper


def _round(x: float) -> float:
    """Round half away from zero."""
    if not math.isfinite(x):
        return x
    return math.copysign(math.floor(abs(x) + 0.5), x)


def _fract(x: float) -> float:
    return x - math.trunc(x) if math.isfinite(x) else math.nan


def _clamp(x: float, lo: float, hi: float) -> float:
    return min(max(x, lo), hi)


def _midi_hz(m: float) -> float:
    return 440.0 * 2.0 ** ((m - 69.0) / 12.0)


def _amp_db(a: float) -> float:
    return 20.0 * math.log10(a) if a > 0.0 else -math.inf


# name -> (arity, implementation)
NUMBER_FUNCTIONS: Dict[str, Tuple[int, Callable[..., float]]] = {
    # One argument
    "abs": (1, abs),
    "sin": (1, _guard(math.sin)),
    "cos": (1, _guard(math.cos)),
    "tan": (1, _guard(math.tan)),
    "asin": (1, _guard(math.asin)),
    "acos": (1, _guard(math.acos)),
    "atan": (1, math.atan),
    "sqrt": (1, _guard(math.sqrt)),
    "exp": (1, _guard(math.exp)),
    "ln": (1, _log(math.log)),
    "log2": (1, _log(math.log2)),
    "log10": (1, _log(math.log10)),
    "floor": (1, _integral(math.floor)),
    "ceil": (1, _integral(math.ceil)),
    "round": (1, _round),
    "trunc": (1, _integral(math.trunc)),
    "fract": (1, _fract),
    "signum": (1, _signum),
    "midi_hz": (1, _guard(_midi_hz)),
    "bpm_hz": (1, lambda bpm: bpm / 60.0),
    "db_amp": (1, _guard(lambda db: 10.0 ** (db / 20.0))),
    "amp_db": (1, _amp_db),
    # Two arguments
    "pow": (2, power),
    "atan2": (2, math.atan2),
    "min": (2, min),
    "max": (2, max),
    "hypot": (2, math.hypot),
    # Three arguments
    "clamp": (3, _clamp),
    "lerp": (3, lambda a, b, t: a + (b - a) * t),
}

# Method forms: `x.sin()`, `x.powf(y)`, `x.clamp(a, b)`; arity excludes the receiver
NUMBER_METHODS: Dict[str, Tuple[int, Callable[..., float]]] = {
    name: (arity - 1, fn) for name, (arity, fn) in NUMBER_FUNCTIONS.items()
}
NUMBER_METHODS.update({
    "powf": (1, power),
    "powi": (1, power),
    "to_degrees": (0, math.degrees),
    "to_radians": (0, math.radians),
    "recip": (0, lambda x: divide(1.0, x)),
})

CONSTANTS = {
    "PI": math.pi,
    "TAU": math.tau,
    "E": math.e,
    "SQRT_2": math.sqrt(2.0),
    "LN_2": math.log(2.0),
}


# =============================================================================
# Unit constructors
# =============================================================================

UnitFactory = Callable[["SortEvaluator", List], Optional[AudioUnit]]


def _numbers(ev, args, count: int) -> Optional[List[float]]:
    if len(args) != count:
        return None
    values = [ev.eval_number(a) for a in args]
    if any(v is None for v in values):
        return None
    return values


def _dc(ev, args):
    if len(args) != 1:
        return None
    x = ev.eval_number(args[0])
    if x is not None:
        return Constant([x])
    xs = ev.eval_array(args[0])
    if xs:
        return Constant(xs)
    return None


def _no_args(factory):
    def build(ev, args):
        return factory() if not args else None
    return build


def _one_number(factory):
    def build(ev, args):
        values = _numbers(ev, args, 1)
        return factory(values[0]) if values is not None else None
    return build


def _delay(ev, args):
    values = _numbers(ev, args, 1)
    if values is None or not math.isfinite(values[0]):
        return None
    return Delay(values[0])


def _one_count(factory):
    def build(ev, args):
        if len(args) != 1:
            return None
        n = ev.eval_index(args[0])
        return factory(n) if n else None
    return build


def _noise(ev, args):
    if not args:
        return Noise()
    seed = ev.eval_index(args[0]) if len(args) == 1 else None
    return Noise(seed) if seed is not None else None


def _var(ev, args):
    if len(args) != 1:
        return None
    shared = ev.eval_shared(args[0])
    return Var(shared) if shared is not None else None


def _wavech(ev, args):
    if len(args) not in (2, 3):
        return None
    wave = ev.eval_wave(args[0])
    channel = ev.eval_index(args[1])
    loop = ev.eval_bool(args[2]) if len(args) == 3 else False
    if wave is None or channel is None or loop is None or channel >= wave.channels():
        return None
    return WaveChannel(wave, channel, loop)


def _atomic_synth(ev, args):
    if len(args) != 1:
        return None
    table = ev.eval_table(args[0])
    return AtomicSynth(table) if table is not None else None


def _input(ev, args):
    return ev.ctx.audio.input_unit() if not args else None


def _net_new(ev, args):
    if len(args) != 2:
        return None
    inputs, outputs = ev.eval_index(args[0]), ev.eval_index(args[1])
    if inputs is None or outputs is None:
        return None
    return Net(inputs, outputs)


UNIT_CONSTRUCTORS: Dict[str, UnitFactory] = {
    "dc": _dc,
    "zero": _no_args(lambda: Constant([0.0])),
    "pass": _no_args(lambda: Pass(1)),
    "sink": _no_args(lambda: Sink(1)),
    "multipass": _one_count(Pass),
    "sine": _no_args(lambda: Oscillator("sine")),
    "saw": _no_args(lambda: Oscillator("saw")),
    "square": _no_args(lambda: Oscillator("square")),
    "triangle": _no_args(lambda: Oscillator("triangle")),
    "sine_hz": _one_number(lambda f: Oscillator("sine", f)),
    "saw_hz": _one_number(lambda f: Oscillator("saw", f)),
    "square_hz": _one_number(lambda f: Oscillator("square", f)),
    "triangle_hz": _one_number(lambda f: Oscillator("triangle", f)),
    "noise": _noise,
    "var": _var,
    "mul": _one_number(lambda x: Scalar("*", x, 1)),
    "add": _one_number(lambda x: Scalar("+", x, 1)),
    "split": _one_count(lambda n: Split(1, n)),
    "join": _one_count(lambda n: Join(1, n)),
    "reverse": _one_count(Reverse),
    "lowpole_hz": _one_number(LowPole),
    "delay": _delay,
    "wavech": _wavech,
    "atomic_synth": _atomic_synth,
    "input": _input,
    "Net::new": _net_new,
}


# =============================================================================
# Verbs
# =============================================================================

def _gravity(ev, args) -> bool:
    values = _numbers(ev, args, 2)
    if values is not None:
        ev.ctx.commands.push(SetGravity(*values))
    return True


def _attraction(ev, args) -> bool:
    values = _numbers(ev, args, 1)
    if values is not None:
        ev.ctx.commands.push(SetAttraction(values[0]))
    return True


def _device_args(ev, args) -> Optional[List[Optional[float]]]:
    """Up to five optional numbers; negative or non-finite means default."""
    if len(args) > 5:
        return None
    values: List[Optional[float]] = []
    for arg in args:
        x = ev.eval_number(arg)
        if x is None:
            return None
        values.append(None if x < 0 or not math.isfinite(x) else x)
    values += [None] * (5 - len(values))
    return values


def _as_int(x: Optional[float]) -> Optional[int]:
    return None if x is None else int(x)


def _set_out_device(ev, args) -> bool:
    values = _device_args(ev, args)
    if values is not None:
        host, device, channels, sample_rate, buffer = values
        ev.ctx.audio.set_out_device(_as_int(host), _as_int(device), _as_int(channels),
                                    sample_rate, _as_int(buffer))
    return True


def _set_in_device(ev, args) -> bool:
    values = _device_args(ev, args)
    if values is not None:
        host, device, channels, sample_rate, buffer = values
        ev.ctx.audio.set_in_device(_as_int(host), _as_int(device), _as_int(channels),
                                   sample_rate, _as_int(buffer))
    return True


def _list_out_devices(ev, args) -> bool:
    ev.ctx.emit_raw(ev.ctx.audio.list_out_devices())
    return True


def _list_in_devices(ev, args) -> bool:
    ev.ctx.emit_raw(ev.ctx.audio.list_in_devices())
    return True


def _sleep(ev, args) -> bool:
    values = _numbers(ev, args, 1)
    if values is not None and values[0] > 0.0 and math.isfinite(values[0]):
        time.sleep(values[0])
    return True


def _panic(ev, args) -> bool:
    message = "explicit panic"
    if args:
        text = ev.eval_text(args[0])
        if text is not None:
            message = text
    logger.critical("panic: %s", message)
    raise EvaluatorPanic(message)


# Statement-only calls recognised by name
VERBS: Dict[str, Callable[["SortEvaluator", List], bool]] = {
    "gravity": _gravity,
    "attraction": _attraction,
    "set_out_device": _set_out_device,
    "set_in_device": _set_in_device,
    "list_out_devices": _list_out_devices,
    "list_in_devices": _list_in_devices,
    "sleep": _sleep,
    "panic": _panic,
}
