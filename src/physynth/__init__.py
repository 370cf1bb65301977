"""
physynth - a live-coding console for a 2D physics and audio sandbox.

Console input is parsed by ``physynth.lang``, evaluated by
``physynth.runtime`` against a multi-sorted value store, and turned into
world commands (``physynth.commands``) and audio graphs
(``physynth.audio``). ``physynth.host.Sandbox`` ties them together.
"""

__version__ = "0.3.0"

from .host import Sandbox
from .config import Config
from .runtime import Interpreter, EvalContext, EvaluatorPanic

__all__ = ["Sandbox", "Config", "Interpreter", "EvalContext", "EvaluatorPanic", "__version__"]
