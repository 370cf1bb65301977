"""
Evaluation context.

Everything an evaluation step may read or write: the value store, a
read-only view of the world, the command queue the world mutations go to,
the audio bridge, the keybinding table and the per-session flags.
"""

from dataclasses import dataclass, field
from typing import List

from ..audio.bridge import AudioBridge
from ..commands import CommandQueue
from ..keys import KeyTable
from ..world import World
from .store import ValueStore


class EvaluatorPanic(RuntimeError):
    """Raised by the ``panic`` built-in; the only error that leaves the evaluator."""


@dataclass
class EvalContext:
    world: World
    commands: CommandQueue = field(default_factory=CommandQueue)
    audio: AudioBridge = field(default_factory=AudioBridge)
    store: ValueStore = field(default_factory=ValueStore)
    keys: KeyTable = field(default_factory=KeyTable)

    # Flags set by `"quiet" = true;` and `"keys" = true;`
    quiet: bool = False
    keys_active: bool = False

    # Result lines of the statement being executed
    output: List[str] = field(default_factory=list)

    def emit(self, text: str) -> None:
        """Add one ``// `` result line."""
        self.output.append(f"\n// {text}")

    def emit_raw(self, text: str) -> None:
        self.output.append(text)

    def take_output(self) -> str:
        text = "".join(self.output)
        self.output = []
        return text
