"""
Sandbox host.

Owns the world, the evaluator and the audio bridge, and drives them the
way the interactive front end does: console input is evaluated and the
queued world commands are applied right after, and every frame runs the
per-frame code, entity links, physics and collision code.
"""

import logging
from typing import Iterable, List, Optional

from .audio.bridge import AudioBridge
from .config import Config
from .keys import parse_shortcut
from .lang.ast import ExpressionStatement
from .lang.errors import ScriptError
from .lang.parser import parse_program
from .runtime.context import EvalContext
from .runtime.interpreter import Interpreter
from .runtime.values import Sort
from .world import CollisionEvent, EntityRef, SandboxWorld

logger = logging.getLogger(__name__)

# Link directions: property from a variable, or property into a shared cell
LINK_IN = ("<", "=")
LINK_OUT = ">"


class Sandbox:

    def __init__(self, config: Optional[Config] = None, world: Optional[SandboxWorld] = None,
                 audio: Optional[AudioBridge] = None):
        self.config = config or Config()
        self.world = world or SandboxWorld()
        self._apply_config()
        self.ctx = EvalContext(
            world=self.world,
            audio=audio or AudioBridge(self.config.channels, self.config.sample_rate),
        )
        self.interpreter = Interpreter(self.ctx)
        # Code run every frame
        self.update_code = ""

    def _apply_config(self) -> None:
        c = self.config
        self.world.set_paused(c.pause)
        self.world.set_gravity(c.gravity_x, c.gravity_y)
        self.world.set_attraction(c.attraction)
        self.world.window = (c.win_width, c.win_height)

    @property
    def transcript(self) -> str:
        return self.interpreter.transcript

    # =========================================================================
    # Console
    # =========================================================================

    def eval(self, text: str) -> None:
        self.interpreter.eval(text)
        self.drain()

    def quiet_eval(self, text: str) -> None:
        self.interpreter.quiet_eval(text)
        self.drain()

    def drain(self) -> int:
        return self.ctx.commands.drain(self.world)

    def _run_code(self, code: str) -> None:
        if self.ctx.quiet:
            self.interpreter.quiet_eval(code)
        else:
            self.interpreter.eval(code)

    # =========================================================================
    # Frames
    # =========================================================================

    def frame(self, dt: float) -> List[CollisionEvent]:
        """Advance one frame of ``dt`` seconds; returns the collision events."""
        if self.update_code:
            self.interpreter.quiet_eval(self.update_code)
        self.drain()
        self.sync_links()
        events: List[CollisionEvent] = []
        if not self.world.paused:
            self.world.attract()
            events = self.world.step(dt)
        for event in events:
            self._collision_code(event.first, event.second, event.started)
            self._collision_code(event.second, event.first, event.started)
        self.drain()
        return events

    def _collision_code(self, entity: EntityRef, other: EntityRef, started: bool) -> None:
        body = self.world.bodies.get(entity)
        if body is None:
            return
        code = body.code_i if started else body.code_f
        if not code:
            return
        code = code.replace("$id", str(entity.to_bits())).replace("$other", str(other.to_bits()))
        self._run_code(code)

    # =========================================================================
    # Links
    # =========================================================================

    def sync_links(self) -> None:
        """Apply every entity's ``links`` lines (``x < s``, ``vm > speed``, ``y = t * 10``)."""
        for entity, body in list(self.world.bodies.items()):
            if not body.links:
                continue
            for line in body.links.splitlines():
                parts = line.split(maxsplit=2)
                if len(parts) != 3:
                    continue
                self._apply_link(entity, *parts)

    def _apply_link(self, entity: EntityRef, prop: str, direction: str, var: str) -> None:
        shared = self.ctx.store.get(var, Sort.SHARED)
        if shared is not None:
            if direction in LINK_IN:
                self._set_linked(entity, prop, shared.value())
            elif direction == LINK_OUT:
                value = self.world.read_property(entity, prop)
                if value is not None and not isinstance(value, str):
                    shared.set(float(value))
            return
        if direction in LINK_IN:
            value = self.eval_number_text(var)
            if value is not None:
                self._set_linked(entity, prop, value)

    def _set_linked(self, entity: EntityRef, prop: str, value: float) -> None:
        if prop in ("dynamic", "sensor"):
            self.world.set_property(entity, prop, value > 0.0)
        elif prop not in ("links", "code_i", "code_f"):
            self.world.set_property(entity, prop, value)

    def eval_number_text(self, text: str) -> Optional[float]:
        """Evaluate a single expression as a Number."""
        try:
            program = parse_program(text)
        except ScriptError:
            return None
        if len(program.statements) != 1 or not isinstance(program.statements[0], ExpressionStatement):
            return None
        return self.interpreter.evaluator.eval_number(program.statements[0].expression)

    # =========================================================================
    # Keys
    # =========================================================================

    def key_event(self, modifiers: Iterable[str], key: str, pressed: bool = True) -> None:
        """Run the code bound to a key press or release when keybindings are active."""
        if not self.ctx.keys_active:
            return
        descriptor = "+".join(list(modifiers) + [key])
        shortcut = parse_shortcut(descriptor if pressed else "!" + descriptor)
        if shortcut is None:
            return
        for code in self.ctx.keys.lookup(shortcut):
            self._run_code(code)
        self.drain()

    def close(self) -> None:
        self.ctx.audio.close()
