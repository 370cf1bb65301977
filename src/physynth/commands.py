"""
Deferred world mutation.

The evaluator only holds shared access to the world, so every mutation it
asks for becomes a ``Command`` on a FIFO ``CommandQueue``. The host drains
the queue after each evaluation step; commands are applied in the order
they were issued and commands aimed at stale entities are ignored.
"""

import logging
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass
from typing import Deque, Tuple

from .world import EntityRef, JointKind, PLACEHOLDER, PropertyValue, World

logger = logging.getLogger(__name__)


# Entity setter methods taking one Number
NUMBER_PROPERTIES = (
    "x", "y", "z", "rx", "ry", "rot", "mass", "vx", "vy", "va",
    "restitution", "lindamp", "angdamp", "inertia", "h", "s", "l", "a",
    "sides", "cmx", "cmy", "friction", "tail", "layer",
)

# Entity setter methods taking one Boolean
BOOL_PROPERTIES = ("dynamic", "sensor")

# Entity setter methods taking a string literal
TEXT_PROPERTIES = ("links", "code_i", "code_f")

# Joint methods and the number of Number arguments each takes
JOINT_PROPERTIES = {
    "compliance": 1,
    "anchor1": 2,
    "anchor2": 2,
    "limits": 2,
    "rest": 1,
    "free_axis": 2,
}

# Readable entity fields; vm and vp are the polar form of the velocity
NUMBER_FIELDS = NUMBER_PROPERTIES + ("vm", "vp")
BOOL_FIELDS = BOOL_PROPERTIES


class Command(ABC):
    """A world mutation waiting to be applied."""

    @abstractmethod
    def apply(self, world: World) -> None: ...


@dataclass
class SetProperty(Command):
    target: EntityRef
    name: str
    value: PropertyValue

    def apply(self, world: World) -> None:
        if self.target == PLACEHOLDER:
            for entity in world.selected():
                world.set_property(entity, self.name, self.value)
        elif world.contains(self.target):
            world.set_property(self.target, self.name, self.value)


@dataclass
class InsertDefaults(Command):
    target: EntityRef
    radius: float

    def apply(self, world: World) -> None:
        world.insert_defaults(self.target, self.radius)


@dataclass
class Despawn(Command):
    target: EntityRef

    def apply(self, world: World) -> None:
        world.despawn(self.target)


@dataclass
class Disjoint(Command):
    target: EntityRef

    def apply(self, world: World) -> None:
        if world.contains(self.target):
            world.disjoint(self.target)


@dataclass
class JointEntities(Command):
    target: EntityRef
    first: EntityRef
    second: EntityRef

    def apply(self, world: World) -> None:
        world.joint_entities(self.target, self.first, self.second)


@dataclass
class JointPoints(Command):
    target: EntityRef
    start: Tuple[float, float]
    end: Tuple[float, float]

    def apply(self, world: World) -> None:
        world.joint_points(self.target, self.start, self.end)


@dataclass
class ReplaceJoint(Command):
    target: EntityRef
    kind: JointKind

    def apply(self, world: World) -> None:
        world.replace_joint(self.target, self.kind)


@dataclass
class SetJointProperty(Command):
    target: EntityRef
    name: str
    values: Tuple[float, ...]

    def apply(self, world: World) -> None:
        world.set_joint_property(self.target, self.name, self.values)


@dataclass
class SetGravity(Command):
    x: float
    y: float

    def apply(self, world: World) -> None:
        world.set_gravity(self.x, self.y)


@dataclass
class SetAttraction(Command):
    factor: float

    def apply(self, world: World) -> None:
        world.set_attraction(self.factor)


@dataclass
class SetPaused(Command):
    paused: bool

    def apply(self, world: World) -> None:
        world.set_paused(self.paused)


class CommandQueue:
    """FIFO of pending world commands."""

    def __init__(self):
        self._pending: Deque[Command] = deque()

    def push(self, command: Command) -> None:
        self._pending.append(command)

    def __len__(self) -> int:
        return len(self._pending)

    def __iter__(self):
        return iter(list(self._pending))

    def clear(self) -> None:
        self._pending.clear()

    def drain(self, world: World) -> int:
        """Apply every pending command in order; returns how many were applied."""
        applied = 0
        while self._pending:
            command = self._pending.popleft()
            logger.debug("applying %r", command)
            command.apply(world)
            applied += 1
        return applied
