"""
World interface and an in-memory sandbox world.

The evaluator never touches world state directly. It reserves entity ids,
reads components through ``World.read_property`` and queues every mutation
on a ``CommandQueue`` (see ``physynth.commands``) that the host drains after
the evaluation step.

``SandboxWorld`` is a small 2D rigid-body world: circles with velocity,
damping, layer-filtered collision events, distance-style joints and pairwise
attraction. It is what the CLI and the tests run against.
"""

import colorsys
import logging
import math
import sys
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Set, Tuple, Union

logger = logging.getLogger(__name__)

TAU = 2.0 * math.pi

PropertyValue = Union[float, bool, str]


@dataclass(frozen=True)
class EntityRef:
    """Opaque handle into the world: an index plus a generation counter.

    Packed as ``generation << 32 | index``. A generation of zero is never
    handed out, so ``0`` and any value below ``1 << 32`` are not entities.
    """
    index: int
    generation: int

    def to_bits(self) -> int:
        return (self.generation << 32) | self.index

    @classmethod
    def try_from_bits(cls, bits: int) -> Optional["EntityRef"]:
        if bits < 0 or bits >= 1 << 64:
            return None
        generation = bits >> 32
        if generation == 0:
            return None
        return cls(bits & 0xFFFFFFFF, generation)

    def __str__(self) -> str:
        return f"Entity({self.index}v{self.generation})"


# Stands for "every selected entity" when used as a property command target
PLACEHOLDER = EntityRef(0xFFFFFFFF, 1)


class JointKind(Enum):
    FIXED = 0
    DISTANCE = 1
    PRISMATIC = 2
    REVOLUTE = 3


@dataclass
class DrawSettings:
    """Defaults given to newly spawned bodies."""
    sides: int = 32
    color: Tuple[int, int, int, int] = (255, 172, 171, 255)
    dynamic: bool = True
    layer: int = 0
    sensor: bool = False
    restitution: float = 0.5
    lin_damp: float = 0.0
    ang_damp: float = 0.0
    friction: float = 0.5
    tail: int = 0


@dataclass
class JointSettings:
    """Defaults given to newly created joints."""
    kind: JointKind = JointKind.DISTANCE
    compliance: float = 0.0
    anchor1: Tuple[float, float] = (0.0, 0.0)
    anchor2: Tuple[float, float] = (0.0, 0.0)
    dist_limits: Tuple[float, float] = (0.0, 200.0)
    dist_rest: float = 150.0
    prismatic_axis: Tuple[float, float] = (1.0, 0.0)
    prismatic_limits: Tuple[float, float] = (100.0, 500.0)
    angle_limits: Tuple[float, float] = (-TAU, TAU)


@dataclass
class Body:
    """Components of a spawned body."""
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0
    rx: float = 1.0         # scale x, also the collision radius
    ry: float = 1.0         # scale y
    rot: float = 0.0
    mass: float = 1.0
    vx: float = 0.0
    vy: float = 0.0
    va: float = 0.0
    restitution: float = 0.5
    lindamp: float = 0.0
    angdamp: float = 0.0
    inertia: float = 1.0
    h: float = 0.0
    s: float = 0.0
    l: float = 0.0
    a: float = 1.0
    sides: int = 32
    cmx: float = 0.0
    cmy: float = 0.0
    friction: float = 0.5
    tail: int = 0
    layer: int = 1          # collision layer bit mask
    dynamic: bool = True
    sensor: bool = False
    links: str = ""
    code_i: str = ""
    code_f: str = ""


@dataclass
class Joint:
    """A constraint between two bodies."""
    first: EntityRef
    second: EntityRef
    kind: JointKind = JointKind.DISTANCE
    compliance: float = 0.0
    anchor1: Tuple[float, float] = (0.0, 0.0)
    anchor2: Tuple[float, float] = (0.0, 0.0)
    limits: Tuple[float, float] = (0.0, 200.0)
    rest: float = 150.0
    free_axis: Tuple[float, float] = (1.0, 0.0)


@dataclass(frozen=True)
class CollisionEvent:
    """Two bodies started or stopped touching."""
    first: EntityRef
    second: EntityRef
    started: bool


class World(ABC):
    """What the evaluator and the command queue need from a world engine."""

    @abstractmethod
    def reserve_entity(self) -> EntityRef:
        """Allocate an entity id now; components arrive with later commands."""

    @abstractmethod
    def contains(self, entity: EntityRef) -> bool:
        """Whether the handle refers to a live entity."""

    @abstractmethod
    def despawn(self, entity: EntityRef) -> None: ...

    @abstractmethod
    def read_property(self, entity: EntityRef, name: str) -> Optional[PropertyValue]:
        """Read a named component value, or None for stale handles and missing components."""

    @abstractmethod
    def insert_defaults(self, entity: EntityRef, radius: float) -> None: ...

    @abstractmethod
    def set_property(self, entity: EntityRef, name: str, value: PropertyValue) -> None: ...

    @abstractmethod
    def selected(self) -> List[EntityRef]: ...

    @abstractmethod
    def joint_entities(self, joint: EntityRef, first: EntityRef, second: EntityRef) -> None: ...

    @abstractmethod
    def joint_points(self, joint: EntityRef, start: Tuple[float, float],
                     end: Tuple[float, float]) -> None: ...

    @abstractmethod
    def replace_joint(self, joint: EntityRef, kind: JointKind) -> None: ...

    @abstractmethod
    def set_joint_property(self, joint: EntityRef, name: str, values: Tuple[float, ...]) -> None: ...

    @abstractmethod
    def disjoint(self, entity: EntityRef) -> None:
        """Remove every joint attached to ``entity``."""

    @abstractmethod
    def set_gravity(self, x: float, y: float) -> None: ...

    @abstractmethod
    def set_attraction(self, factor: float) -> None: ...

    @property
    @abstractmethod
    def paused(self) -> bool: ...

    @abstractmethod
    def set_paused(self, paused: bool) -> None: ...

    @property
    @abstractmethod
    def elapsed(self) -> float: ...


def _rgba_to_hsla(color: Tuple[int, int, int, int]) -> Tuple[float, float, float, float]:
    r, g, b, a = (c / 255.0 for c in color)
    h, l, s = colorsys.rgb_to_hls(r, g, b)
    return h * 360.0, s, l, a


class SandboxWorld(World):
    """In-memory 2D world used by the CLI host and the tests."""

    def __init__(self, draw: Optional[DrawSettings] = None,
                 joints: Optional[JointSettings] = None):
        self.draw = draw or DrawSettings()
        self.joint_settings = joints or JointSettings()
        self.gravity: Tuple[float, float] = (0.0, 0.0)
        self.attraction: float = 0.01
        self.window: Tuple[float, float] = (1280.0, 720.0)
        self._paused = False
        self._elapsed = 0.0

        self._generations: List[int] = []
        self._free: List[int] = []
        self._alive: Set[EntityRef] = set()
        self.bodies: Dict[EntityRef, Body] = {}
        self.joints: Dict[EntityRef, Joint] = {}
        self._selected: List[EntityRef] = []
        self._contacts: Set[Tuple[EntityRef, EntityRef]] = set()

    # =========================================================================
    # Entity lifecycle
    # =========================================================================

    def reserve_entity(self) -> EntityRef:
        if self._free:
            index = self._free.pop()
            self._generations[index] += 1
        else:
            index = len(self._generations)
            self._generations.append(1)
        entity = EntityRef(index, self._generations[index])
        self._alive.add(entity)
        return entity

    def contains(self, entity: EntityRef) -> bool:
        return entity in self._alive

    def despawn(self, entity: EntityRef) -> None:
        if entity not in self._alive:
            return
        self.disjoint(entity)
        self._alive.discard(entity)
        self.bodies.pop(entity, None)
        self.joints.pop(entity, None)
        if entity in self._selected:
            self._selected.remove(entity)
        self._contacts = {pair for pair in self._contacts if entity not in pair}
        self._free.append(entity.index)
        logger.debug("despawned %s", entity)

    def select(self, entities: List[EntityRef]) -> None:
        self._selected = [e for e in entities if e in self.bodies]

    def selected(self) -> List[EntityRef]:
        return list(self._selected)

    # =========================================================================
    # Components
    # =========================================================================

    def insert_defaults(self, entity: EntityRef, radius: float) -> None:
        if entity not in self._alive:
            return
        d = self.draw
        h, s, l, a = _rgba_to_hsla(d.color)
        self.bodies[entity] = Body(
            rx=radius, ry=radius,
            mass=radius ** 3, inertia=radius ** 3,
            h=h, s=s, l=l, a=a,
            sides=d.sides,
            restitution=d.restitution,
            lindamp=d.lin_damp,
            angdamp=d.ang_damp,
            friction=d.friction,
            tail=d.tail,
            layer=1 << d.layer,
            dynamic=d.dynamic,
            sensor=d.sensor,
        )

    def read_property(self, entity: EntityRef, name: str) -> Optional[PropertyValue]:
        body = self.bodies.get(entity)
        if body is None:
            return None
        if name == "vm":
            return math.hypot(body.vx, body.vy)
        if name == "vp":
            return math.atan2(body.vy, body.vx)
        if name == "layer":
            return float(body.layer.bit_length() - 1)
        if name not in Body.__dataclass_fields__:
            return None
        value = getattr(body, name)
        if isinstance(value, int) and not isinstance(value, bool):
            return float(value)
        return value

    def set_property(self, entity: EntityRef, name: str, value: PropertyValue) -> None:
        body = self.bodies.get(entity)
        if body is None:
            return
        if name in ("sides", "tail", "layer") and not math.isfinite(value):
            return
        if name == "sides":
            body.sides = min(max(int(value), 3), 512)
        elif name == "tail":
            body.tail = max(int(value), 0)
        elif name == "layer":
            body.layer = 1 << min(max(int(value), 0), 31)
        elif name in ("dynamic", "sensor"):
            setattr(body, name, bool(value))
        elif name in ("links", "code_i", "code_f"):
            setattr(body, name, str(value))
        elif name == "vm":
            angle = math.atan2(body.vy, body.vx)
            body.vx, body.vy = value * math.cos(angle), value * math.sin(angle)
        elif name == "vp":
            speed = math.hypot(body.vx, body.vy)
            body.vx, body.vy = speed * math.cos(value), speed * math.sin(value)
        elif name in Body.__dataclass_fields__:
            setattr(body, name, float(value))

    # =========================================================================
    # Joints
    # =========================================================================

    def _new_joint(self, joint: EntityRef, first: EntityRef, second: EntityRef) -> None:
        js = self.joint_settings
        j = Joint(first=first, second=second, kind=js.kind,
                  compliance=js.compliance / 100000.0,
                  anchor1=js.anchor1, anchor2=js.anchor2)
        self._apply_kind_defaults(j)
        self.joints[joint] = j

    def _apply_kind_defaults(self, j: Joint) -> None:
        js = self.joint_settings
        if j.kind is JointKind.DISTANCE:
            j.limits, j.rest = js.dist_limits, js.dist_rest
        elif j.kind is JointKind.PRISMATIC:
            j.limits, j.free_axis = js.prismatic_limits, js.prismatic_axis
        elif j.kind is JointKind.REVOLUTE:
            j.limits = js.angle_limits

    def joint_entities(self, joint: EntityRef, first: EntityRef, second: EntityRef) -> None:
        if joint not in self._alive:
            return
        if first not in self.bodies or second not in self.bodies:
            self.despawn(joint)
            return
        self._new_joint(joint, first, second)

    def hit_test(self, x: float, y: float) -> Optional[EntityRef]:
        """First body whose collision circle contains the point."""
        for entity, body in self.bodies.items():
            if (x - body.x) ** 2 + (y - body.y) ** 2 < body.rx ** 2:
                return entity
        return None

    def joint_points(self, joint: EntityRef, start: Tuple[float, float],
                     end: Tuple[float, float]) -> None:
        first = self.hit_test(*start)
        second = self.hit_test(*end)
        if first is None or second is None:
            self.despawn(joint)
            return
        self.joint_entities(joint, first, second)

    def replace_joint(self, joint: EntityRef, kind: JointKind) -> None:
        j = self.joints.get(joint)
        if j is None:
            return
        j.kind = kind
        self._apply_kind_defaults(j)

    def set_joint_property(self, joint: EntityRef, name: str, values: Tuple[float, ...]) -> None:
        j = self.joints.get(joint)
        if j is None:
            return
        if name == "compliance":
            j.compliance = values[0] / 100000.0
        elif name == "anchor1":
            j.anchor1 = (values[0], values[1])
        elif name == "anchor2":
            j.anchor2 = (values[0], values[1])
        elif name == "limits":
            if j.kind in (JointKind.DISTANCE, JointKind.PRISMATIC, JointKind.REVOLUTE):
                j.limits = (values[0], values[1])
        elif name == "rest":
            if j.kind is JointKind.DISTANCE:
                j.rest = values[0]
        elif name == "free_axis":
            if j.kind is JointKind.PRISMATIC:
                j.free_axis = (values[0], values[1])

    def disjoint(self, entity: EntityRef) -> None:
        attached = [k for k, j in self.joints.items() if entity in (j.first, j.second)]
        for key in attached:
            del self.joints[key]

    # =========================================================================
    # Globals
    # =========================================================================

    def set_gravity(self, x: float, y: float) -> None:
        self.gravity = (x, y)

    def set_attraction(self, factor: float) -> None:
        self.attraction = factor

    @property
    def paused(self) -> bool:
        return self._paused

    def set_paused(self, paused: bool) -> None:
        self._paused = paused

    @property
    def elapsed(self) -> float:
        return self._elapsed

    # =========================================================================
    # Simulation
    # =========================================================================

    def attract(self) -> None:
        """Pull same-layer dynamic bodies toward each other by mass over distance squared."""
        factor = self.attraction
        if not math.isfinite(factor) or abs(factor) < sys.float_info.min:
            return
        items = list(self.bodies.items())
        for i, (_, b1) in enumerate(items):
            for _, b2 in items[i + 1:]:
                if b1.layer != b2.layer:
                    continue
                dx, dy = b2.x - b1.x, b2.y - b1.y
                r2 = dx * dx + dy * dy
                if r2 <= 1.0:
                    continue
                if b1.dynamic:
                    b1.vx += dx * b2.mass / r2 * factor
                    b1.vy += dy * b2.mass / r2 * factor
                if b2.dynamic:
                    b2.vx -= dx * b1.mass / r2 * factor
                    b2.vy -= dy * b1.mass / r2 * factor

    def _solve_joints(self) -> None:
        for j in self.joints.values():
            if j.kind is not JointKind.DISTANCE:
                continue
            b1, b2 = self.bodies.get(j.first), self.bodies.get(j.second)
            if b1 is None or b2 is None:
                continue
            dx, dy = b2.x - b1.x, b2.y - b1.y
            dist = math.hypot(dx, dy)
            if dist == 0.0:
                continue
            lo, hi = j.limits
            target = min(max(dist, lo), hi)
            if target == dist:
                continue
            movable = [b for b in (b1, b2) if b.dynamic]
            if not movable:
                continue
            shift = (dist - target) / dist / len(movable)
            if b1.dynamic:
                b1.x += dx * shift
                b1.y += dy * shift
            if b2.dynamic:
                b2.x -= dx * shift
                b2.y -= dy * shift

    def _detect_contacts(self) -> List[CollisionEvent]:
        contacts = set()
        items = list(self.bodies.items())
        for i, (e1, b1) in enumerate(items):
            for e2, b2 in items[i + 1:]:
                if not b1.layer & b2.layer:
                    continue
                if (b2.x - b1.x) ** 2 + (b2.y - b1.y) ** 2 < (b1.rx + b2.rx) ** 2:
                    contacts.add((e1, e2))
        events = [CollisionEvent(a, b, True) for a, b in contacts - self._contacts]
        events += [CollisionEvent(a, b, False) for a, b in self._contacts - contacts]
        self._contacts = contacts
        return events

    def step(self, dt: float) -> List[CollisionEvent]:
        """Advance the simulation and return collisions that started or ended."""
        if self._paused:
            return []
        self._elapsed += dt
        gx, gy = self.gravity
        for body in self.bodies.values():
            if not body.dynamic:
                continue
            body.vx += gx * dt
            body.vy += gy * dt
            body.vx /= 1.0 + dt * body.lindamp
            body.vy /= 1.0 + dt * body.lindamp
            body.va /= 1.0 + dt * body.angdamp
            body.x += body.vx * dt
            body.y += body.vy * dt
            body.rot += body.va * dt
        self._solve_joints()
        return self._detect_contacts()
