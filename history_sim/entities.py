"""
Immutable records for the history simulation.

All records are frozen dataclasses allocated through an EntityStore and shared
through Ref handles. The graph is a DAG rooted at World:

    World -> NPC -> NPCIdentity -> EntityRecord
                 -> PerceptionBuffer -> MemoryEntry -> NPCIdentity
                 -> MemoryEpisode -> ActionSequence -> MemoryEntry
                 -> Relationship -> EntityRecord | WorldObject | LocationPoint

NPCIdentity has no field that can hold a memory, so memories may point at
identities without ever forming a cycle.

Variants (actions, drives, object categories) are closed enums; behaviour per
variant lives in dispatch tables in the systems modules (drives, execution).
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Mapping, Optional, Tuple, Union

from .store import EntityStore, Ref, resolve_store


MAX_DRIVE_INTENSITY = 100.0
MIN_DRIVE_INTENSITY = 0.0
DEFAULT_BUFFER_CAPACITY = 20


class ActionType(str, Enum):
    """Non-verbal actions an NPC can perform."""

    MOVE = "Move"
    OBSERVE = "Observe"
    GIVE = "Give"
    TAKE = "Take"
    REST = "Rest"
    BUILD = "Build"
    PLANT = "Plant"
    BURY = "Bury"
    GESTURE = "Gesture"
    FOLLOW = "Follow"


class DriveType(str, Enum):
    """Needs that rise over time and fall when satisfied."""

    SUSTENANCE = "Sustenance"
    SHELTER = "Shelter"
    BELONGING = "Belonging"
    CURIOSITY = "Curiosity"
    PRIDE = "Pride"
    GRIEF = "Grief"


class ObjectCategory(str, Enum):
    """Kinds of placeable world objects."""

    FOOD = "Food"
    STRUCTURE = "Structure"
    TOOL = "Tool"
    BURIAL = "Burial"
    PLANT = "Plant"
    MARKER = "Marker"


# ============================================================================
# Spatial records
# ============================================================================


@dataclass(frozen=True)
class Position:
    """Point in the 2D world."""

    x: float
    y: float

    def distance_to(self, other: "Position") -> float:
        return math.hypot(other.x - self.x, other.y - self.y)


@dataclass(frozen=True)
class EntityRecord:
    """Identity and spatial presence for anything placeable in the world."""

    id: str
    position: Position


# ============================================================================
# NPC records
# ============================================================================


@dataclass(frozen=True)
class NPCIdentity:
    """Who an NPC is and what it is currently doing.

    The target of memories and relationships. Deliberately carries no memory
    fields.
    """

    entity: Ref[EntityRecord]
    current_action: Optional[ActionType] = None
    target_entity: Optional[Ref[EntityRecord]] = None
    target_object: Optional[Ref["WorldObject"]] = None


@dataclass(frozen=True)
class Drive:
    """A need with an intensity in [0, 100]."""

    type: DriveType
    intensity: float

    def __post_init__(self) -> None:
        if not MIN_DRIVE_INTENSITY <= self.intensity <= MAX_DRIVE_INTENSITY:
            raise ValueError(
                f"Drive {self.type.value} intensity {self.intensity} outside "
                f"[{MIN_DRIVE_INTENSITY}, {MAX_DRIVE_INTENSITY}]"
            )


@dataclass(frozen=True)
class DriveImpact:
    """Signed change to a drive; negative values satisfy the need."""

    drive_type: DriveType
    intensity: float


@dataclass(frozen=True)
class MemoryEntry:
    """The atomic unit of observation."""

    timestamp: int
    actor: Ref[NPCIdentity]
    action: ActionType
    target_entity: Optional[Ref[EntityRecord]] = None
    target_object: Optional[Ref["WorldObject"]] = None


@dataclass(frozen=True)
class PerceptionBuffer:
    """Bounded, insertion-ordered window of recent observations."""

    recent_perceptions: Tuple[Ref[MemoryEntry], ...] = ()
    capacity: int = DEFAULT_BUFFER_CAPACITY

    def __post_init__(self) -> None:
        if self.capacity < 1:
            raise ValueError(f"PerceptionBuffer capacity must be >= 1, got {self.capacity}")
        if len(self.recent_perceptions) > self.capacity:
            raise ValueError(
                f"PerceptionBuffer holds {len(self.recent_perceptions)} entries "
                f"but capacity is {self.capacity}"
            )


@dataclass(frozen=True)
class ActionStep:
    memory: Ref[MemoryEntry]
    delay_after_previous: int = 0


@dataclass(frozen=True)
class ActionSequence:
    """Ordered steps; the first step always has zero delay."""

    id: str
    steps: Tuple[ActionStep, ...]


@dataclass(frozen=True)
class MemoryEpisode:
    """Durable, emotionally significant memory."""

    start_time: int
    end_time: int
    action_sequence: Ref[ActionSequence]
    drive_impacts: Tuple[DriveImpact, ...] = ()
    repetition_count: int = 1

    def __post_init__(self) -> None:
        if self.repetition_count < 1:
            raise ValueError(
                f"MemoryEpisode repetition_count must be >= 1, got {self.repetition_count}"
            )


@dataclass(frozen=True)
class PerceivedEffectiveness:
    drive_type: DriveType
    value: float


@dataclass(frozen=True)
class WitnessedSequence:
    """Behaviour performed by another NPC, perceived but not internalised."""

    sequence: Ref[ActionSequence]
    performer: Ref[NPCIdentity]
    observation_count: int = 1
    effectiveness: Tuple[PerceivedEffectiveness, ...] = ()


# ============================================================================
# Relationship records
# ============================================================================


@dataclass(frozen=True)
class LocationPoint:
    """Circular area of the world that can be the target of a relationship."""

    position: Position
    radius: float

    def contains(self, position: Position) -> bool:
        dx = position.x - self.position.x
        dy = position.y - self.position.y
        return dx * dx + dy * dy <= self.radius * self.radius


@dataclass(frozen=True)
class AffectiveTrace:
    drive_type: DriveType
    value: float


RelationshipTarget = Union[Ref[EntityRecord], Ref["WorldObject"], LocationPoint]


@dataclass(frozen=True)
class Relationship:
    """One NPC's subjective relationship with an entity, object or place."""

    target: RelationshipTarget
    familiarity: float
    affective_traces: Tuple[AffectiveTrace, ...] = ()
    last_interaction: int = 0
    interaction_count: int = 0


# ============================================================================
# Aggregate records
# ============================================================================


@dataclass(frozen=True)
class WorldObject:
    """Placeable object with a category and (optionally) a creator."""

    entity: Ref[EntityRecord]
    category: ObjectCategory
    created_by: Optional[Ref[NPCIdentity]] = None

    @property
    def id(self) -> str:
        return self.entity.id

    @property
    def position(self) -> Position:
        return self.entity.position


@dataclass(frozen=True)
class NPC:
    """A simulated agent. Every update produces a new NPC value."""

    identity: Ref[NPCIdentity]
    drives: Tuple[Drive, ...]
    perception: Ref[PerceptionBuffer]
    episodic_memory: Tuple[Ref[MemoryEpisode], ...] = ()
    observed_behaviors: Tuple[Ref[WitnessedSequence], ...] = ()
    relationships: Tuple[Ref[Relationship], ...] = ()

    @property
    def id(self) -> str:
        return self.identity.entity.id

    @property
    def position(self) -> Position:
        return self.identity.entity.position

    def drive(self, drive_type: DriveType) -> Optional[Drive]:
        """Return the first drive of ``drive_type``, if the NPC has one."""
        for drive in self.drives:
            if drive.type is drive_type:
                return drive
        return None


@dataclass(frozen=True)
class SimulationClock:
    current_tick: int = 0
    current_generation: int = 0
    ticks_per_generation: int = 100

    def __post_init__(self) -> None:
        if self.ticks_per_generation < 1:
            raise ValueError(
                f"ticks_per_generation must be >= 1, got {self.ticks_per_generation}"
            )


@dataclass(frozen=True)
class World:
    """Root snapshot for one tick."""

    clock: Ref[SimulationClock]
    npcs: Tuple[Ref[NPC], ...] = ()
    objects: Tuple[Ref[WorldObject], ...] = ()


# ============================================================================
# Constructors
# ============================================================================


def new_npc(
    npc_id: str,
    position: Position,
    drives: Optional[Mapping[DriveType, float]] = None,
    *,
    relationships: Iterable[Relationship] = (),
    buffer_capacity: int = DEFAULT_BUFFER_CAPACITY,
    store: Optional[EntityStore] = None,
) -> Ref[NPC]:
    """Allocate a fresh NPC with an empty perception buffer and memory.

    Drives default to one entry per DriveType at intensity 0.
    """
    store = resolve_store(store)
    levels = {drive_type: 0.0 for drive_type in DriveType}
    if drives:
        levels.update(drives)
    entity = store.make(EntityRecord(id=npc_id, position=position))
    identity = store.make(NPCIdentity(entity=entity))
    buffer = store.make(PerceptionBuffer(capacity=buffer_capacity))
    return store.make(
        NPC(
            identity=identity,
            drives=tuple(Drive(drive_type, level) for drive_type, level in levels.items()),
            perception=buffer,
            relationships=tuple(store.make(rel) for rel in relationships),
        )
    )


def new_object(
    object_id: str,
    position: Position,
    category: ObjectCategory,
    created_by: Optional[Ref[NPCIdentity]] = None,
    *,
    store: Optional[EntityStore] = None,
) -> Ref[WorldObject]:
    store = resolve_store(store)
    entity = store.make(EntityRecord(id=object_id, position=position))
    return store.make(WorldObject(entity=entity, category=category, created_by=created_by))


def new_world(
    npcs: Iterable[Ref[NPC]] = (),
    objects: Iterable[Ref[WorldObject]] = (),
    *,
    clock: Optional[SimulationClock] = None,
    store: Optional[EntityStore] = None,
) -> Ref[World]:
    """Allocate a World snapshot (tick 0, generation 0 unless a clock is given)."""
    store = resolve_store(store)
    return store.make(
        World(
            clock=store.make(clock or SimulationClock()),
            npcs=tuple(npcs),
            objects=tuple(objects),
        )
    )
