"""Relationship lookups used when weighing observed actions.

Relationships are asymmetric: each NPC holds its own list. Targets are
matched by entity id rather than by handle, because an NPC that moves is
re-allocated every tick under the same id.
"""

from typing import Iterable, Optional, Union

from .entities import (
    DriveType,
    EntityRecord,
    LocationPoint,
    Position,
    Relationship,
    WorldObject,
)
from .store import Ref

DEFAULT_FAMILIARITY_THRESHOLD = 0.5


def target_kind(relationship: Relationship) -> str:
    """Return 'entity', 'object' or 'location' for a relationship's target."""
    target = relationship.target
    if isinstance(target, LocationPoint):
        return "location"
    if target.kind == WorldObject.__name__:
        return "object"
    return "entity"


def find_relationship(
    relationships: Iterable[Ref[Relationship]],
    target: Union[Ref[EntityRecord], Ref[WorldObject]],
) -> Optional[Relationship]:
    """Find the relationship whose entity or object target matches ``target``."""
    wanted_kind = "object" if target.kind == WorldObject.__name__ else "entity"
    wanted_id = target.id
    for ref in relationships:
        relationship = ref.get()
        if target_kind(relationship) != wanted_kind:
            continue
        if relationship.target.id == wanted_id:
            return relationship
    return None


def find_location_relationship(
    relationships: Iterable[Ref[Relationship]], position: Position
) -> Optional[Relationship]:
    """First location relationship whose area contains ``position``."""
    for ref in relationships:
        relationship = ref.get()
        target = relationship.target
        if isinstance(target, LocationPoint) and target.contains(position):
            return relationship
    return None


def familiarity_of(relationship: Optional[Relationship]) -> float:
    """Familiarity of a relationship; no relationship means no familiarity."""
    return relationship.familiarity if relationship is not None else 0.0


def affective_trace(relationship: Optional[Relationship], drive_type: DriveType) -> float:
    if relationship is None:
        return 0.0
    for trace in relationship.affective_traces:
        if trace.drive_type is drive_type:
            return trace.value
    return 0.0


def is_familiar_with(
    relationships: Iterable[Ref[Relationship]],
    target: Union[Ref[EntityRecord], Ref[WorldObject]],
    threshold: float = DEFAULT_FAMILIARITY_THRESHOLD,
) -> bool:
    relationship = find_relationship(relationships, target)
    return relationship is not None and relationship.familiarity >= threshold


def is_familiar_with_location(
    relationships: Iterable[Ref[Relationship]],
    position: Position,
    threshold: float = DEFAULT_FAMILIARITY_THRESHOLD,
) -> bool:
    relationship = find_location_relationship(relationships, position)
    return relationship is not None and relationship.familiarity >= threshold
