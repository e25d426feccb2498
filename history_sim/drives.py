"""
Drive dynamics and drive impacts.

Drives are needs (Sustenance, Curiosity, ...) whose intensity rises on its own
every tick and falls when an action satisfies it.

Two halves:
- Dynamics: growth-only update by elapsed ticks. Higher intensity grows
  faster, so neglected needs become urgent.
- Impacts: how much an observed action would change the observer's drives.
  Impacts are signed deltas (negative = satisfying) modulated by the
  observer's familiarity with the actor and the place. Familiarity with the
  object involved is available to rules through ImpactContext.

Per-action impact rules are a dispatch table keyed by ActionType. Actions
without a rule have no emotional impact.
"""

from typing import Callable, Dict, Iterable, List, Optional, Sequence

from .entities import (
    NPC,
    ActionType,
    Drive,
    DriveImpact,
    DriveType,
    MAX_DRIVE_INTENSITY,
    MIN_DRIVE_INTENSITY,
    MemoryEntry,
)
from .relationships import (
    familiarity_of,
    find_location_relationship,
    find_relationship,
)
from .schemas import DriveParameters
from .store import EntityStore, Ref, resolve_store

# Damped merge of repeated impacts on one drive within a sequence.
MERGE_DAMPING = 0.6


def clamp_intensity(value: float) -> float:
    return max(MIN_DRIVE_INTENSITY, min(MAX_DRIVE_INTENSITY, value))


# ============================================================================
# Dynamics
# ============================================================================


def grow_drive(drive: Drive, params: DriveParameters, ticks_elapsed: int = 1) -> Drive:
    """Advance one drive by natural growth, capped at 100."""
    increase = (
        params.base_growth_rate
        * params.modifier_for(drive.type)
        * (1.0 + drive.intensity / 100.0 * params.intensity_factor)
        * ticks_elapsed
    )
    return Drive(drive.type, min(MAX_DRIVE_INTENSITY, drive.intensity + increase))


def update_drives(
    npc: Ref[NPC],
    params: DriveParameters,
    ticks_elapsed: int = 1,
    *,
    store: Optional[EntityStore] = None,
) -> Ref[NPC]:
    """Return an NPC whose drives have grown by ``ticks_elapsed`` ticks.

    Growth never lowers an intensity. Zero elapsed ticks returns the NPC as is.
    """
    if ticks_elapsed <= 0:
        return npc
    record = npc.get()
    grown = tuple(grow_drive(drive, params, ticks_elapsed) for drive in record.drives)
    return resolve_store(store).make(_with_drives(record, grown))


def apply_drive_updates(
    npc: Ref[NPC],
    impacts: Iterable[DriveImpact],
    effectiveness: float = 1.0,
    *,
    store: Optional[EntityStore] = None,
) -> Ref[NPC]:
    """Apply expected impacts to an NPC's drives, clamped to [0, 100].

    Every impact whose type matches a drive is added, scaled by
    ``effectiveness``. Drives with no matching impact are unchanged.
    """
    impacts = list(impacts)
    if not impacts:
        return npc
    record = npc.get()
    updated = []
    for drive in record.drives:
        delta = sum(impact.intensity for impact in impacts if impact.drive_type is drive.type)
        updated.append(Drive(drive.type, clamp_intensity(drive.intensity + delta * effectiveness)))
    return resolve_store(store).make(_with_drives(record, tuple(updated)))


def _with_drives(record: NPC, drives: tuple) -> NPC:
    return NPC(
        identity=record.identity,
        drives=drives,
        perception=record.perception,
        episodic_memory=record.episodic_memory,
        observed_behaviors=record.observed_behaviors,
        relationships=record.relationships,
    )


# ============================================================================
# Impacts
# ============================================================================


class ImpactContext:
    """An observation as seen by one observer, with relationship lookups."""

    def __init__(self, observer: NPC, entry: MemoryEntry) -> None:
        self.observer = observer
        self.entry = entry

    @property
    def actor_familiarity(self) -> float:
        return familiarity_of(
            find_relationship(self.observer.relationships, self.entry.actor.entity)
        )

    @property
    def location_familiarity(self) -> float:
        where = self.entry.target_entity or self.entry.actor.entity
        return familiarity_of(
            find_location_relationship(self.observer.relationships, where.position)
        )

    @property
    def object_familiarity(self) -> float:
        if self.entry.target_object is None:
            return 0.0
        return familiarity_of(
            find_relationship(self.observer.relationships, self.entry.target_object)
        )


def _observe_impacts(ctx: ImpactContext) -> List[DriveImpact]:
    # Unfamiliar actors and places satisfy curiosity more
    unfamiliarity = 1.0 - (ctx.actor_familiarity + ctx.location_familiarity) / 2.0
    return [DriveImpact(DriveType.CURIOSITY, -0.1 * (1.0 + unfamiliarity))]


def _follow_impacts(ctx: ImpactContext) -> List[DriveImpact]:
    return [DriveImpact(DriveType.BELONGING, -0.2 * (1.0 + ctx.actor_familiarity))]


def _rest_impacts(ctx: ImpactContext) -> List[DriveImpact]:
    place = ctx.location_familiarity
    impacts = [DriveImpact(DriveType.SUSTENANCE, -0.3 * (1.0 + place))]
    if place > 0.3:
        impacts.append(DriveImpact(DriveType.SHELTER, -0.2 * place))
    return impacts


ImpactRule = Callable[[ImpactContext], List[DriveImpact]]

IMPACT_RULES: Dict[ActionType, ImpactRule] = {
    ActionType.OBSERVE: _observe_impacts,
    ActionType.FOLLOW: _follow_impacts,
    ActionType.REST: _rest_impacts,
}


def evaluate_impact(observer: NPC, entry: MemoryEntry) -> List[DriveImpact]:
    """Drive deltas the observer experiences from one observed entry.

    Base impacts come from the action's rule and are then scaled by the
    observer's current intensity of that drive: ``impact * (1 + intensity/100)``.
    """
    rule = IMPACT_RULES.get(entry.action)
    if rule is None:
        return []
    adjusted = []
    for impact in rule(ImpactContext(observer, entry)):
        current = observer.drive(impact.drive_type)
        scale = 1.0 + current.intensity / 100.0 if current is not None else 1.0
        adjusted.append(DriveImpact(impact.drive_type, impact.intensity * scale))
    return adjusted


def merge_impacts(impact_lists: Iterable[Sequence[DriveImpact]]) -> List[DriveImpact]:
    """Combine impacts by drive type, in first-seen order.

    The first impact of a type seeds it; each later one of the same type
    combines as ``(existing + new) * 0.6``.
    """
    merged: Dict[DriveType, float] = {}
    for impacts in impact_lists:
        for impact in impacts:
            if impact.drive_type in merged:
                merged[impact.drive_type] = (merged[impact.drive_type] + impact.intensity) * MERGE_DAMPING
            else:
                merged[impact.drive_type] = impact.intensity
    return [DriveImpact(drive_type, value) for drive_type, value in merged.items()]


def has_emotional_significance(impacts: Sequence[DriveImpact], threshold: float) -> bool:
    """Mean absolute impact must reach ``threshold``; no impacts is never significant."""
    if not impacts:
        return False
    average = sum(abs(impact.intensity) for impact in impacts) / len(impacts)
    return average >= threshold