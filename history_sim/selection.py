"""
Action selection.

Chooses what an NPC does next by weighing candidate actions against its
current drives and its preferences.

Candidates come from two generators:
- Primitive heuristics: what is close by. Nearby NPCs (<= 10 units) can be
  followed or observed; nearby objects (<= 5 units) can be observed, and food
  taken or structures rested in. Move, Build and Gesture are always possible.
- Episodic memory: episodes repeated at least twice replay their first step,
  provided its target still exists in the current world.

Scoring:
    drive_score = sum over drives with |intensity| >= 0.1 of
                  sum over impacts of that type of (-impact * intensity)
    preference  = familiarity_weight * 10 if from memory
                + social_weight * 5 if the action targets an entity
    total       = drive_score + preference

Selection sorts by total (stable, descending) and picks uniformly among the
top k = min(n, 1 + floor(randomness * 10)) with an injected random.Random.
randomness = 0 always picks the best candidate.
"""

import math
import random
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from .entities import (
    NPC,
    ActionType,
    DriveImpact,
    DriveType,
    EntityRecord,
    NPCIdentity,
    ObjectCategory,
    World,
    WorldObject,
)
from .schemas import SelectionCriteria
from .store import EntityStore, Ref, resolve_store

NEARBY_NPC_RADIUS = 10.0
NEARBY_OBJECT_RADIUS = 5.0
MIN_SCORING_INTENSITY = 0.1


@dataclass(frozen=True)
class ActionOption:
    """A candidate action with the drive changes it is expected to produce."""

    action: ActionType
    expected_impacts: Tuple[DriveImpact, ...] = ()
    target_entity: Optional[Ref[EntityRecord]] = None
    target_object: Optional[Ref[WorldObject]] = None
    from_memory: bool = False

    @property
    def target_id(self) -> Optional[str]:
        if self.target_entity is not None:
            return self.target_entity.id
        if self.target_object is not None:
            return self.target_object.id
        return None


@dataclass(frozen=True)
class ScoredOption:
    option: ActionOption
    drive_score: float
    preference_score: float

    @property
    def total(self) -> float:
        return self.drive_score + self.preference_score


def _impacts(*pairs: Tuple[DriveType, float]) -> Tuple[DriveImpact, ...]:
    return tuple(DriveImpact(drive_type, value) for drive_type, value in pairs)


# Untargeted options, always available.
UNTARGETED_OPTIONS: Tuple[ActionOption, ...] = (
    ActionOption(ActionType.MOVE, _impacts((DriveType.CURIOSITY, -0.2))),
    ActionOption(ActionType.BUILD, _impacts((DriveType.SHELTER, -0.3), (DriveType.PRIDE, -0.2))),
    ActionOption(ActionType.GESTURE, _impacts((DriveType.PRIDE, -0.3))),
)


# ============================================================================
# Candidate generation
# ============================================================================


def generate_primitive_options(npc: Ref[NPC], world: Ref[World]) -> List[ActionOption]:
    """Proximity-triggered and always-available options, in world order."""
    options: List[ActionOption] = []
    origin = npc.position
    own_id = npc.id

    for other in world.npcs:
        if other.id == own_id:
            continue
        if origin.distance_to(other.position) <= NEARBY_NPC_RADIUS:
            entity = other.identity.entity
            options.append(
                ActionOption(ActionType.FOLLOW, _impacts((DriveType.BELONGING, -0.3)), target_entity=entity)
            )
            options.append(
                ActionOption(ActionType.OBSERVE, _impacts((DriveType.CURIOSITY, -0.2)), target_entity=entity)
            )

    for obj in world.objects:
        if origin.distance_to(obj.position) > NEARBY_OBJECT_RADIUS:
            continue
        options.append(
            ActionOption(ActionType.OBSERVE, _impacts((DriveType.CURIOSITY, -0.2)), target_object=obj)
        )
        if obj.category is ObjectCategory.FOOD:
            options.append(
                ActionOption(ActionType.TAKE, _impacts((DriveType.SUSTENANCE, -0.5)), target_object=obj)
            )
        elif obj.category is ObjectCategory.STRUCTURE:
            options.append(
                ActionOption(
                    ActionType.REST,
                    _impacts((DriveType.SHELTER, -0.4), (DriveType.SUSTENANCE, -0.3)),
                    target_object=obj,
                )
            )

    options.extend(UNTARGETED_OPTIONS)
    return options


def generate_memory_options(npc: Ref[NPC], world: Ref[World]) -> List[ActionOption]:
    """Replay the first step of every episode repeated at least twice.

    Episodes whose replayed target has left the world are skipped.
    """
    npc_entity_ids = {other.id for other in world.npcs}
    object_ids = {obj.id for obj in world.objects}

    options: List[ActionOption] = []
    for episode in npc.episodic_memory:
        if episode.repetition_count < 2:
            continue
        steps = episode.action_sequence.steps
        if not steps:
            continue
        first = steps[0].memory
        if first.target_entity is not None and first.target_entity.id not in npc_entity_ids:
            continue
        if first.target_object is not None and first.target_object.id not in object_ids:
            continue
        options.append(
            ActionOption(
                action=first.action,
                expected_impacts=episode.drive_impacts,
                target_entity=first.target_entity,
                target_object=first.target_object,
                from_memory=True,
            )
        )
    return options


def generate_action_options(npc: Ref[NPC], world: Ref[World]) -> List[ActionOption]:
    return generate_primitive_options(npc, world) + generate_memory_options(npc, world)


# ============================================================================
# Scoring and selection
# ============================================================================


def score_option(option: ActionOption, criteria: SelectionCriteria) -> ScoredOption:
    drive_score = 0.0
    for drive in criteria.drives:
        if abs(drive.intensity) < MIN_SCORING_INTENSITY:
            continue
        for impact in option.expected_impacts:
            if impact.drive_type is drive.type:
                drive_score += -impact.intensity * drive.intensity

    preference_score = 0.0
    if option.from_memory:
        preference_score += criteria.familiarity_weight * 10.0
    if option.target_entity is not None:
        preference_score += criteria.social_weight * 5.0

    return ScoredOption(option, drive_score, preference_score)


def rank_options(options: Sequence[ActionOption], criteria: SelectionCriteria) -> List[ScoredOption]:
    """Score and sort options, best first; equal totals keep generation order."""
    scored = [score_option(option, criteria) for option in options]
    return sorted(scored, key=lambda item: item.total, reverse=True)


def choose_option(
    ranked: Sequence[ScoredOption], randomness: float, rng: random.Random
) -> Optional[ActionOption]:
    """Pick uniformly among the top ``1 + floor(randomness * 10)`` ranked options."""
    if not ranked:
        return None
    k = min(len(ranked), 1 + math.floor(randomness * 10))
    if k == 1:
        return ranked[0].option
    return ranked[rng.randrange(k)].option


def choose_action(
    npc: Ref[NPC],
    world: Ref[World],
    criteria: SelectionCriteria,
    rng: Optional[random.Random] = None,
) -> Optional[ActionOption]:
    """Generate, rank and pick one option; None when there are no candidates.

    Without an injected ``rng`` a fresh unseeded generator is used, so the
    choice is nondeterministic whenever ``criteria.randomness`` admits more
    than one candidate. Pass a seeded random.Random for reproducible runs.
    """
    ranked = rank_options(generate_action_options(npc, world), criteria)
    return choose_option(ranked, criteria.randomness, rng or random.Random())


def assign_action(
    npc: Ref[NPC], option: ActionOption, *, store: Optional[EntityStore] = None
) -> Ref[NPC]:
    """Return an NPC whose identity carries ``option`` as the current action."""
    store = resolve_store(store)
    record = npc.get()
    identity = store.make(
        NPCIdentity(
            entity=record.identity.entity,
            current_action=option.action,
            target_entity=option.target_entity,
            target_object=option.target_object,
        )
    )
    return store.make(
        NPC(
            identity=identity,
            drives=record.drives,
            perception=record.perception,
            episodic_memory=record.episodic_memory,
            observed_behaviors=record.observed_behaviors,
            relationships=record.relationships,
        )
    )


def select_next_action(
    npc: Ref[NPC],
    world: Ref[World],
    criteria: SelectionCriteria,
    rng: Optional[random.Random] = None,
    *,
    store: Optional[EntityStore] = None,
) -> Ref[NPC]:
    """Choose and record the NPC's next action.

    Sets current_action and target on a new NPCIdentity; drives are not
    touched here (see drives.apply_drive_updates). With no candidates the NPC
    is returned unchanged. Omitting ``rng`` makes the choice nondeterministic
    when randomness > 0.
    """
    chosen = choose_action(npc, world, criteria, rng)
    if chosen is None:
        return npc
    return assign_action(npc, chosen, store=store)
