"""
Perception buffers and episodic memory formation.

Short-term memory:
- Each tick, every perception pair becomes an Observe MemoryEntry owned by the
  perceiving NPC (actor = the perceiver's identity, target = what was seen)
- Entries are appended to the NPC's PerceptionBuffer; when the buffer is over
  capacity the oldest entries are evicted first (FIFO sliding window)

Long-term memory (episode formation):
1. Sort the buffer by timestamp (stable, so ties keep insertion order)
2. Segment into runs whose consecutive gaps are <= max_sequence_gap, keeping
   runs with at least min_sequence_length entries
3. Evaluate each run's emotional impact (see drives.evaluate_impact) and merge
   per drive type with the damped rule in drives.merge_impacts
4. Discard runs whose mean |impact| is below significance_threshold
5. A run with the same step count as an existing episode reinforces it
   (repetition_count + 1, replacing the old episode in place); otherwise it
   becomes a new episode with repetition_count = 1

Step 5 is intentionally coarse: step count is the whole similarity test.

Witnessed sequences record behaviour the NPC has seen another NPC perform,
without making it part of the NPC's own episodic memory.
"""

from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Sequence

from .drives import evaluate_impact, has_emotional_significance, merge_impacts
from .entities import (
    NPC,
    ActionSequence,
    ActionStep,
    ActionType,
    DriveImpact,
    MemoryEntry,
    MemoryEpisode,
    NPCIdentity,
    PerceivedEffectiveness,
    PerceptionBuffer,
    WitnessedSequence,
    World,
)
from .logging_utils import log_debug
from .perception import PerceptionPair, compute_perceptions
from .store import EntityStore, Ref, resolve_store


# ============================================================================
# Perception buffer
# ============================================================================


def append_to_buffer(
    buffer: PerceptionBuffer,
    entries: Sequence[Ref[MemoryEntry]],
    capacity: Optional[int] = None,
) -> PerceptionBuffer:
    """Return a buffer with ``entries`` appended and the oldest evicted past capacity."""
    if capacity is None:
        capacity = buffer.capacity
    combined = buffer.recent_perceptions + tuple(entries)
    if len(combined) > capacity:
        combined = combined[-capacity:]
    return PerceptionBuffer(recent_perceptions=combined, capacity=capacity)


def update_npc_perceptions(
    npc: Ref[NPC],
    entries: Sequence[Ref[MemoryEntry]],
    capacity: Optional[int] = None,
    *,
    store: Optional[EntityStore] = None,
) -> Ref[NPC]:
    """Return an NPC whose perception buffer holds ``entries`` as the newest items."""
    if not entries:
        return npc
    store = resolve_store(store)
    record = npc.get()
    buffer = store.make(append_to_buffer(record.perception.get(), entries, capacity))
    return store.make(
        NPC(
            identity=record.identity,
            drives=record.drives,
            perception=buffer,
            episodic_memory=record.episodic_memory,
            observed_behaviors=record.observed_behaviors,
            relationships=record.relationships,
        )
    )


def create_observation(
    pair: PerceptionPair, timestamp: int, *, store: Optional[EntityStore] = None
) -> Ref[MemoryEntry]:
    """Turn a perception pair into an Observe entry owned by the perceiver."""
    store = resolve_store(store)
    actor = pair.perceiver.identity
    if pair.perceives_npc:
        entry = MemoryEntry(
            timestamp=timestamp,
            actor=actor,
            action=ActionType.OBSERVE,
            target_entity=pair.perceived.identity.entity,
        )
    else:
        entry = MemoryEntry(
            timestamp=timestamp,
            actor=actor,
            action=ActionType.OBSERVE,
            target_object=pair.perceived,
        )
    return store.make(entry)


def process_perceptions(
    world: Ref[World],
    perception_range: float,
    capacity: Optional[int] = None,
    *,
    store: Optional[EntityStore] = None,
) -> Ref[World]:
    """Recompute perceptions for ``world`` and push them into perception buffers.

    The pair list is computed in one global pass before any buffer is
    written. Entries are timestamped with the world's current tick and grouped
    by perceiver id; NPC order is preserved and NPCs that perceived nothing are
    kept as is.

    Args:
        world: Post-action world snapshot
        perception_range: Perception radius
        capacity: Override for buffer capacity (defaults to each buffer's own)
        store: Entity store to allocate from

    Returns:
        New world with updated NPCs (same clock and objects)
    """
    store = resolve_store(store)
    current_time = world.clock.current_tick
    pairs = compute_perceptions(world, perception_range)

    by_perceiver: Dict[str, List[Ref[MemoryEntry]]] = defaultdict(list)
    for pair in pairs:
        by_perceiver[pair.perceiver.id].append(create_observation(pair, current_time, store=store))

    updated = tuple(
        update_npc_perceptions(npc, by_perceiver.get(npc.id, ()), capacity, store=store)
        for npc in world.npcs
    )
    log_debug(
        f"[Perception] {len(pairs)} perceptions across {len(by_perceiver)} NPCs at tick {current_time}"
    )
    return store.make(World(clock=world.clock, npcs=updated, objects=world.objects))


# ============================================================================
# Sequence segmentation
# ============================================================================


def identify_action_sequences(
    entries: Iterable[Ref[MemoryEntry]],
    max_sequence_gap: int = 5,
    min_sequence_length: int = 2,
) -> List[List[Ref[MemoryEntry]]]:
    """Split entries into temporally coherent runs.

    Entries are stably sorted by timestamp. A run is extended while the gap to
    its last entry is <= ``max_sequence_gap``; runs shorter than
    ``min_sequence_length`` are dropped.
    """
    ordered = sorted(entries, key=lambda entry: entry.timestamp)
    runs: List[List[Ref[MemoryEntry]]] = []
    current: List[Ref[MemoryEntry]] = []
    for entry in ordered:
        if current and entry.timestamp - current[-1].timestamp > max_sequence_gap:
            if len(current) >= min_sequence_length:
                runs.append(current)
            current = []
        current.append(entry)
    if current and len(current) >= min_sequence_length:
        runs.append(current)
    return runs


def create_action_sequence(
    entries: Sequence[Ref[MemoryEntry]],
    sequence_id: str,
    *,
    store: Optional[EntityStore] = None,
) -> Ref[ActionSequence]:
    """Build a sequence whose steps carry the delay since the previous step."""
    steps = []
    previous: Optional[Ref[MemoryEntry]] = None
    for entry in entries:
        delay = 0 if previous is None else entry.timestamp - previous.timestamp
        steps.append(ActionStep(memory=entry, delay_after_previous=delay))
        previous = entry
    return resolve_store(store).make(ActionSequence(id=sequence_id, steps=tuple(steps)))


def evaluate_sequence_impact(
    observer: NPC, entries: Sequence[Ref[MemoryEntry]]
) -> List[DriveImpact]:
    return merge_impacts(evaluate_impact(observer, entry.get()) for entry in entries)


# ============================================================================
# Episode formation
# ============================================================================


def find_similar_episode(
    episodes: Sequence[Ref[MemoryEpisode]], sequence: ActionSequence
) -> Optional[int]:
    """Index of the first episode with the same number of steps, if any."""
    step_count = len(sequence.steps)
    for index, episode in enumerate(episodes):
        if len(episode.action_sequence.steps) == step_count:
            return index
    return None


def form_episodic_memories(
    npc: Ref[NPC],
    current_time: int,
    significance_threshold: float = 0.3,
    max_sequence_gap: int = 5,
    min_sequence_length: int = 2,
    *,
    store: Optional[EntityStore] = None,
) -> Ref[NPC]:
    """Promote significant runs from the perception buffer into episodic memory.

    Returns the NPC unchanged when no run is significant.
    """
    store = resolve_store(store)
    record = npc.get()
    runs = identify_action_sequences(
        record.perception.recent_perceptions, max_sequence_gap, min_sequence_length
    )
    if not runs:
        return npc

    episodes = list(record.episodic_memory)
    changed = False
    for run in runs:
        impacts = evaluate_sequence_impact(record, run)
        if not has_emotional_significance(impacts, significance_threshold):
            continue

        sequence = create_action_sequence(run, f"seq_{current_time}_{len(run)}", store=store)
        match = find_similar_episode(episodes, sequence.get())
        if match is not None:
            existing = episodes[match].get()
            episodes[match] = store.make(
                MemoryEpisode(
                    start_time=existing.start_time,
                    end_time=existing.end_time,
                    action_sequence=existing.action_sequence,
                    drive_impacts=existing.drive_impacts,
                    repetition_count=existing.repetition_count + 1,
                )
            )
            log_debug(
                f"[Memory] {record.id} reinforces episode {existing.action_sequence.id} "
                f"(x{existing.repetition_count + 1})"
            )
        else:
            episodes.append(
                store.make(
                    MemoryEpisode(
                        start_time=run[0].timestamp,
                        end_time=run[-1].timestamp,
                        action_sequence=sequence,
                        drive_impacts=tuple(impacts),
                    )
                )
            )
            summary = " ".join(f"{i.drive_type.value}:{i.intensity:.3f}" for i in impacts)
            log_debug(f"[Memory] {record.id} forms episode {sequence.id} ({summary})")
        changed = True

    if not changed:
        return npc
    return store.make(
        NPC(
            identity=record.identity,
            drives=record.drives,
            perception=record.perception,
            episodic_memory=tuple(episodes),
            observed_behaviors=record.observed_behaviors,
            relationships=record.relationships,
        )
    )


# ============================================================================
# Witnessed sequences
# ============================================================================


def record_witnessed_sequence(
    npc: Ref[NPC],
    performer: Ref[NPCIdentity],
    sequence: Ref[ActionSequence],
    effectiveness: Iterable[PerceivedEffectiveness] = (),
    *,
    store: Optional[EntityStore] = None,
) -> Ref[NPC]:
    """Note that ``npc`` saw ``performer`` carry out ``sequence``.

    Seeing the same sequence id from the same performer again bumps
    observation_count and replaces the effectiveness estimate when a new one is
    given. Anything else is appended as a new witnessed sequence.
    """
    store = resolve_store(store)
    record = npc.get()
    effectiveness = tuple(effectiveness)
    behaviors = list(record.observed_behaviors)

    for index, witnessed in enumerate(behaviors):
        if witnessed.sequence.id == sequence.id and witnessed.performer.entity.id == performer.entity.id:
            behaviors[index] = store.make(
                WitnessedSequence(
                    sequence=witnessed.sequence,
                    performer=performer,
                    observation_count=witnessed.observation_count + 1,
                    effectiveness=effectiveness or witnessed.effectiveness,
                )
            )
            break
    else:
        behaviors.append(
            store.make(
                WitnessedSequence(
                    sequence=sequence,
                    performer=performer,
                    effectiveness=effectiveness,
                )
            )
        )

    return store.make(
        NPC(
            identity=record.identity,
            drives=record.drives,
            perception=record.perception,
            episodic_memory=record.episodic_memory,
            observed_behaviors=tuple(behaviors),
            relationships=record.relationships,
        )
    )
