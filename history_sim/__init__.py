"""
history_sim - non-verbal NPC history simulation library.

NPCs with rising needs perceive a shared 2D world, remember emotionally
significant sequences and repeat what worked, producing path-dependent
behavioural history across generations.

No file I/O required. No global config.
All dependencies (parameters, random source, store, event sink) injected by the user.
"""

__version__ = "0.1.0"

# Main simulation components
from .simulation import (
    SimulationRunner,
    NPCUpdateFailedError,
    run_simulation,
    update_npc,
    advance_clock,
)

# Entity store
from .store import EntityStore, Ref, StaleReferenceError, default_store

# Records
from .entities import (
    ActionType,
    DriveType,
    ObjectCategory,
    Position,
    EntityRecord,
    NPCIdentity,
    Drive,
    DriveImpact,
    MemoryEntry,
    PerceptionBuffer,
    ActionStep,
    ActionSequence,
    MemoryEpisode,
    WitnessedSequence,
    PerceivedEffectiveness,
    LocationPoint,
    AffectiveTrace,
    Relationship,
    WorldObject,
    NPC,
    SimulationClock,
    World,
    new_npc,
    new_object,
    new_world,
)

# Systems
from .perception import PerceptionPair, compute_perceptions
from .drives import update_drives, apply_drive_updates, evaluate_impact, merge_impacts
from .memory import (
    process_perceptions,
    identify_action_sequences,
    form_episodic_memories,
    record_witnessed_sequence,
)
from .selection import ActionOption, generate_action_options, select_next_action
from .execution import ActionExecutor, execute_action, execute_all_actions

# Events
from .events import EventSink, InMemoryEventSink, JsonEventSink

# Parameter and event schemas
from .schemas import (
    DriveParameters,
    NPCUpdateParams,
    SelectionCriteria,
    MovementParams,
    SimulationEvent,
    SimulationStartEvent,
    SimulationEndEvent,
    TickStartEvent,
    TickEndEvent,
    EntityUpdateEvent,
    ActionExecutionEvent,
)

__all__ = [
    # Main components
    "SimulationRunner",
    "NPCUpdateFailedError",
    "run_simulation",
    "update_npc",
    "advance_clock",
    # Entity store
    "EntityStore",
    "Ref",
    "StaleReferenceError",
    "default_store",
    # Records
    "ActionType",
    "DriveType",
    "ObjectCategory",
    "Position",
    "EntityRecord",
    "NPCIdentity",
    "Drive",
    "DriveImpact",
    "MemoryEntry",
    "PerceptionBuffer",
    "ActionStep",
    "ActionSequence",
    "MemoryEpisode",
    "WitnessedSequence",
    "PerceivedEffectiveness",
    "LocationPoint",
    "AffectiveTrace",
    "Relationship",
    "WorldObject",
    "NPC",
    "SimulationClock",
    "World",
    "new_npc",
    "new_object",
    "new_world",
    # Systems
    "PerceptionPair",
    "compute_perceptions",
    "update_drives",
    "apply_drive_updates",
    "evaluate_impact",
    "merge_impacts",
    "process_perceptions",
    "identify_action_sequences",
    "form_episodic_memories",
    "record_witnessed_sequence",
    "ActionOption",
    "generate_action_options",
    "select_next_action",
    "ActionExecutor",
    "execute_action",
    "execute_all_actions",
    # Events
    "EventSink",
    "InMemoryEventSink",
    "JsonEventSink",
    # Schemas
    "DriveParameters",
    "NPCUpdateParams",
    "SelectionCriteria",
    "MovementParams",
    "SimulationEvent",
    "SimulationStartEvent",
    "SimulationEndEvent",
    "TickStartEvent",
    "TickEndEvent",
    "EntityUpdateEvent",
    "ActionExecutionEvent",
]
