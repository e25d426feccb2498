"""
Pydantic schemas for simulation parameters and structured events.

Entity records live in ``history_sim.entities`` as frozen dataclasses. This
module holds the data that crosses the library boundary:

- Tick-update parameters supplied by the caller (validated ranges)
- Structured events handed to an EventSink (JSON-serialisable)

Design Philosophy:
- Parameters are frozen so one instance can be shared by every per-NPC update
- Events mirror the JSON audit-trail format: a literal ``type`` tag,
  a millisecond ``timestamp`` and optional fields that are omitted when absent
"""

from typing import Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field

from .entities import Drive, DriveType


# ============================================================================
# Parameter Schemas
# ============================================================================


class DriveParameters(BaseModel):
    """Natural-growth parameters for drive dynamics.

    Per tick, each drive grows by
    ``base_growth_rate * modifier(type) * (1 + intensity/100 * intensity_factor)``.
    The intensity term makes urgent needs accelerate.
    """

    model_config = ConfigDict(frozen=True)

    base_growth_rate: float = Field(0.1, ge=0.0, description="Growth per tick before modifiers")
    intensity_factor: float = Field(
        0.5, ge=0.0, description="How strongly current intensity accelerates growth"
    )
    growth_modifiers: Dict[DriveType, float] = Field(
        default_factory=dict,
        description="Per-drive multipliers; drives not listed use 1.0",
    )

    def modifier_for(self, drive_type: DriveType) -> float:
        return self.growth_modifiers.get(drive_type, 1.0)


class NPCUpdateParams(BaseModel):
    """Everything a per-NPC update needs besides the NPC and the World."""

    model_config = ConfigDict(frozen=True)

    drive_params: DriveParameters = Field(default_factory=DriveParameters)
    familiarity_preference: float = Field(
        0.5, ge=0.0, description="Weight for memory-derived (familiar) actions"
    )
    social_preference: float = Field(
        0.5, ge=0.0, description="Weight for actions targeting another entity"
    )
    randomness: float = Field(
        0.2, ge=0.0, le=1.0, description="0 = always best action; widens the top-k pool"
    )
    significance_threshold: float = Field(
        0.3, ge=0.0, description="Minimum mean |impact| for a run to become an episode"
    )
    max_sequence_gap: int = Field(5, ge=0, description="Max ticks between entries of one run")
    min_sequence_length: int = Field(2, ge=1, description="Shortest run that can form an episode")
    apply_selected_impacts: bool = Field(
        False, description="Apply the chosen action's expected impacts to drives immediately"
    )


class SelectionCriteria(BaseModel):
    """Inputs to action scoring, derived from the NPC's drives and NPCUpdateParams."""

    model_config = ConfigDict(frozen=True)

    drives: Tuple[Drive, ...] = Field(default=(), description="Current drives of the choosing NPC")
    familiarity_weight: float = Field(0.5, ge=0.0)
    social_weight: float = Field(0.5, ge=0.0)
    randomness: float = Field(0.2, ge=0.0, le=1.0)


class MovementParams(BaseModel):
    """Movement constants used by action execution."""

    model_config = ConfigDict(frozen=True)

    move_speed: float = Field(30.0, gt=0.0, description="Max distance per tick toward a target")
    stop_distance: float = Field(10.0, ge=0.0, description="Targets closer than this are not approached")
    random_step_min: float = Field(5.0, ge=0.0)
    random_step_max: float = Field(20.0, ge=0.0)
    world_size: float = Field(1000.0, gt=0.0, description="World spans [0, world_size] on both axes")


# ============================================================================
# Event Schemas
# ============================================================================


class EventPosition(BaseModel):
    x: float
    y: float


class DriveLevel(BaseModel):
    type: str = Field(..., description="Drive name, e.g. 'Curiosity'")
    value: float


class SimulationEventBase(BaseModel):
    """Common envelope for every structured event."""

    timestamp: int = Field(..., description="Milliseconds since the Unix epoch")

    def to_json_dict(self) -> Dict[str, Any]:
        """JSON-ready dict with absent optional fields dropped."""
        return self.model_dump(mode="json", exclude_none=True)


class SimulationStartEvent(SimulationEventBase):
    type: Literal["SIMULATION_START"] = "SIMULATION_START"
    npc_count: int
    object_count: int
    world_size: float
    entities: Optional[List[Dict[str, Any]]] = None


class SimulationEndEvent(SimulationEventBase):
    type: Literal["SIMULATION_END"] = "SIMULATION_END"
    total_ticks: int
    final_generation: int
    npc_count: int
    object_count: int


class TickStartEvent(SimulationEventBase):
    type: Literal["TICK_START"] = "TICK_START"
    tick_number: int
    generation: int


class TickEndEvent(SimulationEventBase):
    type: Literal["TICK_END"] = "TICK_END"
    tick_number: int
    generation: int
    npc_count: int
    object_count: int


class EntityUpdateEvent(SimulationEventBase):
    type: Literal["ENTITY_UPDATE"] = "ENTITY_UPDATE"
    entity_id: str
    entity_type: str = Field(..., description="'NPC' or 'Object'")
    position: EventPosition
    drives: Optional[List[DriveLevel]] = None
    current_action: Optional[str] = None


class ActionExecutionEvent(SimulationEventBase):
    type: Literal["ACTION_EXECUTION"] = "ACTION_EXECUTION"
    entity_id: str
    action_type: str
    target_id: Optional[str] = None


SimulationEvent = Union[
    SimulationStartEvent,
    SimulationEndEvent,
    TickStartEvent,
    TickEndEvent,
    EntityUpdateEvent,
    ActionExecutionEvent,
]

