"""Unit tests for parameter and event schemas."""

import pytest
from pydantic import ValidationError

from history_sim.entities import Drive, DriveType
from history_sim.schemas import (
    ActionExecutionEvent,
    DriveParameters,
    EntityUpdateEvent,
    EventPosition,
    MovementParams,
    NPCUpdateParams,
    SelectionCriteria,
)


def test_update_params_defaults():
    params = NPCUpdateParams()
    assert params.familiarity_preference == 0.5
    assert params.social_preference == 0.5
    assert params.randomness == 0.2
    assert params.significance_threshold == 0.3
    assert params.max_sequence_gap == 5
    assert params.min_sequence_length == 2
    assert params.apply_selected_impacts is False
    assert params.drive_params.base_growth_rate == 0.1
    assert params.drive_params.intensity_factor == 0.5


@pytest.mark.parametrize(
    "kwargs",
    [
        {"randomness": 1.5},
        {"randomness": -0.1},
        {"min_sequence_length": 0},
        {"max_sequence_gap": -1},
        {"familiarity_preference": -1.0},
    ],
)
def test_update_params_reject_out_of_range(kwargs):
    with pytest.raises(ValidationError):
        NPCUpdateParams(**kwargs)


def test_params_are_frozen():
    params = NPCUpdateParams()
    with pytest.raises(ValidationError):
        params.randomness = 0.9


def test_drive_parameters_modifier_lookup():
    params = DriveParameters(growth_modifiers={DriveType.GRIEF: 0.25})
    assert params.modifier_for(DriveType.GRIEF) == 0.25
    assert params.modifier_for(DriveType.PRIDE) == 1.0


def test_selection_criteria_holds_drives():
    criteria = SelectionCriteria(drives=(Drive(DriveType.PRIDE, 40.0),), randomness=0.0)
    assert criteria.drives[0].intensity == 40.0
    assert criteria.familiarity_weight == 0.5


def test_movement_defaults():
    movement = MovementParams()
    assert (movement.move_speed, movement.stop_distance) == (30.0, 10.0)
    assert (movement.random_step_min, movement.random_step_max) == (5.0, 20.0)
    assert movement.world_size == 1000.0


def test_event_json_omits_absent_fields():
    event = EntityUpdateEvent(
        timestamp=1,
        entity_id="rock",
        entity_type="Object",
        position=EventPosition(x=1.0, y=2.0),
    )
    assert event.to_json_dict() == {
        "timestamp": 1,
        "type": "ENTITY_UPDATE",
        "entity_id": "rock",
        "entity_type": "Object",
        "position": {"x": 1.0, "y": 2.0},
    }

    action = ActionExecutionEvent(timestamp=2, entity_id="npc_0", action_type="Follow", target_id="npc_1")
    assert action.to_json_dict()["target_id"] == "npc_1"
