"""Tests for record validation and the NPC/object/world constructors."""

from dataclasses import fields

import pytest

from history_sim.entities import (
    ActionType,
    Drive,
    DriveType,
    LocationPoint,
    MemoryEpisode,
    NPCIdentity,
    ObjectCategory,
    PerceptionBuffer,
    Position,
    SimulationClock,
    new_npc,
    new_object,
    new_world,
)
from history_sim.memory import create_action_sequence
from history_sim.store import EntityStore


def test_drive_intensity_must_be_within_bounds():
    Drive(DriveType.PRIDE, 0.0)
    Drive(DriveType.PRIDE, 100.0)
    with pytest.raises(ValueError):
        Drive(DriveType.PRIDE, 100.5)
    with pytest.raises(ValueError):
        Drive(DriveType.PRIDE, -0.1)


def test_new_npc_has_one_drive_per_type_defaulting_to_zero():
    npc = new_npc("npc_0", Position(1.0, 2.0), {DriveType.CURIOSITY: 80.0})

    assert [drive.type for drive in npc.drives] == list(DriveType)
    assert npc.drive(DriveType.CURIOSITY).intensity == 80.0
    assert npc.drive(DriveType.GRIEF).intensity == 0.0
    assert npc.id == "npc_0"
    assert npc.position == Position(1.0, 2.0)
    assert npc.identity.current_action is None
    assert npc.perception.recent_perceptions == ()
    assert npc.episodic_memory == ()


def test_new_npc_rejects_out_of_range_drive():
    with pytest.raises(ValueError):
        new_npc("npc_0", Position(0.0, 0.0), {DriveType.SUSTENANCE: 120.0})


def test_identity_cannot_hold_memories():
    names = {field.name for field in fields(NPCIdentity)}
    assert names == {"entity", "current_action", "target_entity", "target_object"}


def test_perception_buffer_validates_capacity():
    with pytest.raises(ValueError):
        PerceptionBuffer(capacity=0)


def test_episode_requires_positive_repetition_count():
    store = EntityStore()
    sequence = create_action_sequence([], "seq_empty", store=store)
    with pytest.raises(ValueError):
        MemoryEpisode(start_time=0, end_time=0, action_sequence=sequence, repetition_count=0)


def test_clock_requires_positive_generation_length():
    with pytest.raises(ValueError):
        SimulationClock(ticks_per_generation=0)


def test_location_point_contains_boundary():
    area = LocationPoint(Position(0.0, 0.0), radius=5.0)
    assert area.contains(Position(3.0, 4.0))
    assert not area.contains(Position(4.0, 4.0))


def test_new_object_and_world():
    creator = new_npc("npc_0", Position(0.0, 0.0))
    hut = new_object("hut_0", Position(3.0, 3.0), ObjectCategory.STRUCTURE, creator.identity)
    world = new_world([creator], [hut])

    assert hut.id == "hut_0"
    assert hut.created_by.entity.id == "npc_0"
    assert world.clock.current_tick == 0
    assert world.clock.current_generation == 0
    assert world.clock.ticks_per_generation == 100
    assert world.npcs == (creator,)
    assert world.objects == (hut,)


def test_action_type_values_are_display_names():
    assert ActionType.FOLLOW.value == "Follow"
    assert DriveType.SUSTENANCE.value == "Sustenance"
    assert ObjectCategory.BURIAL.value == "Burial"
