"""Tests for the action execution state machine."""

import math
import random

import pytest

from history_sim.entities import (
    ActionType,
    DriveType,
    ObjectCategory,
    Position,
    Relationship,
    new_npc,
    new_object,
    new_world,
)
from history_sim.execution import ActionExecutor, execute_action, execute_all_actions
from history_sim.memory import form_episodic_memories, process_perceptions
from history_sim.schemas import MovementParams
from history_sim.selection import ActionOption, assign_action


def acting(npc, action: ActionType, *, target_entity=None, target_object=None):
    option = ActionOption(action, target_entity=target_entity, target_object=target_object)
    return assign_action(npc, option)


def test_move_steps_toward_target_at_fixed_speed():
    target = new_npc("b", Position(100.0, 0.0))
    npc = acting(new_npc("a", Position(0.0, 0.0)), ActionType.MOVE, target_entity=target.identity.entity)

    moved = execute_action(new_world([npc, target]), npc)

    assert moved.position.x == pytest.approx(30.0)
    assert moved.position.y == pytest.approx(0.0)
    assert moved.identity.current_action is ActionType.MOVE
    assert moved.identity.target_entity == target.identity.entity


def test_move_does_not_overshoot_target():
    target = new_npc("b", Position(12.0, 16.0))
    npc = acting(new_npc("a", Position(0.0, 0.0)), ActionType.MOVE, target_entity=target.identity.entity)

    moved = execute_action(new_world([npc, target]), npc)

    assert moved.position.x == pytest.approx(12.0)
    assert moved.position.y == pytest.approx(16.0)


def test_move_within_stop_distance_is_a_no_op():
    target = new_npc("b", Position(6.0, 0.0))
    npc = acting(new_npc("a", Position(0.0, 0.0)), ActionType.MOVE, target_entity=target.identity.entity)

    assert execute_action(new_world([npc, target]), npc) is npc


def test_follow_aliases_move_toward_object_target():
    hut = new_object("hut", Position(0.0, -50.0), ObjectCategory.STRUCTURE)
    npc = acting(new_npc("a", Position(0.0, 0.0)), ActionType.FOLLOW, target_object=hut)

    moved = execute_action(new_world([npc], [hut]), npc)

    assert moved.position.x == pytest.approx(0.0)
    assert moved.position.y == pytest.approx(-30.0)


@pytest.mark.parametrize("start", [Position(500.0, 500.0), Position(0.0, 0.0), Position(1000.0, 3.0)])
def test_untargeted_move_is_bounded_random_step(start):
    npc = acting(new_npc("a", start), ActionType.MOVE)
    movement = MovementParams()
    rng = random.Random(17)

    for _ in range(50):
        moved = execute_action(new_world([npc]), npc, rng, movement)
        step = math.hypot(moved.position.x - start.x, moved.position.y - start.y)
        assert step <= movement.random_step_max + 1e-9
        assert 0.0 <= moved.position.x <= movement.world_size
        assert 0.0 <= moved.position.y <= movement.world_size


def test_untargeted_move_in_open_space_respects_minimum_step():
    npc = acting(new_npc("a", Position(500.0, 500.0)), ActionType.MOVE)
    rng = random.Random(2)

    for _ in range(50):
        moved = execute_action(new_world([npc]), npc, rng)
        step = math.hypot(moved.position.x - 500.0, moved.position.y - 500.0)
        assert 5.0 - 1e-9 <= step <= 20.0 + 1e-9


@pytest.mark.parametrize(
    "action",
    [
        ActionType.OBSERVE,
        ActionType.TAKE,
        ActionType.GIVE,
        ActionType.REST,
        ActionType.BUILD,
        ActionType.PLANT,
        ActionType.BURY,
        ActionType.GESTURE,
    ],
)
def test_symbolic_actions_have_no_world_effect(action):
    npc = acting(new_npc("a", Position(3.0, 3.0)), action)
    assert execute_action(new_world([npc]), npc) is npc


def test_npc_without_action_passes_through():
    npc = new_npc("a", Position(3.0, 3.0))
    assert execute_action(new_world([npc]), npc) is npc


def test_every_action_type_has_a_handler():
    executor = ActionExecutor(new_world())
    assert set(executor._handlers) == set(ActionType)


def test_move_preserves_unrelated_state():
    other = new_npc("b", Position(5.0, 0.0))
    npc = new_npc(
        "a",
        Position(0.0, 0.0),
        {DriveType.CURIOSITY: 80.0, DriveType.GRIEF: 12.0},
        relationships=[Relationship(target=other.identity.entity, familiarity=0.7)],
    )
    world = process_perceptions(new_world([npc, other]), 10.0)
    world = process_perceptions(world, 10.0)
    npc = form_episodic_memories(world.npcs[0], current_time=1, max_sequence_gap=5)
    assert npc.episodic_memory

    far = new_npc("c", Position(200.0, 0.0))
    npc = acting(npc, ActionType.MOVE, target_entity=far.identity.entity)
    moved = execute_action(new_world([npc, far]), npc)

    assert moved.position != npc.position
    assert moved.id == "a"
    assert moved.drives == npc.drives
    assert moved.perception == npc.perception
    assert moved.episodic_memory == npc.episodic_memory
    assert moved.observed_behaviors == npc.observed_behaviors
    assert moved.relationships == npc.relationships


def test_execute_all_actions_preserves_order_clock_and_objects():
    food = new_object("food", Position(1.0, 1.0), ObjectCategory.FOOD)
    npcs = [
        acting(new_npc("a", Position(0.0, 0.0)), ActionType.MOVE),
        new_npc("b", Position(5.0, 5.0)),
        acting(new_npc("c", Position(9.0, 9.0)), ActionType.REST, target_object=food),
    ]
    world = new_world(npcs, [food])

    after = execute_all_actions(world, random.Random(1))

    assert [npc.id for npc in after.npcs] == ["a", "b", "c"]
    assert after.npcs[1] is npcs[1]
    assert after.npcs[2] is npcs[2]
    assert after.npcs[0] is not npcs[0]
    assert after.clock == world.clock
    assert after.objects == world.objects
    # The input snapshot is untouched
    assert world.npcs[0].position == Position(0.0, 0.0)
