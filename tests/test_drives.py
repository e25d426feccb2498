"""Tests for drive growth, impact evaluation and impact merging."""

import pytest

from history_sim.drives import (
    ImpactContext,
    apply_drive_updates,
    evaluate_impact,
    grow_drive,
    has_emotional_significance,
    merge_impacts,
    update_drives,
)
from history_sim.entities import (
    ActionType,
    Drive,
    DriveImpact,
    DriveType,
    LocationPoint,
    MemoryEntry,
    ObjectCategory,
    Position,
    Relationship,
    new_npc,
    new_object,
)
from history_sim.schemas import DriveParameters


def intensities(npc) -> dict:
    return {drive.type: drive.intensity for drive in npc.drives}


def test_growth_formula():
    params = DriveParameters(base_growth_rate=0.1, intensity_factor=0.5)
    grown = grow_drive(Drive(DriveType.CURIOSITY, 50.0), params)

    # 0.1 * 1.0 * (1 + 0.5 * 0.5) = 0.125
    assert grown.intensity == pytest.approx(50.125)


def test_growth_uses_per_type_modifier_and_elapsed_ticks():
    params = DriveParameters(growth_modifiers={DriveType.SUSTENANCE: 2.0})
    grown = grow_drive(Drive(DriveType.SUSTENANCE, 0.0), params, ticks_elapsed=3)
    plain = grow_drive(Drive(DriveType.PRIDE, 0.0), params, ticks_elapsed=3)

    assert grown.intensity == pytest.approx(0.6)
    assert plain.intensity == pytest.approx(0.3)


def test_growth_is_capped_at_100():
    grown = grow_drive(Drive(DriveType.GRIEF, 99.99), DriveParameters(), ticks_elapsed=100)
    assert grown.intensity == 100.0


def test_update_drives_never_decreases():
    npc = new_npc("a", Position(0.0, 0.0), {DriveType.SUSTENANCE: 10.0, DriveType.PRIDE: 100.0})
    before = intensities(npc)
    after = intensities(update_drives(npc, DriveParameters(), 5))

    for drive_type, value in before.items():
        assert value <= after[drive_type] <= 100.0
    assert after[DriveType.PRIDE] == 100.0


def test_update_drives_with_no_elapsed_time_returns_same_npc():
    npc = new_npc("a", Position(0.0, 0.0))
    assert update_drives(npc, DriveParameters(), 0) is npc


def test_apply_drive_updates_clamps_both_ends():
    npc = new_npc("a", Position(0.0, 0.0), {DriveType.SUSTENANCE: 0.2, DriveType.PRIDE: 99.9})
    updated = apply_drive_updates(
        npc,
        [DriveImpact(DriveType.SUSTENANCE, -0.5), DriveImpact(DriveType.PRIDE, 5.0)],
    )

    levels = intensities(updated)
    assert levels[DriveType.SUSTENANCE] == 0.0
    assert levels[DriveType.PRIDE] == 100.0
    assert levels[DriveType.CURIOSITY] == 0.0
    # Everything but drives carries over
    assert updated.identity == npc.identity
    assert updated.perception == npc.perception


def test_apply_drive_updates_scales_by_effectiveness():
    npc = new_npc("a", Position(0.0, 0.0), {DriveType.SHELTER: 50.0})
    updated = apply_drive_updates(npc, [DriveImpact(DriveType.SHELTER, -10.0)], effectiveness=0.5)
    assert intensities(updated)[DriveType.SHELTER] == pytest.approx(45.0)


def test_apply_drive_updates_without_impacts_is_identity():
    npc = new_npc("a", Position(0.0, 0.0))
    assert apply_drive_updates(npc, []) is npc


def test_merge_impacts_damps_repeats_in_first_seen_order():
    merged = merge_impacts(
        [
            [DriveImpact(DriveType.CURIOSITY, -0.2)],
            [DriveImpact(DriveType.BELONGING, -0.3), DriveImpact(DriveType.CURIOSITY, -0.4)],
            [DriveImpact(DriveType.CURIOSITY, -0.1)],
        ]
    )

    assert [impact.drive_type for impact in merged] == [DriveType.CURIOSITY, DriveType.BELONGING]
    # (-0.2 + -0.4) * 0.6 = -0.36, then (-0.36 + -0.1) * 0.6 = -0.276
    assert merged[0].intensity == pytest.approx(-0.276)
    assert merged[1].intensity == pytest.approx(-0.3)


def test_significance_uses_mean_absolute_impact():
    assert not has_emotional_significance([], 0.0)
    assert has_emotional_significance([DriveImpact(DriveType.PRIDE, -0.3)], 0.3)
    assert not has_emotional_significance(
        [DriveImpact(DriveType.PRIDE, -0.5), DriveImpact(DriveType.GRIEF, 0.0)], 0.3
    )
    assert has_emotional_significance(
        [DriveImpact(DriveType.PRIDE, 0.4), DriveImpact(DriveType.GRIEF, -0.2)], 0.3
    )


def make_entry(actor, action: ActionType, *, target_entity=None):
    return MemoryEntry(
        timestamp=0,
        actor=actor.identity,
        action=action,
        target_entity=target_entity,
    )


def test_observe_impact_for_unfamiliar_actor_scales_with_curiosity():
    observer = new_npc("a", Position(0.0, 0.0), {DriveType.CURIOSITY: 80.0})
    actor = new_npc("b", Position(5.0, 0.0))
    entry = make_entry(observer, ActionType.OBSERVE, target_entity=actor.identity.entity)

    impacts = evaluate_impact(observer.get(), entry)

    # -0.1 * (1 + 1.0) scaled by (1 + 80/100)
    assert [impact.drive_type for impact in impacts] == [DriveType.CURIOSITY]
    assert impacts[0].intensity == pytest.approx(-0.36)


def test_follow_impact_grows_with_familiarity():
    actor = new_npc("b", Position(5.0, 0.0))
    observer = new_npc(
        "a",
        Position(0.0, 0.0),
        relationships=[Relationship(target=actor.identity.entity, familiarity=0.5)],
    )
    entry = make_entry(actor, ActionType.FOLLOW)

    impacts = evaluate_impact(observer.get(), entry)

    assert len(impacts) == 1
    assert impacts[0].drive_type is DriveType.BELONGING
    assert impacts[0].intensity == pytest.approx(-0.3)


def test_familiarity_matches_reallocated_entity_by_id():
    actor = new_npc("b", Position(5.0, 0.0))
    moved_actor = new_npc("b", Position(8.0, 0.0))
    observer = new_npc(
        "a",
        Position(0.0, 0.0),
        relationships=[Relationship(target=actor.identity.entity, familiarity=1.0)],
    )

    impacts = evaluate_impact(observer.get(), make_entry(moved_actor, ActionType.FOLLOW))
    assert impacts[0].intensity == pytest.approx(-0.4)


def test_rest_in_familiar_place_also_eases_shelter():
    observer = new_npc(
        "a",
        Position(0.0, 0.0),
        relationships=[Relationship(target=LocationPoint(Position(0.0, 0.0), 5.0), familiarity=0.5)],
    )
    impacts = evaluate_impact(observer.get(), make_entry(observer, ActionType.REST))

    assert [impact.drive_type for impact in impacts] == [DriveType.SUSTENANCE, DriveType.SHELTER]
    assert impacts[0].intensity == pytest.approx(-0.45)
    assert impacts[1].intensity == pytest.approx(-0.1)


@pytest.mark.parametrize(
    "action",
    [ActionType.TAKE, ActionType.GIVE, ActionType.MOVE, ActionType.BUILD, ActionType.GESTURE],
)
def test_actions_without_rules_have_no_impact(action):
    observer = new_npc("a", Position(0.0, 0.0), {DriveType.CURIOSITY: 90.0})
    assert evaluate_impact(observer.get(), make_entry(observer, action)) == []


def test_impact_context_object_familiarity():
    well = new_object("well", Position(1.0, 0.0), ObjectCategory.STRUCTURE)
    observer = new_npc(
        "a",
        Position(0.0, 0.0),
        relationships=[Relationship(target=well, familiarity=0.7)],
    )
    at_well = MemoryEntry(timestamp=0, actor=observer.identity, action=ActionType.REST, target_object=well)

    assert ImpactContext(observer.get(), at_well).object_familiarity == pytest.approx(0.7)
    assert ImpactContext(observer.get(), make_entry(observer, ActionType.REST)).object_familiarity == 0.0
