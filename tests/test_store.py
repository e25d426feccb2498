"""Tests for the generational entity store and its handles."""

import copy
import threading

import pytest

from history_sim.entities import EntityRecord, Position
from history_sim.store import EntityStore, Ref, StaleReferenceError, resolve_store, default_store


def make_record(entity_id: str = "npc_0", x: float = 0.0, y: float = 0.0) -> EntityRecord:
    return EntityRecord(id=entity_id, position=Position(x, y))


def test_make_returns_handle_that_forwards_attribute_reads():
    store = EntityStore()
    ref = store.make(make_record("npc_0", 3.0, 4.0))

    assert isinstance(ref, Ref)
    assert ref.kind == "EntityRecord"
    assert ref.id == "npc_0"
    assert ref.position == Position(3.0, 4.0)
    assert ref.get() == make_record("npc_0", 3.0, 4.0)
    assert store.get(ref) is ref.get()


def test_equal_records_get_distinct_handles():
    store = EntityStore()
    first = store.make(make_record())
    second = store.make(make_record())

    assert first != second
    assert first == first
    assert len({first, second, first}) == 2


def test_released_handle_is_stale_but_still_reads_its_value():
    store = EntityStore()
    ref = store.make(make_record("npc_0"))
    store.release(ref)

    assert not store.is_live(ref)
    with pytest.raises(StaleReferenceError):
        store.get(ref)
    # The handle keeps observing the value it was created with
    assert ref.get().id == "npc_0"


def test_released_slot_is_reused_with_new_generation():
    store = EntityStore()
    old = store.make(make_record("old"))
    store.release(old)
    new = store.make(make_record("new"))

    assert new.slot == old.slot
    assert new.generation == old.generation + 1
    assert new != old
    assert store.is_live(new)
    assert old.id == "old"


def test_double_release_raises():
    store = EntityStore()
    ref = store.make(make_record())
    store.release(ref)

    with pytest.raises(StaleReferenceError):
        store.release(ref)


def test_count_tracks_live_slots_per_kind():
    store = EntityStore()
    refs = [store.make(make_record(f"npc_{i}")) for i in range(3)]
    store.make(Position(0.0, 0.0))
    store.release(refs[0])

    assert store.count("EntityRecord") == 2
    assert store.count("Position") == 1
    assert store.count("Missing") == 0
    assert store.count() == 3


def test_handles_are_immutable_and_copy_to_themselves():
    ref = EntityStore().make(make_record())

    with pytest.raises(AttributeError):
        ref.slot = 5
    with pytest.raises(AttributeError):
        ref.id = "other"
    assert copy.copy(ref) is ref
    assert copy.deepcopy(ref) is ref


def test_private_names_are_not_forwarded():
    ref = EntityStore().make(make_record())

    with pytest.raises(AttributeError):
        ref._missing


def test_concurrent_allocation_hands_out_unique_slots():
    store = EntityStore()
    results = []
    lock = threading.Lock()

    def worker(offset: int) -> None:
        made = [store.make(make_record(f"npc_{offset}_{i}")) for i in range(200)]
        with lock:
            results.extend(made)

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(results) == 1600
    assert len({ref.slot for ref in results}) == 1600
    assert store.count("EntityRecord") == 1600


def test_resolve_store_defaults_to_process_store():
    custom = EntityStore()
    assert resolve_store(None) is default_store()
    assert resolve_store(custom) is custom
