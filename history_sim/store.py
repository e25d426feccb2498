"""
Entity store: a generational arena handing out immutable record handles.

Every record in the simulation (entities, identities, memories, NPCs, worlds)
is allocated through an EntityStore and addressed with a Ref. Refs are cheap
to copy, hashable and comparable, which makes them safe to share between World
snapshots, memories and relationships.

Pool layout:
- One pool per record type ("kind"), keyed by the record class name
- Each pool tracks a generation counter per slot and a free list
- release() frees a slot and bumps its generation; a later make() may reuse it

Handles keep their record alive, so a Ref always observes the value it was
created with even after the slot has been released and reused. What changes is
liveness: EntityStore.get() refuses handles whose generation is no longer
current for their slot.

Usage:
    store = EntityStore()
    ref = store.make(EntityRecord(id="npc_1", position=Position(0.0, 0.0)))
    ref.position            # attribute reads forward to the record
    store.get(ref)          # validated access
"""

from __future__ import annotations

import threading
from typing import Any, Dict, Generic, List, Optional, TypeVar

T = TypeVar("T")


class StaleReferenceError(LookupError):
    """Raised when a handle points at a slot that has been released."""

    def __init__(self, ref: "Ref[Any]") -> None:
        self.ref = ref
        super().__init__(
            f"Stale reference {ref!r}: slot {ref.slot} of pool '{ref.kind}' "
            "was released or reused"
        )


class Ref(Generic[T]):
    """Stable handle to an immutable record allocated by an EntityStore.

    Equality and hashing use (kind, slot, generation) only. Attribute reads
    that are not part of the handle itself are forwarded to the record, so
    chains such as ``npc.identity.entity.position`` read naturally.
    """

    __slots__ = ("kind", "slot", "generation", "_record")

    def __init__(self, kind: str, slot: int, generation: int, record: T) -> None:
        object.__setattr__(self, "kind", kind)
        object.__setattr__(self, "slot", slot)
        object.__setattr__(self, "generation", generation)
        object.__setattr__(self, "_record", record)

    def get(self) -> T:
        """Return the record this handle was created with."""
        return self._record

    def __getattr__(self, name: str) -> Any:
        # Only reached for names that are not slots on the handle.
        if name.startswith("_"):
            raise AttributeError(name)
        return getattr(self._record, name)

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError(f"Ref is immutable (cannot set '{name}')")

    def __delattr__(self, name: str) -> None:
        raise AttributeError(f"Ref is immutable (cannot delete '{name}')")

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Ref):
            return NotImplemented
        return (self.kind, self.slot, self.generation) == (
            other.kind,
            other.slot,
            other.generation,
        )

    def __hash__(self) -> int:
        return hash((self.kind, self.slot, self.generation))

    def __copy__(self) -> "Ref[T]":
        return self

    def __deepcopy__(self, memo: Dict[int, Any]) -> "Ref[T]":
        return self

    def __repr__(self) -> str:
        return f"Ref({self.kind}#{self.slot}.{self.generation})"


class _Pool:
    """Slot bookkeeping for one record kind."""

    def __init__(self) -> None:
        self.generations: List[int] = []
        self.live: List[bool] = []
        self.free: List[int] = []

    def allocate(self) -> tuple[int, int]:
        if self.free:
            slot = self.free.pop()
            self.live[slot] = True
            return slot, self.generations[slot]
        self.generations.append(0)
        self.live.append(True)
        return len(self.generations) - 1, 0

    def is_live(self, slot: int, generation: int) -> bool:
        return (
            0 <= slot < len(self.generations)
            and self.live[slot]
            and self.generations[slot] == generation
        )

    def release(self, slot: int) -> None:
        self.live[slot] = False
        self.generations[slot] += 1
        self.free.append(slot)


class EntityStore:
    """Thread-safe generational arena for immutable records.

    The store only tracks slot liveness; records travel with their handles.
    Allocation takes a lock so per-NPC updates may run on worker threads.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._pools: Dict[str, _Pool] = {}

    def make(self, record: T) -> Ref[T]:
        """Allocate a slot for ``record`` and return its handle."""
        kind = type(record).__name__
        with self._lock:
            pool = self._pools.setdefault(kind, _Pool())
            slot, generation = pool.allocate()
        return Ref(kind, slot, generation, record)

    def is_live(self, ref: Ref[Any]) -> bool:
        """Return True when ``ref`` still names the current occupant of its slot."""
        with self._lock:
            pool = self._pools.get(ref.kind)
            return pool is not None and pool.is_live(ref.slot, ref.generation)

    def get(self, ref: Ref[T]) -> T:
        """Return the record behind ``ref``.

        Raises:
            StaleReferenceError: If the slot was released since ``ref`` was issued
        """
        if not self.is_live(ref):
            raise StaleReferenceError(ref)
        return ref.get()

    def release(self, ref: Ref[Any]) -> None:
        """Free the slot behind ``ref`` so it can be reused.

        Raises:
            StaleReferenceError: If ``ref`` is already stale
        """
        with self._lock:
            pool = self._pools.get(ref.kind)
            if pool is None or not pool.is_live(ref.slot, ref.generation):
                raise StaleReferenceError(ref)
            pool.release(ref.slot)

    def count(self, kind: Optional[str] = None) -> int:
        """Number of live slots, for one kind or across all pools."""
        with self._lock:
            pools = [self._pools[kind]] if kind in self._pools else []
            if kind is None:
                pools = list(self._pools.values())
            return sum(sum(pool.live) for pool in pools)


_default_store = EntityStore()


def default_store() -> EntityStore:
    """Return the process-wide store used when callers do not inject one.

    Nothing releases slots in this store, so it grows with every record
    allocated in the process. Long-lived processes that run many simulations
    should pass their own EntityStore and drop it after each run.
    """
    return _default_store


def resolve_store(store: Optional[EntityStore]) -> EntityStore:
    return store if store is not None else _default_store
