"""
EventSink interface for the simulation audit trail.

The simulation core emits structured events (tick boundaries, entity updates,
action executions) as plain pydantic models. What happens to them is up to the
injected sink. Event output is OPTIONAL: simulations run fine with no sink.

Two included implementations:
1. InMemoryEventSink - list-backed, for tests and interactive analysis
2. JsonEventSink - a single JSON array file, one pretty-printed event per element

Async design rationale:
- emit() is awaited from the tick loop, so slow I/O must not stall a tick
- JsonEventSink buffers events and writes batches on a worker thread
- initialize() reports I/O failure as False instead of raising, so a run can
  continue without an audit trail
- Write failures are logged and the affected events dropped; the file stays
  a valid JSON array

Usage pattern:
    sink = JsonEventSink("output/simulation_events.json")
    if not await sink.initialize():
        ...  # no audit trail for this run
    await sink.emit(event)
    await sink.close()
"""

import asyncio
import json
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import IO, List, Optional

from .entities import NPC, World, WorldObject
from .logging_utils import log_error
from .schemas import (
    ActionExecutionEvent,
    DriveLevel,
    EntityUpdateEvent,
    EventPosition,
    SimulationEndEvent,
    SimulationEvent,
    SimulationStartEvent,
    TickEndEvent,
    TickStartEvent,
)
from .store import Ref

# ENTITY_UPDATE events sample at most this many NPCs and objects per tick.
ENTITY_UPDATE_SAMPLE = 10


class EventSink(ABC):
    """Abstract destination for simulation events.

    Lifecycle: initialize() once before the run, emit() any number of times,
    close() once after the run (also after failures).
    """

    @abstractmethod
    async def initialize(self) -> bool:
        """Prepare the sink. Returns False if the sink cannot accept events."""

    @abstractmethod
    async def emit(self, event: SimulationEvent) -> None:
        """Record one event. Events emitted before initialize() are dropped."""

    @abstractmethod
    async def close(self) -> None:
        """Flush and release resources."""

    @property
    @abstractmethod
    def is_initialized(self) -> bool:
        ...


class InMemoryEventSink(EventSink):
    """Keeps events in a list. Data is not cleared on close."""

    def __init__(self) -> None:
        self.events: List[SimulationEvent] = []
        self._initialized = False

    async def initialize(self) -> bool:
        self._initialized = True
        return True

    async def emit(self, event: SimulationEvent) -> None:
        if self._initialized:
            self.events.append(event)

    async def close(self) -> None:
        self._initialized = False

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    def of_type(self, event_type: str) -> List[SimulationEvent]:
        return [event for event in self.events if event.type == event_type]


class JsonEventSink(EventSink):
    """Writes events as one JSON array file.

    File format:
    ```
    [
    {
      "timestamp": 1700000000000,
      "type": "TICK_START",
      ...
    },
    {
      ...
    }
    ]
    ```

    Events are buffered and written every ``flush_every`` events and on
    close(). All file I/O runs in a worker thread (asyncio.to_thread).
    """

    def __init__(self, path: Path | str, flush_every: int = 100) -> None:
        self.path = Path(path)
        self.flush_every = max(1, flush_every)
        self._buffer: List[str] = []
        self._stream: Optional[IO[str]] = None
        self._has_events = False

    @property
    def is_initialized(self) -> bool:
        return self._stream is not None

    async def initialize(self) -> bool:
        def _open() -> IO[str]:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            stream = self.path.open("w", encoding="utf-8")
            stream.write("[\n")
            stream.flush()
            return stream

        try:
            self._stream = await asyncio.to_thread(_open)
        except OSError as exc:
            log_error(f"[Events] Could not open event log {self.path}: {exc}")
            self._stream = None
            return False
        self._has_events = False
        return True

    async def emit(self, event: SimulationEvent) -> None:
        if self._stream is None:
            return
        self._buffer.append(json.dumps(event.to_json_dict(), indent=2))
        if len(self._buffer) >= self.flush_every:
            await self.flush()

    async def flush(self) -> None:
        """Write buffered events; a failed write is logged and its events dropped."""
        if self._stream is None or not self._buffer:
            return
        chunk, self._buffer = self._buffer, []
        prefix = ",\n" if self._has_events else ""
        text = prefix + ",\n".join(chunk)
        stream = self._stream

        def _write() -> None:
            stream.write(text)
            stream.flush()

        try:
            await asyncio.to_thread(_write)
        except OSError as exc:
            log_error(f"[Events] Dropped {len(chunk)} events for {self.path}: {exc}")
            return
        self._has_events = True

    async def close(self) -> None:
        if self._stream is None:
            return
        try:
            await self.flush()
        finally:
            stream, self._stream = self._stream, None

            def _finish() -> None:
                try:
                    stream.write("\n]\n")
                finally:
                    stream.close()

            try:
                await asyncio.to_thread(_finish)
            except OSError as exc:
                log_error(f"[Events] Could not finish event log {self.path}: {exc}")


# ============================================================================
# Event builders
# ============================================================================


def now_ms() -> int:
    return time.time_ns() // 1_000_000


def _position(ref) -> EventPosition:
    position = ref.position
    return EventPosition(x=position.x, y=position.y)


def npc_update_event(npc: Ref[NPC], timestamp: int) -> EntityUpdateEvent:
    action = npc.identity.current_action
    return EntityUpdateEvent(
        timestamp=timestamp,
        entity_id=npc.id,
        entity_type="NPC",
        position=_position(npc),
        drives=[DriveLevel(type=drive.type.value, value=drive.intensity) for drive in npc.drives],
        current_action=action.value if action is not None else None,
    )


def object_update_event(obj: Ref[WorldObject], timestamp: int) -> EntityUpdateEvent:
    return EntityUpdateEvent(
        timestamp=timestamp,
        entity_id=obj.id,
        entity_type="Object",
        position=_position(obj),
    )


def entity_update_events(world: Ref[World], timestamp: int) -> List[EntityUpdateEvent]:
    """Sampled ENTITY_UPDATE events: the first NPCs, then the first objects."""
    events = [npc_update_event(npc, timestamp) for npc in world.npcs[:ENTITY_UPDATE_SAMPLE]]
    events.extend(object_update_event(obj, timestamp) for obj in world.objects[:ENTITY_UPDATE_SAMPLE])
    return events


def action_execution_event(npc: Ref[NPC], timestamp: int) -> Optional[ActionExecutionEvent]:
    """ACTION_EXECUTION for an NPC with a current action, else None."""
    identity = npc.identity
    if identity.current_action is None:
        return None
    target_id = None
    if identity.target_entity is not None:
        target_id = identity.target_entity.id
    elif identity.target_object is not None:
        target_id = identity.target_object.id
    return ActionExecutionEvent(
        timestamp=timestamp,
        entity_id=npc.id,
        action_type=identity.current_action.value,
        target_id=target_id,
    )


def tick_start_event(world: Ref[World], timestamp: int) -> TickStartEvent:
    clock = world.clock
    return TickStartEvent(
        timestamp=timestamp,
        tick_number=clock.current_tick,
        generation=clock.current_generation,
    )


def tick_end_event(previous: Ref[World], current: Ref[World], timestamp: int) -> TickEndEvent:
    """TICK_END reports the tick that just ran (the pre-tick clock) and the new counts."""
    clock = previous.clock
    return TickEndEvent(
        timestamp=timestamp,
        tick_number=clock.current_tick,
        generation=clock.current_generation,
        npc_count=len(current.npcs),
        object_count=len(current.objects),
    )


def simulation_start_event(world: Ref[World], world_size: float, timestamp: int) -> SimulationStartEvent:
    entities = [
        {
            "id": npc.id,
            "type": "NPC",
            "position": {"x": npc.position.x, "y": npc.position.y},
            "drives": [{"type": d.type.value, "value": d.intensity} for d in npc.drives],
        }
        for npc in world.npcs
    ]
    entities.extend(
        {
            "id": obj.id,
            "type": obj.category.value,
            "position": {"x": obj.position.x, "y": obj.position.y},
        }
        for obj in world.objects
    )
    return SimulationStartEvent(
        timestamp=timestamp,
        npc_count=len(world.npcs),
        object_count=len(world.objects),
        world_size=world_size,
        entities=entities,
    )


def simulation_end_event(world: Ref[World], timestamp: int) -> SimulationEndEvent:
    clock = world.clock
    return SimulationEndEvent(
        timestamp=timestamp,
        total_ticks=clock.current_tick,
        final_generation=clock.current_generation,
        npc_count=len(world.npcs),
        object_count=len(world.objects),
    )
