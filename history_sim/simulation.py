"""
Simulation runner.

Fully decoupled from file I/O and config. Parameters, the random source, the
entity store and the event sink are all injected by the caller.

Coordinates one tick, strictly in this order:
1. Update every NPC in parallel against the same pre-tick World
   (drive growth -> episode formation -> action selection)
2. Execute all chosen actions
3. Recompute perceptions on the post-action World and fill perception buffers
4. Advance the clock (generation changes on multiples of ticks_per_generation)

Each tick produces a new World snapshot; earlier snapshots remain valid.
"""

import asyncio
import random
from typing import Callable, Dict, List, Optional, Sequence

from .drives import apply_drive_updates, update_drives
from .entities import NPC, SimulationClock, World
from .events import (
    EventSink,
    action_execution_event,
    entity_update_events,
    now_ms,
    simulation_end_event,
    simulation_start_event,
    tick_end_event,
    tick_start_event,
)
from .execution import execute_all_actions
from .logging_utils import log_deterministic, log_error, log_info, log_success
from .memory import form_episodic_memories, process_perceptions
from .schemas import MovementParams, NPCUpdateParams, SelectionCriteria, SimulationEvent
from .selection import assign_action, choose_action
from .store import EntityStore, Ref, resolve_store

TickListener = Callable[[Ref[World], int], None]


# =============================
# Module-level Exceptions
# =============================

class NPCUpdateFailedError(Exception):
    """Raised when one or more per-NPC updates fail during a tick.

    Carries a mapping of NPC id to the underlying exception. The tick is
    abandoned as a whole; no partial World is produced.
    """

    def __init__(self, *, tick: int, errors: Dict[str, Exception]) -> None:
        self.tick = tick
        self.errors = errors
        message_lines = [
            f"One or more NPC updates failed at tick {tick}.",
            "NPCs that failed:",
        ]
        for npc_id, exc in errors.items():
            message_lines.append(f"  - {npc_id}: {exc!r}")
        message_lines.extend(
            [
                "\nRemediation tips:",
                "  - Check drive intensities in the initial world are within [0, 100]",
                "  - Set HISTORY_SIM_VERBOSE=true to trace per-NPC memory and movement",
            ]
        )
        super().__init__("\n".join(message_lines))


# =============================
# Per-tick building blocks
# =============================

def selection_criteria(npc: Ref[NPC], params: NPCUpdateParams) -> SelectionCriteria:
    return SelectionCriteria(
        drives=npc.drives,
        familiarity_weight=params.familiarity_preference,
        social_weight=params.social_preference,
        randomness=params.randomness,
    )


def update_npc(
    npc: Ref[NPC],
    world: Ref[World],
    params: NPCUpdateParams,
    rng: Optional[random.Random] = None,
    store: Optional[EntityStore] = None,
) -> Ref[NPC]:
    """Run the per-NPC half of a tick.

    Reads only ``npc`` and the pre-tick ``world``, so calls for different NPCs
    are independent and may run concurrently.

    Args:
        npc: NPC as it appears in ``world``
        world: Pre-tick World snapshot
        params: Tick-update parameters
        rng: Random source for action selection
        store: Entity store to allocate from

    Returns:
        New NPC with grown drives, updated episodic memory and a current action
    """
    store = resolve_store(store)
    current_time = world.clock.current_tick

    npc = update_drives(npc, params.drive_params, 1, store=store)
    npc = form_episodic_memories(
        npc,
        current_time,
        params.significance_threshold,
        params.max_sequence_gap,
        params.min_sequence_length,
        store=store,
    )

    option = choose_action(npc, world, selection_criteria(npc, params), rng)
    if option is None:
        return npc
    npc = assign_action(npc, option, store=store)

    if params.apply_selected_impacts:
        npc = apply_drive_updates(npc, option.expected_impacts, store=store)
    return npc


def advance_clock(
    clock: Ref[SimulationClock], *, store: Optional[EntityStore] = None
) -> Ref[SimulationClock]:
    """Advance one tick; the generation increments when the new tick is a multiple of ticks_per_generation."""
    tick = clock.current_tick + 1
    generation = clock.current_generation
    if tick % clock.ticks_per_generation == 0:
        generation += 1
        log_info(f"[Clock] Generation {generation} begins at tick {tick}")
    return resolve_store(store).make(
        SimulationClock(
            current_tick=tick,
            current_generation=generation,
            ticks_per_generation=clock.ticks_per_generation,
        )
    )


# =============================
# Runner
# =============================

class SimulationRunner:
    """
    Drives a World forward tick by tick.

    All dependencies are injected. Defaults give an unseeded random source
    (runs are not reproducible), default movement constants, the process-wide
    entity store and no events.
    """

    def __init__(
        self,
        initial_world: Ref[World],
        params: Optional[NPCUpdateParams] = None,
        perception_range: float = 10.0,
        event_sink: Optional[EventSink] = None,
        tick_listeners: Optional[Sequence[TickListener]] = None,
        rng: Optional[random.Random] = None,
        movement: Optional[MovementParams] = None,
        store: Optional[EntityStore] = None,
        max_workers: Optional[int] = None,
    ):
        """Initialize the runner.

        Args:
            initial_world: World snapshot to start from
            params: Tick-update parameters (defaults to NPCUpdateParams())
            perception_range: Perception radius used after each action phase
            event_sink: Optional sink for structured events
            tick_listeners: Optional callables invoked after each tick with
                (new_world, tick_index); tick_index counts from 1
            rng: Master random source. Per-NPC generators are seeded from it in
                NPC order, so a seeded rng reproduces a run exactly.
            movement: Movement constants for action execution
            store: Entity store to allocate from. Defaults to the process-wide
                store, which keeps every record of every run
            max_workers: Upper bound on concurrent per-NPC updates (None = unbounded)
        """
        if perception_range <= 0:
            raise ValueError(f"perception_range must be positive, got {perception_range}")
        if max_workers is not None and max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {max_workers}")

        self.world = initial_world
        self.params = params or NPCUpdateParams()
        self.perception_range = perception_range
        self.event_sink = event_sink
        self.tick_listeners: List[TickListener] = list(tick_listeners or [])
        self.rng = rng or random.Random()
        self.movement = movement or MovementParams()
        self.store = resolve_store(store)
        self.max_workers = max_workers

    async def run(self, tick_count: int) -> Ref[World]:
        """Run ``tick_count`` ticks and return the final World.

        Raises:
            NPCUpdateFailedError: If any per-NPC update fails
        """
        if tick_count < 0:
            raise ValueError(f"tick_count must be >= 0, got {tick_count}")

        # A sink that fails to initialise is reported and the run continues without events.
        if self.event_sink is not None and not await self.event_sink.initialize():
            log_error("[Events] Event sink failed to initialize; continuing without events")

        try:
            log_info(
                f"Starting history simulation: {len(self.world.npcs)} NPCs, "
                f"{len(self.world.objects)} objects, {tick_count} ticks"
            )
            await self._emit(
                simulation_start_event(self.world, self.movement.world_size, now_ms())
            )

            progress_every = tick_count // 10 if tick_count > 10 else 0
            for index in range(1, tick_count + 1):
                try:
                    world = await self.step()
                except Exception as exc:
                    log_error(f"Simulation failed at tick {self.world.clock.current_tick}: {exc}")
                    raise

                self._notify(world, index)

                if progress_every and index % progress_every == 0:
                    log_deterministic(
                        f"[Runner] Tick {index}/{tick_count} ({index * 100 // tick_count}%), "
                        f"generation {world.clock.current_generation}"
                    )

            await self._emit(simulation_end_event(self.world, now_ms()))
            clock = self.world.clock
            log_success(
                f"Simulation complete: tick {clock.current_tick}, "
                f"generation {clock.current_generation}"
            )
            return self.world

        finally:
            # Always close the sink, even if a tick failed.
            if self.event_sink is not None:
                await self.event_sink.close()

    async def step(self) -> Ref[World]:
        """Run a single tick and return the new World."""
        world = self.world
        await self._emit(tick_start_event(world, now_ms()))

        # 1. Per-NPC updates against the pre-tick world
        npcs = await self._update_all_npcs(world)
        updated = self.store.make(World(clock=world.clock, npcs=npcs, objects=world.objects))

        # 2. Execute actions
        executed = execute_all_actions(updated, self.rng, self.movement, store=self.store)
        timestamp = now_ms()
        for npc in executed.npcs:
            event = action_execution_event(npc, timestamp)
            if event is not None:
                await self._emit(event)

        # 3. Perceive the post-action world
        perceived = process_perceptions(executed, self.perception_range, store=self.store)

        # 4. Advance the clock
        next_world = self.store.make(
            World(
                clock=advance_clock(perceived.clock, store=self.store),
                npcs=perceived.npcs,
                objects=perceived.objects,
            )
        )

        timestamp = now_ms()
        await self._emit(tick_end_event(world, next_world, timestamp))
        for event in entity_update_events(next_world, timestamp):
            await self._emit(event)

        self.world = next_world
        return next_world

    async def _update_all_npcs(self, world: Ref[World]) -> tuple:
        """Fan out per-NPC updates to worker threads and merge them in NPC order."""
        npcs = world.npcs
        # Seeds are drawn before the fan-out so thread scheduling cannot change them.
        seeds = [self.rng.getrandbits(64) for _ in npcs]
        limiter = asyncio.Semaphore(self.max_workers) if self.max_workers else None

        async def _update(npc: Ref[NPC], seed: int) -> Ref[NPC]:
            if limiter is None:
                return await asyncio.to_thread(
                    update_npc, npc, world, self.params, random.Random(seed), self.store
                )
            async with limiter:
                return await asyncio.to_thread(
                    update_npc, npc, world, self.params, random.Random(seed), self.store
                )

        # return_exceptions=True so every failure is collected, not just the first.
        results = await asyncio.gather(
            *[_update(npc, seed) for npc, seed in zip(npcs, seeds)], return_exceptions=True
        )

        failures: Dict[str, Exception] = {}
        for npc, result in zip(npcs, results):
            if isinstance(result, Exception):
                failures[npc.id] = result
        if failures:
            raise NPCUpdateFailedError(tick=world.clock.current_tick, errors=failures)

        return tuple(results)

    def _notify(self, world: Ref[World], index: int) -> None:
        for listener in self.tick_listeners:
            try:
                listener(world, index)
            except Exception as exc:
                log_error(f"[Runner] Tick listener failed: {exc}")

    async def _emit(self, event: SimulationEvent) -> None:
        if self.event_sink is not None and self.event_sink.is_initialized:
            await self.event_sink.emit(event)


async def run_simulation(
    initial_world: Ref[World],
    tick_count: int,
    params: Optional[NPCUpdateParams] = None,
    perception_range: float = 10.0,
    event_sink: Optional[EventSink] = None,
    callback: Optional[TickListener] = None,
    *,
    rng: Optional[random.Random] = None,
    movement: Optional[MovementParams] = None,
    store: Optional[EntityStore] = None,
    max_workers: Optional[int] = None,
) -> Ref[World]:
    """Run ``tick_count`` ticks from ``initial_world`` and return the final World.

    ``callback`` is invoked after every tick with (new_world, tick_index).
    """
    runner = SimulationRunner(
        initial_world,
        params=params,
        perception_range=perception_range,
        event_sink=event_sink,
        tick_listeners=[callback] if callback is not None else None,
        rng=rng,
        movement=movement,
        store=store,
        max_workers=max_workers,
    )
    return await runner.run(tick_count)
