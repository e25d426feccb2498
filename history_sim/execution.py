"""
Action execution.

Applies the world effect of each NPC's current action. Only movement changes
anything today; the other actions are valid, side-effect-free transitions
reserved for future world mutation (placing structures, moving objects, ...).

Every handler returns an NPC that keeps every field it does not mean to
change, so partial updates never drop drives, memories or relationships.
"""

import math
import random
from typing import Callable, Dict, Optional

from .entities import (
    NPC,
    ActionType,
    EntityRecord,
    NPCIdentity,
    Position,
    World,
)
from .logging_utils import log_debug
from .schemas import MovementParams
from .store import EntityStore, Ref, resolve_store


class ActionExecutor:
    """Executes one NPC's current action against a world snapshot.

    Random steps draw from ``rng``; when none is given an unseeded generator
    is used and wandering NPCs move differently on every run.
    """

    def __init__(
        self,
        world: Ref[World],
        rng: Optional[random.Random] = None,
        movement: Optional[MovementParams] = None,
        store: Optional[EntityStore] = None,
    ) -> None:
        self.world = world
        self.rng = rng or random.Random()
        self.movement = movement or MovementParams()
        self.store = resolve_store(store)
        self._handlers: Dict[ActionType, Callable[[Ref[NPC]], Ref[NPC]]] = {
            ActionType.MOVE: self._move,
            ActionType.FOLLOW: self._move,
            ActionType.OBSERVE: self._no_effect,
            ActionType.TAKE: self._no_effect,
            ActionType.GIVE: self._no_effect,
            ActionType.REST: self._no_effect,
            ActionType.BUILD: self._no_effect,
            ActionType.PLANT: self._no_effect,
            ActionType.BURY: self._no_effect,
            ActionType.GESTURE: self._no_effect,
        }

    def execute(self, npc: Ref[NPC]) -> Ref[NPC]:
        """Apply the NPC's current action; NPCs without one pass through."""
        action = npc.identity.current_action
        if action is None:
            return npc
        return self._handlers[action](npc)

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def _no_effect(self, npc: Ref[NPC]) -> Ref[NPC]:
        return npc

    def _move(self, npc: Ref[NPC]) -> Ref[NPC]:
        identity = npc.identity
        origin = npc.position
        target = self._target_position(identity)

        if target is not None:
            dx = target.x - origin.x
            dy = target.y - origin.y
            distance = math.hypot(dx, dy)
            if distance < self.movement.stop_distance:
                return npc
            step = min(self.movement.move_speed, distance)
            destination = Position(origin.x + dx / distance * step, origin.y + dy / distance * step)
            log_debug(
                f"[Move] {npc.id} ({origin.x:.1f}, {origin.y:.1f}) -> "
                f"({destination.x:.1f}, {destination.y:.1f})"
            )
        else:
            destination = self._random_step(origin)
            log_debug(
                f"[Move] {npc.id} wanders ({origin.x:.1f}, {origin.y:.1f}) -> "
                f"({destination.x:.1f}, {destination.y:.1f})"
            )
        return self._relocate(npc, destination)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _target_position(identity: NPCIdentity) -> Optional[Position]:
        if identity.target_entity is not None:
            return identity.target_entity.position
        if identity.target_object is not None:
            return identity.target_object.position
        return None

    def _random_step(self, origin: Position) -> Position:
        dx = self.rng.uniform(-1.0, 1.0)
        dy = self.rng.uniform(-1.0, 1.0)
        length = self.rng.uniform(self.movement.random_step_min, self.movement.random_step_max)
        norm = math.hypot(dx, dy)
        if norm > 0:
            dx /= norm
            dy /= norm
        limit = self.movement.world_size
        return Position(
            max(0.0, min(limit, origin.x + dx * length)),
            max(0.0, min(limit, origin.y + dy * length)),
        )

    def _relocate(self, npc: Ref[NPC], destination: Position) -> Ref[NPC]:
        record = npc.get()
        identity = record.identity.get()
        entity = self.store.make(EntityRecord(id=identity.entity.id, position=destination))
        new_identity = self.store.make(
            NPCIdentity(
                entity=entity,
                current_action=identity.current_action,
                target_entity=identity.target_entity,
                target_object=identity.target_object,
            )
        )
        return self.store.make(
            NPC(
                identity=new_identity,
                drives=record.drives,
                perception=record.perception,
                episodic_memory=record.episodic_memory,
                observed_behaviors=record.observed_behaviors,
                relationships=record.relationships,
            )
        )


def execute_action(
    world: Ref[World],
    npc: Ref[NPC],
    rng: Optional[random.Random] = None,
    movement: Optional[MovementParams] = None,
    *,
    store: Optional[EntityStore] = None,
) -> Ref[NPC]:
    return ActionExecutor(world, rng, movement, store).execute(npc)


def execute_all_actions(
    world: Ref[World],
    rng: Optional[random.Random] = None,
    movement: Optional[MovementParams] = None,
    *,
    store: Optional[EntityStore] = None,
) -> Ref[World]:
    """Execute every NPC's action against the same snapshot, preserving order."""
    store = resolve_store(store)
    executor = ActionExecutor(world, rng, movement, store)
    npcs = tuple(executor.execute(npc) for npc in world.npcs)
    return store.make(World(clock=world.clock, npcs=npcs, objects=world.objects))
