"""
Spatial perception index.

Answers "who and what is within radius R of each NPC" for a World snapshot.
Perception is the only way information enters an NPC: whatever this module
reports becomes an Observe entry in the NPC's perception buffer.

Algorithm:
1. Cell size = R. Each NPC and object is bucketed by (floor(x/R), floor(y/R))
2. For each NPC, scan its own cell and the 8 neighbouring cells
3. Keep candidates whose exact Euclidean distance is <= R

Any point within R of an NPC lies in the same or an adjacent cell, so the
3x3 scan never misses a pair. Work is O(N * k) for local density k instead of
the O(N^2) exhaustive check.

Self-exclusion compares entity ids, not handles: each tick re-allocates NPCs
that keep the same logical id.

Pair order is NPC iteration order, then cell scan order (dx, dy from -1 to 1),
then insertion order inside a cell. Distance ties are not re-ordered.
"""

from __future__ import annotations

import math
from collections import defaultdict
from dataclasses import dataclass
from typing import DefaultDict, List, Optional, Tuple, Union

from .entities import NPC, World, WorldObject
from .store import Ref

CellKey = Tuple[int, int]


@dataclass(frozen=True)
class PerceptionPair:
    """One perception: ``perceiver`` can see ``perceived`` at ``distance``."""

    perceiver: Ref[NPC]
    perceived: Union[Ref[NPC], Ref[WorldObject]]
    distance: float

    @property
    def perceives_npc(self) -> bool:
        return self.perceived.kind == NPC.__name__


class SpatialGrid:
    """Uniform grid of NPC and object handles keyed by cell."""

    def __init__(self, cell_size: float) -> None:
        if cell_size <= 0:
            raise ValueError(f"cell_size must be positive, got {cell_size}")
        self.cell_size = cell_size
        self._cells: DefaultDict[CellKey, List[Union[Ref[NPC], Ref[WorldObject]]]] = defaultdict(list)

    def cell_of(self, x: float, y: float) -> CellKey:
        # floor (not truncation) keeps negative coordinates in the right cell
        return (math.floor(x / self.cell_size), math.floor(y / self.cell_size))

    def insert(self, ref: Union[Ref[NPC], Ref[WorldObject]]) -> None:
        position = ref.position
        self._cells[self.cell_of(position.x, position.y)].append(ref)

    def neighbourhood(self, x: float, y: float) -> List[Union[Ref[NPC], Ref[WorldObject]]]:
        """Everything in the 3x3 block of cells around (x, y)."""
        cx, cy = self.cell_of(x, y)
        found: List[Union[Ref[NPC], Ref[WorldObject]]] = []
        for dx in (-1, 0, 1):
            for dy in (-1, 0, 1):
                bucket = self._cells.get((cx + dx, cy + dy))
                if bucket:
                    found.extend(bucket)
        return found


def build_grid(world: Ref[World], cell_size: float) -> SpatialGrid:
    grid = SpatialGrid(cell_size)
    for npc in world.npcs:
        grid.insert(npc)
    for obj in world.objects:
        grid.insert(obj)
    return grid


def compute_perceptions(
    world: Ref[World], perception_range: float, grid: Optional[SpatialGrid] = None
) -> List[PerceptionPair]:
    """Return every (perceiver, perceived, distance) with distance <= perception_range.

    Args:
        world: World snapshot to scan
        perception_range: Radius R, also used as the grid cell size
        grid: Optional pre-built grid for this world and range

    Returns:
        Perception pairs in NPC iteration order, excluding self-pairs

    Raises:
        ValueError: If perception_range is not positive
    """
    if perception_range <= 0:
        raise ValueError(f"perception_range must be positive, got {perception_range}")
    grid = grid or build_grid(world, perception_range)

    pairs: List[PerceptionPair] = []
    for npc in world.npcs:
        origin = npc.position
        own_id = npc.id
        for candidate in grid.neighbourhood(origin.x, origin.y):
            if candidate.kind == NPC.__name__ and candidate.id == own_id:
                continue
            distance = origin.distance_to(candidate.position)
            if distance <= perception_range:
                pairs.append(PerceptionPair(perceiver=npc, perceived=candidate, distance=distance))
    return pairs
