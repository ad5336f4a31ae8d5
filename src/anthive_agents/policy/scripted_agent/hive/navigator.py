"""A* navigation on the hex grid.

Three layers:

- :class:`HexPathfinder` searches with uniform edge cost and a hex-distance
  heuristic. Terrain cost and unit budgets are not its concern.
- :class:`PathValidator` trims a raw route to the prefix the unit can legally
  walk this turn (adjacency, movement budget, occupancy).
- :class:`RoutePlanner` glues the two together for the scheduler, including
  alternative goals, intermediate waypoints for far targets and a one-step
  sidestep when the first step is blocked.
"""

from __future__ import annotations

import heapq
from dataclasses import dataclass
from typing import Callable, Optional

from anthive_agents.policy.scripted_agent.common.geometry import (
    hex_distance,
    is_adjacent,
    lerp_cell,
    neighbors,
)

from .config import SearchConfig
from .types import Cell, Unit, UnitType, WorldSnapshot

WalkablePredicate = Callable[[Cell], bool]
MoveCost = Callable[[Cell], int]


class HexPathfinder:
    """A* over the six hex directions.

    Open-list ties are broken by (f, h, insertion order): among equal f the
    node nearer the goal wins, then the one pushed first. Neighbours are
    pushed in direction-table order, so results are reproducible.
    """

    def __init__(self, expansion_factor: int = 6) -> None:
        self.expansion_factor = expansion_factor
        self.last_expansions = 0

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def find_path(
        self,
        start: Cell,
        goal: Cell,
        is_walkable: WalkablePredicate,
        max_distance: int = 100,
    ) -> Optional[list[Cell]]:
        """Route from ``start`` (exclusive) to ``goal`` (inclusive), or None.

        ``[]`` when start == goal. None without searching when the goal is not
        walkable, and None when the expansion cap (max_distance * factor) is hit.
        """
        self.last_expansions = 0
        if start == goal:
            return []
        if not is_walkable(goal):
            return None

        max_expansions = max_distance * self.expansion_factor
        h0 = hex_distance(start, goal)
        tie = 0
        open_heap: list[tuple[int, int, int, Cell]] = [(h0, h0, tie, start)]
        came_from: dict[Cell, Cell] = {}
        g_score: dict[Cell, int] = {start: 0}
        closed: set[Cell] = set()

        while open_heap:
            _, _, _, current = heapq.heappop(open_heap)
            if current in closed:
                continue
            if current == goal:
                return _reconstruct(came_from, current)
            closed.add(current)
            self.last_expansions += 1
            if self.last_expansions > max_expansions:
                return None

            g_current = g_score[current]
            for nb in neighbors(current):
                if nb in closed or not is_walkable(nb):
                    continue
                tentative = g_current + 1
                if tentative > max_distance:
                    continue
                if tentative < g_score.get(nb, tentative + 1):
                    came_from[nb] = current
                    g_score[nb] = tentative
                    h = hex_distance(nb, goal)
                    tie += 1
                    heapq.heappush(open_heap, (tentative + h, h, tie, nb))

        return None

    def find_alternative_path(
        self,
        start: Cell,
        goal: Cell,
        is_walkable: WalkablePredicate,
        max_distance: int = 100,
    ) -> Optional[list[Cell]]:
        """Direct path, else a path to the first reachable neighbour of ``goal``."""
        path = self.find_path(start, goal, is_walkable, max_distance)
        if path is not None:
            return path
        for alt in neighbors(goal):
            path = self.find_path(start, alt, is_walkable, max_distance)
            if path is not None:
                return path
        return None


def _reconstruct(came_from: dict[Cell, Cell], current: Cell) -> list[Cell]:
    path = [current]
    while current in came_from:
        current = came_from[current]
        path.append(current)
    path.reverse()
    return path[1:]


# ---------------------------------------------------------------------------
# Occupancy
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Occupant:
    unit_id: str
    unit_type: UnitType
    enemy: bool


class Occupancy:
    """Who stands where this turn, from the moving units' point of view.

    Enemies always block. A friendly unit blocks only units of its own type.
    Destinations of already-planned friendly moves are recorded with
    :meth:`move` so that later units in the same turn respect them.
    """

    def __init__(self) -> None:
        self._cells: dict[Cell, list[Occupant]] = {}

    @classmethod
    def from_snapshot(cls, snapshot: WorldSnapshot) -> Occupancy:
        occ = cls()
        for u in snapshot.my_units:
            occ.add(u.position, Occupant(u.id, u.unit_type, enemy=False))
        for e in snapshot.enemy_units:
            occ.add(e.position, Occupant(e.id, e.unit_type, enemy=True))
        return occ

    def add(self, cell: Cell, occupant: Occupant) -> None:
        self._cells.setdefault(cell, []).append(occupant)

    def remove_unit(self, unit_id: str) -> None:
        for cell in list(self._cells):
            kept = [o for o in self._cells[cell] if o.enemy or o.unit_id != unit_id]
            if kept:
                self._cells[cell] = kept
            else:
                del self._cells[cell]

    def move(self, unit: Unit, destination: Cell) -> None:
        self.remove_unit(unit.id)
        self.add(destination, Occupant(unit.id, unit.unit_type, enemy=False))

    def occupants(self, cell: Cell) -> list[Occupant]:
        return list(self._cells.get(cell, ()))

    def block_reason(self, cell: Cell, unit: Unit) -> Optional[str]:
        for occ in self._cells.get(cell, ()):
            if occ.enemy:
                return "enemy"
            if occ.unit_id != unit.id and occ.unit_type == unit.unit_type:
                return "same_type"
        return None

    def blocks(self, cell: Cell, unit: Unit) -> bool:
        return self.block_reason(cell, unit) is not None

    def has_enemy(self, cell: Cell) -> bool:
        return any(o.enemy for o in self._cells.get(cell, ()))


def build_occupancy(snapshot: WorldSnapshot, moving_unit: Optional[Unit] = None) -> Occupancy:
    """Occupancy as seen by ``moving_unit``, which never blocks itself."""
    occ = Occupancy.from_snapshot(snapshot)
    if moving_unit is not None:
        occ.remove_unit(moving_unit.id)
    return occ


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


@dataclass
class ValidationResult:
    route: list[Cell]
    reason: str = "ok"

    @property
    def blocked(self) -> bool:
        return not self.route


class PathValidator:
    """Trims raw routes to what a unit can legally walk this turn."""

    def validate_and_correct(
        self,
        unit: Unit,
        raw_route: list[Cell],
        occupancy: Occupancy,
        move_cost: Optional[MoveCost] = None,
    ) -> list[Cell]:
        """Longest valid prefix of ``raw_route``; empty when fully blocked."""
        return self.validate(unit, raw_route, occupancy, move_cost).route

    def validate(
        self,
        unit: Unit,
        raw_route: list[Cell],
        occupancy: Occupancy,
        move_cost: Optional[MoveCost] = None,
    ) -> ValidationResult:
        if not raw_route:
            return ValidationResult([], "empty")
        cost_of = move_cost or (lambda _cell: 1)
        budget = unit.speed
        current = unit.position
        valid: list[Cell] = []
        for step in raw_route:
            if not is_adjacent(current, step):
                return ValidationResult(valid, "not_adjacent")
            cost = cost_of(step)
            if cost > budget:
                return ValidationResult(valid, "budget")
            reason = occupancy.block_reason(step, unit)
            if reason is not None:
                return ValidationResult(valid, reason)
            valid.append(step)
            current = step
            budget -= cost
        return ValidationResult(valid)

    def sidestep(
        self,
        unit: Unit,
        target: Cell,
        occupancy: Occupancy,
        is_passable: Optional[WalkablePredicate] = None,
    ) -> Optional[Cell]:
        """Free neighbour of the unit closest to ``target``, if it gets closer."""
        here = hex_distance(unit.position, target)
        best: Optional[Cell] = None
        best_dist = here
        for cell in neighbors(unit.position):
            if occupancy.blocks(cell, unit):
                continue
            if is_passable is not None and not is_passable(cell):
                continue
            d = hex_distance(cell, target)
            if d < best_dist:
                best = cell
                best_dist = d
        return best


# ---------------------------------------------------------------------------
# Route planning
# ---------------------------------------------------------------------------


class RoutePlanner:
    """Computes the executable route for one unit toward one target."""

    def __init__(
        self,
        config: Optional[SearchConfig] = None,
        pathfinder: Optional[HexPathfinder] = None,
        validator: Optional[PathValidator] = None,
    ) -> None:
        self.config = config or SearchConfig()
        self.pathfinder = pathfinder or HexPathfinder(self.config.expansion_factor)
        self.validator = validator or PathValidator()

    def max_distance_for(self, unit: Unit) -> int:
        return min(self.config.max_distance_cap, unit.speed * self.config.speed_multiplier)

    def walkable_for(self, unit: Unit, snapshot: WorldSnapshot, occupancy: Occupancy) -> WalkablePredicate:
        def is_walkable(cell: Cell) -> bool:
            return snapshot.is_passable(cell) and not occupancy.blocks(cell, unit)

        return is_walkable

    def route(
        self,
        unit: Unit,
        target: Cell,
        snapshot: WorldSnapshot,
        occupancy: Occupancy,
    ) -> Optional[list[Cell]]:
        """Executable route toward ``target``.

        ``[]`` when the unit already stands on the target. None when no legal
        first step exists.
        """
        if unit.position == target:
            return []
        max_distance = self.max_distance_for(unit)
        goal = target
        if hex_distance(unit.position, target) > max_distance:
            goal = self._waypoint(unit.position, target, max_distance // 2)

        is_walkable = self.walkable_for(unit, snapshot, occupancy)
        raw = self.pathfinder.find_alternative_path(unit.position, goal, is_walkable, max_distance)
        if raw is not None:
            if not raw:
                return []
            valid = self.validator.validate_and_correct(unit, raw, occupancy, snapshot.move_cost)
            if valid:
                return valid
        step = self.validator.sidestep(unit, target, occupancy, snapshot.is_passable)
        if step is None or snapshot.move_cost(step) > unit.speed:
            return None
        return [step]

    @staticmethod
    def _waypoint(start: Cell, target: Cell, reach: int) -> Cell:
        total = hex_distance(start, target)
        if total <= 0 or reach <= 0:
            return target
        return lerp_cell(start, target, reach / total)
