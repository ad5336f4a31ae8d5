"""
Types and game constants for the Hive policy.

Cells are axial ``(q, r)`` tuples. Units, resources and tiles are frozen
dataclasses built once per turn by :mod:`snapshot` and never mutated by the
planner.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Optional

Cell = tuple[int, int]
ResourceKey = tuple[int, int, int]  # (q, r, resource type)

# Wire value for an anthill in the ants/enemies lists. Never a controllable unit.
ANTHILL_TYPE = 0


class UnitType(IntEnum):
    """Controllable unit types (wire values)."""

    WORKER = 1
    SOLDIER = 2
    SCOUT = 3


class ResourceType(IntEnum):
    """Food types (wire values)."""

    APPLE = 1
    BREAD = 2
    NECTAR = 3


class Terrain(IntEnum):
    """Map tile types (wire values)."""

    ANTHILL = 1
    EMPTY = 2
    DIRT = 3
    ACID = 4
    ROCK = 5


class GamePhase(Enum):
    """High-level game phase for candidate selection."""

    EARLY = "early"
    MID = "mid"
    LATE = "late"
    RECOVERY = "recovery"


RESOURCE_CALORIES: dict[ResourceType, int] = {
    ResourceType.APPLE: 10,
    ResourceType.BREAD: 25,
    ResourceType.NECTAR: 60,
}

HIGHEST_VALUE_RESOURCE = max(RESOURCE_CALORIES, key=lambda t: RESOURCE_CALORIES[t])

TERRAIN_COST: dict[Terrain, int] = {
    Terrain.ANTHILL: 1,
    Terrain.EMPTY: 1,
    Terrain.DIRT: 2,
    Terrain.ACID: 1,
}


@dataclass(frozen=True)
class UnitStats:
    speed: int
    vision: int
    health: int
    attack: int
    cargo_capacity: int


UNIT_STATS: dict[UnitType, UnitStats] = {
    UnitType.SCOUT: UnitStats(speed=7, vision=4, health=100, attack=35, cargo_capacity=4),
    UnitType.SOLDIER: UnitStats(speed=4, vision=2, health=180, attack=70, cargo_capacity=2),
    UnitType.WORKER: UnitStats(speed=3, vision=2, health=120, attack=25, cargo_capacity=8),
}

COLLECTION_EFFICIENCY: dict[ResourceType, dict[UnitType, float]] = {
    ResourceType.NECTAR: {UnitType.SCOUT: 1.0, UnitType.WORKER: 0.8, UnitType.SOLDIER: 0.6},
    ResourceType.BREAD: {UnitType.WORKER: 1.0, UnitType.SCOUT: 0.8, UnitType.SOLDIER: 0.6},
    ResourceType.APPLE: {UnitType.WORKER: 1.0, UnitType.SCOUT: 0.9, UnitType.SOLDIER: 0.7},
}


def resource_value(resource_type: object) -> int:
    """Caloric value of a resource type; 0 for anything unknown."""
    try:
        return RESOURCE_CALORIES[ResourceType(resource_type)]
    except (ValueError, KeyError):
        return 0


def collection_efficiency(resource_type: object, unit_type: object) -> float:
    try:
        return COLLECTION_EFFICIENCY[ResourceType(resource_type)][UnitType(unit_type)]
    except (ValueError, KeyError):
        return 0.0


def unit_stats(unit_type: object) -> Optional[UnitStats]:
    try:
        return UNIT_STATS[UnitType(unit_type)]
    except (ValueError, KeyError):
        return None


# ---------------------------------------------------------------------------
# World entities
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Cargo:
    """What a unit carries: at most one resource type at a time."""

    resource_type: Optional[ResourceType] = None
    amount: int = 0

    @property
    def is_empty(self) -> bool:
        return self.resource_type is None or self.amount <= 0


EMPTY_CARGO = Cargo()


@dataclass(frozen=True)
class Unit:
    """A friendly or enemy unit as seen this turn."""

    id: str
    unit_type: UnitType
    position: Cell
    health: int
    cargo: Cargo = EMPTY_CARGO

    @property
    def stats(self) -> UnitStats:
        return UNIT_STATS[self.unit_type]

    @property
    def speed(self) -> int:
        return self.stats.speed

    @property
    def attack(self) -> int:
        return self.stats.attack

    @property
    def cargo_capacity(self) -> int:
        return self.stats.cargo_capacity

    @property
    def cargo_ratio(self) -> float:
        if self.cargo.is_empty:
            return 0.0
        return self.cargo.amount / self.cargo_capacity

    @property
    def health_fraction(self) -> float:
        return max(0.0, min(1.0, self.health / self.stats.health))


@dataclass(frozen=True)
class Resource:
    """A visible food pile."""

    position: Cell
    resource_type: ResourceType
    amount: int = 1

    @property
    def key(self) -> ResourceKey:
        return (self.position[0], self.position[1], int(self.resource_type))

    @property
    def value(self) -> int:
        return RESOURCE_CALORIES[self.resource_type]


@dataclass(frozen=True)
class Tile:
    position: Cell
    terrain: Terrain
    cost: int = 1

    @property
    def passable(self) -> bool:
        return self.terrain != Terrain.ROCK


@dataclass
class WorldSnapshot:
    """Read-only view of one turn of the game."""

    turn: int
    my_units: list[Unit] = field(default_factory=list)
    enemy_units: list[Unit] = field(default_factory=list)
    resources: list[Resource] = field(default_factory=list)
    home: list[Cell] = field(default_factory=list)
    enemy_bases: list[Cell] = field(default_factory=list)
    tiles: dict[Cell, Tile] = field(default_factory=dict)
    score: int = 0
    next_turn_in: Optional[float] = None
    dropped_records: int = 0

    @property
    def base(self) -> Optional[Cell]:
        return self.home[0] if self.home else None

    @property
    def unit_ids(self) -> set[str]:
        return {u.id for u in self.my_units}

    @property
    def resource_keys(self) -> set[ResourceKey]:
        return {r.key for r in self.resources}

    def unit(self, unit_id: str) -> Optional[Unit]:
        for u in self.my_units:
            if u.id == unit_id:
                return u
        return None

    def resource_at(self, key: ResourceKey) -> Optional[Resource]:
        for res in self.resources:
            if res.key == key:
                return res
        return None

    def is_home(self, cell: Cell) -> bool:
        return cell in self.home

    def move_cost(self, cell: Cell) -> int:
        tile = self.tiles.get(cell)
        return tile.cost if tile is not None else 1

    def is_passable(self, cell: Cell) -> bool:
        tile = self.tiles.get(cell)
        return tile is None or tile.passable


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Command:
    """A multi-step move order for one unit."""

    unit_id: str
    route: tuple[Cell, ...]
    task: str

    def to_wire(self) -> dict:
        return {"ant": self.unit_id, "path": [{"q": q, "r": r} for q, r in self.route]}


def moves_payload(commands: list[Command]) -> dict:
    return {"moves": [c.to_wire() for c in commands]}
