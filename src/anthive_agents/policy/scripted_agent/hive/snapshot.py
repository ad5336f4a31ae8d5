"""Wire snapshot parsing.

The arena endpoint returns ``{turnNo, score, ants, enemies, food, home, map,
nextTurnIn}``. Each record is validated on its own so that one malformed ant
or food pile is dropped and counted instead of failing the whole turn.
"""

from __future__ import annotations

from typing import Any, Iterable, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .types import (
    ANTHILL_TYPE,
    TERRAIN_COST,
    UNIT_STATS,
    Cargo,
    Cell,
    Resource,
    ResourceType,
    Terrain,
    Tile,
    Unit,
    UnitType,
    WorldSnapshot,
)

M = TypeVar("M", bound=BaseModel)


class _WireModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class WirePosition(_WireModel):
    q: int
    r: int


class WireCargo(_WireModel):
    type: int = Field(default=0)
    amount: int = Field(default=0)


class WireAnt(_WireModel):
    q: int
    r: int
    type: int
    id: str = Field(default="")
    health: Optional[int] = Field(default=None)
    food: Optional[WireCargo] = Field(default=None)


class WireFood(_WireModel):
    q: int
    r: int
    type: int
    amount: int = Field(default=1)


class WireTile(_WireModel):
    q: int
    r: int
    type: int
    cost: Optional[int] = Field(default=None)


class WireArena(_WireModel):
    turnNo: int = Field(default=0)
    score: int = Field(default=0)
    nextTurnIn: Optional[float] = Field(default=None)
    ants: list[Any] = Field(default_factory=list)
    enemies: list[Any] = Field(default_factory=list)
    food: list[Any] = Field(default_factory=list)
    home: list[Any] = Field(default_factory=list)
    map: list[Any] = Field(default_factory=list)


class SnapshotError(ValueError):
    """The snapshot envelope itself could not be read."""


def _validate_each(model: type[M], records: Iterable[Any]) -> tuple[list[M], int]:
    parsed: list[M] = []
    dropped = 0
    for record in records:
        try:
            parsed.append(model.model_validate(record))
        except ValidationError:
            dropped += 1
    return parsed, dropped


def _to_unit(ant: WireAnt) -> Optional[Unit]:
    try:
        unit_type = UnitType(ant.type)
    except ValueError:
        return None
    stats_health = UNIT_STATS[unit_type].health
    cargo = Cargo()
    if ant.food is not None and ant.food.amount > 0:
        try:
            cargo = Cargo(ResourceType(ant.food.type), ant.food.amount)
        except ValueError:
            cargo = Cargo()
    health = ant.health if ant.health is not None else stats_health
    return Unit(id=ant.id, unit_type=unit_type, position=(ant.q, ant.r), health=health, cargo=cargo)


def _to_resource(food: WireFood) -> Optional[Resource]:
    try:
        return Resource(position=(food.q, food.r), resource_type=ResourceType(food.type), amount=food.amount)
    except ValueError:
        return None


def _to_tile(tile: WireTile) -> Optional[Tile]:
    try:
        terrain = Terrain(tile.type)
    except ValueError:
        return None
    cost = tile.cost if tile.cost is not None else TERRAIN_COST.get(terrain, 1)
    return Tile(position=(tile.q, tile.r), terrain=terrain, cost=max(1, cost))


def parse_snapshot(payload: Any) -> WorldSnapshot:
    """Convert an arena payload into a :class:`WorldSnapshot`.

    Raises :class:`SnapshotError` only when the envelope is not a mapping or its
    top-level fields have the wrong shape. Individual records that fail
    validation, or carry an unknown unit/food/tile type, are dropped and
    counted in ``dropped_records``.
    """
    if not isinstance(payload, dict):
        raise SnapshotError(f"snapshot must be an object, got {type(payload).__name__}")
    try:
        arena = WireArena.model_validate(payload)
    except ValidationError as exc:
        raise SnapshotError(str(exc)) from exc

    dropped = 0
    ants, n = _validate_each(WireAnt, arena.ants)
    dropped += n
    enemies, n = _validate_each(WireAnt, arena.enemies)
    dropped += n
    food, n = _validate_each(WireFood, arena.food)
    dropped += n
    home, n = _validate_each(WirePosition, arena.home)
    dropped += n
    tiles, n = _validate_each(WireTile, arena.map)
    dropped += n

    my_units: list[Unit] = []
    for ant in ants:
        if ant.type == ANTHILL_TYPE:
            continue
        unit = _to_unit(ant)
        if unit is None or not unit.id:
            dropped += 1
            continue
        my_units.append(unit)

    enemy_units: list[Unit] = []
    enemy_bases: list[Cell] = []
    for ant in enemies:
        if ant.type == ANTHILL_TYPE:
            enemy_bases.append((ant.q, ant.r))
            continue
        unit = _to_unit(ant)
        if unit is None:
            dropped += 1
            continue
        enemy_units.append(unit)

    resources: list[Resource] = []
    for f in food:
        res = _to_resource(f)
        if res is None:
            dropped += 1
            continue
        resources.append(res)

    tile_map: dict[Cell, Tile] = {}
    for t in tiles:
        tile = _to_tile(t)
        if tile is None:
            dropped += 1
            continue
        tile_map[tile.position] = tile

    return WorldSnapshot(
        turn=arena.turnNo,
        my_units=my_units,
        enemy_units=enemy_units,
        resources=resources,
        home=[(p.q, p.r) for p in home],
        enemy_bases=enemy_bases,
        tiles=tile_map,
        score=arena.score,
        next_turn_in=arena.nextTurnIn,
        dropped_records=dropped,
    )
