"""Shared fixtures for anthive-agents tests.

Factories build frozen game objects with sensible defaults so that each test
only spells out what it is about.
"""

from __future__ import annotations

from typing import Iterable, Optional

import pytest

from anthive_agents.policy.scripted_agent.hive.config import DeadlineConfig, HiveConfig
from anthive_agents.policy.scripted_agent.hive.types import (
    EMPTY_CARGO,
    UNIT_STATS,
    Cargo,
    Cell,
    Resource,
    ResourceType,
    Terrain,
    Tile,
    TERRAIN_COST,
    Unit,
    UnitType,
    WorldSnapshot,
)


@pytest.fixture
def make_unit():
    def _make(
        unit_id: str = "w1",
        unit_type: UnitType = UnitType.WORKER,
        position: Cell = (0, 0),
        health: Optional[int] = None,
        cargo_type: Optional[ResourceType] = None,
        cargo_amount: int = 0,
    ) -> Unit:
        cargo = Cargo(cargo_type, cargo_amount) if cargo_type is not None else EMPTY_CARGO
        hp = UNIT_STATS[unit_type].health if health is None else health
        return Unit(id=unit_id, unit_type=unit_type, position=position, health=hp, cargo=cargo)

    return _make


@pytest.fixture
def make_resource():
    def _make(position: Cell, resource_type: ResourceType = ResourceType.APPLE, amount: int = 5) -> Resource:
        return Resource(position=position, resource_type=resource_type, amount=amount)

    return _make


@pytest.fixture
def make_snapshot():
    def _make(
        turn: int = 1,
        my_units: Iterable[Unit] = (),
        enemy_units: Iterable[Unit] = (),
        resources: Iterable[Resource] = (),
        home: Iterable[Cell] = ((0, 0),),
        enemy_bases: Iterable[Cell] = (),
        rocks: Iterable[Cell] = (),
        dirt: Iterable[Cell] = (),
        score: int = 0,
    ) -> WorldSnapshot:
        tiles = {cell: Tile(cell, Terrain.ROCK) for cell in rocks}
        tiles.update({cell: Tile(cell, Terrain.DIRT, TERRAIN_COST[Terrain.DIRT]) for cell in dirt})
        return WorldSnapshot(
            turn=turn,
            my_units=list(my_units),
            enemy_units=list(enemy_units),
            resources=list(resources),
            home=list(home),
            enemy_bases=list(enemy_bases),
            tiles=tiles,
            score=score,
        )

    return _make


@pytest.fixture
def hive_config() -> HiveConfig:
    """Default config with a deadline generous enough that tests never degrade."""
    return HiveConfig(deadline=DeadlineConfig(deadline_seconds=60.0))
