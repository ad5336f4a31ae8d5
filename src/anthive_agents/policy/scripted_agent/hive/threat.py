"""
ThreatScorer for the Hive policy.

Ranks visible enemy units by a weighted danger score and derives the safety
discount applied to food piles on contested ground. Distances are computed
as numpy matrices (enemies x friendly units) once per call.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

from anthive_agents.policy.scripted_agent.common.geometry import hex_distance

from .config import RaidConfig, ThreatConfig
from .types import Cell, Unit, UnitType


def hex_distance_matrix(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """Pairwise hex distances between (n, 2) and (m, 2) axial arrays."""
    dq = a[:, None, 0] - b[None, :, 0]
    dr = a[:, None, 1] - b[None, :, 1]
    return np.maximum(np.maximum(np.abs(dq), np.abs(dr)), np.abs(dq + dr))


def _positions(units: Sequence[Unit]) -> np.ndarray:
    return np.array([u.position for u in units], dtype=np.int64).reshape(-1, 2)


@dataclass(frozen=True)
class ThreatAssessment:
    """One enemy with its danger score and the terms that produced it."""

    enemy: Unit
    score: float
    distance_to_base: Optional[int]
    in_melee: bool
    workers_nearby: int

    @property
    def position(self) -> Cell:
        return self.enemy.position


class ThreatScorer:
    """Weighted danger score per enemy unit.

    score = dps_weight * attack * health_fraction
          + melee_bonus                         (adjacent to any friendly unit)
          + econ_weight * workers_in_radius     (x combat_amplifier for soldiers)
          + base_weight * max(0, base_radius - distance_to_base)
          + low_health_bonus                    (health fraction under threshold)
          + per-type base threat
    """

    def __init__(self, config: Optional[ThreatConfig] = None) -> None:
        self.config = config or ThreatConfig()

    def type_threat(self, unit_type: UnitType) -> float:
        cfg = self.config
        return {
            UnitType.SOLDIER: cfg.soldier_threat,
            UnitType.SCOUT: cfg.scout_threat,
            UnitType.WORKER: cfg.worker_threat,
        }.get(unit_type, 0.0)

    def rank(
        self,
        enemies: Sequence[Unit],
        my_units: Sequence[Unit],
        base: Optional[Cell],
    ) -> list[ThreatAssessment]:
        """Enemies ordered by score, highest first; ties keep input order."""
        if not enemies:
            return []
        cfg = self.config
        enemy_pos = _positions(enemies)

        if my_units:
            friendly_pos = _positions(my_units)
            dist = hex_distance_matrix(enemy_pos, friendly_pos)
            in_melee = (dist == 1).any(axis=1)
            is_worker = np.array([u.unit_type == UnitType.WORKER for u in my_units])
            workers_near = ((dist <= cfg.econ_radius) & is_worker[None, :]).sum(axis=1)
        else:
            in_melee = np.zeros(len(enemies), dtype=bool)
            workers_near = np.zeros(len(enemies), dtype=np.int64)

        attack = np.array([e.attack for e in enemies], dtype=float)
        health_frac = np.array([e.health_fraction for e in enemies], dtype=float)
        combat = np.array([e.unit_type == UnitType.SOLDIER for e in enemies])
        type_term = np.array([self.type_threat(e.unit_type) for e in enemies], dtype=float)

        score = cfg.dps_weight * attack * health_frac
        score = score + np.where(in_melee, cfg.melee_bonus, 0.0)
        score = score + cfg.econ_weight * workers_near * np.where(combat, cfg.combat_amplifier, 1.0)
        score = score + np.where(health_frac < cfg.low_health_threshold, cfg.low_health_bonus, 0.0)
        score = score + type_term

        if base is not None:
            base_dist = hex_distance_matrix(enemy_pos, np.array([base], dtype=np.int64))[:, 0]
            score = score + cfg.base_weight * np.maximum(0, cfg.base_radius - base_dist)
        else:
            base_dist = None

        order = np.argsort(-score, kind="stable")
        return [
            ThreatAssessment(
                enemy=enemies[i],
                score=float(score[i]),
                distance_to_base=int(base_dist[i]) if base_dist is not None else None,
                in_melee=bool(in_melee[i]),
                workers_nearby=int(workers_near[i]),
            )
            for i in order
        ]

    def safety_discount(self, cell: Cell, threats: Sequence[ThreatAssessment]) -> float:
        """Multiplier in [floor, 1] for a pile at ``cell``: 1 - step per threat in radius."""
        cfg = self.config
        if not threats:
            return 1.0
        positions = np.array([t.position for t in threats], dtype=np.int64).reshape(-1, 2)
        d = hex_distance_matrix(np.array([cell], dtype=np.int64), positions)[0]
        nearby = int((d <= cfg.discount_radius).sum())
        if nearby == 0:
            return 1.0
        return max(cfg.discount_floor, 1.0 - cfg.discount_step * nearby)


def can_engage(unit: Unit, enemy: Unit, ratio: float = 0.7) -> bool:
    return unit.attack >= ratio * enemy.attack


def unit_power(unit: Unit) -> float:
    return unit.attack * unit.health / 100.0


# ---------------------------------------------------------------------------
# Raid feasibility
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RaidAssessment:
    target: Cell
    feasible: bool
    score: float
    power_ratio: float = 0.0
    distance: int = 0
    reason: str = ""


def assess_raid(
    unit: Unit,
    enemy_base: Cell,
    my_units: Sequence[Unit],
    enemy_units: Sequence[Unit],
    home: Optional[Cell],
    turn: int,
    calories: int = 0,
    config: Optional[RaidConfig] = None,
) -> RaidAssessment:
    """Whether attacking ``enemy_base`` with our soldiers is worth it.

    Power = attack * health / 100 summed over our soldiers, against the
    defenders near their base plus a flat base bonus.
    """
    cfg = config or RaidConfig()
    if home is None:
        return RaidAssessment(enemy_base, False, 0.0, reason="no home")
    distance = hex_distance(unit.position, enemy_base)
    if distance > cfg.max_distance:
        return RaidAssessment(enemy_base, False, 0.0, distance=distance, reason="too far")

    my_power = sum(unit_power(u) for u in my_units if u.unit_type == UnitType.SOLDIER)
    defenders = [e for e in enemy_units if hex_distance(e.position, enemy_base) <= cfg.defense_radius]
    enemy_power = sum(unit_power(e) for e in defenders) + cfg.base_power
    if my_power < enemy_power * cfg.min_power_ratio:
        return RaidAssessment(enemy_base, False, 0.0, distance=distance, reason="outgunned")

    if turn > 50:
        phase_multiplier = 2.0
    elif turn > 25:
        phase_multiplier = 1.5
    else:
        phase_multiplier = 1.0

    power_ratio = min(my_power / enemy_power, 2.0)
    score = power_ratio * 100.0
    score += max(0, 50 - distance)
    score -= min(30.0, hex_distance(home, enemy_base) * 0.5)
    score += min(30.0, calories / 100.0)
    score *= phase_multiplier

    feasible = score >= cfg.min_score
    return RaidAssessment(
        enemy_base,
        feasible,
        score,
        power_ratio=power_ratio,
        distance=distance,
        reason="ok" if feasible else "score too low",
    )
