"""
Per-turn situation analysis for the Hive policy.

Recomputes from a snapshot what the scheduler needs to decide: game phase,
ranked threats, food grouped by type, and the resource scoring used both to
order collection candidates and as reservation priority. :class:`WorldMemory`
keeps map knowledge (explored cells, enemy bases) and the unit-count history
behind recovery mode between turns.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Sequence

from anthive_agents.policy.scripted_agent.common.geometry import (
    cells_within,
    hex_distance,
    lerp_cell,
)

from .config import HiveConfig, PhaseConfig, RecoveryConfig, ResourceConfig
from .threat import ThreatAssessment, ThreatScorer
from .types import (
    Cell,
    GamePhase,
    Resource,
    ResourceType,
    Unit,
    UnitType,
    WorldSnapshot,
    collection_efficiency,
)

# ---------------------------------------------------------------------------
# Map memory
# ---------------------------------------------------------------------------


class WorldMemory:
    """Map knowledge and army history carried between turns.

    Besides explored cells and enemy bases, the memory keeps a short history
    of our unit count and drives recovery mode: entered after heavy losses,
    left only once the army is rebuilt and a minimum number of turns passed.
    """

    def __init__(self) -> None:
        self.explored: set[Cell] = set()
        self.enemy_bases: dict[Cell, int] = {}  # position -> last turn seen
        self.unit_counts: list[tuple[int, int]] = []  # (turn, units alive)
        self.recovery_since: Optional[int] = None

    def observe(self, snapshot: WorldSnapshot) -> None:
        visible: set[Cell] = set()
        for unit in snapshot.my_units:
            visible.update(cells_within(unit.position, unit.stats.vision))
        self.explored.update(visible)

        reported = set(snapshot.enemy_bases)
        for cell in reported:
            self.enemy_bases[cell] = snapshot.turn
        # A base cell in plain sight that the snapshot no longer reports is gone.
        for cell in list(self.enemy_bases):
            if cell in visible and cell not in reported:
                del self.enemy_bases[cell]

    def is_explored(self, cell: Cell) -> bool:
        return cell in self.explored

    def known_enemy_bases(self) -> list[Cell]:
        return sorted(self.enemy_bases)

    @property
    def in_recovery(self) -> bool:
        return self.recovery_since is not None

    def update_recovery(self, snapshot: WorldSnapshot, config: Optional[RecoveryConfig] = None) -> bool:
        """Record this turn's unit count and step recovery mode. Returns whether it is active."""
        cfg = config or RecoveryConfig()
        turn = snapshot.turn
        total = len(snapshot.my_units)
        soldiers = sum(1 for u in snapshot.my_units if u.unit_type == UnitType.SOLDIER)
        self.unit_counts.append((turn, total))
        del self.unit_counts[: -cfg.history_length]

        if self.recovery_since is None:
            if self._should_enter_recovery(turn, total, soldiers, bool(snapshot.enemy_units), cfg):
                self.recovery_since = turn
        elif (
            total >= cfg.exit_units
            and soldiers >= cfg.exit_soldiers
            and turn - self.recovery_since >= cfg.min_turns
        ):
            self.recovery_since = None
        return self.recovery_since is not None

    def _should_enter_recovery(
        self,
        turn: int,
        total: int,
        soldiers: int,
        enemies_visible: bool,
        cfg: RecoveryConfig,
    ) -> bool:
        if turn < cfg.min_turn or len(self.unit_counts) < cfg.loss_window:
            return False
        start = self.unit_counts[-cfg.loss_window][1]
        loss = (start - total) / start if start > 0 else 0.0
        if loss > cfg.loss_ratio and start >= cfg.loss_min_units:
            return True
        if total < cfg.low_units:
            return True
        return soldiers == 0 and enemies_visible and turn > cfg.no_soldier_turn

    def reset(self) -> None:
        self.explored.clear()
        self.enemy_bases.clear()
        self.unit_counts.clear()
        self.recovery_since = None


# ---------------------------------------------------------------------------
# Phase
# ---------------------------------------------------------------------------


def detect_phase(
    turn: int,
    my_unit_count: int,
    enemy_count: int,
    enemy_bases_known: int,
    config: Optional[PhaseConfig] = None,
) -> GamePhase:
    cfg = config or PhaseConfig()
    if turn > cfg.late_turn:
        return GamePhase.LATE
    if enemy_bases_known > 0 and my_unit_count >= cfg.late_min_units:
        return GamePhase.LATE
    if enemy_count > cfg.late_enemy_count and turn > cfg.late_enemy_turn:
        return GamePhase.LATE
    if turn > cfg.mid_turn:
        return GamePhase.MID
    if my_unit_count >= cfg.mid_min_units:
        return GamePhase.MID
    if enemy_count > 0 and turn > cfg.mid_enemy_turn:
        return GamePhase.MID
    return GamePhase.EARLY


# ---------------------------------------------------------------------------
# Resource scoring
# ---------------------------------------------------------------------------


class ResourceScorer:
    """Pile priority (team view) and unit-to-pile score (assignment view)."""

    def __init__(
        self,
        config: Optional[ResourceConfig] = None,
        threat_scorer: Optional[ThreatScorer] = None,
    ) -> None:
        self.config = config or ResourceConfig()
        self.threat_scorer = threat_scorer or ThreatScorer()

    def pile_safety(
        self,
        resource: Resource,
        threats: Sequence[ThreatAssessment],
        my_units: Sequence[Unit],
    ) -> float:
        cfg = self.config
        safety = self.threat_scorer.safety_discount(resource.position, threats)
        escorts = sum(
            1
            for u in my_units
            if u.unit_type == UnitType.SOLDIER and hex_distance(u.position, resource.position) <= cfg.escort_radius
        )
        if escorts:
            safety *= 1.0 + escorts * cfg.escort_bonus
        return min(safety, cfg.safety_cap)

    def pile_priority(
        self,
        resource: Resource,
        phase: GamePhase,
        nearest_unit_distance: Optional[int],
        threats: Sequence[ThreatAssessment],
        my_units: Sequence[Unit],
    ) -> float:
        """Type, proximity, phase and safety multipliers for one pile."""
        cfg = self.config
        priority = 1.0
        near = nearest_unit_distance if nearest_unit_distance is not None else 10**6
        if resource.resource_type == ResourceType.NECTAR:
            priority *= cfg.nectar_multiplier
            if near <= cfg.nectar_near_radius:
                priority *= cfg.nectar_near_bonus
        elif resource.resource_type == ResourceType.BREAD:
            priority *= cfg.bread_multiplier
            if near <= cfg.bread_near_radius:
                priority *= cfg.bread_near_bonus

        if phase == GamePhase.EARLY and resource.resource_type == ResourceType.BREAD:
            priority *= cfg.early_bread
        elif phase == GamePhase.MID and resource.resource_type == ResourceType.NECTAR:
            priority *= cfg.mid_nectar
        elif phase == GamePhase.LATE and resource.resource_type == ResourceType.NECTAR:
            priority *= cfg.late_nectar

        return priority * self.pile_safety(resource, threats, my_units)

    def collection_score(
        self,
        unit: Unit,
        resource: Resource,
        phase: GamePhase,
        threats: Sequence[ThreatAssessment],
        my_units: Sequence[Unit],
    ) -> float:
        """Ordering key for a unit's collection candidates: priority * value * efficiency / (dist + 1)."""
        distance = hex_distance(unit.position, resource.position)
        priority = self.pile_priority(resource, phase, distance, threats, my_units)
        efficiency = collection_efficiency(resource.resource_type, unit.unit_type)
        return priority * resource.value * efficiency / (distance + 1)

    def unit_score(self, unit: Unit, resource: Resource, threats: Sequence[ThreatAssessment]) -> float:
        """How well suited ``unit`` is to ``resource``; used as reservation priority."""
        cfg = self.config
        efficiency = collection_efficiency(resource.resource_type, unit.unit_type) or 0.5
        distance = hex_distance(unit.position, resource.position)
        score = efficiency * cfg.efficiency_weight
        score += max(0, cfg.distance_reach - distance)
        score += unit.cargo_capacity * cfg.cargo_weight
        return score * self.path_safety(unit.position, resource.position, threats)

    def path_safety(self, start: Cell, goal: Cell, threats: Sequence[ThreatAssessment]) -> float:
        cfg = self.config
        if not threats:
            return 1.0
        steps = hex_distance(start, goal)
        safety = 1.0
        for i in range(1, steps + 1):
            point = lerp_cell(start, goal, i / steps)
            nearby = sum(1 for t in threats if hex_distance(point, t.position) <= cfg.path_threat_radius)
            if nearby:
                safety *= max(cfg.path_threat_floor, 1.0 - nearby * cfg.path_threat_step)
        return safety


# ---------------------------------------------------------------------------
# Turn analysis
# ---------------------------------------------------------------------------


@dataclass
class TurnAnalysis:
    """Everything derived from one snapshot before scheduling starts."""

    snapshot: WorldSnapshot
    phase: GamePhase
    base: Optional[Cell]
    threats: list[ThreatAssessment] = field(default_factory=list)
    immediate_threats: list[ThreatAssessment] = field(default_factory=list)
    nearby_threats: list[ThreatAssessment] = field(default_factory=list)
    resources: list[Resource] = field(default_factory=list)
    resources_by_type: dict[ResourceType, list[Resource]] = field(default_factory=dict)
    enemy_bases: list[Cell] = field(default_factory=list)

    @property
    def turn(self) -> int:
        return self.snapshot.turn

    def enemy_at(self, cell: Cell) -> Optional[Unit]:
        for enemy in self.snapshot.enemy_units:
            if enemy.position == cell:
                return enemy
        return None

    def enemy_by_id(self, enemy_id: str) -> Optional[Unit]:
        if not enemy_id:
            return None
        for enemy in self.snapshot.enemy_units:
            if enemy.id == enemy_id:
                return enemy
        return None


def analyze_turn(
    snapshot: WorldSnapshot,
    memory: WorldMemory,
    threat_scorer: ThreatScorer,
    config: Optional[HiveConfig] = None,
) -> TurnAnalysis:
    """Update ``memory`` from the snapshot and build this turn's analysis.

    Food lying on our own base cells is left out: it is being unloaded, not
    waiting to be collected.
    """
    cfg = config or HiveConfig()
    memory.observe(snapshot)
    base = snapshot.base
    enemy_bases = memory.known_enemy_bases()

    threats = threat_scorer.rank(snapshot.enemy_units, snapshot.my_units, base)
    immediate = [
        t
        for t in threats
        if t.distance_to_base is not None and t.distance_to_base <= cfg.task.immediate_threat_radius
    ]
    nearby = [
        t for t in threats if t.distance_to_base is not None and t.distance_to_base <= cfg.task.nearby_threat_radius
    ]

    resources = [r for r in snapshot.resources if not snapshot.is_home(r.position)]
    by_type: dict[ResourceType, list[Resource]] = {t: [] for t in ResourceType}
    for res in resources:
        by_type[res.resource_type].append(res)

    phase = detect_phase(
        snapshot.turn,
        len(snapshot.my_units),
        len(snapshot.enemy_units),
        len(enemy_bases),
        cfg.phase,
    )
    if memory.update_recovery(snapshot, cfg.recovery):
        phase = GamePhase.RECOVERY
    return TurnAnalysis(
        snapshot=snapshot,
        phase=phase,
        base=base,
        threats=threats,
        immediate_threats=immediate,
        nearby_threats=nearby,
        resources=resources,
        resources_by_type=by_type,
        enemy_bases=enemy_bases,
    )
