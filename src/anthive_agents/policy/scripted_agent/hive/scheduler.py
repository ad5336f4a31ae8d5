"""
UnitTaskScheduler for the Hive policy.

Decides one task per unit per turn. Steps are evaluated in order and the
first that yields a decision wins:

1. return to base when carrying nectar or a nearly full load
2. end-of-game horizon recall for units that could not make it home
3. continuation of the cached task while its target stays valid
4. new assignment from a type- and phase-dependent candidate list (recovery
   mode drops the phase part)
5. patrol near base

Tasks live in a :class:`TaskCache` that persists across turns. COLLECT tasks
are backed by a reservation in the shared :class:`ResourceReservationTable`;
when the table drops a reservation for any reason the matching task is
dropped through the release listener.
"""

from __future__ import annotations

import math
import random
from dataclasses import dataclass, field
from typing import Callable, Optional, Sequence

from anthive_agents.policy.scripted_agent.common.geometry import (
    hex_distance,
    lerp_cell,
    polar_offset,
    ring_corners,
    spiral,
)

from .analysis import ResourceScorer, TurnAnalysis, WorldMemory
from .config import HiveConfig
from .navigator import Occupancy, RoutePlanner
from .reservations import Reservation, ResourceReservationTable
from .tasks import (
    EXPLORATION_KINDS,
    LOW_PRIORITY_KINDS,
    TaskCache,
    TaskKind,
    TaskPriority,
    UnitTask,
)
from .threat import ThreatAssessment, ThreatScorer, assess_raid, can_engage
from .trace import TraceLog
from .types import (
    HIGHEST_VALUE_RESOURCE,
    Cell,
    Command,
    GamePhase,
    Resource,
    ResourceType,
    Unit,
    UnitType,
    WorldSnapshot,
)

# ---------------------------------------------------------------------------
# Decision records
# ---------------------------------------------------------------------------


@dataclass
class SchedulingContext:
    """Per-turn state shared by every unit's decision."""

    analysis: TurnAnalysis
    occupancy: Occupancy
    memory: WorldMemory
    degraded: bool = False
    trace: Optional[TraceLog] = None

    @property
    def snapshot(self) -> WorldSnapshot:
        return self.analysis.snapshot

    @property
    def turn(self) -> int:
        return self.analysis.turn


@dataclass
class Decision:
    """What one unit does this turn. No task, or an empty route, means no command."""

    unit_id: str
    task: Optional[UnitTask] = None
    route: list[Cell] = field(default_factory=list)
    step: str = ""

    @property
    def command(self) -> Optional[Command]:
        if self.task is None or not self.route:
            return None
        return Command(unit_id=self.unit_id, route=tuple(self.route), task=self.task.tag)


@dataclass(frozen=True)
class Candidate:
    kind: TaskKind
    high_value_only: bool = False


# ---------------------------------------------------------------------------
# Candidate lists
# ---------------------------------------------------------------------------

TYPE_CANDIDATES: dict[UnitType, tuple[Candidate, ...]] = {
    UnitType.SCOUT: (
        Candidate(TaskKind.FIND_ENEMY_BASE),
        Candidate(TaskKind.AGGRESSIVE_EXPLORE),
        Candidate(TaskKind.EXPLORE),
        Candidate(TaskKind.COLLECT),
        Candidate(TaskKind.RESOURCE_SCOUTING),
    ),
    UnitType.WORKER: (
        Candidate(TaskKind.COLLECT),
        Candidate(TaskKind.ASSIST_RAID),
    ),
    UnitType.SOLDIER: (
        Candidate(TaskKind.ENGAGE),
        Candidate(TaskKind.TERRITORY_DEFENSE),
    ),
}

PHASE_CANDIDATES: dict[GamePhase, tuple[Candidate, ...]] = {
    GamePhase.EARLY: (
        Candidate(TaskKind.COLLECT),
        Candidate(TaskKind.AGGRESSIVE_EXPLORE),
    ),
    GamePhase.MID: (
        Candidate(TaskKind.FIND_ENEMY_BASE),
        Candidate(TaskKind.TERRITORY_DEFENSE),
    ),
    GamePhase.LATE: (
        Candidate(TaskKind.RAID_ENEMY_BASE),
        Candidate(TaskKind.COLLECT, high_value_only=True),
    ),
    # Recovery keeps only the threat and unit-type candidates
    GamePhase.RECOVERY: (),
}


def candidate_list(
    unit_type: UnitType,
    phase: GamePhase,
    enemy_base_known: bool,
    immediate_threats: bool,
) -> list[Candidate]:
    """Ordered new-task candidates for a unit. Duplicates keep their first position."""
    ordered: list[Candidate] = []
    if enemy_base_known:
        ordered.append(Candidate(TaskKind.RAID_ENEMY_BASE))
    if immediate_threats:
        ordered.append(Candidate(TaskKind.IMMEDIATE_DEFENSE))
    ordered.extend(TYPE_CANDIDATES.get(unit_type, ()))
    ordered.extend(PHASE_CANDIDATES[phase])

    seen: set[Candidate] = set()
    result: list[Candidate] = []
    for cand in ordered:
        if cand in seen:
            continue
        # Soldiers are driven by the combat path only
        if unit_type == UnitType.SOLDIER and cand.kind == TaskKind.COLLECT:
            continue
        seen.add(cand)
        result.append(cand)
    return result


def resource_hotspots(resources: Sequence[Resource], radius: int) -> list[Cell]:
    """Cluster centres of nearby piles, most valuable cluster first."""
    clusters: list[tuple[int, Cell]] = []
    clustered: set[Cell] = set()
    for res in resources:
        if res.position in clustered:
            continue
        members = [
            r for r in resources if r.position not in clustered and hex_distance(r.position, res.position) <= radius
        ]
        clustered.update(m.position for m in members)
        clusters.append((sum(m.value for m in members), res.position))
    clusters.sort(key=lambda c: c[0], reverse=True)
    return [center for _, center in clusters]


# ---------------------------------------------------------------------------
# Scheduler
# ---------------------------------------------------------------------------

Planner = Callable[[Unit, SchedulingContext, Candidate], Optional[Decision]]


class UnitTaskScheduler:
    """Per-unit task selection on top of the reservation table and route planner."""

    def __init__(
        self,
        table: ResourceReservationTable,
        config: Optional[HiveConfig] = None,
        planner: Optional[RoutePlanner] = None,
        threat_scorer: Optional[ThreatScorer] = None,
        resource_scorer: Optional[ResourceScorer] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.config = config or HiveConfig()
        self.table = table
        self.tasks = TaskCache(self.config.task.stale_turns)
        self.planner = planner or RoutePlanner(self.config.search)
        self.threat_scorer = threat_scorer or ThreatScorer(self.config.threat)
        self.resource_scorer = resource_scorer or ResourceScorer(self.config.resource, self.threat_scorer)
        self.rng = rng or random.Random(self.config.seed)
        self.table.add_release_listener(self.on_reservation_released)

        self._planners: dict[TaskKind, Planner] = {
            TaskKind.RETURN_TO_BASE: self._plan_return,
            TaskKind.IMMEDIATE_DEFENSE: self._plan_immediate_defense,
            TaskKind.COLLECT: self._plan_collect,
            TaskKind.EXPLORE: self._plan_explore,
            TaskKind.AGGRESSIVE_EXPLORE: self._plan_aggressive_explore,
            TaskKind.FIND_ENEMY_BASE: self._plan_find_enemy_base,
            TaskKind.RAID_ENEMY_BASE: self._plan_raid,
            TaskKind.ASSIST_RAID: self._plan_assist_raid,
            TaskKind.ENGAGE: self._plan_engage,
            TaskKind.TERRITORY_DEFENSE: self._plan_territory_defense,
            TaskKind.RESOURCE_SCOUTING: self._plan_resource_scouting,
            TaskKind.PATROL: self._plan_patrol,
        }
        self._steps: tuple[tuple[str, Callable[[Unit, SchedulingContext], Optional[Decision]]], ...] = (
            ("return", self._return_to_base),
            ("horizon", self._horizon_restriction),
            ("continue", self._continue_task),
            ("assign", self._assign_new_task),
            ("default", self._default_patrol),
        )

    # ------------------------------------------------------------------
    # Turn lifecycle
    # ------------------------------------------------------------------

    def begin_turn(self, snapshot: WorldSnapshot) -> list[tuple[UnitTask, str]]:
        """Drop tasks of dead units and tasks past the staleness window."""
        dropped = self.tasks.reconcile(snapshot.unit_ids, snapshot.turn)
        for task, _reason in dropped:
            if task.kind == TaskKind.COLLECT:
                self.table.release(task.unit_id)
        return dropped

    def on_reservation_released(self, reservation: Reservation, reason: str) -> None:
        task = self.tasks.get(reservation.holder)
        if task is not None and task.kind == TaskKind.COLLECT and task.resource_key == reservation.resource_key:
            self.tasks.drop(reservation.holder)

    def reassign_orphans(self, analysis: TurnAnalysis) -> list[Reservation]:
        """Hand unclaimed piles to idle units before per-unit scheduling.

        Idle means no cached task (or only a patrol), not a soldier, not loaded
        enough to be in restricted or return mode, and not recalled by the
        end-of-game horizon.
        """
        snapshot = analysis.snapshot
        idle: list[Unit] = []
        for unit in snapshot.my_units:
            if unit.unit_type == UnitType.SOLDIER:
                continue
            if not unit.cargo.is_empty and unit.cargo_ratio >= self.config.cargo.restricted_ratio:
                continue
            if self.needs_return(unit) or self.beyond_horizon(unit, analysis.base, snapshot.turn):
                continue
            task = self.tasks.get(unit.id)
            if task is not None and task.kind != TaskKind.PATROL:
                continue
            idle.append(unit)
        if not idle:
            return []

        threats = analysis.threats

        def score(unit: Unit, res: Resource) -> float:
            if not self._within_horizon(unit, res.position, analysis):
                return 0.0
            return self.resource_scorer.unit_score(unit, res, threats)

        return self.table.reassign_orphans(idle, analysis.resources, score, snapshot.turn)

    # ------------------------------------------------------------------
    # Decision
    # ------------------------------------------------------------------

    def decide(self, unit: Unit, ctx: SchedulingContext) -> Decision:
        trace = ctx.trace
        for name, step in self._steps:
            decision = step(unit, ctx)
            if decision is None:
                if trace is not None:
                    trace.skip(name)
                continue
            decision.step = name
            if trace is not None:
                trace.activate(name, decision.task.tag if decision.task else "")
                trace.task_tag = decision.task.tag if decision.task else ""
                trace.target = decision.task.target if decision.task else None
                trace.route_len = len(decision.route)
            return decision
        return Decision(unit.id)

    def fallback(self, unit: Unit, ctx: SchedulingContext) -> Decision:
        """Default patrol for a unit whose regular decision raised."""
        self.tasks.drop(unit.id)
        self.table.release(unit.id)
        decision = self._default_patrol(unit, ctx) or Decision(unit.id)
        decision.step = "fallback"
        return decision

    def needs_return(self, unit: Unit) -> bool:
        if unit.cargo.is_empty:
            return False
        return unit.cargo.resource_type == HIGHEST_VALUE_RESOURCE or unit.cargo_ratio >= self.config.cargo.return_ratio

    def horizon_limit(self, unit: Unit, turn: int) -> Optional[int]:
        """Farthest distance from base the unit may be at, or None outside the end-game window."""
        cfg = self.config.horizon
        turns_left = cfg.game_end_turn - turn
        if turns_left > cfg.horizon_turns:
            return None
        return (turns_left * unit.speed) // 2 - cfg.safety_margin

    def beyond_horizon(self, unit: Unit, base: Optional[Cell], turn: int) -> bool:
        """True when the end-of-game horizon recalls ``unit`` to ``base``."""
        limit = self.horizon_limit(unit, turn)
        if base is None or limit is None:
            return False
        return hex_distance(unit.position, base) > limit

    def reservation_priority(self, unit: Unit, resource: Resource, threats: Sequence[ThreatAssessment]) -> float:
        priority = self.resource_scorer.unit_score(unit, resource, threats)
        if not unit.cargo.is_empty and unit.cargo.resource_type == resource.resource_type:
            priority += self.config.reservation.cargo_match_bonus
        return priority

    @staticmethod
    def intercept_point(threat: Cell, base: Cell) -> Cell:
        """Halfway between the threat and the base."""
        return lerp_cell(threat, base, 0.5)

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _return_to_base(self, unit: Unit, ctx: SchedulingContext) -> Optional[Decision]:
        if not self.needs_return(unit):
            return None
        return self._go_home(unit, ctx, TaskPriority.CRITICAL)

    def _horizon_restriction(self, unit: Unit, ctx: SchedulingContext) -> Optional[Decision]:
        if not self.beyond_horizon(unit, ctx.analysis.base, ctx.turn):
            return None
        return self._go_home(unit, ctx, TaskPriority.CRITICAL)

    def _continue_task(self, unit: Unit, ctx: SchedulingContext) -> Optional[Decision]:
        task = self.tasks.get(unit.id)
        if task is None or task.kind == TaskKind.PATROL:
            adopted = self._adopt_reservation(unit, ctx)
            if adopted is None:
                return None
            task = adopted
        if task.kind == TaskKind.RETURN_TO_BASE:
            # Unloaded or no longer recalled
            self.tasks.drop(unit.id)
            return None

        target = self._valid_target(unit, task, ctx)
        if target is None:
            self._abandon(unit, task)
            return None
        task = task.retarget(target)
        route = self._route_for(unit, task, ctx)
        if route is None:
            self._abandon(unit, task)
            return None
        self._commit(unit, task)
        return Decision(unit.id, task, route)

    def _assign_new_task(self, unit: Unit, ctx: SchedulingContext) -> Optional[Decision]:
        analysis = ctx.analysis
        trace = ctx.trace
        if not unit.cargo.is_empty and unit.cargo_ratio >= self.config.cargo.restricted_ratio:
            decision = self._plan_collect(unit, ctx, Candidate(TaskKind.COLLECT))
            if decision is not None:
                return decision
            return self._go_home(unit, ctx, TaskPriority.HIGH)

        candidates = candidate_list(
            unit.unit_type,
            analysis.phase,
            bool(analysis.enemy_bases),
            bool(analysis.immediate_threats),
        )
        for cand in candidates:
            if ctx.degraded and cand.kind in LOW_PRIORITY_KINDS:
                if trace is not None:
                    trace.skip(cand.kind.value, "degraded")
                continue
            decision = self._planners[cand.kind](unit, ctx, cand)
            if decision is not None:
                return decision
            if trace is not None:
                trace.skip(cand.kind.value, "no_target")
        return None

    def _default_patrol(self, unit: Unit, ctx: SchedulingContext) -> Optional[Decision]:
        if ctx.degraded:
            return None
        return self._plan_patrol(unit, ctx, Candidate(TaskKind.PATROL))

    # ------------------------------------------------------------------
    # Continuation helpers
    # ------------------------------------------------------------------

    def _adopt_reservation(self, unit: Unit, ctx: SchedulingContext) -> Optional[UnitTask]:
        """COLLECT task for a reservation the unit holds without a task (e.g. orphan reassignment)."""
        reservation = self.table.reservation_of(unit.id)
        if reservation is None:
            return None
        resource = ctx.snapshot.resource_at(reservation.resource_key)
        if resource is None or not self._may_collect(unit, resource):
            self.table.release(unit.id)
            return None
        task = UnitTask(
            unit_id=unit.id,
            kind=TaskKind.COLLECT,
            target=resource.position,
            priority=TaskPriority.MEDIUM,
            created_turn=ctx.turn,
            resource_key=reservation.resource_key,
        )
        self.tasks.set(task)
        return task

    def _valid_target(self, unit: Unit, task: UnitTask, ctx: SchedulingContext) -> Optional[Cell]:
        """Current target of a cached task, or None when the task no longer makes sense."""
        analysis = ctx.analysis
        snapshot = ctx.snapshot
        kind = task.kind

        if kind == TaskKind.COLLECT:
            reservation = self.table.reservation_of(unit.id)
            if reservation is None or reservation.resource_key != task.resource_key:
                return None
            resource = snapshot.resource_at(reservation.resource_key)
            if resource is None or not self._may_collect(unit, resource):
                return None
            return resource.position

        if kind == TaskKind.IMMEDIATE_DEFENSE:
            enemy = analysis.enemy_by_id(task.target_id or "")
            if enemy is None or analysis.base is None:
                return None
            return self.intercept_point(enemy.position, analysis.base)

        if kind == TaskKind.ENGAGE:
            enemy = analysis.enemy_by_id(task.target_id or "")
            if enemy is None or not can_engage(unit, enemy, self.config.task.engage_ratio):
                return None
            return enemy.position

        if kind in EXPLORATION_KINDS:
            if ctx.memory.is_explored(task.target):
                return None
            return task.target

        if kind == TaskKind.RAID_ENEMY_BASE:
            return task.target if task.target in analysis.enemy_bases else None

        if kind == TaskKind.ASSIST_RAID:
            raider = snapshot.unit(task.target_id or "")
            raid = self.tasks.get(task.target_id or "")
            if raider is None or raid is None or raid.kind != TaskKind.RAID_ENEMY_BASE:
                return None
            return raider.position

        if kind in (TaskKind.TERRITORY_DEFENSE, TaskKind.RESOURCE_SCOUTING):
            return None if unit.position == task.target else task.target

        # RETURN_TO_BASE and PATROL are handled before validation
        return None

    def _route_for(self, unit: Unit, task: UnitTask, ctx: SchedulingContext) -> Optional[list[Cell]]:
        if task.kind == TaskKind.ASSIST_RAID:
            if hex_distance(unit.position, task.target) <= self.config.task.follow_distance:
                return []
        return self._route(unit, task.target, ctx)

    def _abandon(self, unit: Unit, task: UnitTask) -> None:
        self.tasks.drop(unit.id)
        if task.kind == TaskKind.COLLECT:
            self.table.release(unit.id)

    # ------------------------------------------------------------------
    # Shared plumbing
    # ------------------------------------------------------------------

    def _route(self, unit: Unit, target: Cell, ctx: SchedulingContext) -> Optional[list[Cell]]:
        return self.planner.route(unit, target, ctx.snapshot, ctx.occupancy)

    def _commit(self, unit: Unit, task: UnitTask) -> None:
        # Only COLLECT tasks may hold a reservation
        if task.kind != TaskKind.COLLECT and self.table.reservation_of(unit.id) is not None:
            self.table.release(unit.id)
        self.tasks.set(task)

    def _assign(
        self,
        unit: Unit,
        ctx: SchedulingContext,
        kind: TaskKind,
        target: Cell,
        priority: TaskPriority,
        route: list[Cell],
        target_id: Optional[str] = None,
    ) -> Decision:
        task = UnitTask(
            unit_id=unit.id,
            kind=kind,
            target=target,
            priority=priority,
            created_turn=ctx.turn,
            target_id=target_id,
        )
        self._commit(unit, task)
        return Decision(unit.id, task, route)

    def _go_home(self, unit: Unit, ctx: SchedulingContext, priority: TaskPriority) -> Optional[Decision]:
        snapshot = ctx.snapshot
        if not snapshot.home:
            return None
        home = min(snapshot.home, key=lambda cell: hex_distance(unit.position, cell))
        task = self.tasks.get(unit.id)
        if task is None or task.kind != TaskKind.RETURN_TO_BASE:
            task = UnitTask(unit.id, TaskKind.RETURN_TO_BASE, home, priority, ctx.turn)
        else:
            task = task.retarget(home)
        self._commit(unit, task)
        # Blocked this turn: hold position and keep the task
        route = self._route(unit, home, ctx) or []
        return Decision(unit.id, task, route)

    def _within_horizon(self, unit: Unit, cell: Cell, analysis: TurnAnalysis) -> bool:
        limit = self.horizon_limit(unit, analysis.turn)
        if limit is None or analysis.base is None:
            return True
        return hex_distance(cell, analysis.base) <= limit

    def _may_collect(self, unit: Unit, resource: Resource) -> bool:
        if unit.unit_type == UnitType.SOLDIER:
            return False
        if not unit.cargo.is_empty and unit.cargo_ratio >= self.config.cargo.restricted_ratio:
            return resource.resource_type == unit.cargo.resource_type
        return True

    def _first_routable(
        self, targets: Sequence[Cell], unit: Unit, ctx: SchedulingContext
    ) -> Optional[tuple[Cell, list[Cell]]]:
        """First target (of a bounded few) that has a route."""
        tried = 0
        for target in targets:
            if target == unit.position:
                continue
            if tried >= self.config.task.target_attempts:
                break
            tried += 1
            route = self._route(unit, target, ctx)
            if route is not None:
                return target, route
        return None

    # ------------------------------------------------------------------
    # Planners (one per task kind)
    # ------------------------------------------------------------------

    def _plan_return(self, unit: Unit, ctx: SchedulingContext, cand: Candidate) -> Optional[Decision]:
        return self._go_home(unit, ctx, TaskPriority.HIGH)

    def _plan_collect(self, unit: Unit, ctx: SchedulingContext, cand: Candidate) -> Optional[Decision]:
        if unit.unit_type == UnitType.SOLDIER:
            return None
        analysis = ctx.analysis
        cfg = self.config.task
        resources = [r for r in analysis.resources if self._may_collect(unit, r)]
        if cand.high_value_only:
            resources = [
                r
                for r in resources
                if r.resource_type == HIGHEST_VALUE_RESOURCE
                and hex_distance(unit.position, r.position) <= cfg.high_value_radius
            ]
        resources = [r for r in resources if self._within_horizon(unit, r.position, analysis)]
        if not resources:
            return None

        threats = analysis.threats
        my_units = analysis.snapshot.my_units
        scores = {
            r.key: self.resource_scorer.collection_score(unit, r, analysis.phase, threats, my_units) for r in resources
        }
        ranked = sorted(resources, key=lambda r: scores[r.key], reverse=True)

        free = [r for r in ranked if self.table.reserver_of(r) in (None, unit.id)]
        for res in free[: cfg.collect_attempts]:
            decision = self._try_collect(unit, res, ctx)
            if decision is not None:
                return decision

        # Preemption pass over piles held by someone with lower priority
        for res in ranked:
            holder = self.table.reservation_for(res)
            if holder is None or holder.holder == unit.id:
                continue
            if holder.priority >= self.reservation_priority(unit, res, threats):
                continue
            decision = self._try_collect(unit, res, ctx)
            if decision is not None:
                return decision
        return None

    def _try_collect(self, unit: Unit, resource: Resource, ctx: SchedulingContext) -> Optional[Decision]:
        route = self._route(unit, resource.position, ctx)
        if route is None:
            return None
        priority = self.reservation_priority(unit, resource, ctx.analysis.threats)
        metadata = {"task": TaskKind.COLLECT.value, "resource_type": ResourceType(resource.resource_type).name}
        if not self.table.reserve(unit.id, resource, priority, metadata, ctx.turn):
            return None
        task = UnitTask(
            unit_id=unit.id,
            kind=TaskKind.COLLECT,
            target=resource.position,
            priority=TaskPriority.MEDIUM,
            created_turn=ctx.turn,
            resource_key=resource.key,
        )
        self.tasks.set(task)
        return Decision(unit.id, task, route)

    def _plan_immediate_defense(self, unit: Unit, ctx: SchedulingContext, cand: Candidate) -> Optional[Decision]:
        analysis = ctx.analysis
        if analysis.base is None:
            return None
        for threat in analysis.immediate_threats:
            target = self.intercept_point(threat.position, analysis.base)
            route = self._route(unit, target, ctx)
            if route is None:
                continue
            return self._assign(
                unit,
                ctx,
                TaskKind.IMMEDIATE_DEFENSE,
                target,
                TaskPriority.CRITICAL,
                route,
                target_id=threat.enemy.id,
            )
        return None

    def _plan_engage(self, unit: Unit, ctx: SchedulingContext, cand: Candidate) -> Optional[Decision]:
        for threat in ctx.analysis.threats:
            if not can_engage(unit, threat.enemy, self.config.task.engage_ratio):
                continue
            route = self._route(unit, threat.position, ctx)
            if route is None:
                continue
            return self._assign(
                unit, ctx, TaskKind.ENGAGE, threat.position, TaskPriority.HIGH, route, target_id=threat.enemy.id
            )
        return None

    def _plan_territory_defense(self, unit: Unit, ctx: SchedulingContext, cand: Candidate) -> Optional[Decision]:
        base = ctx.analysis.base
        if base is None:
            return None
        cfg = self.config.task
        step = 2 * math.pi / cfg.territory_points
        points = [polar_offset(base, i * step, cfg.territory_radius) for i in range(cfg.territory_points)]
        claimed = self.tasks.claimed_targets([TaskKind.TERRITORY_DEFENSE], exclude_unit=unit.id)
        points = [p for p in points if p not in claimed]
        points.sort(key=lambda p: hex_distance(unit.position, p), reverse=True)
        found = self._first_routable(points, unit, ctx)
        if found is None:
            return None
        target, route = found
        return self._assign(unit, ctx, TaskKind.TERRITORY_DEFENSE, target, TaskPriority.MEDIUM, route)

    def _plan_explore(self, unit: Unit, ctx: SchedulingContext, cand: Candidate) -> Optional[Decision]:
        base = ctx.analysis.base or unit.position
        vision = unit.stats.vision
        claimed = self.tasks.claimed_targets(EXPLORATION_KINDS, exclude_unit=unit.id)
        targets = [
            cell
            for ring_index in range(1, self.config.task.exploration_rings + 1)
            for cell in ring_corners(base, vision * ring_index)
            if not ctx.memory.is_explored(cell) and cell not in claimed
        ]
        found = self._first_routable(targets, unit, ctx)
        if found is None:
            return None
        target, route = found
        return self._assign(unit, ctx, TaskKind.EXPLORE, target, TaskPriority.MEDIUM, route)

    def _plan_aggressive_explore(self, unit: Unit, ctx: SchedulingContext, cand: Candidate) -> Optional[Decision]:
        cfg = self.config.task
        base = ctx.analysis.base or unit.position
        home_distance = hex_distance(unit.position, base)
        if home_distance < cfg.aggressive_near_home:
            distance = cfg.aggressive_far
        else:
            distance = min(home_distance + cfg.aggressive_step, cfg.aggressive_max)

        targets = []
        for _ in range(cfg.target_attempts):
            angle = self.rng.random() * 2 * math.pi
            target = polar_offset(base, angle, distance)
            if not ctx.memory.is_explored(target):
                targets.append(target)
        found = self._first_routable(targets, unit, ctx)
        if found is None:
            return None
        target, route = found
        return self._assign(unit, ctx, TaskKind.AGGRESSIVE_EXPLORE, target, TaskPriority.MEDIUM, route)

    def _plan_find_enemy_base(self, unit: Unit, ctx: SchedulingContext, cand: Candidate) -> Optional[Decision]:
        cfg = self.config.task
        base = ctx.analysis.base or unit.position
        grid = cfg.enemy_base_grid
        span = cfg.enemy_base_grid_span
        grid_q = (unit.position[0] // grid) * grid
        grid_r = (unit.position[1] // grid) * grid
        claimed = self.tasks.claimed_targets(EXPLORATION_KINDS, exclude_unit=unit.id)

        points: list[Cell] = []
        for dq in range(-span, span + 1):
            for dr in range(-span, span + 1):
                point = (grid_q + dq * grid, grid_r + dr * grid)
                if hex_distance(point, base) > cfg.enemy_base_search_radius:
                    continue
                if ctx.memory.is_explored(point) or point in claimed:
                    continue
                points.append(point)
        # Enemy bases sit far from ours
        points.sort(key=lambda p: hex_distance(p, base), reverse=True)

        found = self._first_routable(points, unit, ctx)
        if found is None:
            return self._plan_aggressive_explore(unit, ctx, Candidate(TaskKind.AGGRESSIVE_EXPLORE))
        target, route = found
        return self._assign(unit, ctx, TaskKind.FIND_ENEMY_BASE, target, TaskPriority.HIGH, route)

    def _plan_raid(self, unit: Unit, ctx: SchedulingContext, cand: Candidate) -> Optional[Decision]:
        analysis = ctx.analysis
        snapshot = ctx.snapshot
        if not analysis.enemy_bases:
            return None
        assessments = [
            assess_raid(
                unit,
                enemy_base,
                snapshot.my_units,
                snapshot.enemy_units,
                analysis.base,
                snapshot.turn,
                calories=snapshot.score,
                config=self.config.raid,
            )
            for enemy_base in analysis.enemy_bases
        ]
        feasible = sorted((a for a in assessments if a.feasible), key=lambda a: a.score, reverse=True)
        for assessment in feasible:
            route = self._route(unit, assessment.target, ctx)
            if route is None:
                continue
            return self._assign(unit, ctx, TaskKind.RAID_ENEMY_BASE, assessment.target, TaskPriority.CRITICAL, route)
        return None

    def _plan_assist_raid(self, unit: Unit, ctx: SchedulingContext, cand: Candidate) -> Optional[Decision]:
        snapshot = ctx.snapshot
        nearest: Optional[Unit] = None
        nearest_distance = 0
        for raid in self.tasks.of_kind(TaskKind.RAID_ENEMY_BASE):
            if raid.unit_id == unit.id:
                continue
            raider = snapshot.unit(raid.unit_id)
            if raider is None:
                continue
            d = hex_distance(unit.position, raider.position)
            if nearest is None or d < nearest_distance:
                nearest = raider
                nearest_distance = d
        if nearest is None or nearest_distance <= self.config.task.follow_distance:
            return None
        route = self._route(unit, nearest.position, ctx)
        if route is None:
            return None
        return self._assign(
            unit, ctx, TaskKind.ASSIST_RAID, nearest.position, TaskPriority.HIGH, route, target_id=nearest.id
        )

    def _plan_resource_scouting(self, unit: Unit, ctx: SchedulingContext, cand: Candidate) -> Optional[Decision]:
        analysis = ctx.analysis
        cfg = self.config.task
        base = analysis.base or unit.position
        claimed = self.tasks.claimed_targets([TaskKind.RESOURCE_SCOUTING], exclude_unit=unit.id)
        targets = [c for c in spiral(base, cfg.scouting_radius) if not ctx.memory.is_explored(c) and c not in claimed]
        targets += [h for h in resource_hotspots(analysis.resources, cfg.hotspot_radius) if h not in claimed]
        found = self._first_routable(targets, unit, ctx)
        if found is None:
            return None
        target, route = found
        return self._assign(unit, ctx, TaskKind.RESOURCE_SCOUTING, target, TaskPriority.LOW, route)

    def _plan_patrol(self, unit: Unit, ctx: SchedulingContext, cand: Candidate) -> Optional[Decision]:
        base = ctx.analysis.base
        if base is None:
            return None
        cached = self.tasks.get(unit.id)
        if cached is not None and cached.kind == TaskKind.PATROL and cached.target != unit.position:
            route = self._route(unit, cached.target, ctx)
            if route is not None:
                return Decision(unit.id, cached, route)

        radius = self.config.task.patrol_radius
        targets = []
        for _ in range(self.config.task.target_attempts):
            angle = self.rng.random() * 2 * math.pi
            targets.append(polar_offset(base, angle, self.rng.random() * radius))
        found = self._first_routable(targets, unit, ctx)
        if found is None:
            return None
        target, route = found
        return self._assign(unit, ctx, TaskKind.PATROL, target, TaskPriority.LOW, route)
