"""
Hive Policy -- turn engine for multi-unit hex ant games.

Each turn: parse the snapshot, reconcile the persisted reservation table and
task cache against it, analyse threats and food, hand unclaimed piles to idle
units, then ask the scheduler for one decision per unit in snapshot order.
Later units see the planned destinations of earlier ones. A unit whose pile
is preempted by a later unit re-plans once after the main pass.

A unit whose planning raises falls back to a patrol near base and the turn
continues for everyone else.

The turn has a wall-clock budget. When less than ``degrade_fraction`` of it
remains, low-priority tasks (patrol, exploration, scouting) are skipped for
the remaining units instead of aborting the turn.

Parameters: trace=1 trace_level=2 trace_unit=<id>   -- per-unit trace lines
            debug=0/1/2                              -- DebugLogger output
"""

from __future__ import annotations

import sys
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Union

from .analysis import ResourceScorer, TurnAnalysis, WorldMemory, analyze_turn
from .config import HiveConfig
from .debug_logger import DebugLogger, TurnSummary
from .navigator import Occupancy, RoutePlanner
from .reservations import PREEMPTED, Reservation, ResourceReservationTable
from .scheduler import Decision, SchedulingContext, UnitTaskScheduler
from .snapshot import parse_snapshot
from .threat import ThreatScorer
from .trace import TraceLog
from .types import Command, Unit, WorldSnapshot, moves_payload


@dataclass
class _TurnState:
    """Everything shared by the per-unit decisions of one turn."""

    snapshot: WorldSnapshot
    analysis: TurnAnalysis
    occupancy: Occupancy
    started: float
    budget: float
    decisions: dict[str, Decision] = field(default_factory=dict)
    preempted: list[str] = field(default_factory=list)
    degraded: bool = False


class HivePolicy:
    """Plans one set of moves per turn for all controlled units."""

    def __init__(
        self,
        config: Optional[HiveConfig] = None,
        # Tracing
        trace: int = 0,
        trace_level: int = 1,
        trace_unit: str = "",
        # Debug logging
        debug: int = 0,
        debug_output: Any = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config or HiveConfig()
        self.table = ResourceReservationTable(self.config.reservation.stale_turns)
        self.threat_scorer = ThreatScorer(self.config.threat)
        self.resource_scorer = ResourceScorer(self.config.resource, self.threat_scorer)
        self.planner = RoutePlanner(self.config.search)
        self.memory = WorldMemory()
        self.scheduler = UnitTaskScheduler(
            self.table,
            self.config,
            planner=self.planner,
            threat_scorer=self.threat_scorer,
            resource_scorer=self.resource_scorer,
        )
        # Registered after the scheduler so the loser's task is already dropped
        self.table.add_release_listener(self._on_release)
        self._turn: Optional[_TurnState] = None

        self._trace_enabled = bool(trace)
        self._trace_level = trace_level
        self._trace_unit = trace_unit
        self._clock = clock

        self._debug_logger: Optional[DebugLogger] = None
        if debug >= 1:
            self._debug_logger = DebugLogger(level=debug, output=debug_output)

        self.last_analysis: Optional[TurnAnalysis] = None
        self.last_decisions: list[Decision] = []
        self.last_degraded = False

    # ------------------------------------------------------------------
    # Turn
    # ------------------------------------------------------------------

    def step(self, observation: Union[WorldSnapshot, dict]) -> list[Command]:
        """Commands for this turn, in unit order. Units without a command are omitted."""
        started = self._clock()
        snapshot = observation if isinstance(observation, WorldSnapshot) else parse_snapshot(observation)
        releases_before = dict(self.table.release_counts)

        # Reconcile persisted state before any new assignment
        self.table.reconcile(snapshot.unit_ids, snapshot.resource_keys, snapshot.turn)
        self.scheduler.begin_turn(snapshot)
        analysis = analyze_turn(snapshot, self.memory, self.threat_scorer, self.config)
        self.scheduler.reassign_orphans(analysis)

        turn = _TurnState(
            snapshot=snapshot,
            analysis=analysis,
            occupancy=Occupancy.from_snapshot(snapshot),
            started=started,
            budget=self._budget(snapshot),
        )
        self._turn = turn
        try:
            for unit in snapshot.my_units:
                self._plan_unit(unit, turn)

            # Units that lost their pile to a later unit re-plan once from where they stand
            replanned: set[str] = set()
            while turn.preempted:
                unit_id = turn.preempted.pop(0)
                unit = snapshot.unit(unit_id)
                if unit is None or unit_id in replanned:
                    continue
                replanned.add(unit_id)
                turn.occupancy.move(unit, unit.position)
                self._plan_unit(unit, turn)
        finally:
            self._turn = None

        decisions = [turn.decisions[u.id] for u in snapshot.my_units if u.id in turn.decisions]
        commands = [c for c in (d.command for d in decisions) if c is not None]

        self.last_analysis = analysis
        self.last_decisions = decisions
        self.last_degraded = turn.degraded

        if self._debug_logger is not None:
            for unit in snapshot.my_units:
                decision = turn.decisions.get(unit.id)
                if decision is None:
                    continue
                self._debug_logger.record_unit_decision(
                    unit_id=unit.id,
                    unit_type=unit.unit_type.name.lower(),
                    position=unit.position,
                    task=decision.task.tag if decision.task else "",
                    step=decision.step,
                    route_len=len(decision.route),
                    target=decision.task.target if decision.task else None,
                )
            releases = {
                reason: count - releases_before.get(reason, 0)
                for reason, count in self.table.release_counts.items()
                if count - releases_before.get(reason, 0) > 0
            }
            summary = TurnSummary(
                turn=snapshot.turn,
                phase=analysis.phase.value,
                units=len(snapshot.my_units),
                commands=len(commands),
                reservations=len(self.table),
                tasks=len(self.scheduler.tasks),
                releases=releases,
                dropped_records=snapshot.dropped_records,
                degraded=turn.degraded,
                elapsed_ms=(self._clock() - started) * 1000.0,
            )
            reservation_rows, task_rows = self.debug_rows(snapshot.turn)
            self._debug_logger.flush_turn(summary, reservation_rows, task_rows)

        return commands

    def moves(self, observation: Union[WorldSnapshot, dict]) -> dict:
        """Wire payload ``{"moves": [...]}`` for this turn."""
        return moves_payload(self.step(observation))

    # ------------------------------------------------------------------
    # Game lifecycle
    # ------------------------------------------------------------------

    def end_game(self) -> None:
        if self._debug_logger is not None:
            self._debug_logger.emit_game_summary()

    def reset(self) -> None:
        """Forget everything carried across turns."""
        self.table.clear()
        self.scheduler.tasks.clear()
        self.memory.reset()
        self.last_analysis = None
        self.last_decisions = []
        if self._debug_logger is not None:
            self._debug_logger.reset()

    # ------------------------------------------------------------------
    # Debug exports
    # ------------------------------------------------------------------

    def debug_rows(self, turn: Optional[int] = None) -> tuple[list[tuple], list[tuple]]:
        """(reservation rows, task rows) as documented on the table and the task cache."""
        now = turn if turn is not None else (self.last_analysis.turn if self.last_analysis else 0)
        return self.table.debug_rows(now), self.scheduler.tasks.debug_rows(now)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _budget(self, snapshot: WorldSnapshot) -> float:
        budget = self.config.deadline.deadline_seconds
        if snapshot.next_turn_in is not None and 0 < snapshot.next_turn_in < budget:
            budget = snapshot.next_turn_in
        return budget

    def _should_trace(self, unit: Unit) -> bool:
        if not self._trace_enabled:
            return False
        if self._trace_unit and unit.id != self._trace_unit:
            return False
        return True

    def _plan_unit(self, unit: Unit, turn: _TurnState) -> None:
        snapshot = turn.snapshot
        elapsed = self._clock() - turn.started
        degraded = turn.budget - elapsed < turn.budget * self.config.deadline.degrade_fraction
        turn.degraded = turn.degraded or degraded
        trace = TraceLog() if self._should_trace(unit) else None
        ctx = SchedulingContext(
            analysis=turn.analysis,
            occupancy=turn.occupancy,
            memory=self.memory,
            degraded=degraded,
            trace=trace,
        )
        try:
            decision = self.scheduler.decide(unit, ctx)
        except Exception as exc:
            # A unit whose planning fails patrols; the rest of the turn goes on
            if self._debug_logger is not None:
                self._debug_logger.record_unit_error(snapshot.turn, unit.id, exc)
            print(f"[hive][t={snapshot.turn} u={unit.id}] planning failed: {exc!r}", file=sys.stderr)
            decision = self._fallback(unit, ctx, turn)
            if decision is None:
                return
            trace = None

        turn.decisions[unit.id] = decision
        command = decision.command
        if command is not None:
            turn.occupancy.move(unit, command.route[-1])

        if trace is not None:
            line = trace.format_line(
                turn=snapshot.turn,
                unit_id=unit.id,
                unit_type=unit.unit_type.name.lower(),
                pos=unit.position,
                hp=unit.health,
                level=self._trace_level,
            )
            print(f"[hive] {line}", file=sys.stderr)

    def _fallback(self, unit: Unit, ctx: SchedulingContext, turn: _TurnState) -> Optional[Decision]:
        try:
            return self.scheduler.fallback(unit, ctx)
        except Exception as exc:
            turn.decisions.pop(unit.id, None)
            print(f"[hive][t={turn.snapshot.turn} u={unit.id}] fallback failed: {exc!r}", file=sys.stderr)
            return None

    def _on_release(self, reservation: Reservation, reason: str) -> None:
        turn = self._turn
        if turn is not None and reason == PREEMPTED and reservation.holder in turn.decisions:
            turn.preempted.append(reservation.holder)
