"""
Debug output for the Hive policy.

Verbosity levels (``HivePolicy(debug=...)`` or ``plan_turn.py --debug``):
    0: disabled (default)
    1: per-turn summary: units, commands, reservations, releases, degraded flag
    2: full detail: per-unit task/route lines plus reservation and task tables

All output lines are prefixed with ``[hive:debug]`` and go to stderr so they
never mix with the move payload printed on stdout.
"""

from __future__ import annotations

import json
import sys
from dataclasses import dataclass, field
from typing import Any, Optional

# ---------------------------------------------------------------------------
# Per-unit turn record
# ---------------------------------------------------------------------------


@dataclass
class UnitTurnRecord:
    """One unit's decision for a single turn."""

    unit_id: str
    unit_type: str
    position: tuple[int, int]
    task: str
    step: str
    route_len: int = 0
    target: Optional[tuple[int, int]] = None
    error: str = ""


# ---------------------------------------------------------------------------
# Per-turn summary
# ---------------------------------------------------------------------------


@dataclass
class TurnSummary:
    turn: int = 0
    phase: str = ""
    units: int = 0
    commands: int = 0
    reservations: int = 0
    tasks: int = 0
    releases: dict[str, int] = field(default_factory=dict)
    dropped_records: int = 0
    degraded: bool = False
    elapsed_ms: float = 0.0

    def as_dict(self) -> dict[str, Any]:
        return {
            "turn": self.turn,
            "phase": self.phase,
            "units": self.units,
            "commands": self.commands,
            "reservations": self.reservations,
            "tasks": self.tasks,
            "releases": dict(sorted(self.releases.items())),
            "dropped_records": self.dropped_records,
            "degraded": self.degraded,
            "elapsed_ms": round(self.elapsed_ms, 2),
        }


# ---------------------------------------------------------------------------
# DebugLogger
# ---------------------------------------------------------------------------


class DebugLogger:
    """Collects and emits structured debug output each turn.

    Instantiated once per ``HivePolicy`` when ``debug >= 1``. The policy calls
    :meth:`record_unit_decision` for every unit it schedules and
    :meth:`flush_turn` once all commands are decided.

    Parameters
    ----------
    level : int
        Verbosity level (1 or 2).
    output : file-like, optional
        Where to write output. Defaults to ``sys.stderr``.
    """

    PREFIX = "[hive:debug]"

    def __init__(self, level: int = 1, output: Any = None) -> None:
        self.level = level
        self._out = output or sys.stderr

        # Per-turn accumulator, cleared on flush
        self._unit_records: list[UnitTurnRecord] = []

        # Persistent trackers
        self._summaries: list[TurnSummary] = []
        self._task_counts: dict[str, int] = {}
        self._errors: list[tuple[int, str, str]] = []

    # ------------------------------------------------------------------
    # Recording (called per unit per turn)
    # ------------------------------------------------------------------

    def record_unit_decision(
        self,
        unit_id: str,
        unit_type: str,
        position: tuple[int, int],
        task: str,
        step: str,
        route_len: int = 0,
        target: Optional[tuple[int, int]] = None,
    ) -> None:
        self._unit_records.append(
            UnitTurnRecord(
                unit_id=unit_id,
                unit_type=unit_type,
                position=position,
                task=task,
                step=step,
                route_len=route_len,
                target=target,
            )
        )
        if task:
            self._task_counts[task] = self._task_counts.get(task, 0) + 1

    def record_unit_error(self, turn: int, unit_id: str, error: BaseException) -> None:
        """Record a planning fault that sent ``unit_id`` to the fallback patrol this turn."""
        message = f"{type(error).__name__}: {error}"
        self._errors.append((turn, unit_id, message))
        self._unit_records.append(
            UnitTurnRecord(unit_id=unit_id, unit_type="?", position=(0, 0), task="", step="error", error=message)
        )

    # ------------------------------------------------------------------
    # Flush (called once per turn after all units are scheduled)
    # ------------------------------------------------------------------

    def flush_turn(
        self,
        summary: TurnSummary,
        reservation_rows: Optional[list[tuple]] = None,
        task_rows: Optional[list[tuple]] = None,
    ) -> None:
        """Emit debug output for the turn and reset accumulators."""
        self._summaries.append(summary)

        # --- Level 1: turn summary ---
        parts = [
            f"t={summary.turn}",
            f"units={summary.units}",
            f"cmds={summary.commands}",
            f"res={summary.reservations}",
            f"tasks={summary.tasks}",
        ]
        if summary.releases:
            released = ",".join(f"{k}:{v}" for k, v in sorted(summary.releases.items()))
            parts.append(f"rel({released})")
        if summary.dropped_records:
            parts.append(f"dropped={summary.dropped_records}")
        if summary.phase == "recovery":
            parts.append("RECOVERY")
        if summary.degraded:
            parts.append("DEGRADED")
        parts.append(f"{summary.elapsed_ms:.1f}ms")
        self._emit(" ".join(parts))

        # --- Level 2: per-unit detail + tables ---
        if self.level >= 2:
            for rec in self._unit_records:
                if rec.error:
                    self._emit(f"  u={rec.unit_id} ERROR {rec.error}")
                    continue
                tgt = f" tgt={rec.target}" if rec.target else ""
                self._emit(
                    f"  u={rec.unit_id} {rec.unit_type} "
                    f"({rec.position[0]},{rec.position[1]}) "
                    f"{rec.step}:{rec.task or 'noop'} steps={rec.route_len}{tgt}"
                )
            for key, holder, priority, age in reservation_rows or []:
                self._emit(f"  reservation {key} holder={holder} prio={priority:.2f} age={age}")
            for unit_id, kind, target, age in task_rows or []:
                self._emit(f"  task u={unit_id} {kind} tgt={target} age={age}")

        self._unit_records.clear()

    # ------------------------------------------------------------------
    # End-of-game summary
    # ------------------------------------------------------------------

    def emit_game_summary(self) -> None:
        """Emit one JSON line prefixed with ``[hive:debug:summary]``."""
        summary = {
            "turns": len(self._summaries),
            "last_turn": self._summaries[-1].turn if self._summaries else None,
            "degraded_turns": sum(1 for s in self._summaries if s.degraded),
            "recovery_turns": sum(1 for s in self._summaries if s.phase == "recovery"),
            "commands": sum(s.commands for s in self._summaries),
            "task_counts": dict(sorted(self._task_counts.items())),
            "errors": [{"turn": t, "unit": u, "error": e} for t, u, e in self._errors],
            "timeline": [s.as_dict() for s in self._summaries],
        }
        line = json.dumps(summary, separators=(",", ":"))
        print(f"[hive:debug:summary] {line}", file=self._out, flush=True)

    def reset(self) -> None:
        """Reset state between games."""
        self._unit_records.clear()
        self._summaries.clear()
        self._task_counts.clear()
        self._errors.clear()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _emit(self, msg: str) -> None:
        print(f"{self.PREFIX} {msg}", file=self._out, flush=True)
