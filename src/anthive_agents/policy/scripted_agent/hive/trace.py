"""Per-unit decision tracing for the Hive policy."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from anthive_agents.policy.scripted_agent.common.geometry import hex_distance


@dataclass
class TraceEntry:
    """One decision-step evaluation."""

    step_name: str
    skipped: bool
    detail: str = ""


@dataclass
class TraceLog:
    """Collects what the scheduler considered for one unit in one turn."""

    entries: list[TraceEntry] = field(default_factory=list)
    active_step: str = ""
    task_tag: str = ""
    target: Optional[tuple[int, int]] = None
    route_len: int = 0

    def skip(self, step_name: str, reason: str = "n/a") -> None:
        """Record a step that did not apply."""
        self.entries.append(TraceEntry(step_name=step_name, skipped=True, detail=reason))

    def activate(self, step_name: str, detail: str = "") -> None:
        """Record the step that produced the decision."""
        self.entries.append(TraceEntry(step_name=step_name, skipped=False, detail=detail))
        self.active_step = step_name

    def format_line(
        self,
        turn: int,
        unit_id: str,
        unit_type: str,
        pos: tuple[int, int],
        hp: int,
        level: int,
    ) -> str:
        """Format the trace as a single line."""
        prefix = f"[t={turn} u={unit_id} {unit_type} ({pos[0]},{pos[1]}) hp={hp}]"
        task = self.task_tag or "noop"

        if level <= 1:
            return f"{prefix} {self.active_step or '-'} → {task}"

        skips = " ".join(f"skip:{e.step_name}({e.detail})" for e in self.entries if e.skipped)
        target_str = ""
        if self.target is not None:
            target_str = f" dist={hex_distance(pos, self.target)} steps={self.route_len}"
        return f"{prefix} {skips} → {self.active_step or '-'}{target_str} → {task}"
