"""Task kinds and the per-unit task cache."""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Iterable, Optional

from .types import Cell, ResourceKey


class TaskKind(Enum):
    """Everything a unit can be committed to."""

    RETURN_TO_BASE = "return_to_base"
    IMMEDIATE_DEFENSE = "immediate_defense"
    COLLECT = "collect"
    EXPLORE = "exploration"
    AGGRESSIVE_EXPLORE = "aggressive_exploration"
    FIND_ENEMY_BASE = "find_enemy_base"
    RAID_ENEMY_BASE = "raid_enemy_base"
    ASSIST_RAID = "assist_raid"
    ENGAGE = "engage"
    TERRITORY_DEFENSE = "territory_defense"
    RESOURCE_SCOUTING = "resource_scouting"
    PATROL = "patrol"


class TaskPriority(Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


# Skipped first when the turn runs short on time
LOW_PRIORITY_KINDS = frozenset(
    {
        TaskKind.PATROL,
        TaskKind.EXPLORE,
        TaskKind.AGGRESSIVE_EXPLORE,
        TaskKind.RESOURCE_SCOUTING,
    }
)

# Valid only while the target cell is unexplored
EXPLORATION_KINDS = frozenset(
    {
        TaskKind.EXPLORE,
        TaskKind.AGGRESSIVE_EXPLORE,
        TaskKind.FIND_ENEMY_BASE,
    }
)


@dataclass(frozen=True)
class UnitTask:
    """A unit's committed behaviour.

    ``resource_key`` is set only for COLLECT and always names the pile the
    unit holds a reservation on. ``target_id`` follows a moving entity: the
    enemy for ENGAGE/IMMEDIATE_DEFENSE, the raider for ASSIST_RAID.
    """

    unit_id: str
    kind: TaskKind
    target: Cell
    priority: TaskPriority
    created_turn: int
    resource_key: Optional[ResourceKey] = None
    target_id: Optional[str] = None

    @property
    def tag(self) -> str:
        return self.kind.value

    def age(self, turn: int) -> int:
        return max(0, turn - self.created_turn)

    def retarget(self, target: Cell) -> UnitTask:
        return self if target == self.target else replace(self, target=target)


class TaskCache:
    """unit id -> UnitTask, persisted across turns and garbage collected by age."""

    def __init__(self, stale_turns: int = 15) -> None:
        self.stale_turns = stale_turns
        self._tasks: dict[str, UnitTask] = {}

    def get(self, unit_id: str) -> Optional[UnitTask]:
        return self._tasks.get(unit_id)

    def set(self, task: UnitTask) -> None:
        self._tasks[task.unit_id] = task

    def drop(self, unit_id: str) -> Optional[UnitTask]:
        return self._tasks.pop(unit_id, None)

    def reconcile(self, alive_unit_ids: Iterable[str], turn: int) -> list[tuple[UnitTask, str]]:
        """Drop tasks of dead units and tasks older than the staleness window."""
        alive = set(alive_unit_ids)
        dropped: list[tuple[UnitTask, str]] = []
        for unit_id, task in list(self._tasks.items()):
            if unit_id not in alive:
                reason = "holder_dead"
            elif task.age(turn) > self.stale_turns:
                reason = "stale"
            else:
                continue
            del self._tasks[unit_id]
            dropped.append((task, reason))
        return dropped

    def of_kind(self, *kinds: TaskKind) -> list[UnitTask]:
        return [t for t in self._tasks.values() if t.kind in kinds]

    def claimed_targets(self, kinds: Iterable[TaskKind], exclude_unit: Optional[str] = None) -> set[Cell]:
        wanted = set(kinds)
        return {t.target for t in self._tasks.values() if t.kind in wanted and t.unit_id != exclude_unit}

    def tasks(self) -> list[UnitTask]:
        return list(self._tasks.values())

    def debug_rows(self, turn: int) -> list[tuple[str, str, Cell, int]]:
        """(unit id, task kind, target, age in turns) per cached task."""
        return [(t.unit_id, t.kind.value, t.target, t.age(turn)) for t in self._tasks.values()]

    def clear(self) -> None:
        self._tasks.clear()

    def __len__(self) -> int:
        return len(self._tasks)

    def __contains__(self, unit_id: object) -> bool:
        return unit_id in self._tasks
