"""Hive scripted policy: multi-unit coordination for hex ant games."""

from .config import HiveConfig
from .navigator import HexPathfinder, Occupancy, PathValidator, RoutePlanner, build_occupancy
from .policy import HivePolicy
from .reservations import Reservation, ResourceReservationTable
from .scheduler import Decision, SchedulingContext, UnitTaskScheduler
from .snapshot import SnapshotError, parse_snapshot
from .tasks import TaskKind, TaskPriority, UnitTask
from .threat import ThreatAssessment, ThreatScorer
from .types import Command, Resource, ResourceType, Unit, UnitType, WorldSnapshot, moves_payload

__all__ = [
    "Command",
    "Decision",
    "HexPathfinder",
    "HiveConfig",
    "HivePolicy",
    "Occupancy",
    "PathValidator",
    "Reservation",
    "Resource",
    "ResourceReservationTable",
    "ResourceType",
    "RoutePlanner",
    "SchedulingContext",
    "SnapshotError",
    "TaskKind",
    "TaskPriority",
    "ThreatAssessment",
    "ThreatScorer",
    "Unit",
    "UnitTask",
    "UnitTaskScheduler",
    "UnitType",
    "WorldSnapshot",
    "build_occupancy",
    "moves_payload",
    "parse_snapshot",
]
