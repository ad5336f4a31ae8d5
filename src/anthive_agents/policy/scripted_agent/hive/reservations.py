"""
Resource reservation ledger for Hive multi-unit foraging.

Guarantees that at most one unit works a given food pile:

1. ``reserve`` grants a pile to a unit, preempting a strictly lower-priority holder
2. a unit holds at most one reservation; reserving again releases the previous one
3. ``reconcile`` drops reservations of dead units, vanished piles and stale claims
4. ``reassign_orphans`` greedily matches idle units to unclaimed piles

Every drop is reported to registered release listeners so that the owner of a
cached task can forget it in the same pass.

Usage:
    table = ResourceReservationTable(stale_turns=10)
    table.add_release_listener(scheduler.on_reservation_released)

    # Start of every turn:
    table.reconcile(snapshot.unit_ids, snapshot.resource_keys, snapshot.turn)

    # Per unit:
    if table.reserve(unit.id, resource, priority=score):
        ...
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Callable, Iterable, Optional, Sequence, Union

from .types import Resource, ResourceKey, Unit

ResourceRef = Union[Resource, ResourceKey]
ScoreFn = Callable[[Unit, Resource], float]

# Release reasons reported to listeners
RELEASED = "released"
PREEMPTED = "preempted"
REPLACED = "replaced"
HOLDER_DEAD = "holder_dead"
VANISHED = "vanished"
STALE = "stale"


@dataclass(frozen=True)
class Reservation:
    """One unit's exclusive claim on one food pile."""

    resource_key: ResourceKey
    holder: str
    priority: float
    created_turn: int
    metadata: dict[str, Any] = field(default_factory=dict, compare=False)

    def age(self, turn: int) -> int:
        return max(0, turn - self.created_turn)


ReleaseListener = Callable[[Reservation, str], None]


def resource_key(resource: ResourceRef) -> ResourceKey:
    if isinstance(resource, Resource):
        return resource.key
    q, r, t = resource
    return (int(q), int(r), int(t))


class ResourceReservationTable:
    """Resource key -> single holder, with priority preemption.

    The underlying maps never leave this object; queries return copies or
    immutable :class:`Reservation` records.
    """

    def __init__(self, stale_turns: int = 10) -> None:
        self.stale_turns = stale_turns
        self._by_resource: dict[ResourceKey, Reservation] = {}
        self._by_unit: dict[str, ResourceKey] = {}
        self._listeners: list[ReleaseListener] = []
        self._turn = 0
        self.release_counts: dict[str, int] = {}

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def add_release_listener(self, listener: ReleaseListener) -> None:
        self._listeners.append(listener)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def reserve(
        self,
        unit_id: str,
        resource: ResourceRef,
        priority: float,
        metadata: Optional[dict[str, Any]] = None,
        turn: Optional[int] = None,
    ) -> bool:
        """Claim ``resource`` for ``unit_id``. Returns True if granted.

        Refused when another unit holds it with equal or higher priority. A
        lower-priority holder is released first, then any other reservation
        of the requester, then the new claim is installed. Re-reserving a pile
        the unit already holds refreshes it in place without reporting a
        release.
        """
        key = resource_key(resource)
        existing = self._by_resource.get(key)
        if existing is not None and existing.holder == unit_id:
            self._by_resource[key] = replace(
                existing,
                priority=priority,
                created_turn=self._turn if turn is None else turn,
                metadata=dict(metadata) if metadata is not None else existing.metadata,
            )
            return True
        if existing is not None and existing.priority >= priority:
            return False

        if existing is not None:
            self._drop(existing, PREEMPTED)

        previous = self._by_unit.get(unit_id)
        if previous is not None:
            self._drop(self._by_resource[previous], REPLACED)

        reservation = Reservation(
            resource_key=key,
            holder=unit_id,
            priority=priority,
            created_turn=self._turn if turn is None else turn,
            metadata=dict(metadata or {}),
        )
        self._by_resource[key] = reservation
        self._by_unit[unit_id] = key
        return True

    def release(self, unit_id: str) -> Optional[Reservation]:
        """Drop the unit's reservation if it has one. Idempotent."""
        key = self._by_unit.get(unit_id)
        if key is None:
            return None
        reservation = self._by_resource[key]
        self._drop(reservation, RELEASED)
        return reservation

    def reconcile(
        self,
        alive_unit_ids: Iterable[str],
        visible_resource_keys: Iterable[ResourceKey],
        turn: int,
    ) -> list[tuple[Reservation, str]]:
        """Drop reservations whose holder died, whose pile vanished, or that went stale.

        Must run at the start of a turn before any new reservation is made.
        Returns the dropped reservations with their reasons.
        """
        self._turn = turn
        alive = set(alive_unit_ids)
        visible = {resource_key(k) for k in visible_resource_keys}
        dropped: list[tuple[Reservation, str]] = []
        for reservation in list(self._by_resource.values()):
            if reservation.holder not in alive:
                reason = HOLDER_DEAD
            elif reservation.resource_key not in visible:
                reason = VANISHED
            elif reservation.age(turn) > self.stale_turns:
                reason = STALE
            else:
                continue
            self._drop(reservation, reason)
            dropped.append((reservation, reason))
        return dropped

    def reassign_orphans(
        self,
        unassigned_units: Sequence[Unit],
        available_resources: Sequence[Resource],
        score_fn: ScoreFn,
        turn: Optional[int] = None,
    ) -> list[Reservation]:
        """Best-effort greedy matching of idle units to unclaimed piles.

        For every unclaimed pile the best-scoring idle unit is found (scores
        must be positive; the first unit in list order wins ties). Candidates
        are then granted in descending score order; the sort is stable so
        equal scores keep pile order. A unit granted earlier in the pass is not
        granted again, so later piles whose best unit was taken stay
        unassigned this turn.
        """
        idle = [u for u in unassigned_units if u.id not in self._by_unit]
        piles = self.available_of(available_resources)
        if not idle or not piles:
            return []

        candidates: list[tuple[float, Resource, Unit]] = []
        for res in piles:
            best_unit: Optional[Unit] = None
            best_score = 0.0
            for unit in idle:
                score = score_fn(unit, res)
                if score > best_score:
                    best_score = score
                    best_unit = unit
            if best_unit is not None:
                candidates.append((best_score, res, best_unit))

        candidates.sort(key=lambda c: c[0], reverse=True)
        granted: list[Reservation] = []
        for score, res, unit in candidates:
            if unit.id in self._by_unit:
                continue
            if self.reserve(unit.id, res, score, {"source": "orphan"}, turn):
                granted.append(self._by_resource[res.key])
        return granted

    def clear(self) -> None:
        for reservation in list(self._by_resource.values()):
            self._drop(reservation, RELEASED)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def is_reserved(self, resource: ResourceRef) -> bool:
        return resource_key(resource) in self._by_resource

    def reserver_of(self, resource: ResourceRef) -> Optional[str]:
        reservation = self._by_resource.get(resource_key(resource))
        return reservation.holder if reservation is not None else None

    def reservation_for(self, resource: ResourceRef) -> Optional[Reservation]:
        return self._by_resource.get(resource_key(resource))

    def reservation_of(self, unit_id: str) -> Optional[Reservation]:
        key = self._by_unit.get(unit_id)
        return self._by_resource.get(key) if key is not None else None

    def available_of(self, resources: Iterable[Resource]) -> list[Resource]:
        return [r for r in resources if r.key not in self._by_resource]

    def holders(self) -> set[str]:
        return set(self._by_unit)

    def reservations(self) -> list[Reservation]:
        return list(self._by_resource.values())

    def debug_rows(self, turn: Optional[int] = None) -> list[tuple[ResourceKey, str, float, int]]:
        """(resource key, holder, priority, age in turns) per live reservation."""
        now = self._turn if turn is None else turn
        return [(r.resource_key, r.holder, r.priority, r.age(now)) for r in self._by_resource.values()]

    def __len__(self) -> int:
        return len(self._by_resource)

    def __contains__(self, resource: object) -> bool:
        if isinstance(resource, Resource) or (isinstance(resource, tuple) and len(resource) == 3):
            return self.is_reserved(resource)  # type: ignore[arg-type]
        return False

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _drop(self, reservation: Reservation, reason: str) -> None:
        self._by_resource.pop(reservation.resource_key, None)
        if self._by_unit.get(reservation.holder) == reservation.resource_key:
            del self._by_unit[reservation.holder]
        self.release_counts[reason] = self.release_counts.get(reason, 0) + 1
        for listener in self._listeners:
            listener(reservation, reason)
