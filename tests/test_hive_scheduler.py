"""Tests for UnitTaskScheduler: the decision chain, task caching and reservations."""

from __future__ import annotations

from typing import Optional

import pytest

from anthive_agents.policy.scripted_agent.common.geometry import hex_distance
from anthive_agents.policy.scripted_agent.hive.analysis import WorldMemory, analyze_turn
from anthive_agents.policy.scripted_agent.hive.navigator import build_occupancy
from anthive_agents.policy.scripted_agent.hive.reservations import ResourceReservationTable
from anthive_agents.policy.scripted_agent.hive.scheduler import (
    Candidate,
    SchedulingContext,
    UnitTaskScheduler,
    candidate_list,
    resource_hotspots,
)
from anthive_agents.policy.scripted_agent.hive.tasks import TaskKind, TaskPriority, UnitTask
from anthive_agents.policy.scripted_agent.hive.threat import ThreatScorer
from anthive_agents.policy.scripted_agent.hive.trace import TraceLog
from anthive_agents.policy.scripted_agent.hive.types import (
    GamePhase,
    ResourceType,
    UnitType,
    WorldSnapshot,
)


@pytest.fixture
def table() -> ResourceReservationTable:
    return ResourceReservationTable(stale_turns=10)


@pytest.fixture
def scheduler(table, hive_config) -> UnitTaskScheduler:
    return UnitTaskScheduler(table, hive_config)


def context(
    snapshot: WorldSnapshot,
    memory: Optional[WorldMemory] = None,
    degraded: bool = False,
    trace: Optional[TraceLog] = None,
) -> SchedulingContext:
    memory = memory or WorldMemory()
    analysis = analyze_turn(snapshot, memory, ThreatScorer())
    return SchedulingContext(analysis, build_occupancy(snapshot), memory, degraded, trace)


def start_turn(scheduler: UnitTaskScheduler, snapshot: WorldSnapshot) -> None:
    scheduler.table.reconcile(snapshot.unit_ids, snapshot.resource_keys, snapshot.turn)
    scheduler.begin_turn(snapshot)


# ---------------------------------------------------------------------------
# Candidate lists
# ---------------------------------------------------------------------------


class TestCandidateList:
    def test_worker_early(self) -> None:
        kinds = [c.kind for c in candidate_list(UnitType.WORKER, GamePhase.EARLY, False, False)]
        assert kinds == [TaskKind.COLLECT, TaskKind.ASSIST_RAID, TaskKind.AGGRESSIVE_EXPLORE]

    def test_raid_and_defense_come_first(self) -> None:
        kinds = [c.kind for c in candidate_list(UnitType.SOLDIER, GamePhase.LATE, True, True)]
        assert kinds == [
            TaskKind.RAID_ENEMY_BASE,
            TaskKind.IMMEDIATE_DEFENSE,
            TaskKind.ENGAGE,
            TaskKind.TERRITORY_DEFENSE,
        ]

    def test_scout_mid(self) -> None:
        kinds = [c.kind for c in candidate_list(UnitType.SCOUT, GamePhase.MID, False, False)]
        assert kinds == [
            TaskKind.FIND_ENEMY_BASE,
            TaskKind.AGGRESSIVE_EXPLORE,
            TaskKind.EXPLORE,
            TaskKind.COLLECT,
            TaskKind.RESOURCE_SCOUTING,
            TaskKind.TERRITORY_DEFENSE,
        ]

    def test_late_worker_keeps_high_value_collect(self) -> None:
        cands = candidate_list(UnitType.WORKER, GamePhase.LATE, False, False)
        assert cands == [
            Candidate(TaskKind.COLLECT),
            Candidate(TaskKind.ASSIST_RAID),
            Candidate(TaskKind.RAID_ENEMY_BASE),
            Candidate(TaskKind.COLLECT, high_value_only=True),
        ]

    def test_recovery_drops_the_phase_tail(self) -> None:
        kinds = [c.kind for c in candidate_list(UnitType.WORKER, GamePhase.RECOVERY, False, True)]
        assert kinds == [TaskKind.IMMEDIATE_DEFENSE, TaskKind.COLLECT, TaskKind.ASSIST_RAID]

    @pytest.mark.parametrize("phase", list(GamePhase))
    def test_soldiers_never_get_collect(self, phase) -> None:
        for base_known in (False, True):
            kinds = {c.kind for c in candidate_list(UnitType.SOLDIER, phase, base_known, False)}
            assert TaskKind.COLLECT not in kinds


def test_resource_hotspots(make_resource) -> None:
    resources = [
        make_resource((0, 0)),
        make_resource((1, 0)),
        make_resource((20, 0), ResourceType.NECTAR),
    ]
    assert resource_hotspots(resources, 5) == [(20, 0), (0, 0)]


# ---------------------------------------------------------------------------
# Return and horizon
# ---------------------------------------------------------------------------


class TestReturnToBase:
    @pytest.mark.parametrize(
        "cargo_type, amount, expected",
        [
            (None, 0, False),
            (ResourceType.NECTAR, 1, True),
            (ResourceType.APPLE, 6, False),
            (ResourceType.APPLE, 7, True),
            (ResourceType.BREAD, 8, True),
        ],
    )
    def test_needs_return(self, scheduler, make_unit, cargo_type, amount, expected) -> None:
        unit = make_unit(cargo_type=cargo_type, cargo_amount=amount)
        assert scheduler.needs_return(unit) is expected

    def test_nectar_carrier_goes_home_even_with_food_visible(
        self, scheduler, make_unit, make_resource, make_snapshot
    ) -> None:
        worker = make_unit("w1", UnitType.WORKER, (3, 0), cargo_type=ResourceType.NECTAR, cargo_amount=2)
        snapshot = make_snapshot(my_units=[worker], resources=[make_resource((4, 0))])
        trace = TraceLog()

        decision = scheduler.decide(worker, context(snapshot, trace=trace))

        assert decision.step == "return"
        assert decision.task.kind == TaskKind.RETURN_TO_BASE
        assert decision.task.priority == TaskPriority.CRITICAL
        assert decision.route == [(2, 0), (1, 0), (0, 0)]
        assert decision.command.to_wire()["ant"] == "w1"
        assert scheduler.table.reservation_of("w1") is None
        assert trace.active_step == "return"
        assert trace.task_tag == "return_to_base"

    def test_return_task_dropped_after_unloading(self, scheduler, make_unit, make_snapshot) -> None:
        loaded = make_unit("w1", UnitType.WORKER, (1, 0), cargo_type=ResourceType.NECTAR, cargo_amount=1)
        scheduler.decide(loaded, context(make_snapshot(my_units=[loaded])))
        assert scheduler.tasks.get("w1").kind == TaskKind.RETURN_TO_BASE

        empty = make_unit("w1", UnitType.WORKER, (0, 0))
        decision = scheduler.decide(empty, context(make_snapshot(turn=2, my_units=[empty])))
        assert decision.task is None or decision.task.kind != TaskKind.RETURN_TO_BASE

    def test_blocked_return_holds_position(self, scheduler, make_unit, make_snapshot) -> None:
        worker = make_unit("w1", UnitType.WORKER, (3, 0), cargo_type=ResourceType.NECTAR, cargo_amount=1)
        rocks = [(4, 0), (4, -1), (3, -1), (2, 0), (2, 1), (3, 1)]
        snapshot = make_snapshot(my_units=[worker], rocks=rocks)
        decision = scheduler.decide(worker, context(snapshot))
        assert decision.task.kind == TaskKind.RETURN_TO_BASE
        assert decision.route == []
        assert decision.command is None
        assert scheduler.tasks.get("w1") is not None


class TestHorizon:
    def test_horizon_limit(self, scheduler, make_unit) -> None:
        worker = make_unit()
        assert scheduler.horizon_limit(worker, 100) is None
        # 20 turns left * speed 3 // 2 - margin 2
        assert scheduler.horizon_limit(worker, 400) == 28

    def test_far_unit_recalled(self, scheduler, make_unit, make_resource, make_snapshot) -> None:
        worker = make_unit("w1", UnitType.WORKER, (29, 0))
        snapshot = make_snapshot(turn=400, my_units=[worker], resources=[make_resource((30, 0))])
        decision = scheduler.decide(worker, context(snapshot))
        assert decision.step == "horizon"
        assert decision.task.kind == TaskKind.RETURN_TO_BASE
        assert decision.route[-1] == (26, 0)

    def test_unit_within_limit_keeps_working(self, scheduler, make_unit, make_resource, make_snapshot) -> None:
        worker = make_unit("w1", UnitType.WORKER, (20, 0))
        snapshot = make_snapshot(turn=400, my_units=[worker], resources=[make_resource((22, 0))])
        decision = scheduler.decide(worker, context(snapshot))
        assert decision.task.kind == TaskKind.COLLECT

    def test_piles_beyond_horizon_are_not_collected(self, scheduler, make_unit, make_resource, make_snapshot) -> None:
        worker = make_unit("w1", UnitType.WORKER, (27, 0))
        snapshot = make_snapshot(turn=400, my_units=[worker], resources=[make_resource((29, 0))])
        decision = scheduler.decide(worker, context(snapshot))
        assert decision.task is None or decision.task.kind != TaskKind.COLLECT
        assert len(scheduler.table) == 0


# ---------------------------------------------------------------------------
# Collection
# ---------------------------------------------------------------------------


class TestCollect:
    def test_worker_reserves_and_walks(self, scheduler, make_unit, make_resource, make_snapshot) -> None:
        worker = make_unit("w1", UnitType.WORKER, (0, 0))
        apple = make_resource((5, 0))
        decision = scheduler.decide(worker, context(make_snapshot(my_units=[worker], resources=[apple])))

        assert decision.step == "assign"
        assert decision.task.kind == TaskKind.COLLECT
        assert decision.task.resource_key == apple.key
        assert decision.route == [(1, 0), (2, 0), (3, 0)]
        assert scheduler.table.reserver_of(apple) == "w1"
        assert scheduler.table.reservation_of("w1").metadata["resource_type"] == "APPLE"

    def test_task_continues_next_turn(self, scheduler, make_unit, make_resource, make_snapshot) -> None:
        apple = make_resource((5, 0))
        first = make_unit("w1", UnitType.WORKER, (0, 0))
        scheduler.decide(first, context(make_snapshot(turn=1, my_units=[first], resources=[apple])))

        moved = make_unit("w1", UnitType.WORKER, (3, 0))
        snapshot = make_snapshot(turn=2, my_units=[moved], resources=[apple])
        start_turn(scheduler, snapshot)
        decision = scheduler.decide(moved, context(snapshot))

        assert decision.step == "continue"
        assert decision.task.resource_key == apple.key
        assert decision.route == [(4, 0), (5, 0)]

    def test_vanished_pile_drops_task(self, scheduler, make_unit, make_resource, make_snapshot) -> None:
        apple = make_resource((5, 0))
        worker = make_unit("w1", UnitType.WORKER, (0, 0))
        scheduler.decide(worker, context(make_snapshot(turn=1, my_units=[worker], resources=[apple])))

        snapshot = make_snapshot(turn=2, my_units=[worker])
        start_turn(scheduler, snapshot)
        assert "w1" not in scheduler.tasks

        decision = scheduler.decide(worker, context(snapshot))
        assert decision.task.kind == TaskKind.AGGRESSIVE_EXPLORE
        assert scheduler.table.reservation_of("w1") is None

    def test_two_workers_split_two_piles(self, scheduler, make_unit, make_resource, make_snapshot) -> None:
        w1 = make_unit("w1", UnitType.WORKER, (0, 0))
        w2 = make_unit("w2", UnitType.WORKER, (0, 1))
        piles = [make_resource((3, 0)), make_resource((3, 1))]
        snapshot = make_snapshot(my_units=[w1, w2], resources=piles)
        ctx = context(snapshot)

        d1 = scheduler.decide(w1, ctx)
        d2 = scheduler.decide(w2, ctx)

        assert d1.task.kind == TaskKind.COLLECT
        assert d2.task.kind == TaskKind.COLLECT
        assert d1.task.resource_key != d2.task.resource_key
        assert len(scheduler.table) == 2

    def test_preempts_lower_priority_holder(self, scheduler, make_unit, make_resource, make_snapshot) -> None:
        apple = make_resource((2, 0))
        w1 = make_unit("w1", UnitType.WORKER, (0, 0))
        w2 = make_unit("w2", UnitType.WORKER, (10, 0))
        scheduler.table.reserve("w2", apple, 1.0, turn=1)
        scheduler.tasks.set(UnitTask("w2", TaskKind.COLLECT, (2, 0), TaskPriority.MEDIUM, 1, resource_key=apple.key))

        decision = scheduler.decide(w1, context(make_snapshot(my_units=[w1, w2], resources=[apple])))

        assert decision.task.kind == TaskKind.COLLECT
        assert scheduler.table.reserver_of(apple) == "w1"
        assert "w2" not in scheduler.tasks

    def test_does_not_preempt_stronger_holder(self, scheduler, make_unit, make_resource, make_snapshot) -> None:
        apple = make_resource((2, 0))
        w1 = make_unit("w1", UnitType.WORKER, (0, 0))
        w2 = make_unit("w2", UnitType.WORKER, (10, 0))
        scheduler.table.reserve("w2", apple, 1000.0, turn=1)

        decision = scheduler.decide(w1, context(make_snapshot(my_units=[w1, w2], resources=[apple])))

        assert decision.task.kind == TaskKind.AGGRESSIVE_EXPLORE
        assert scheduler.table.reserver_of(apple) == "w2"

    def test_restricted_worker_collects_same_type(self, scheduler, make_unit, make_resource, make_snapshot) -> None:
        worker = make_unit("w1", UnitType.WORKER, (0, 0), cargo_type=ResourceType.APPLE, cargo_amount=5)
        bread = make_resource((1, 0), ResourceType.BREAD)
        apple = make_resource((3, 0))
        decision = scheduler.decide(worker, context(make_snapshot(my_units=[worker], resources=[bread, apple])))
        assert decision.task.kind == TaskKind.COLLECT
        assert decision.task.target == (3, 0)

    def test_restricted_worker_without_match_goes_home(
        self, scheduler, make_unit, make_resource, make_snapshot
    ) -> None:
        worker = make_unit("w1", UnitType.WORKER, (3, 0), cargo_type=ResourceType.APPLE, cargo_amount=5)
        bread = make_resource((4, 0), ResourceType.BREAD)
        decision = scheduler.decide(worker, context(make_snapshot(my_units=[worker], resources=[bread])))
        assert decision.step == "assign"
        assert decision.task.kind == TaskKind.RETURN_TO_BASE
        assert decision.task.priority == TaskPriority.HIGH

    def test_soldier_never_collects(self, scheduler, make_unit, make_resource, make_snapshot) -> None:
        soldier = make_unit("s1", UnitType.SOLDIER, (0, 0))
        snapshot = make_snapshot(my_units=[soldier], resources=[make_resource((1, 0), ResourceType.NECTAR)])
        decision = scheduler.decide(soldier, context(snapshot))
        assert decision.task.kind == TaskKind.TERRITORY_DEFENSE
        assert len(scheduler.table) == 0

    def test_release_listener_drops_collect_task(self, scheduler, make_unit, make_resource, make_snapshot) -> None:
        worker = make_unit("w1", UnitType.WORKER, (0, 0))
        scheduler.decide(worker, context(make_snapshot(my_units=[worker], resources=[make_resource((3, 0))])))
        assert "w1" in scheduler.tasks
        scheduler.table.release("w1")
        assert "w1" not in scheduler.tasks


class TestOrphans:
    def test_idle_worker_adopts_orphan(self, scheduler, make_unit, make_resource, make_snapshot) -> None:
        worker = make_unit("w1", UnitType.WORKER, (0, 0))
        apple = make_resource((2, 0))
        snapshot = make_snapshot(my_units=[worker], resources=[apple])
        ctx = context(snapshot)

        granted = scheduler.reassign_orphans(ctx.analysis)
        assert [r.holder for r in granted] == ["w1"]

        decision = scheduler.decide(worker, ctx)
        assert decision.step == "continue"
        assert decision.task.kind == TaskKind.COLLECT
        assert decision.task.resource_key == apple.key

    def test_soldiers_and_loaded_units_are_not_idle(self, scheduler, make_unit, make_resource, make_snapshot) -> None:
        units = [
            make_unit("s1", UnitType.SOLDIER, (0, 0)),
            make_unit("w1", UnitType.WORKER, (0, 1), cargo_type=ResourceType.BREAD, cargo_amount=4),
        ]
        snapshot = make_snapshot(my_units=units, resources=[make_resource((2, 0))])
        assert scheduler.reassign_orphans(context(snapshot).analysis) == []

    def test_units_heading_home_are_not_idle(self, scheduler, make_unit, make_resource, make_snapshot) -> None:
        units = [
            make_unit("w1", UnitType.WORKER, (3, 0), cargo_type=ResourceType.NECTAR, cargo_amount=1),
            make_unit("w2", UnitType.WORKER, (0, 4)),
        ]
        snapshot = make_snapshot(my_units=units, resources=[make_resource((4, 0))])

        granted = scheduler.reassign_orphans(context(snapshot).analysis)
        assert [r.holder for r in granted] == ["w2"]

    def test_units_recalled_by_horizon_are_not_idle(self, scheduler, make_unit, make_resource, make_snapshot) -> None:
        worker = make_unit("w1", UnitType.WORKER, (29, 0))
        snapshot = make_snapshot(turn=400, my_units=[worker], resources=[make_resource((27, 0))])
        assert scheduler.beyond_horizon(worker, (0, 0), 400)
        assert scheduler.reassign_orphans(context(snapshot).analysis) == []

    def test_piles_beyond_horizon_score_zero(self, scheduler, make_unit, make_resource, make_snapshot) -> None:
        worker = make_unit("w1", UnitType.WORKER, (27, 0))
        snapshot = make_snapshot(turn=400, my_units=[worker], resources=[make_resource((40, 0))])
        assert scheduler.reassign_orphans(context(snapshot).analysis) == []


# ---------------------------------------------------------------------------
# Combat and exploration
# ---------------------------------------------------------------------------


class TestCombat:
    def test_immediate_defense_intercepts_halfway(self, scheduler, make_unit, make_snapshot) -> None:
        worker = make_unit("w1", UnitType.WORKER, (-2, 0))
        enemy = make_unit("e1", UnitType.SOLDIER, (4, 0))
        decision = scheduler.decide(worker, context(make_snapshot(my_units=[worker], enemy_units=[enemy])))
        assert decision.task.kind == TaskKind.IMMEDIATE_DEFENSE
        assert decision.task.target == (2, 0)
        assert decision.task.target_id == "e1"
        assert decision.route == [(-1, 0), (0, 0), (1, 0)]

    def test_soldier_engages_weaker_enemy(self, scheduler, make_unit, make_snapshot) -> None:
        soldier = make_unit("s1", UnitType.SOLDIER, (0, 0))
        enemy = make_unit("e1", UnitType.WORKER, (6, 0))
        decision = scheduler.decide(soldier, context(make_snapshot(my_units=[soldier], enemy_units=[enemy])))
        assert decision.task.kind == TaskKind.ENGAGE
        assert decision.task.target == (6, 0)
        assert decision.task.target_id == "e1"
        assert decision.route

    def test_engage_follows_moving_enemy(self, scheduler, make_unit, make_snapshot) -> None:
        soldier = make_unit("s1", UnitType.SOLDIER, (0, 0))
        scheduler.decide(
            soldier,
            context(make_snapshot(my_units=[soldier], enemy_units=[make_unit("e1", UnitType.WORKER, (6, 0))])),
        )
        moved = make_unit("e1", UnitType.WORKER, (6, 2))
        snapshot = make_snapshot(turn=2, my_units=[soldier], enemy_units=[moved])
        decision = scheduler.decide(soldier, context(snapshot))
        assert decision.step == "continue"
        assert decision.task.target == (6, 2)

    def test_raid_and_assist(self, scheduler, make_unit, make_snapshot) -> None:
        soldiers = [make_unit(f"s{i}", UnitType.SOLDIER, (0, i)) for i in range(3)]
        worker = make_unit("w1", UnitType.WORKER, (-25, 0))
        snapshot = make_snapshot(my_units=soldiers + [worker], enemy_bases=[(20, 0)], turn=10)
        ctx = context(snapshot)

        raid = scheduler.decide(soldiers[0], ctx)
        assert raid.task.kind == TaskKind.RAID_ENEMY_BASE
        assert raid.task.priority == TaskPriority.CRITICAL
        assert raid.task.target == (20, 0)

        # The worker is too far to raid itself and has nothing to collect
        assist = scheduler.decide(worker, ctx)
        assert assist.task.kind == TaskKind.ASSIST_RAID
        assert assist.task.target_id == "s0"

    def test_territory_points_are_not_shared(self, scheduler, make_unit, make_snapshot) -> None:
        s1 = make_unit("s1", UnitType.SOLDIER, (0, 0))
        s2 = make_unit("s2", UnitType.SOLDIER, (1, 0))
        ctx = context(make_snapshot(my_units=[s1, s2]))
        d1 = scheduler.decide(s1, ctx)
        d2 = scheduler.decide(s2, ctx)
        assert d1.task.kind == d2.task.kind == TaskKind.TERRITORY_DEFENSE
        assert d1.task.target != d2.task.target
        # 45 degrees on the axial plane: (7, 7) is the farthest ring point
        assert d1.task.target == (7, 7)


class TestExploration:
    def test_scout_searches_for_enemy_base(self, scheduler, make_unit, make_snapshot) -> None:
        scout = make_unit("c1", UnitType.SCOUT, (0, 0))
        decision = scheduler.decide(scout, context(make_snapshot(my_units=[scout])))
        assert decision.task.kind == TaskKind.FIND_ENEMY_BASE
        assert decision.task.priority == TaskPriority.HIGH
        assert len(decision.route) == 7

    def test_explored_target_is_abandoned(self, scheduler, make_unit, make_snapshot) -> None:
        scout = make_unit("c1", UnitType.SCOUT, (0, 0))
        memory = WorldMemory()
        first = scheduler.decide(scout, context(make_snapshot(my_units=[scout]), memory))
        memory.explored.add(first.task.target)

        second = scheduler.decide(scout, context(make_snapshot(turn=2, my_units=[scout]), memory))
        assert second.step == "assign"
        assert second.task.target != first.task.target


# ---------------------------------------------------------------------------
# Degraded mode and default patrol
# ---------------------------------------------------------------------------


class TestDegradedAndPatrol:
    def test_degraded_skips_low_priority(self, scheduler, make_unit, make_snapshot) -> None:
        worker = make_unit("w1", UnitType.WORKER, (0, 0))
        trace = TraceLog()
        decision = scheduler.decide(worker, context(make_snapshot(my_units=[worker]), degraded=True, trace=trace))

        assert decision.task is None
        assert decision.command is None
        skipped = {(e.step_name, e.detail) for e in trace.entries if e.skipped}
        assert ("aggressive_exploration", "degraded") in skipped
        assert ("default", "n/a") in skipped

    def test_not_degraded_explores(self, scheduler, make_unit, make_snapshot) -> None:
        worker = make_unit("w1", UnitType.WORKER, (0, 0))
        decision = scheduler.decide(worker, context(make_snapshot(my_units=[worker])))
        assert decision.task.kind == TaskKind.AGGRESSIVE_EXPLORE

    def test_recovery_patrols_instead_of_exploring(self, scheduler, make_unit, make_snapshot) -> None:
        worker = make_unit("w1", UnitType.WORKER, (0, 0))
        memory = WorldMemory()
        memory.recovery_since = 20
        ctx = context(make_snapshot(turn=22, my_units=[worker]), memory)

        assert ctx.analysis.phase == GamePhase.RECOVERY
        decision = scheduler.decide(worker, ctx)
        assert decision.step == "default"
        assert decision.task.kind == TaskKind.PATROL

    def test_degraded_still_collects(self, scheduler, make_unit, make_resource, make_snapshot) -> None:
        worker = make_unit("w1", UnitType.WORKER, (0, 0))
        snapshot = make_snapshot(my_units=[worker], resources=[make_resource((2, 0))])
        decision = scheduler.decide(worker, context(snapshot, degraded=True))
        assert decision.task.kind == TaskKind.COLLECT

    def test_default_patrol_and_reuse(self, scheduler, make_unit, make_snapshot) -> None:
        worker = make_unit("w1", UnitType.WORKER, (0, 0))
        # Late game with nothing to collect and no enemy base known
        first = scheduler.decide(worker, context(make_snapshot(turn=301, my_units=[worker])))
        assert first.step == "default"
        assert first.task.kind == TaskKind.PATROL
        assert hex_distance(first.task.target, (0, 0)) <= 5

        second = scheduler.decide(worker, context(make_snapshot(turn=302, my_units=[worker])))
        assert second.step == "default"
        assert second.task.target == first.task.target


class TestTaskLifecycle:
    def test_dead_unit_task_and_reservation_dropped(
        self, scheduler, make_unit, make_resource, make_snapshot
    ) -> None:
        apple = make_resource((2, 0))
        scheduler.table.reserve("w9", apple, 3.0, turn=1)
        scheduler.tasks.set(UnitTask("w9", TaskKind.COLLECT, (2, 0), TaskPriority.MEDIUM, 1, resource_key=apple.key))

        dropped = scheduler.begin_turn(make_snapshot(turn=2, my_units=[make_unit("w1")], resources=[apple]))

        assert [(t.unit_id, reason) for t, reason in dropped] == [("w9", "holder_dead")]
        assert scheduler.table.reservation_of("w9") is None

    def test_stale_task_dropped(self, scheduler, make_unit, make_snapshot) -> None:
        scheduler.tasks.set(UnitTask("w1", TaskKind.EXPLORE, (9, 9), TaskPriority.MEDIUM, 1))
        dropped = scheduler.begin_turn(make_snapshot(turn=17, my_units=[make_unit("w1")]))
        assert [reason for _, reason in dropped] == ["stale"]

    def test_non_collect_task_never_holds_reservation(
        self, scheduler, make_unit, make_resource, make_snapshot
    ) -> None:
        worker = make_unit("w1", UnitType.WORKER, (0, 0), cargo_type=ResourceType.NECTAR, cargo_amount=1)
        apple = make_resource((2, 0))
        scheduler.table.reserve("w1", apple, 3.0, turn=1)
        decision = scheduler.decide(worker, context(make_snapshot(my_units=[worker], resources=[apple])))
        assert decision.task.kind == TaskKind.RETURN_TO_BASE
        assert scheduler.table.reservation_of("w1") is None
