"""End-to-end tests for HivePolicy turn planning."""

from __future__ import annotations

import io
import json

import pytest

from anthive_agents.policy.scripted_agent.common.geometry import is_adjacent
from anthive_agents.policy.scripted_agent.hive import HiveConfig, HivePolicy, SnapshotError, TaskKind
from anthive_agents.policy.scripted_agent.hive.config import DeadlineConfig
from anthive_agents.policy.scripted_agent.hive.types import UnitType


def wire(turn=1, ants=(), enemies=(), food=(), home=((0, 0),), next_turn_in=None) -> dict:
    payload = {
        "turnNo": turn,
        "score": 0,
        "ants": [dict(a) for a in ants],
        "enemies": [dict(e) for e in enemies],
        "food": [dict(f) for f in food],
        "home": [{"q": q, "r": r} for q, r in home],
        "map": [],
    }
    if next_turn_in is not None:
        payload["nextTurnIn"] = next_turn_in
    return payload


def ant(unit_id, unit_type=1, q=0, r=0, **extra) -> dict:
    return {"id": unit_id, "type": unit_type, "q": q, "r": r, **extra}


def apple(q, r, amount=3) -> dict:
    return {"q": q, "r": r, "type": 1, "amount": amount}


class FakeClock:
    """Monotonic clock that advances a fixed amount on every read."""

    def __init__(self, step: float) -> None:
        self.now = 0.0
        self.step = step

    def __call__(self) -> float:
        value = self.now
        self.now += self.step
        return value


@pytest.fixture
def policy(hive_config) -> HivePolicy:
    return HivePolicy(hive_config)


# ---------------------------------------------------------------------------
# Turn planning
# ---------------------------------------------------------------------------


class TestStep:
    def test_commands_are_legal_routes(self, policy) -> None:
        ants = [ant("w1", q=0, r=0), ant("w2", q=0, r=1), ant("s1", 2, q=-1, r=0), ant("c1", 3, q=1, r=-1)]
        snapshot = wire(ants=ants, food=[apple(3, 0), apple(-3, 2)])

        commands = policy.step(snapshot)

        positions = {a["id"]: (a["q"], a["r"]) for a in ants}
        assert commands
        for command in commands:
            current = positions[command.unit_id]
            for cell in command.route:
                assert is_adjacent(current, cell)
                current = cell

    def test_each_pile_has_one_collector(self, policy) -> None:
        ants = [ant(f"w{i}", q=0, r=i) for i in range(4)]
        policy.step(wire(ants=ants, food=[apple(4, 0), apple(4, 2)]))

        collectors = [d for d in policy.last_decisions if d.task and d.task.kind == TaskKind.COLLECT]
        keys = [d.task.resource_key for d in collectors]
        assert len(keys) == 2
        assert len(set(keys)) == 2
        assert len(policy.table) == 2

    def test_same_type_units_never_share_a_destination(self, policy) -> None:
        ants = [ant(f"w{i}", q=0, r=i) for i in range(3)]
        commands = policy.step(wire(ants=ants, food=[apple(2, 0)]))
        ends = [c.route[-1] for c in commands]
        assert len(ends) == len(set(ends))

    def test_tasks_persist_across_turns(self, policy) -> None:
        policy.step(wire(turn=1, ants=[ant("w1")], food=[apple(5, 0)]))
        commands = policy.step(wire(turn=2, ants=[ant("w1", q=3, r=0)], food=[apple(5, 0)]))

        [decision] = policy.last_decisions
        assert decision.step == "continue"
        assert commands[0].route == ((4, 0), (5, 0))

    def test_dead_unit_reservation_is_released(self, policy) -> None:
        policy.step(wire(turn=1, ants=[ant("w1"), ant("w2", q=0, r=3)], food=[apple(2, 0)]))
        holder = policy.table.reserver_of((2, 0, 1))
        assert holder is not None

        survivor = "w2" if holder == "w1" else "w1"
        survivor_pos = (0, 3) if survivor == "w2" else (0, 0)
        policy.step(wire(turn=2, ants=[ant(survivor, q=survivor_pos[0], r=survivor_pos[1])], food=[apple(2, 0)]))
        assert policy.table.reservation_of(holder) is None
        assert holder not in policy.scheduler.tasks

    def test_preempted_unit_replans_in_same_turn(self, policy) -> None:
        policy.step(wire(turn=1, ants=[ant("w1", q=9, r=0)], food=[apple(5, 0)]))
        assert policy.table.reserver_of((5, 0, 1)) == "w1"

        # w2 plans after w1 but scores higher on the pile
        commands = policy.step(wire(turn=2, ants=[ant("w1", q=9, r=0), ant("w2", q=4, r=0)], food=[apple(5, 0)]))

        by_unit = {d.unit_id: d for d in policy.last_decisions}
        assert by_unit["w2"].task.kind == TaskKind.COLLECT
        assert by_unit["w1"].task.kind != TaskKind.COLLECT
        assert policy.table.reserver_of((5, 0, 1)) == "w2"
        assert [c.unit_id for c in commands] == ["w1", "w2"]

    def test_free_pile_goes_to_a_unit_that_keeps_it(self, policy) -> None:
        nectar_carrier = ant("w2", q=3, r=0, food={"type": 3, "amount": 1})
        policy.step(wire(ants=[ant("w1", q=0, r=4), nectar_carrier], food=[apple(4, 0)]))

        kinds = {d.unit_id: d.task.kind for d in policy.last_decisions}
        assert kinds == {"w1": TaskKind.COLLECT, "w2": TaskKind.RETURN_TO_BASE}
        assert policy.table.reserver_of((4, 0, 1)) == "w1"

    def test_moves_payload(self, policy) -> None:
        payload = policy.moves(wire(ants=[ant("w1")], food=[apple(2, 0)]))
        assert payload == {"moves": [{"ant": "w1", "path": [{"q": 1, "r": 0}, {"q": 2, "r": 0}]}]}

    def test_anthill_is_never_commanded(self, policy) -> None:
        commands = policy.step(wire(ants=[ant("hill", 0), ant("w1")], food=[apple(1, 0)]))
        assert [c.unit_id for c in commands] == ["w1"]

    def test_accepts_parsed_snapshot(self, policy, make_unit, make_resource, make_snapshot) -> None:
        snapshot = make_snapshot(my_units=[make_unit()], resources=[make_resource((2, 0))])
        assert [c.unit_id for c in policy.step(snapshot)] == ["w1"]


# ---------------------------------------------------------------------------
# Faults and deadlines
# ---------------------------------------------------------------------------


class TestRobustness:
    def test_one_unit_fault_does_not_block_others(self, hive_config, monkeypatch) -> None:
        out = io.StringIO()
        policy = HivePolicy(hive_config, debug=2, debug_output=out)
        original = policy.scheduler.decide

        def flaky(unit, ctx):
            if unit.id == "w1":
                raise ValueError("bad target")
            return original(unit, ctx)

        monkeypatch.setattr(policy.scheduler, "decide", flaky)
        commands = policy.step(wire(ants=[ant("w1"), ant("w2", q=0, r=2)], food=[apple(2, 2)]))

        by_unit = {d.unit_id: d for d in policy.last_decisions}
        assert by_unit["w1"].step == "fallback"
        assert by_unit["w1"].task.kind == TaskKind.PATROL
        assert by_unit["w2"].task.kind == TaskKind.COLLECT
        assert "w2" in [c.unit_id for c in commands]
        assert "u=w1 ERROR ValueError: bad target" in out.getvalue()

    def test_any_planner_error_falls_back_to_patrol(self, hive_config, monkeypatch) -> None:
        out = io.StringIO()
        policy = HivePolicy(hive_config, debug=2, debug_output=out)

        def broken(unit, ctx, cand):
            raise IndexError("no territory points")

        monkeypatch.setitem(policy.scheduler._planners, TaskKind.TERRITORY_DEFENSE, broken)
        ants = [ant("s1", UnitType.SOLDIER.value), ant("w1", q=0, r=2)]
        commands = policy.step(wire(ants=ants, food=[apple(2, 2)]))

        by_unit = {d.unit_id: d for d in policy.last_decisions}
        assert by_unit["s1"].step == "fallback"
        assert by_unit["s1"].task.kind == TaskKind.PATROL
        assert by_unit["w1"].task.kind == TaskKind.COLLECT
        assert "w1" in [c.unit_id for c in commands]
        assert "u=s1 ERROR IndexError: no territory points" in out.getvalue()

    def test_deadline_degrades_low_priority_work(self) -> None:
        config = HiveConfig(deadline=DeadlineConfig(deadline_seconds=1.5))
        policy = HivePolicy(config, clock=FakeClock(step=2.0))
        # Nothing to collect: the only options left are exploration and patrol
        commands = policy.step(wire(ants=[ant("w1")]))
        assert policy.last_degraded
        assert commands == []

    def test_degraded_units_still_collect(self) -> None:
        policy = HivePolicy(HiveConfig(), clock=FakeClock(step=2.0))
        commands = policy.step(wire(ants=[ant("w1")], food=[apple(2, 0)]))
        assert policy.last_degraded
        assert [c.task for c in commands] == ["collect"]

    def test_next_turn_in_tightens_budget(self, hive_config) -> None:
        policy = HivePolicy(hive_config, clock=FakeClock(step=1.0))
        policy.step(wire(ants=[ant("w1")], next_turn_in=1.0))
        assert policy.last_degraded

    def test_generous_budget_is_not_degraded(self, policy) -> None:
        policy.step(wire(ants=[ant("w1")]))
        assert not policy.last_degraded
        assert policy.last_decisions[0].task is not None

    def test_bad_envelope_raises(self, policy) -> None:
        with pytest.raises(SnapshotError):
            policy.step({"ants": "none"})


# ---------------------------------------------------------------------------
# Debug output and tracing
# ---------------------------------------------------------------------------


class TestDebugOutput:
    def test_level_one_summary(self, hive_config) -> None:
        out = io.StringIO()
        policy = HivePolicy(hive_config, debug=1, debug_output=out)
        policy.step(wire(ants=[ant("w1")], food=[apple(2, 0)]))

        lines = out.getvalue().splitlines()
        assert len(lines) == 1
        assert lines[0].startswith("[hive:debug] t=1 units=1 cmds=1 res=1 tasks=1")

    def test_level_two_tables(self, hive_config) -> None:
        out = io.StringIO()
        policy = HivePolicy(hive_config, debug=2, debug_output=out)
        policy.step(wire(ants=[ant("w1")], food=[apple(2, 0)]))

        text = out.getvalue()
        assert "u=w1 worker (0,0) continue:collect steps=2 tgt=(2, 0)" in text
        assert "reservation (2, 0, 1) holder=w1" in text
        assert "task u=w1 collect tgt=(2, 0) age=0" in text

    def test_release_reasons_are_reported(self, hive_config) -> None:
        out = io.StringIO()
        policy = HivePolicy(hive_config, debug=1, debug_output=out)
        policy.step(wire(turn=1, ants=[ant("w1")], food=[apple(2, 0)]))
        policy.step(wire(turn=2, ants=[ant("w1", q=1, r=0)]))
        assert "rel(vanished:1)" in out.getvalue().splitlines()[-1]

    def test_game_summary(self, hive_config) -> None:
        out = io.StringIO()
        policy = HivePolicy(hive_config, debug=1, debug_output=out)
        policy.step(wire(turn=1, ants=[ant("w1")], food=[apple(2, 0)]))
        policy.step(wire(turn=2, ants=[ant("w1", q=2, r=0)]))
        policy.end_game()

        last = out.getvalue().splitlines()[-1]
        prefix = "[hive:debug:summary] "
        assert last.startswith(prefix)
        summary = json.loads(last[len(prefix) :])
        assert summary["turns"] == 2
        assert summary["last_turn"] == 2
        assert summary["task_counts"]["collect"] == 1

    def test_recovery_turns_are_flagged(self, hive_config) -> None:
        out = io.StringIO()
        policy = HivePolicy(hive_config, debug=1, debug_output=out)
        for turn in (20, 21, 22):
            policy.step(wire(turn=turn, ants=[ant("w1")]))
        policy.end_game()

        lines = out.getvalue().splitlines()
        assert "RECOVERY" not in lines[1]
        assert "RECOVERY" in lines[2]
        summary = json.loads(lines[-1].split(" ", 1)[1])
        assert summary["recovery_turns"] == 1
        assert summary["timeline"][-1]["phase"] == "recovery"

    def test_trace_lines_go_to_stderr(self, hive_config, capsys) -> None:
        policy = HivePolicy(hive_config, trace=1, trace_level=2, trace_unit="w2")
        policy.step(wire(ants=[ant("w1"), ant("w2", UnitType.SOLDIER.value, q=0, r=2)]))

        captured = capsys.readouterr()
        assert captured.out == ""
        lines = [line for line in captured.err.splitlines() if line.startswith("[hive]")]
        assert len(lines) == 1
        assert lines[0].startswith("[hive] [t=1 u=w2 soldier (0,2) hp=180] skip:return(n/a)")
        assert lines[0].endswith("territory_defense")

    def test_debug_rows(self, policy) -> None:
        policy.step(wire(turn=4, ants=[ant("w1")], food=[apple(2, 0)]))
        reservations, tasks = policy.debug_rows()
        assert [(key, holder) for key, holder, _prio, _age in reservations] == [((2, 0, 1), "w1")]
        assert tasks == [("w1", "collect", (2, 0), 0)]


class TestReset:
    def test_reset_forgets_everything(self, policy) -> None:
        policy.step(wire(ants=[ant("w1")], food=[apple(2, 0)], enemies=[{"type": 0, "q": 30, "r": 0}]))
        assert len(policy.table) == 1
        assert policy.memory.known_enemy_bases() == [(30, 0)]

        policy.reset()

        assert len(policy.table) == 0
        assert len(policy.scheduler.tasks) == 0
        assert policy.memory.known_enemy_bases() == []
        assert policy.last_analysis is None
