"""Tunable thresholds for the Hive policy, grouped by concern."""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from typing import Any, Mapping


@dataclass
class SearchConfig:
    """A* search bounds.

    Attributes:
        max_distance_cap: Upper bound on the per-unit search distance (default: 100)
        speed_multiplier: Search distance is speed * this, capped (default: 10)
        expansion_factor: Node expansions allowed per unit of distance (default: 6)
    """

    max_distance_cap: int = 100
    speed_multiplier: int = 10
    expansion_factor: int = 6


@dataclass
class CargoConfig:
    """Cargo thresholds.

    Attributes:
        return_ratio: Return to base at or above this fill ratio (default: 0.8)
        restricted_ratio: Only same-type resources at or above this ratio (default: 0.5)
    """

    return_ratio: float = 0.8
    restricted_ratio: float = 0.5


@dataclass
class HorizonConfig:
    """End-of-game recall.

    Attributes:
        game_end_turn: Last turn of the game (default: 420)
        horizon_turns: Recall checks start when this many turns are left (default: 40)
        safety_margin: Cells of slack kept on the way home (default: 2)
    """

    game_end_turn: int = 420
    horizon_turns: int = 40
    safety_margin: int = 2


@dataclass
class ReservationConfig:
    """Reservation ledger tuning.

    Attributes:
        stale_turns: Reservations older than this are dropped (default: 10)
        cargo_match_bonus: Priority bonus for a unit already carrying the type (default: 5.0)
    """

    stale_turns: int = 10
    cargo_match_bonus: float = 5.0


@dataclass
class TaskConfig:
    """Task cache and candidate generation.

    Attributes:
        stale_turns: Cached tasks older than this are dropped (default: 15)
        patrol_radius: Default patrol stays this close to base (default: 5)
        territory_radius: Soldier patrol ring radius (default: 10)
        territory_points: Points sampled on the patrol ring (default: 8)
        immediate_threat_radius: Enemies this close to base need defending (default: 5)
        nearby_threat_radius: Enemies this close to base are "nearby" (default: 10)
        engage_ratio: Engage only if attack >= ratio * enemy attack (default: 0.7)
        follow_distance: Raid assistants stop this close to the raider (default: 3)
        exploration_rings: Rings of vision-sized steps around base to explore (default: 3)
        scouting_radius: Spiral radius for resource scouting (default: 20)
        hotspot_radius: Resources this close cluster into one hotspot (default: 5)
        enemy_base_grid: Grid spacing when sweeping for enemy bases (default: 20)
        enemy_base_search_radius: Grid cells beyond this from base are ignored (default: 60)
        aggressive_near_home: Units closer than this are sent far out (default: 15)
        aggressive_far: Distance used for units near home (default: 30)
        aggressive_step: Extra distance for units already out (default: 10)
        aggressive_max: Upper bound on aggressive exploration distance (default: 50)
        high_value_radius: Late-game high-value collection radius (default: 15)
        collect_attempts: Free piles tried per unit before the preemption pass (default: 8)
        target_attempts: Exploration and patrol targets tried per unit (default: 3)
        enemy_base_grid_span: Grid steps swept each way when looking for enemy bases (default: 3)
    """

    stale_turns: int = 15
    patrol_radius: int = 5
    territory_radius: int = 10
    territory_points: int = 8
    immediate_threat_radius: int = 5
    nearby_threat_radius: int = 10
    engage_ratio: float = 0.7
    follow_distance: int = 3
    exploration_rings: int = 3
    scouting_radius: int = 20
    hotspot_radius: int = 5
    enemy_base_grid: int = 20
    enemy_base_search_radius: int = 60
    aggressive_near_home: int = 15
    aggressive_far: int = 30
    aggressive_step: int = 10
    aggressive_max: int = 50
    high_value_radius: int = 15
    collect_attempts: int = 8
    target_attempts: int = 3
    enemy_base_grid_span: int = 3


@dataclass
class ThreatConfig:
    """Weights for the threat score.

    Attributes:
        dps_weight: Multiplier on attack * health fraction (default: 0.1)
        melee_bonus: Flat bonus if adjacent to any friendly unit (default: 10.0)
        econ_weight: Per friendly worker within econ_radius (default: 1.5)
        econ_radius: Radius for the economic term (default: 4)
        combat_amplifier: Economic term multiplier for combat-capable enemies (default: 2.0)
        base_weight: Per cell closer than base_radius (default: 0.5)
        base_radius: Distance to base beyond which the base term is zero (default: 12)
        low_health_threshold: Health fraction under which the bonus applies (default: 0.3)
        low_health_bonus: Flat bonus for nearly dead enemies (default: 2.0)
        soldier_threat: Base threat of an enemy soldier (default: 3.0)
        scout_threat: Base threat of an enemy scout (default: 2.0)
        worker_threat: Base threat of an enemy worker (default: 1.0)
        discount_radius: Resources this close to a threat are discounted (default: 5)
        discount_step: Discount per nearby threat (default: 0.2)
        discount_floor: Lowest discount multiplier (default: 0.3)
    """

    dps_weight: float = 0.1
    melee_bonus: float = 10.0
    econ_weight: float = 1.5
    econ_radius: int = 4
    combat_amplifier: float = 2.0
    base_weight: float = 0.5
    base_radius: int = 12
    low_health_threshold: float = 0.3
    low_health_bonus: float = 2.0
    soldier_threat: float = 3.0
    scout_threat: float = 2.0
    worker_threat: float = 1.0
    discount_radius: int = 5
    discount_step: float = 0.2
    discount_floor: float = 0.3


@dataclass
class ResourceConfig:
    """Food pile priority and unit-to-pile scoring.

    Attributes:
        nectar_multiplier: Base priority of nectar (default: 3.0)
        nectar_near_radius: Nectar this close to any unit gets the bonus (default: 6)
        nectar_near_bonus: Nearby nectar multiplier (default: 2.0)
        bread_multiplier: Base priority of bread (default: 2.0)
        bread_near_radius: Bread this close to any unit gets the bonus (default: 4)
        bread_near_bonus: Nearby bread multiplier (default: 1.5)
        early_bread: Early-phase bread multiplier (default: 1.5)
        mid_nectar: Mid-phase nectar multiplier (default: 1.3)
        late_nectar: Late-phase nectar multiplier (default: 1.8)
        escort_radius: Friendly soldiers this close to a pile make it safer (default: 4)
        escort_bonus: Safety bonus per escorting soldier (default: 0.3)
        safety_cap: Upper bound of the pile safety multiplier (default: 2.0)
        efficiency_weight: Unit score per point of collection efficiency (default: 10.0)
        distance_reach: Unit score bonus is max(0, reach - distance) (default: 10)
        cargo_weight: Unit score per point of cargo capacity (default: 0.5)
        path_threat_radius: Threats this close to the straight path cost safety (default: 3)
        path_threat_step: Safety lost per threat per path cell (default: 0.1)
        path_threat_floor: Lowest per-cell safety factor (default: 0.5)
    """

    nectar_multiplier: float = 3.0
    nectar_near_radius: int = 6
    nectar_near_bonus: float = 2.0
    bread_multiplier: float = 2.0
    bread_near_radius: int = 4
    bread_near_bonus: float = 1.5
    early_bread: float = 1.5
    mid_nectar: float = 1.3
    late_nectar: float = 1.8
    escort_radius: int = 4
    escort_bonus: float = 0.3
    safety_cap: float = 2.0
    efficiency_weight: float = 10.0
    distance_reach: int = 10
    cargo_weight: float = 0.5
    path_threat_radius: int = 3
    path_threat_step: float = 0.1
    path_threat_floor: float = 0.5


@dataclass
class RaidConfig:
    """Enemy base raid feasibility.

    Attributes:
        max_distance: Bases farther than this are never raided (default: 40)
        defense_radius: Enemy units this close to their base defend it (default: 8)
        base_power: Power credited to the base itself (default: 200.0)
        min_power_ratio: Our power must be at least this share of theirs (default: 0.8)
        min_score: Raids scoring below this are skipped (default: 120.0)
    """

    max_distance: int = 40
    defense_radius: int = 8
    base_power: float = 200.0
    min_power_ratio: float = 0.8
    min_score: float = 120.0


@dataclass
class PhaseConfig:
    """Game phase transitions.

    Attributes:
        late_turn: Always late after this turn (default: 300)
        late_min_units: Late once an enemy base is known and we have this many units (default: 10)
        late_enemy_count: Late once more than this many enemies are seen (default: 5)
        late_enemy_turn: ... and the turn is past this (default: 30)
        mid_turn: Always at least mid after this turn (default: 50)
        mid_min_units: Mid once we have this many units (default: 8)
        mid_enemy_turn: Mid once enemies are seen past this turn (default: 15)
    """

    late_turn: int = 300
    late_min_units: int = 10
    late_enemy_count: int = 5
    late_enemy_turn: int = 30
    mid_turn: int = 50
    mid_min_units: int = 8
    mid_enemy_turn: int = 15


@dataclass
class RecoveryConfig:
    """Recovery mode: entered after heavy losses, left once the army is rebuilt.

    While active, the phase-dependent tail of the candidate list is dropped.

    Attributes:
        min_turn: Never enter before this turn (default: 10)
        loss_window: Turns of unit-count history compared for losses (default: 3)
        loss_ratio: Enter when more than this share of units was lost over the window (default: 0.4)
        loss_min_units: ... and the window started with at least this many units (default: 8)
        low_units: Enter when fewer than this many units remain (default: 3)
        no_soldier_turn: Enter with no soldiers and enemies in sight past this turn (default: 15)
        exit_units: Leave once we have this many units (default: 8)
        exit_soldiers: ... and this many soldiers (default: 2)
        min_turns: ... and recovery has lasted this many turns (default: 5)
        history_length: Unit-count history kept (default: 10)
    """

    min_turn: int = 10
    loss_window: int = 3
    loss_ratio: float = 0.4
    loss_min_units: int = 8
    low_units: int = 3
    no_soldier_turn: int = 15
    exit_units: int = 8
    exit_soldiers: int = 2
    min_turns: int = 5
    history_length: int = 10


@dataclass
class DeadlineConfig:
    """Per-turn wall-clock budget.

    Attributes:
        deadline_seconds: Total planning budget per turn (default: 1.5)
        degrade_fraction: Below this share of the budget left, skip low-priority tasks (default: 0.25)
    """

    deadline_seconds: float = 1.5
    degrade_fraction: float = 0.25


@dataclass
class HiveConfig:
    """All Hive tunables."""

    search: SearchConfig = field(default_factory=SearchConfig)
    cargo: CargoConfig = field(default_factory=CargoConfig)
    horizon: HorizonConfig = field(default_factory=HorizonConfig)
    reservation: ReservationConfig = field(default_factory=ReservationConfig)
    task: TaskConfig = field(default_factory=TaskConfig)
    threat: ThreatConfig = field(default_factory=ThreatConfig)
    resource: ResourceConfig = field(default_factory=ResourceConfig)
    raid: RaidConfig = field(default_factory=RaidConfig)
    phase: PhaseConfig = field(default_factory=PhaseConfig)
    recovery: RecoveryConfig = field(default_factory=RecoveryConfig)
    deadline: DeadlineConfig = field(default_factory=DeadlineConfig)
    seed: int = 0

    @classmethod
    def from_overrides(cls, overrides: Mapping[str, Any]) -> HiveConfig:
        """Build a config from dotted overrides like ``{"horizon.safety_margin": 3}``.

        Raises KeyError for unknown sections or fields. Values are coerced to the
        type of the default they replace.
        """
        config = cls()
        for dotted, value in overrides.items():
            if "." not in dotted:
                if dotted != "seed":
                    raise KeyError(dotted)
                config.seed = int(value)
                continue
            section_name, attr = dotted.split(".", 1)
            section = getattr(config, section_name, None)
            if section is None or section_name == "seed":
                raise KeyError(dotted)
            names = {f.name for f in fields(section)}
            if attr not in names:
                raise KeyError(dotted)
            current = getattr(section, attr)
            setattr(config, section_name, replace(section, **{attr: type(current)(value)}))
        return config
