#!/usr/bin/env python3
from __future__ import annotations

import math
import random
from collections import deque
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Deque, Dict, List, Optional, Tuple

from config import SIM_CONFIG

if TYPE_CHECKING:
    from dispatch import DispatchCommand

# Reserved faction ids; AI factions are 1..MAX_AI_FACTIONS
PLAYER_ID = 0
NEUTRAL_ID = 11

FACTION_CONFIG: Dict[str, dict] = SIM_CONFIG.get("factions", {})
FACTION_NAMES: Dict[int, str] = {
    int(fid): fcfg.get("name", fid) for fid, fcfg in FACTION_CONFIG.items()
}
FACTION_COLORS: Dict[int, str] = {
    int(fid): fcfg.get("color", "#ffffff") for fid, fcfg in FACTION_CONFIG.items()
}

# Map generation
HOLDING_COUNT: int = int(SIM_CONFIG.get("holding_count", 40))
MIN_DISTANCE: float = float(SIM_CONFIG.get("min_distance", 70))
MAP_MARGIN: float = float(SIM_CONFIG.get("map_margin", 60))
PLACEMENT_ATTEMPTS: int = int(SIM_CONFIG.get("placement_attempts", 2000))
MAX_AI_FACTIONS: int = min(NEUTRAL_ID - 1, int(SIM_CONFIG.get("max_ai_factions", 10)))
WORLD_WIDTH: float = float(SIM_CONFIG.get("world_width", 1280))
WORLD_HEIGHT: float = float(SIM_CONFIG.get("world_height", 720))

# Holdings
MAX_POPULATION: int = int(SIM_CONFIG.get("max_population", 200))
HOLDING_RADIUS: float = float(SIM_CONFIG.get("holding_radius", 24))
BASE_GROWTH_RATE: float = float(SIM_CONFIG.get("base_growth_rate", 1.5))  # pop per second
PLAYER_START_POPULATION: int = int(SIM_CONFIG.get("player_start_population", 60))
AI_START_POPULATION: int = int(SIM_CONFIG.get("ai_start_population", 40))
NEUTRAL_MIN_POPULATION: int = int(SIM_CONFIG.get("neutral_min_population", 10))
NEUTRAL_POPULATION_SPREAD: int = int(SIM_CONFIG.get("neutral_population_spread", 25))

# Units (world units, seconds)
UNIT_SPEED: float = float(SIM_CONFIG.get("unit_speed", 168.0))
UNIT_STEER_ACCEL: float = float(SIM_CONFIG.get("unit_steer_accel", 540.0))
UNIT_STEER_CUTOFF: float = float(SIM_CONFIG.get("unit_steer_cutoff", 10.0))  # stop steering this close
UNIT_LAUNCH_SPREAD: float = float(SIM_CONFIG.get("unit_launch_spread", 0.6))  # radians, full width
UNIT_RADIUS: float = float(SIM_CONFIG.get("unit_radius", 4.0))
MOVEMENT_SUBSTEP: float = float(SIM_CONFIG.get("movement_substep", 1.0 / 60.0))

MAX_EVENTS: int = int(SIM_CONFIG.get("max_events", 80))

OUTCOME_IN_PROGRESS = "in_progress"
OUTCOME_VICTORY = "player_victory"
OUTCOME_DEFEAT = "player_defeat"

# Event kinds kept in the full match history (clashes only go to the rolling feed)
HISTORY_KINDS = {"capture", "dispatch", "victory", "defeat"}


@dataclass
class Difficulty:
    name: str
    ai_interval: float  # seconds between AI passes
    ai_aggression: float  # chance to attack even when no target looks good
    growth_mod: float  # growth multiplier for AI factions only
    player_focus_bonus: float = 0.0  # extra score for player-owned targets


DIFFICULTIES: Dict[str, Difficulty] = {
    name: Difficulty(
        name=name,
        ai_interval=float(dcfg.get("ai_interval", 1.0)),
        ai_aggression=float(dcfg.get("ai_aggression", 0.6)),
        growth_mod=float(dcfg.get("growth_mod", 1.0)),
        player_focus_bonus=float(dcfg.get("player_focus_bonus", 0.0)),
    )
    for name, dcfg in SIM_CONFIG.get("difficulties", {}).items()
}
DEFAULT_DIFFICULTY: str = str(SIM_CONFIG.get("default_difficulty", "medium"))


def get_difficulty(name: Optional[str]) -> Difficulty:
    """Look up a difficulty by name; unknown names fall back to the default."""
    if name and name in DIFFICULTIES:
        return DIFFICULTIES[name]
    return DIFFICULTIES[DEFAULT_DIFFICULTY]


@dataclass
class Holding:
    id: int
    x: float
    y: float
    owner: int  # faction id
    population: int
    capacity: int = MAX_POPULATION
    radius: float = HOLDING_RADIUS  # capture radius for arriving units
    growth_timer: float = 0.0  # seconds since the last population increment


@dataclass
class Unit:
    id: int
    owner: int
    x: float
    y: float
    vx: float
    vy: float
    target: Holding
    source_id: int
    spent: bool = False  # arrived or destroyed; pruned at the end of the tick


@dataclass
class PendingSpawn:
    """A unit reserved by a dispatch that has not launched yet."""

    fire_at: float  # match time at which the unit launches
    owner: int
    source_id: int
    target_id: int


@dataclass
class MatchEvent:
    time: float
    kind: str  # "capture", "clash", "dispatch", "victory", "defeat"
    holdings: List[int]
    factions: List[int]
    text: str
    x: float = 0.0
    y: float = 0.0


@dataclass
class MatchState:
    holdings: List[Holding]
    difficulty: Difficulty
    width: float = WORLD_WIDTH
    height: float = WORLD_HEIGHT
    units: List[Unit] = field(default_factory=list)
    pending_spawns: List[PendingSpawn] = field(default_factory=list)
    commands: Deque["DispatchCommand"] = field(default_factory=deque)
    clock: float = 0.0  # match time in seconds
    ai_timer: float = 0.0
    active: bool = True
    outcome: str = OUTCOME_IN_PROGRESS
    events: List[MatchEvent] = field(default_factory=list)
    history: List[MatchEvent] = field(default_factory=list)
    next_unit_id: int = 0
    rng: random.Random = field(default_factory=random.Random)
    _by_id: Dict[int, Holding] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._by_id = {h.id: h for h in self.holdings}

    def holding(self, holding_id: int) -> Optional[Holding]:
        return self._by_id.get(holding_id)

    def live_units(self) -> List[Unit]:
        return [u for u in self.units if not u.spent]


def faction_name(faction: int) -> str:
    return FACTION_NAMES.get(faction, f"faction {faction}")


def log_event(
    state: MatchState,
    kind: str,
    holding_ids: List[int],
    faction_ids: List[int],
    text: str,
    x: float = 0.0,
    y: float = 0.0,
) -> MatchEvent:
    event = MatchEvent(
        time=state.clock,
        kind=kind,
        holdings=holding_ids,
        factions=faction_ids,
        text=text,
        x=x,
        y=y,
    )
    state.events.append(event)
    if len(state.events) > MAX_EVENTS:
        state.events = state.events[-MAX_EVENTS:]
    if kind in HISTORY_KINDS:
        state.history.append(event)
    return event


# ---------- Map generation ----------


def generate_holdings(
    count: int,
    width: float,
    height: float,
    rng: random.Random,
    num_ai: int = MAX_AI_FACTIONS,
) -> List[Holding]:
    """
    Rejection-sample up to `count` holdings at least MIN_DISTANCE apart.

    The first holding goes to the player, the next `num_ai` to one AI
    faction each, the rest are neutral. Running out of attempts simply
    yields fewer holdings.
    """
    num_ai = max(0, min(num_ai, MAX_AI_FACTIONS))
    span_x = max(0.0, width - MAP_MARGIN * 2)
    span_y = max(0.0, height - MAP_MARGIN * 2)
    min_d2 = MIN_DISTANCE * MIN_DISTANCE

    holdings: List[Holding] = []
    attempts = 0
    while len(holdings) < count and attempts < PLACEMENT_ATTEMPTS:
        attempts += 1
        x = MAP_MARGIN + rng.random() * span_x
        y = MAP_MARGIN + rng.random() * span_y
        if any((h.x - x) ** 2 + (h.y - y) ** 2 < min_d2 for h in holdings):
            continue

        idx = len(holdings)
        if idx == 0:
            owner, population = PLAYER_ID, PLAYER_START_POPULATION
        elif idx <= num_ai:
            owner, population = idx, AI_START_POPULATION
        else:
            owner = NEUTRAL_ID
            population = NEUTRAL_MIN_POPULATION + rng.randrange(max(1, NEUTRAL_POPULATION_SPREAD))
        holdings.append(Holding(id=idx, x=x, y=y, owner=owner, population=population))
    return holdings


def create_match_state(
    difficulty: Optional[str] = None,
    holding_count: int = HOLDING_COUNT,
    width: float = WORLD_WIDTH,
    height: float = WORLD_HEIGHT,
    seed: Optional[int] = None,
    num_ai: int = MAX_AI_FACTIONS,
) -> MatchState:
    rng = random.Random(seed)
    holdings = generate_holdings(holding_count, width, height, rng, num_ai=num_ai)
    return MatchState(
        holdings=holdings,
        difficulty=get_difficulty(difficulty),
        width=width,
        height=height,
        rng=rng,
    )


# ---------- Growth ----------


def growth_rate(state: MatchState, holding: Holding) -> float:
    """Population per second; AI factions get the difficulty multiplier."""
    rate = BASE_GROWTH_RATE
    if holding.owner not in (PLAYER_ID, NEUTRAL_ID):
        rate *= state.difficulty.growth_mod
    return rate


def grow_holdings(state: MatchState, dt: float) -> None:
    for holding in state.holdings:
        if holding.owner == NEUTRAL_ID or holding.population >= holding.capacity:
            continue
        holding.growth_timer += dt
        rate = growth_rate(state, holding)
        if rate > 0 and holding.growth_timer > 1.0 / rate:
            holding.population += 1
            holding.growth_timer = 0.0


# ---------- Movement & combat ----------


def spawn_unit(state: MatchState, owner: int, source: Holding, target: Holding) -> Unit:
    """Launch one unit from source toward target with a small bearing jitter."""
    angle = math.atan2(target.y - source.y, target.x - source.x)
    spread = (state.rng.random() - 0.5) * UNIT_LAUNCH_SPREAD
    unit = Unit(
        id=state.next_unit_id,
        owner=owner,
        x=source.x,
        y=source.y,
        vx=math.cos(angle + spread) * UNIT_SPEED,
        vy=math.sin(angle + spread) * UNIT_SPEED,
        target=target,
        source_id=source.id,
    )
    state.next_unit_id += 1
    state.units.append(unit)
    return unit


def resolve_arrival(state: MatchState, unit: Unit) -> None:
    target = unit.target
    unit.spent = True

    if target.owner == unit.owner:
        # reinforcement; a full holding absorbs the unit
        if target.population < target.capacity:
            target.population += 1
        return

    target.population -= 1
    if target.population <= 0:
        old_owner = target.owner
        target.owner = unit.owner
        target.population = 1
        text = (
            f"t={state.clock:.1f}: {faction_name(unit.owner)} captured holding #{target.id} "
            f"from {faction_name(old_owner)}."
        )
        log_event(state, "capture", [target.id], [unit.owner, old_owner], text, target.x, target.y)


def _step_unit(state: MatchState, unit: Unit, h: float) -> None:
    unit.x += unit.vx * h
    unit.y += unit.vy * h

    target = unit.target
    dx = target.x - unit.x
    dy = target.y - unit.y
    dist = math.hypot(dx, dy)

    if dist > UNIT_STEER_CUTOFF:
        unit.vx += dx / dist * UNIT_STEER_ACCEL * h
        unit.vy += dy / dist * UNIT_STEER_ACCEL * h
        speed = math.hypot(unit.vx, unit.vy)
        if speed > 0:
            unit.vx = unit.vx / speed * UNIT_SPEED
            unit.vy = unit.vy / speed * UNIT_SPEED

    if dist < target.radius:
        resolve_arrival(state, unit)


def _substeps(dt: float) -> Tuple[int, float]:
    steps = max(1, math.ceil(dt / MOVEMENT_SUBSTEP - 1e-9))
    return steps, dt / steps


def advance_unit(state: MatchState, unit: Unit, seconds: float) -> None:
    """Fly a single unit forward by `seconds`, resolving its arrival. No unit combat."""
    if seconds <= 0:
        return
    steps, h = _substeps(seconds)
    for _ in range(steps):
        if unit.spent:
            break
        _step_unit(state, unit, h)


def move_units(state: MatchState, dt: float) -> int:
    """
    Integrate every live unit over dt in sub-steps. Arrivals and unit combat
    are resolved after each sub-step, so a long frame fights the same way as
    several short ones. Returns the number of clashes.
    """
    if dt <= 0:
        return 0
    steps, h = _substeps(dt)
    pairs = 0
    for _ in range(steps):
        for unit in state.units:
            if not unit.spent:
                _step_unit(state, unit, h)
        pairs += resolve_collisions(state)
    return pairs


def _cell(x: float, y: float, size: float) -> Tuple[int, int]:
    return math.floor(x / size), math.floor(y / size)


def resolve_collisions(state: MatchState) -> int:
    """
    Annihilate opposing unit pairs closer than two unit radii.

    Each unit pairs with at most one opponent per tick: units are taken in
    list order and matched with the first live opposing unit after them.
    A spatial hash keeps the lookup local. Returns the number of pairs.
    """
    reach = UNIT_RADIUS * 2
    reach2 = reach * reach
    live = state.live_units()

    grid: Dict[Tuple[int, int], List[int]] = {}
    for idx, unit in enumerate(live):
        grid.setdefault(_cell(unit.x, unit.y, reach), []).append(idx)

    pairs = 0
    for i, a in enumerate(live):
        if a.spent:
            continue
        cx, cy = _cell(a.x, a.y, reach)
        nearby = sorted(
            j
            for ox in (-1, 0, 1)
            for oy in (-1, 0, 1)
            for j in grid.get((cx + ox, cy + oy), ())
            if j > i
        )
        for j in nearby:
            b = live[j]
            if b.spent or b.owner == a.owner:
                continue
            if (a.x - b.x) ** 2 + (a.y - b.y) ** 2 < reach2:
                a.spent = True
                b.spent = True
                pairs += 1
                text = f"t={state.clock:.1f}: {faction_name(a.owner)} and {faction_name(b.owner)} units clashed."
                log_event(state, "clash", [], [a.owner, b.owner], text, (a.x + b.x) / 2, (a.y + b.y) / 2)
                break
    return pairs


def prune_units(state: MatchState) -> None:
    state.units = [u for u in state.units if not u.spent]


# ---------- Win evaluation ----------


def evaluate_outcome(state: MatchState) -> str:
    """Terminal-condition check, in priority order: defeat, total victory, last-rival victory."""
    owners = {h.owner for h in state.holdings}
    live = state.live_units()

    if PLAYER_ID not in owners and not any(u.owner == PLAYER_ID for u in live):
        return OUTCOME_DEFEAT
    if owners == {PLAYER_ID}:
        return OUTCOME_VICTORY
    if owners == {PLAYER_ID, NEUTRAL_ID} and not any(
        u.owner not in (PLAYER_ID, NEUTRAL_ID) for u in live
    ):
        return OUTCOME_VICTORY
    return OUTCOME_IN_PROGRESS
