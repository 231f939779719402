"""
Tests for map generation, growth, movement, combat resolution and win evaluation
"""

import math
import random

import pytest

from world import (
    AI_START_POPULATION,
    MAP_MARGIN,
    MIN_DISTANCE,
    NEUTRAL_ID,
    OUTCOME_DEFEAT,
    OUTCOME_IN_PROGRESS,
    OUTCOME_VICTORY,
    PLAYER_ID,
    PLAYER_START_POPULATION,
    UNIT_LAUNCH_SPREAD,
    UNIT_SPEED,
    Holding,
    Unit,
    create_match_state,
    evaluate_outcome,
    generate_holdings,
    get_difficulty,
    grow_holdings,
    move_units,
    prune_units,
    resolve_arrival,
    resolve_collisions,
    spawn_unit,
)


def _unit(uid, owner, x, y, target):
    return Unit(id=uid, owner=owner, x=x, y=y, vx=0.0, vy=0.0, target=target, source_id=target.id)


# ---------- map generation ----------


def test_generated_holdings_keep_min_distance_and_margin():
    holdings = generate_holdings(40, 1280, 720, random.Random(3))
    assert len(holdings) > 0
    for i, a in enumerate(holdings):
        assert MAP_MARGIN <= a.x <= 1280 - MAP_MARGIN
        assert MAP_MARGIN <= a.y <= 720 - MAP_MARGIN
        for b in holdings[i + 1:]:
            assert math.hypot(a.x - b.x, a.y - b.y) >= MIN_DISTANCE


def test_generated_ownership_order():
    holdings = generate_holdings(40, 1280, 720, random.Random(5))
    assert len(holdings) > 11
    assert [h.id for h in holdings] == list(range(len(holdings)))

    assert holdings[0].owner == PLAYER_ID
    assert holdings[0].population == PLAYER_START_POPULATION
    for idx in range(1, 11):
        assert holdings[idx].owner == idx
        assert holdings[idx].population == AI_START_POPULATION
    for h in holdings[11:]:
        assert h.owner == NEUTRAL_ID
        assert 10 <= h.population <= 34


def test_generation_with_fewer_ai_factions():
    holdings = generate_holdings(10, 1280, 720, random.Random(1), num_ai=3)
    owners = [h.owner for h in holdings]
    assert owners[:4] == [PLAYER_ID, 1, 2, 3]
    assert all(o == NEUTRAL_ID for o in owners[4:])


def test_generation_degrades_to_fewer_holdings():
    # an 80x80 placement area cannot fit 40 holdings 70 units apart
    holdings = generate_holdings(40, 200, 200, random.Random(0))
    assert 1 <= len(holdings) < 40
    assert holdings[0].owner == PLAYER_ID


def test_create_match_state_is_seeded():
    a = create_match_state("hard", holding_count=20, seed=11)
    b = create_match_state("hard", holding_count=20, seed=11)
    assert [(h.x, h.y, h.population) for h in a.holdings] == [(h.x, h.y, h.population) for h in b.holdings]
    assert a.difficulty.name == "hard"


def test_unknown_difficulty_falls_back_to_default():
    assert get_difficulty("nightmare").name == "medium"
    assert get_difficulty(None).name == "medium"


# ---------- growth ----------


def test_player_growth_uses_accumulated_time(make_state):
    h = Holding(id=0, x=0, y=0, owner=PLAYER_ID, population=10)
    state = make_state([h])

    grow_holdings(state, 0.5)
    assert h.population == 10
    grow_holdings(state, 0.5)
    assert h.population == 11
    assert h.growth_timer == 0.0


def test_neutral_holdings_never_grow(make_state):
    h = Holding(id=0, x=0, y=0, owner=NEUTRAL_ID, population=12)
    state = make_state([h])
    for _ in range(200):
        grow_holdings(state, 0.1)
    assert h.population == 12


def test_ai_growth_uses_difficulty_modifier(make_state):
    player = Holding(id=0, x=0, y=0, owner=PLAYER_ID, population=10)
    ai = Holding(id=1, x=200, y=0, owner=1, population=10)
    state = make_state([player, ai], difficulty="easy")

    for _ in range(3):
        grow_holdings(state, 0.5)
    # player: 1.5/s, AI on easy: 0.6/s
    assert player.population == 11
    assert ai.population == 10


def test_growth_is_capacity_clamped(make_state):
    h = Holding(id=0, x=0, y=0, owner=PLAYER_ID, population=198)
    state = make_state([h])
    for _ in range(100):
        grow_holdings(state, 0.25)
        assert h.population <= h.capacity
    assert h.population == h.capacity


def test_growth_is_frame_rate_independent(make_state):
    fine = Holding(id=0, x=0, y=0, owner=PLAYER_ID, population=10)
    coarse = Holding(id=0, x=0, y=0, owner=PLAYER_ID, population=10)
    fine_state = make_state([fine])
    coarse_state = make_state([coarse])

    for _ in range(300):
        grow_holdings(fine_state, 0.01)
    for _ in range(30):
        grow_holdings(coarse_state, 0.1)
    assert abs(fine.population - coarse.population) <= 1
    assert fine.population > 10


# ---------- movement ----------


def test_spawned_unit_bearing_within_launch_spread(make_state):
    a = Holding(id=0, x=0, y=0, owner=PLAYER_ID, population=10)
    b = Holding(id=1, x=500, y=0, owner=NEUTRAL_ID, population=10)
    state = make_state([a, b], seed=9)

    for _ in range(50):
        unit = spawn_unit(state, PLAYER_ID, a, b)
        angle = math.atan2(unit.vy, unit.vx)
        assert abs(angle) <= UNIT_LAUNCH_SPREAD / 2 + 1e-9
        assert math.hypot(unit.vx, unit.vy) == pytest.approx(UNIT_SPEED)
    assert len({u.id for u in state.units}) == 50


def test_units_keep_constant_speed_while_steering(make_state):
    a = Holding(id=0, x=0, y=0, owner=PLAYER_ID, population=10)
    b = Holding(id=1, x=1500, y=300, owner=NEUTRAL_ID, population=10)
    state = make_state([a, b], seed=4)
    unit = spawn_unit(state, PLAYER_ID, a, b)

    for _ in range(20):
        move_units(state, 1.0 / 60.0)
        assert math.hypot(unit.vx, unit.vy) == pytest.approx(UNIT_SPEED)
    assert not unit.spent


def test_unit_arrival_reinforces_friendly_holding(make_state):
    a = Holding(id=0, x=100, y=100, owner=PLAYER_ID, population=10)
    b = Holding(id=1, x=400, y=100, owner=PLAYER_ID, population=5)
    state = make_state([a, b], seed=2)
    unit = spawn_unit(state, PLAYER_ID, a, b)

    for _ in range(300):
        move_units(state, 1.0 / 60.0)
        if unit.spent:
            break
    assert unit.spent
    assert b.population == 6


def test_large_delta_still_registers_arrival(make_state):
    a = Holding(id=0, x=100, y=100, owner=PLAYER_ID, population=10)
    b = Holding(id=1, x=250, y=100, owner=PLAYER_ID, population=5)
    state = make_state([a, b], seed=2)
    unit = spawn_unit(state, PLAYER_ID, a, b)

    for _ in range(10):
        move_units(state, 0.25)
    assert unit.spent
    assert b.population == 6


# ---------- arrival resolution ----------


def test_hostile_arrival_decrements_population(make_state):
    target = Holding(id=0, x=0, y=0, owner=NEUTRAL_ID, population=5)
    state = make_state([target])
    unit = _unit(0, PLAYER_ID, 0, 0, target)

    resolve_arrival(state, unit)
    assert unit.spent
    assert target.population == 4
    assert target.owner == NEUTRAL_ID


def test_capture_resets_population_to_one(make_state):
    target = Holding(id=3, x=10, y=20, owner=2, population=1)
    state = make_state([target])

    resolve_arrival(state, _unit(0, PLAYER_ID, 10, 20, target))
    assert target.owner == PLAYER_ID
    assert target.population == 1
    assert [ev.kind for ev in state.history] == ["capture"]
    assert state.history[0].holdings == [3]
    assert state.history[0].factions == [PLAYER_ID, 2]


def test_capture_of_empty_holding_still_leaves_one(make_state):
    target = Holding(id=0, x=0, y=0, owner=NEUTRAL_ID, population=0)
    state = make_state([target])
    resolve_arrival(state, _unit(0, 4, 0, 0, target))
    assert target.owner == 4
    assert target.population == 1


def test_reinforcement_at_capacity_is_absorbed(make_state):
    target = Holding(id=0, x=0, y=0, owner=PLAYER_ID, population=200)
    state = make_state([target])
    unit = _unit(0, PLAYER_ID, 0, 0, target)
    resolve_arrival(state, unit)
    assert unit.spent
    assert target.population == target.capacity


# ---------- unit-vs-unit combat ----------


def test_opposing_units_in_range_annihilate(make_state):
    h = Holding(id=0, x=500, y=500, owner=NEUTRAL_ID, population=5)
    state = make_state([h])
    a = _unit(0, PLAYER_ID, 10.0, 10.0, h)
    b = _unit(1, 1, 15.0, 10.0, h)
    state.units = [a, b]

    assert resolve_collisions(state) == 1
    assert a.spent and b.spent
    assert state.events[-1].kind == "clash"
    prune_units(state)
    assert state.units == []


def test_same_owner_units_never_interact(make_state):
    h = Holding(id=0, x=500, y=500, owner=NEUTRAL_ID, population=5)
    state = make_state([h])
    state.units = [_unit(0, 2, 10.0, 10.0, h), _unit(1, 2, 10.0, 10.0, h)]

    assert resolve_collisions(state) == 0
    assert not any(u.spent for u in state.units)


def test_units_out_of_range_survive(make_state):
    h = Holding(id=0, x=500, y=500, owner=NEUTRAL_ID, population=5)
    state = make_state([h])
    state.units = [_unit(0, PLAYER_ID, 0.0, 0.0, h), _unit(1, 1, 9.0, 0.0, h)]
    assert resolve_collisions(state) == 0


def test_collision_across_grid_cells(make_state):
    h = Holding(id=0, x=500, y=500, owner=NEUTRAL_ID, population=5)
    state = make_state([h])
    state.units = [_unit(0, PLAYER_ID, 7.9, 7.9, h), _unit(1, 1, 8.1, 8.1, h)]
    assert resolve_collisions(state) == 1


def test_multi_way_collision_pairs_each_unit_once(make_state):
    h = Holding(id=0, x=500, y=500, owner=NEUTRAL_ID, population=5)
    state = make_state([h])
    a = _unit(0, PLAYER_ID, 0.0, 0.0, h)
    b = _unit(1, 1, 3.0, 0.0, h)
    c = _unit(2, 2, 6.0, 0.0, h)
    state.units = [a, b, c]

    assert resolve_collisions(state) == 1
    assert a.spent and b.spent
    assert not c.spent


def test_head_on_units_clash_within_a_long_frame(make_state):
    west = Holding(id=0, x=-400.0, y=0.0, owner=1, population=50)
    east = Holding(id=1, x=400.0, y=0.0, owner=PLAYER_ID, population=50)
    state = make_state([west, east])
    # 20 apart and closing at twice the unit speed: they cross mid-frame
    eastbound = Unit(id=0, owner=PLAYER_ID, x=-10.0, y=0.0, vx=UNIT_SPEED, vy=0.0, target=east, source_id=0)
    westbound = Unit(id=1, owner=1, x=10.0, y=0.0, vx=-UNIT_SPEED, vy=0.0, target=west, source_id=1)
    state.units = [eastbound, westbound]

    assert move_units(state, 0.25) == 1
    assert eastbound.spent and westbound.spent
    assert state.events[-1].kind == "clash"


@pytest.mark.parametrize("dt", [1.0 / 60.0, 1.0 / 30.0, 0.1, 0.25])
def test_unit_combat_does_not_depend_on_frame_length(make_state, dt):
    west = Holding(id=0, x=-400.0, y=0.0, owner=1, population=50)
    east = Holding(id=1, x=400.0, y=0.0, owner=PLAYER_ID, population=50)
    state = make_state([west, east])
    state.units = [
        Unit(id=0, owner=PLAYER_ID, x=370.0, y=0.0, vx=-UNIT_SPEED, vy=0.0, target=west, source_id=1),
        Unit(id=1, owner=1, x=-370.0, y=0.0, vx=UNIT_SPEED, vy=0.0, target=east, source_id=0),
    ]

    clashes = 0
    for _ in range(int(round(6.0 / dt))):
        clashes += move_units(state, dt)
        prune_units(state)
    assert clashes == 1
    assert state.units == []
    assert (west.population, east.population) == (50, 50)


# ---------- win evaluation ----------


def _state_with_owners(make_state, owners, unit_owners=()):
    holdings = [Holding(id=i, x=i * 100.0, y=0.0, owner=o, population=5) for i, o in enumerate(owners)]
    state = make_state(holdings)
    state.units = [_unit(i, o, 0.0, 50.0, holdings[0]) for i, o in enumerate(unit_owners)]
    return state


def test_victory_when_player_owns_everything(make_state):
    state = _state_with_owners(make_state, [PLAYER_ID, PLAYER_ID])
    assert evaluate_outcome(state) == OUTCOME_VICTORY


def test_victory_against_only_neutrals(make_state):
    state = _state_with_owners(make_state, [PLAYER_ID, NEUTRAL_ID, NEUTRAL_ID])
    assert evaluate_outcome(state) == OUTCOME_VICTORY


def test_ai_units_in_flight_delay_victory(make_state):
    state = _state_with_owners(make_state, [PLAYER_ID, NEUTRAL_ID], unit_owners=[3])
    assert evaluate_outcome(state) == OUTCOME_IN_PROGRESS


def test_defeat_without_holdings_or_units(make_state):
    state = _state_with_owners(make_state, [1, NEUTRAL_ID])
    assert evaluate_outcome(state) == OUTCOME_DEFEAT


def test_player_units_in_flight_postpone_defeat(make_state):
    state = _state_with_owners(make_state, [1, NEUTRAL_ID], unit_owners=[PLAYER_ID])
    assert evaluate_outcome(state) == OUTCOME_IN_PROGRESS

    state.units[0].spent = True
    assert evaluate_outcome(state) == OUTCOME_DEFEAT


def test_mixed_ownership_is_in_progress(make_state):
    state = _state_with_owners(make_state, [PLAYER_ID, 1, NEUTRAL_ID])
    assert evaluate_outcome(state) == OUTCOME_IN_PROGRESS
