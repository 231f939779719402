#!/usr/bin/env python3
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, List

from config import AI_CONFIG
from dispatch import PLAYER_DISPATCH_FRACTION, DispatchCommand, send_units
from world import (
    FACTION_COLORS,
    NEUTRAL_ID,
    PLAYER_ID,
    Holding,
    MatchState,
    faction_name,
)

# Seconds of match time before the first AI pass
AI_START_DELAY: float = float(AI_CONFIG.get("start_delay", 5.0))
# Holdings below this population sit the pass out
AI_MIN_POPULATION: int = int(AI_CONFIG.get("min_population", 10))
# Candidates farther than this are ignored
ENGAGEMENT_RADIUS: float = float(AI_CONFIG.get("engagement_radius", 350))
# Scoring weights
NEUTRAL_BASE: float = float(AI_CONFIG.get("neutral_base", 50))
HOSTILE_WEIGHT: float = float(AI_CONFIG.get("hostile_weight", 2))
REINFORCE_BONUS: float = float(AI_CONFIG.get("reinforce_bonus", 20))
REINFORCE_BELOW: int = int(AI_CONFIG.get("reinforce_below", 10))
DISTANCE_PENALTY: float = float(AI_CONFIG.get("distance_penalty", 0.1))
# A top score above this attacks without needing the aggression roll
ATTACK_THRESHOLD: float = float(AI_CONFIG.get("attack_threshold", 15))
AI_DISPATCH_FRACTION: float = float(AI_CONFIG.get("dispatch_fraction", 0.5))


@dataclass
class TargetCandidate:
    holding: Holding
    score: float
    distance: float


def is_ai_faction(owner: int) -> bool:
    return owner not in (PLAYER_ID, NEUTRAL_ID)


def score_target(state: MatchState, source: Holding, candidate: Holding, distance: float) -> float:
    """
    Desirability of sending units from source to candidate. Higher = more attractive.
    """
    if candidate.owner == NEUTRAL_ID:
        # weak neutrals are easy pickings
        score = NEUTRAL_BASE - candidate.population
    elif candidate.owner != source.owner:
        score = HOSTILE_WEIGHT * (source.population - candidate.population)
        if candidate.owner == PLAYER_ID:
            score += state.difficulty.player_focus_bonus
    else:
        score = REINFORCE_BONUS if candidate.population < REINFORCE_BELOW else 0.0

    return score - distance * DISTANCE_PENALTY


def rank_targets(state: MatchState, source: Holding) -> List[TargetCandidate]:
    """Every other holding within engagement range, best score first."""
    candidates: List[TargetCandidate] = []
    for other in state.holdings:
        if other.id == source.id:
            continue
        dist = math.hypot(source.x - other.x, source.y - other.y)
        if dist > ENGAGEMENT_RADIUS:
            continue
        candidates.append(TargetCandidate(holding=other, score=score_target(state, source, other, dist), distance=dist))
    candidates.sort(key=lambda c: c.score, reverse=True)
    return candidates


def run_ai_pass(state: MatchState) -> int:
    """
    One decision round for every AI-owned holding. Each qualifying holding
    attacks its best target if the score clears the threshold, or anyway
    with probability equal to the difficulty's aggression.
    Returns the number of dispatches issued.
    """
    aggression = state.difficulty.ai_aggression
    dispatched = 0
    for holding in state.holdings:
        if not is_ai_faction(holding.owner):
            continue
        if holding.population < AI_MIN_POPULATION:
            continue
        ranked = rank_targets(state, holding)
        if not ranked:
            continue
        best = ranked[0]
        if best.score > ATTACK_THRESHOLD or state.rng.random() < aggression:
            if send_units(state, holding, best.holding, AI_DISPATCH_FRACTION) > 0:
                dispatched += 1
    return dispatched


def tick_ai(state: MatchState, dt: float) -> int:
    """Advance the AI timer; run a pass once the start delay and interval have elapsed."""
    state.ai_timer += dt
    if state.clock > AI_START_DELAY and state.ai_timer > state.difficulty.ai_interval:
        dispatched = run_ai_pass(state)
        state.ai_timer = 0.0
        return dispatched
    return 0


def autopilot_commands(
    state: MatchState,
    faction: int = PLAYER_ID,
    fraction: float = PLAYER_DISPATCH_FRACTION,
) -> List[DispatchCommand]:
    """
    Heuristic stand-in for a human, used by headless runs: same scoring as
    the AI but only acts on targets that clear the threshold.
    """
    commands: List[DispatchCommand] = []
    for holding in state.holdings:
        if holding.owner != faction or holding.population < AI_MIN_POPULATION:
            continue
        ranked = rank_targets(state, holding)
        if ranked and ranked[0].score > ATTACK_THRESHOLD:
            commands.append(
                DispatchCommand(
                    faction=faction,
                    source_id=holding.id,
                    target_id=ranked[0].holding.id,
                    fraction=fraction,
                )
            )
    return commands


# ---------- Debug helper ----------


def get_ai_debug_state(state: MatchState) -> dict:
    """
    JSON-serializable per-faction summary for the host's debug panel.
    """
    holdings_owned: Dict[int, int] = {}
    population: Dict[int, int] = {}
    in_flight: Dict[int, int] = {}

    for h in state.holdings:
        holdings_owned[h.owner] = holdings_owned.get(h.owner, 0) + 1
        population[h.owner] = population.get(h.owner, 0) + h.population
    for u in state.live_units():
        in_flight[u.owner] = in_flight.get(u.owner, 0) + 1
    for p in state.pending_spawns:
        in_flight[p.owner] = in_flight.get(p.owner, 0) + 1

    factions = sorted(set(holdings_owned) | set(in_flight))
    return {
        "time": state.clock,
        "ai_timer": state.ai_timer,
        "ai_interval": state.difficulty.ai_interval,
        "ai_active": state.clock > AI_START_DELAY,
        "factions": [
            {
                "id": fid,
                "name": faction_name(fid),
                "color": FACTION_COLORS.get(fid, "#ffffff"),
                "holdings_owned": holdings_owned.get(fid, 0),
                "population": population.get(fid, 0),
                "units_in_flight": in_flight.get(fid, 0),
            }
            for fid in factions
        ],
    }
