#!/usr/bin/env python3
"""
Dispatch service: turns "send part of this holding's population over there"
into reserved population plus a staggered queue of pending unit spawns.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import List

from config import SIM_CONFIG
from world import (
    PLAYER_ID,
    Holding,
    MatchState,
    PendingSpawn,
    advance_unit,
    faction_name,
    log_event,
    spawn_unit,
)

SPAWN_STAGGER: float = float(SIM_CONFIG.get("spawn_stagger", 0.03))  # seconds between launches
MIN_DISPATCH_POPULATION: int = int(SIM_CONFIG.get("min_dispatch_population", 2))
PLAYER_DISPATCH_FRACTION: float = float(SIM_CONFIG.get("player_dispatch_fraction", 0.5))


@dataclass
class DispatchCommand:
    """A unit-sending command submitted by a faction, applied at the next tick boundary."""

    faction: int
    source_id: int
    target_id: int
    fraction: float = PLAYER_DISPATCH_FRACTION


def send_units(state: MatchState, source: Holding, target: Holding, fraction: float) -> int:
    """
    Reserve floor(population * fraction) from source and queue that many spawns.
    Returns the number of units reserved; 0 means the dispatch was rejected.
    """
    if source.id == target.id:
        return 0
    if not (0.0 < fraction <= 1.0):
        return 0
    if source.population < MIN_DISPATCH_POPULATION:
        return 0

    amount = int(math.floor(source.population * fraction))
    if amount <= 0:
        return 0
    source.population -= amount

    for i in range(amount):
        state.pending_spawns.append(
            PendingSpawn(
                fire_at=state.clock + i * SPAWN_STAGGER,
                owner=source.owner,
                source_id=source.id,
                target_id=target.id,
            )
        )

    text = (
        f"t={state.clock:.1f}: {faction_name(source.owner)} sent {amount} units "
        f"from holding #{source.id} to holding #{target.id}."
    )
    log_event(state, "dispatch", [source.id, target.id], [source.owner], text, source.x, source.y)
    return amount


def apply_command(state: MatchState, command: DispatchCommand) -> int:
    """Validate a command against the current state and apply it; invalid commands are no-ops."""
    source = state.holding(command.source_id)
    target = state.holding(command.target_id)
    if source is None or target is None:
        return 0
    # must own the source holding
    if source.owner != command.faction:
        return 0
    return send_units(state, source, target, command.fraction)


def queue_command(state: MatchState, command: DispatchCommand) -> None:
    state.commands.append(command)


def drain_commands(state: MatchState) -> int:
    """Apply every queued command in submission order. Returns units reserved."""
    reserved = 0
    while state.commands:
        reserved += apply_command(state, state.commands.popleft())
    return reserved


def mass_assault_commands(
    state: MatchState,
    target_id: int,
    faction: int = PLAYER_ID,
    fraction: float = PLAYER_DISPATCH_FRACTION,
) -> List[DispatchCommand]:
    """One command per holding the faction owns, all aimed at target_id."""
    if state.holding(target_id) is None:
        return []
    return [
        DispatchCommand(faction=faction, source_id=h.id, target_id=target_id, fraction=fraction)
        for h in state.holdings
        if h.owner == faction and h.id != target_id
    ]


def release_due_spawns(state: MatchState) -> int:
    """
    Launch every pending spawn whose time has come, already flown forward by
    however late it is. Spawns still pending while the match is inactive
    are dropped.
    """
    if not state.active:
        state.pending_spawns.clear()
        return 0

    due: List[PendingSpawn] = []
    waiting: List[PendingSpawn] = []
    for pending in state.pending_spawns:
        (due if pending.fire_at <= state.clock else waiting).append(pending)
    state.pending_spawns = waiting

    launched = 0
    for pending in due:
        source = state.holding(pending.source_id)
        target = state.holding(pending.target_id)
        if source is None or target is None:
            continue
        unit = spawn_unit(state, pending.owner, source, target)
        # a coarse tick releases several spawns at once; keep their spacing
        advance_unit(state, unit, state.clock - pending.fire_at)
        launched += 1
    return launched
