#!/usr/bin/env python3
from __future__ import annotations

import random
from typing import Iterable, List, Optional

from bots import get_ai_debug_state, tick_ai
from config import SIM_CONFIG
from dispatch import (
    PLAYER_DISPATCH_FRACTION,
    DispatchCommand,
    drain_commands,
    mass_assault_commands,
    queue_command,
    release_due_spawns,
)
from world import (
    HOLDING_COUNT,
    OUTCOME_DEFEAT,
    OUTCOME_IN_PROGRESS,
    OUTCOME_VICTORY,
    PLAYER_ID,
    WORLD_HEIGHT,
    WORLD_WIDTH,
    Holding,
    MatchEvent,
    MatchState,
    Unit,
    create_match_state,
    evaluate_outcome,
    get_difficulty,
    grow_holdings,
    log_event,
    move_units,
    prune_units,
)

MAX_FRAME_SECONDS: float = float(SIM_CONFIG.get("max_frame_seconds", 0.25))


def event_to_dict(ev: MatchEvent) -> dict:
    return {
        "time": ev.time,
        "kind": ev.kind,
        "holdings": ev.holdings,
        "factions": ev.factions,
        "text": ev.text,
        "x": ev.x,
        "y": ev.y,
    }


class Match:
    """
    Simulation clock for a single match.

    Owns the MatchState for the match's lifetime. Hosts feed it elapsed time
    through advance_tick() and player intent through dispatch commands, which
    are queued and applied at the next tick boundary. Everything else is read
    back through the accessors or snapshot().
    """

    def __init__(self, state: MatchState, max_frame_seconds: float = MAX_FRAME_SECONDS):
        self.state = state
        self.max_frame_seconds = max_frame_seconds
        self.paused = False

    @classmethod
    def new(
        cls,
        difficulty: Optional[str] = None,
        holding_count: int = HOLDING_COUNT,
        width: float = WORLD_WIDTH,
        height: float = WORLD_HEIGHT,
        seed: Optional[int] = None,
    ) -> "Match":
        return cls(create_match_state(difficulty, holding_count, width, height, seed))

    @classmethod
    def from_holdings(
        cls,
        holdings: List[Holding],
        difficulty: Optional[str] = None,
        seed: Optional[int] = None,
    ) -> "Match":
        """Build a match around hand-placed holdings (scenarios, tests, tools)."""
        return cls(
            MatchState(
                holdings=list(holdings),
                difficulty=get_difficulty(difficulty),
                rng=random.Random(seed),
            )
        )

    # ---------- read accessors ----------

    @property
    def holdings(self) -> List[Holding]:
        return self.state.holdings

    @property
    def units(self) -> List[Unit]:
        return self.state.live_units()

    @property
    def outcome(self) -> str:
        return self.state.outcome

    @property
    def clock(self) -> float:
        return self.state.clock

    @property
    def active(self) -> bool:
        return self.state.active

    def holding(self, holding_id: int) -> Optional[Holding]:
        return self.state.holding(holding_id)

    # ---------- commands ----------

    def submit(self, command: DispatchCommand) -> bool:
        """Queue a command for the next tick. Ignored while the match is not running."""
        if not self.state.active:
            return False
        queue_command(self.state, command)
        return True

    def dispatch(
        self,
        source_id: int,
        target_id: int,
        fraction: float = PLAYER_DISPATCH_FRACTION,
        faction: int = PLAYER_ID,
    ) -> bool:
        return self.submit(DispatchCommand(faction=faction, source_id=source_id, target_id=target_id, fraction=fraction))

    def dispatch_many(
        self,
        source_ids: Iterable[int],
        target_id: int,
        fraction: float = PLAYER_DISPATCH_FRACTION,
    ) -> int:
        """Multi-source drag: one independent dispatch per source."""
        return sum(
            1 for sid in source_ids if sid != target_id and self.dispatch(sid, target_id, fraction)
        )

    def dispatch_mass_assault(self, target_id: int) -> int:
        queued = 0
        for command in mass_assault_commands(self.state, target_id):
            if self.submit(command):
                queued += 1
        return queued

    def pause(self) -> None:
        if not self.state.active:
            return
        self.paused = True
        self.state.active = False
        # population for these was already reserved; it is not refunded
        self.state.pending_spawns.clear()

    def resume(self) -> None:
        if self.paused and self.state.outcome == OUTCOME_IN_PROGRESS:
            self.paused = False
            self.state.active = True

    # ---------- clock ----------

    def advance_tick(self, elapsed: float) -> None:
        """
        Run one simulation step: commands, growth, spawns, movement with unit
        combat per sub-step, AI, then win evaluation.
        """
        state = self.state
        if not state.active:
            return
        dt = min(max(0.0, float(elapsed)), self.max_frame_seconds)
        state.clock += dt

        drain_commands(state)
        grow_holdings(state, dt)
        release_due_spawns(state)
        move_units(state, dt)
        prune_units(state)
        tick_ai(state, dt)
        self._check_outcome()

    def _check_outcome(self) -> None:
        state = self.state
        outcome = evaluate_outcome(state)
        if outcome == OUTCOME_IN_PROGRESS:
            return
        state.outcome = outcome
        state.active = False
        state.pending_spawns.clear()
        state.commands.clear()
        if outcome == OUTCOME_VICTORY:
            log_event(state, "victory", [], [PLAYER_ID], f"t={state.clock:.1f}: Victory! The world bows to you.")
        elif outcome == OUTCOME_DEFEAT:
            log_event(state, "defeat", [], [PLAYER_ID], f"t={state.clock:.1f}: Defeat. Your empire has fallen.")

    # ---------- serialization ----------

    def snapshot(self, event_tail: int = 30) -> dict:
        state = self.state
        return {
            "time": state.clock,
            "difficulty": state.difficulty.name,
            "outcome": state.outcome,
            "active": state.active,
            "paused": self.paused,
            "width": state.width,
            "height": state.height,
            "holdings": [
                {
                    "id": h.id,
                    "x": h.x,
                    "y": h.y,
                    "owner": h.owner,
                    "population": h.population,
                    "capacity": h.capacity,
                    "radius": h.radius,
                }
                for h in state.holdings
            ],
            "units": [
                {"id": u.id, "owner": u.owner, "x": u.x, "y": u.y, "target_id": u.target.id}
                for u in state.live_units()
            ],
            "pending_spawns": len(state.pending_spawns),
            "events": [event_to_dict(ev) for ev in state.events[-event_tail:]],
            "ai_state": get_ai_debug_state(state),
        }
