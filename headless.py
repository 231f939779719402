#!/usr/bin/env python3
"""
Headless match runner: an autopilot plays the player's side against the AI
with a fixed frame delta, and outcomes are recorded to a run directory.

Usage:
    python headless.py --matches 20 --difficulty hard --seed 7 --max-seconds 600
"""
from __future__ import annotations

import argparse
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from bots import autopilot_commands
from match import Match
from storage import RunStore
from world import DIFFICULTIES, DEFAULT_DIFFICULTY, HOLDING_COUNT, PLAYER_ID

AUTOPILOT_INTERVAL = 1.0  # seconds between autopilot decisions


@dataclass
class MatchResult:
    outcome: str
    seconds: float
    ticks: int
    player_holdings: int
    captures: int
    dispatches: int


def simulate_match(
    difficulty: str = DEFAULT_DIFFICULTY,
    seed: Optional[int] = None,
    dt: float = 1.0 / 30.0,
    max_seconds: float = 600.0,
    holding_count: int = HOLDING_COUNT,
    autopilot: bool = True,
) -> MatchResult:
    """Play one match to completion or until max_seconds of match time."""
    match = Match.new(difficulty=difficulty, holding_count=holding_count, seed=seed)
    ticks = 0
    pilot_timer = 0.0

    while match.active and match.clock < max_seconds:
        if autopilot:
            pilot_timer += dt
            if pilot_timer >= AUTOPILOT_INTERVAL:
                for command in autopilot_commands(match.state):
                    match.submit(command)
                pilot_timer = 0.0
        match.advance_tick(dt)
        ticks += 1

    history = match.state.history
    return MatchResult(
        outcome=match.outcome,
        seconds=match.clock,
        ticks=ticks,
        player_holdings=sum(1 for h in match.holdings if h.owner == PLAYER_ID),
        captures=sum(1 for ev in history if ev.kind == "capture"),
        dispatches=sum(1 for ev in history if ev.kind == "dispatch"),
    )


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run headless matches against the AI.")
    parser.add_argument("--matches", type=int, default=5, help="Number of matches to play.")
    parser.add_argument("--difficulty", choices=sorted(DIFFICULTIES), default=DEFAULT_DIFFICULTY)
    parser.add_argument("--seed", type=int, default=None, help="Base seed; match i uses seed + i.")
    parser.add_argument("--dt", type=float, default=1.0 / 30.0, help="Frame delta in seconds.")
    parser.add_argument("--max-seconds", type=float, default=600.0, help="Match time limit.")
    parser.add_argument("--holdings", type=int, default=HOLDING_COUNT, help="Holdings per map.")
    parser.add_argument("--no-autopilot", action="store_true", help="Leave the player idle.")
    parser.add_argument("--run-dir", type=Path, default=None, help="Directory to store run artifacts (defaults to runs/...).")
    parser.add_argument("--run-name", type=str, default=None, help="Optional run name. Defaults to headless_<timestamp>.")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> None:
    args = parse_args(argv)
    store_config = {k: (str(v) if isinstance(v, Path) else v) for k, v in vars(args).items()}
    with RunStore(
        run_type="headless",
        root=args.run_dir or Path("runs"),
        name=args.run_name,
        config=store_config,
    ) as store:
        for i in range(args.matches):
            seed = None if args.seed is None else args.seed + i
            result = simulate_match(
                difficulty=args.difficulty,
                seed=seed,
                dt=args.dt,
                max_seconds=args.max_seconds,
                holding_count=args.holdings,
                autopilot=not args.no_autopilot,
            )
            print(
                f"[headless] match {i + 1:03d} outcome={result.outcome:>14} "
                f"t={result.seconds:7.1f}s captures={result.captures:4d} "
                f"player_holdings={result.player_holdings:3d}"
            )
            store.log_match(i + 1, seed, result)

        store.write_summary({"difficulty": args.difficulty})
        print(f"[headless] outcomes: {dict(store.outcomes)} (run dir: {store.dir})")


if __name__ == "__main__":
    main()
