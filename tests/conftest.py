"""
Shared fixtures for the conquest simulation tests
"""

import random

import pytest

from match import Match
from world import NEUTRAL_ID, PLAYER_ID, Holding, MatchState, get_difficulty


@pytest.fixture
def make_state():
    """Factory for a MatchState around hand-placed holdings."""

    def _make(holdings, difficulty="medium", seed=0):
        return MatchState(holdings=holdings, difficulty=get_difficulty(difficulty), rng=random.Random(seed))

    return _make


@pytest.fixture
def scenario_holdings():
    """Player stronghold, an AI stronghold out of reach, and a weak neutral."""
    return [
        Holding(id=0, x=100.0, y=100.0, owner=PLAYER_ID, population=60),
        Holding(id=1, x=100.0, y=600.0, owner=1, population=40),
        Holding(id=2, x=400.0, y=100.0, owner=NEUTRAL_ID, population=15),
    ]


@pytest.fixture
def scenario_match(scenario_holdings):
    return Match.from_holdings(scenario_holdings, difficulty="medium", seed=42)
