"""Shared test fixtures for reaction benchmark tests."""

import os
import sys

# Add project root to path so tests can import reaction_engine, server, etc.
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pytest

from reaction_engine import ReactionTest
from tests.helpers import FakeClock, make_history
from trial_stats import TrialHistory


@pytest.fixture
def history():
    """Empty TrialHistory."""
    return TrialHistory()


@pytest.fixture
def scored_history():
    """TrialHistory holding 300, 200, 250 ms in that order."""
    return make_history()


@pytest.fixture
def clock():
    return FakeClock(start=10.0)


@pytest.fixture
def instant_rt(clock):
    """ReactionTest whose stimulus fires on the next loop iteration."""
    return ReactionTest(min_delay_ms=0, max_delay_ms=0, clock=clock)
