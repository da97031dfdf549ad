"""Shared test helpers for reaction benchmark tests."""

from trial_stats import TrialHistory


def make_history(latencies=None):
    """Factory for a TrialHistory pre-filled with latencies (ms)."""
    if latencies is None:
        latencies = [300, 200, 250]
    history = TrialHistory()
    for ms in latencies:
        history.record(ms)
    return history


class FakeClock:
    """Fake monotonic clock for testing reaction timing.

    Pass as ``ReactionTest(clock=clock)``.
    Advance by calling ``clock.advance(seconds)`` between stimulus and response.
    """

    def __init__(self, start=0.0):
        self._now = start

    def __call__(self):
        return self._now

    def advance(self, seconds):
        self._now += seconds


class FixedRandom:
    """Stand-in for the random module that always draws the same fraction."""

    def __init__(self, value=0.5):
        self.value = value

    def random(self):
        return self.value
