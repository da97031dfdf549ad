"""
Trial history and derived statistics for the reaction time benchmark.

Everything here except TrialHistory is a pure function of the recorded
latencies. Bins and summaries are recomputed on every query; nothing
derived is cached or stored.
"""

import math
from dataclasses import dataclass

BIN_WIDTH_MS = 20
HISTOGRAM_MAX_MS = 500  # start of the last bin
RECENT_DEFAULT = 5

# Placeholder curve shown before any trial is recorded
BELL_MEAN_MS = 273
BELL_STDDEV_MS = 50
BELL_PEAK = 100


@dataclass(frozen=True)
class Trial:
    reaction_ms: int


@dataclass(frozen=True)
class HistogramBin:
    start_ms: int
    value: float  # count per bin, or density for the placeholder curve


def round_half_up(value):
    """Round to the nearest integer, .5 going up (not banker's rounding)."""
    return int(math.floor(value + 0.5))


class TrialHistory:
    """Append-only, attempt-ordered record of completed trials."""

    def __init__(self):
        self._trials: list[Trial] = []

    def record(self, reaction_ms):
        if not isinstance(reaction_ms, int) or reaction_ms < 0:
            raise ValueError(f"Reaction time must be a non-negative int, got {reaction_ms!r}")
        trial = Trial(reaction_ms=reaction_ms)
        self._trials.append(trial)
        return trial

    @property
    def trials(self):
        return tuple(self._trials)

    @property
    def latencies(self):
        return [t.reaction_ms for t in self._trials]

    def __len__(self):
        return len(self._trials)

    def __iter__(self):
        return iter(self.trials)


def _latencies(history):
    if isinstance(history, TrialHistory):
        return history.latencies
    return list(history)


def count(history):
    return len(_latencies(history))


def average(history):
    """Mean latency in whole ms; 0 when nothing has been recorded."""
    values = _latencies(history)
    if not values:
        return 0
    return round_half_up(sum(values) / len(values))


def best(history):
    values = _latencies(history)
    if not values:
        return 0
    return min(values)


def recent(history, n=RECENT_DEFAULT):
    """Last n latencies, newest first, as (attempt_number, ms) pairs.

    Attempt numbers are 1-based, so the newest of three trials is attempt 3.
    """
    values = _latencies(history)
    if n <= 0:
        return []
    total = len(values)
    return [(total - pos, ms) for pos, ms in enumerate(reversed(values[-n:]))]


def bin_starts():
    return list(range(0, HISTOGRAM_MAX_MS + 1, BIN_WIDTH_MS))


def histogram(history):
    """Frequency distribution over the fixed 0..500 ms layout.

    With no data, returns a Gaussian placeholder sampled at each bin's
    midpoint. Latencies whose bin starts above HISTOGRAM_MAX_MS are left
    out of the chart but still count everywhere else.
    """
    values = _latencies(history)
    starts = bin_starts()

    if not values:
        bins = []
        for start in starts:
            x = start + BIN_WIDTH_MS / 2
            density = math.exp(-((x - BELL_MEAN_MS) ** 2) / (2 * BELL_STDDEV_MS**2))
            bins.append(HistogramBin(start_ms=start, value=density * BELL_PEAK))
        return bins

    counts = dict.fromkeys(starts, 0)
    for ms in values:
        start = (ms // BIN_WIDTH_MS) * BIN_WIDTH_MS
        if start in counts:
            counts[start] += 1
    return [HistogramBin(start_ms=start, value=counts[start]) for start in starts]


def max_value(bins):
    """Scale ceiling for a chart, never below 1."""
    return max([b.value for b in bins] + [1])


def summary(history, recent_n=RECENT_DEFAULT):
    """Statistics card payload."""
    return {
        "type": "stats",
        "attempts": count(history),
        "average": average(history),
        "best": best(history),
        "recent": [{"attempt": n, "ms": ms} for n, ms in recent(history, recent_n)],
    }


def histogram_dict(history):
    bins = histogram(history)
    return {
        "type": "histogram",
        "bin_width": BIN_WIDTH_MS,
        "synthetic": count(history) == 0,
        "bins": [{"start": b.start_ms, "value": b.value} for b in bins],
        "max_value": max_value(bins),
    }
