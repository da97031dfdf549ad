"""
Reaction trial state machine.

One attempt goes IDLE -> ARMED -> STIMULUS -> RESULT, or ARMED -> FALSE_START
when the user responds early. RESULT and FALSE_START loop back into ARMED on
the next start/respond.

The stimulus delay is an asyncio task sleeping for a random interval.
Cancelling it is harmless after it has fired, and the task re-checks the
phase when it wakes, so whichever transition lands first wins.

This module has NO dependencies on server.py or FastAPI.
The on_update callback is passed in by the caller.
"""

import asyncio
import enum
import logging
import random
import time
from dataclasses import dataclass, replace

from trial_stats import TrialHistory, round_half_up

log = logging.getLogger("reaction")

MIN_DELAY_MS = 2000
MAX_DELAY_MS = 5000


class Phase(enum.Enum):
    IDLE = "idle"
    ARMED = "armed"  # stimulus scheduled, not yet shown
    STIMULUS = "stimulus"
    RESULT = "result"
    FALSE_START = "false_start"


# Phases a new trial may begin from
STARTABLE = (Phase.IDLE, Phase.RESULT, Phase.FALSE_START)


@dataclass(frozen=True)
class SessionState:
    phase: Phase = Phase.IDLE
    delay_ms: float | None = None
    stimulus_at: float | None = None  # clock reading when the stimulus showed
    last_ms: int | None = None


class ReactionTest:
    """Runs reaction trials and owns the trial history.

    Invariant: at most one stimulus timer is pending, and only while ARMED.
    """

    def __init__(
        self,
        history=None,
        on_update=None,
        *,
        min_delay_ms=MIN_DELAY_MS,
        max_delay_ms=MAX_DELAY_MS,
        clock=time.monotonic,
        rng=None,
    ):
        if not 0 <= min_delay_ms <= max_delay_ms:
            raise ValueError(f"Bad delay range {min_delay_ms}..{max_delay_ms} ms")
        self.history = history if history is not None else TrialHistory()
        self.session = SessionState()
        self.min_delay_ms = min_delay_ms
        self.max_delay_ms = max_delay_ms
        self._on_update = on_update
        self._clock = clock
        self._rng = rng or random
        self._task = None

    @property
    def phase(self):
        return self.session.phase

    @property
    def last_ms(self):
        return self.session.last_ms

    @property
    def pending(self):
        """True while a stimulus timer is scheduled and has not finished."""
        return self._task is not None and not self._task.done()

    def to_dict(self):
        return {
            "type": "trial",
            "phase": self.session.phase.value,
            "last_ms": self.session.last_ms,
            "attempts": len(self.history),
        }

    async def start(self):
        """Arm a new trial. No-op unless idle or showing a finished trial."""
        if self.session.phase not in STARTABLE:
            log.debug(f"start ignored in {self.session.phase.value}")
            return False
        span = self.max_delay_ms - self.min_delay_ms
        delay_ms = self.min_delay_ms + self._rng.random() * span
        self._cancel_task()
        self.session = SessionState(phase=Phase.ARMED, delay_ms=delay_ms, last_ms=self.session.last_ms)
        self._task = asyncio.create_task(self._arm(delay_ms / 1000))
        log.debug(f"Armed, stimulus in {delay_ms:.0f} ms")
        await self._broadcast()
        return True

    async def respond(self):
        """Handle one user response gesture. Returns the resulting phase."""
        phase = self.session.phase
        if phase is Phase.ARMED:
            self._cancel_task()
            self.session = SessionState(phase=Phase.FALSE_START, last_ms=self.session.last_ms)
            log.info("False start")
            await self._broadcast()
        elif phase is Phase.STIMULUS:
            elapsed = self._clock() - self.session.stimulus_at
            reaction_ms = max(0, round_half_up(elapsed * 1000))
            self.history.record(reaction_ms)
            self._task = None
            self.session = SessionState(phase=Phase.RESULT, last_ms=reaction_ms)
            log.info(f"Trial {len(self.history)}: {reaction_ms} ms")
            await self._broadcast()
        else:
            await self.start()
        return self.session.phase

    def shutdown(self):
        """Drop any pending stimulus timer. History is left alone."""
        self._cancel_task()
        if self.session.phase is Phase.ARMED:
            self.session = SessionState(phase=Phase.IDLE, last_ms=self.session.last_ms)

    def _show_stimulus(self):
        if self.session.phase is not Phase.ARMED:
            log.debug(f"stale stimulus timer ignored in {self.session.phase.value}")
            return False
        self.session = replace(self.session, phase=Phase.STIMULUS, stimulus_at=self._clock())
        return True

    async def _arm(self, delay):
        try:
            await asyncio.sleep(delay)
        except asyncio.CancelledError:
            return
        if self._show_stimulus():
            await self._broadcast()

    async def _broadcast(self):
        if self._on_update:
            await self._on_update(self.to_dict())

    def _cancel_task(self):
        if self._task:
            self._task.cancel()
            self._task = None
