"""Per-participant message burst limiting.

This is a leaky-bucket approximation rather than a true sliding window:
every attempt bumps the participant's burst count, and every attempt
(accepted or rejected) schedules one deferred decrement. Capacity therefore
recovers at one slot per decay interval regardless of arrival pattern.

Decay callbacks are never cancelled. When they fire after the participant
has disconnected they do nothing.
"""
import asyncio
import logging
from typing import Any, Callable, Optional

from .registry import ParticipantRegistry
from .schemas import Participant

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 10
DEFAULT_DECAY_SECONDS = 60.0

Scheduler = Callable[[float, Callable[[], None]], Any]


def _loop_scheduler(delay: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
    return asyncio.get_running_loop().call_later(delay, callback)


class RateLimiter:
    """Burst counter backed by the participant registry.

    Args:
        registry: Registry that owns the participants' burst counters.
        threshold: Attempts allowed before rejection starts.
        decay_seconds: Delay before each attempt stops counting.
        scheduler: ``scheduler(delay, callback)`` used to defer decay. Defaults
            to ``call_later`` on the running asyncio loop.
    """

    def __init__(
        self,
        registry: ParticipantRegistry,
        threshold: int = DEFAULT_THRESHOLD,
        decay_seconds: float = DEFAULT_DECAY_SECONDS,
        scheduler: Optional[Scheduler] = None,
    ) -> None:
        self.registry = registry
        self.threshold = threshold
        self.decay_seconds = decay_seconds
        self._scheduler = scheduler or _loop_scheduler

    def record_attempt(self, participant: Participant) -> bool:
        """Count one attempt; return False once the count exceeds the threshold."""
        count = self.registry.increment_burst(participant.connectionId)
        if count is None:
            return False
        return count <= self.threshold

    def schedule_decay(self, participant: Participant) -> Any:
        """Defer a one-slot decrement for this participant."""
        def _decay() -> None:
            if not self.registry.decrement_burst(participant):
                logger.debug(
                    "[RateLimiter] Skipping decay for departed participant %s",
                    participant.publicId,
                )

        return self._scheduler(self.decay_seconds, _decay)
