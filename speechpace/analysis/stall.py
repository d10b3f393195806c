"""Detects stalls in transcript growth, used to flag unclear speech."""

import logging
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_STALL_THRESHOLD_SECONDS = 3.0


class StallDetector:
    """Tracks the last time the transcript gained words.

    ``check_stalled`` fires once per stall: after it has returned True it
    keeps returning False until ``on_word_count_increased`` re-arms it.
    Timestamps are monotonic seconds supplied by the caller.
    """

    def __init__(self, threshold_seconds: float = DEFAULT_STALL_THRESHOLD_SECONDS):
        self.threshold_seconds = threshold_seconds
        self.last_growth_time: Optional[float] = None
        self.stalled = False

    def reset(self, now: float) -> None:
        """Start tracking a new session at ``now``."""
        self.last_growth_time = now
        self.stalled = False

    def on_word_count_increased(self, now: float) -> None:
        self.last_growth_time = now
        self.stalled = False

    def check_stalled(self, now: float, threshold_seconds: Optional[float] = None) -> bool:
        """Return True if a new stall has been reached at ``now``.

        Args:
            now: Current monotonic time in seconds
            threshold_seconds: Override for the configured threshold

        Returns:
            True exactly once per stall, False otherwise
        """
        if self.last_growth_time is None or self.stalled:
            return False

        threshold = self.threshold_seconds if threshold_seconds is None else threshold_seconds
        if now - self.last_growth_time >= threshold:
            self.stalled = True
            logger.info(f"No transcript growth for {now - self.last_growth_time:.1f}s, flagging unclear speech")
            return True
        return False
