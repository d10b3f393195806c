"""Speaking-rate metrics.

Pure functions with no audio or engine dependency. The buckets are fixed
and non-overlapping over non-negative integer words per minute:

    0-119    Slow
    120-150  Normal
    151-200  Fast
    201+     Very Fast
"""

from typing import Tuple

from ..models.recording import SpeedCategory

SLOW_MAX_WPM = 119
NORMAL_MAX_WPM = 150
FAST_MAX_WPM = 200


def classify(words_per_minute: int) -> SpeedCategory:
    """Map words per minute to a speed category.

    Args:
        words_per_minute: Non-negative speaking rate

    Returns:
        The SpeedCategory bucket containing the rate
    """
    if words_per_minute < 0:
        raise ValueError(f"words_per_minute must be non-negative, got {words_per_minute}")
    if words_per_minute <= SLOW_MAX_WPM:
        return SpeedCategory.SLOW
    if words_per_minute <= NORMAL_MAX_WPM:
        return SpeedCategory.NORMAL
    if words_per_minute <= FAST_MAX_WPM:
        return SpeedCategory.FAST
    return SpeedCategory.VERY_FAST


def compute_wpm(word_count: int, elapsed_seconds: float) -> int:
    """Words per minute over an elapsed period, 0 if no time has elapsed."""
    if elapsed_seconds <= 0:
        return 0
    return max(0, round(word_count / (elapsed_seconds / 60.0)))


def analyze_speech(word_count: int, elapsed_seconds: float) -> Tuple[int, SpeedCategory]:
    """Compute (words_per_minute, category) for a finished session.

    A session with no measurable duration carries no reliable signal and is
    reported as UNCLEAR rather than bucketed by its (zero) rate.
    """
    if elapsed_seconds <= 0:
        return 0, SpeedCategory.UNCLEAR
    wpm = compute_wpm(word_count, elapsed_seconds)
    return wpm, classify(wpm)
