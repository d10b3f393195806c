"""Speaking-rate analysis."""

from .speed import classify, compute_wpm, analyze_speech
from .stall import StallDetector

__all__ = [
    "classify",
    "compute_wpm",
    "analyze_speech",
    "StallDetector",
]
