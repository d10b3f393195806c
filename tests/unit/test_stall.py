"""Unit tests for StallDetector."""

import pytest

from speechpace.analysis.stall import StallDetector


@pytest.mark.unit
class TestStallDetector:

    def test_default_threshold(self):
        assert StallDetector().threshold_seconds == 3.0

    def test_not_stalled_before_reset(self):
        detector = StallDetector()
        assert detector.check_stalled(100.0) is False

    def test_not_stalled_within_threshold(self):
        detector = StallDetector(threshold_seconds=3.0)
        detector.reset(10.0)
        assert detector.check_stalled(12.9) is False
        assert detector.stalled is False

    def test_stalled_at_threshold(self):
        detector = StallDetector(threshold_seconds=3.0)
        detector.reset(10.0)
        assert detector.check_stalled(13.0) is True
        assert detector.stalled is True

    def test_fires_once_per_stall(self):
        detector = StallDetector(threshold_seconds=3.0)
        detector.reset(0.0)
        assert detector.check_stalled(4.0) is True
        assert detector.check_stalled(5.0) is False
        assert detector.check_stalled(60.0) is False

    def test_growth_rearms(self):
        detector = StallDetector(threshold_seconds=3.0)
        detector.reset(0.0)
        assert detector.check_stalled(4.0) is True

        detector.on_word_count_increased(5.0)
        assert detector.stalled is False
        assert detector.check_stalled(7.0) is False
        assert detector.check_stalled(8.0) is True

    def test_growth_moves_baseline(self):
        detector = StallDetector(threshold_seconds=3.0)
        detector.reset(0.0)
        detector.on_word_count_increased(2.5)
        assert detector.last_growth_time == 2.5
        assert detector.check_stalled(5.0) is False

    def test_threshold_override(self):
        detector = StallDetector(threshold_seconds=3.0)
        detector.reset(0.0)
        assert detector.check_stalled(1.0, threshold_seconds=0.5) is True

    def test_reset_clears_stall(self):
        detector = StallDetector()
        detector.reset(0.0)
        detector.check_stalled(10.0)
        detector.reset(20.0)
        assert detector.stalled is False
        assert detector.last_growth_time == 20.0
