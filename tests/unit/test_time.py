"""
tests/unit/test_time.py - Tests for core/time.py freshness helpers.
"""

from datetime import timezone

from core.time import age_seconds, is_fresh, now_ms, now_utc


class TestNow:
    def test_now_utc_is_aware(self):
        assert now_utc().tzinfo == timezone.utc

    def test_now_ms_is_milliseconds(self):
        # After 2020-01-01 and below year 3000
        assert 1_577_836_800_000 < now_ms() < 32_503_680_000_000


class TestFreshness:
    def test_age_seconds(self):
        assert age_seconds(1_000, current_ms=4_500) == 3.5

    def test_fresh_within_window(self):
        assert is_fresh(10_000, 60, current_ms=69_000)

    def test_stale_outside_window(self):
        assert not is_fresh(10_000, 60, current_ms=70_001)

    def test_boundary_is_fresh(self):
        assert is_fresh(10_000, 60, current_ms=70_000)

    def test_never_set_is_never_fresh(self):
        assert not is_fresh(0, 60, current_ms=1)
