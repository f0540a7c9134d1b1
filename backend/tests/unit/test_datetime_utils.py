"""
Unit tests for datetime utilities.
"""

from datetime import datetime, timedelta, timezone

from utils.datetime_utils import ensure_utc, utc_now


class TestUtcHelpers:
    """Test UTC normalization used for stored timestamps."""

    def test_utc_now_is_aware(self):
        now = utc_now()
        assert now.tzinfo is not None
        assert now.utcoffset() == timedelta(0)

    def test_ensure_utc_none(self):
        assert ensure_utc(None) is None

    def test_naive_is_treated_as_utc(self):
        """SQLite hands back naive values; they are stored as UTC."""
        naive = datetime(2026, 3, 1, 9, 30)
        result = ensure_utc(naive)
        assert result == datetime(2026, 3, 1, 9, 30, tzinfo=timezone.utc)

    def test_other_zones_are_converted(self):
        taipei = timezone(timedelta(hours=8))
        result = ensure_utc(datetime(2026, 3, 1, 17, 30, tzinfo=taipei))
        assert result.tzinfo == timezone.utc
        assert result.hour == 9
