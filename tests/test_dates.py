"""Tests for the deterministic date resolver and calendar windows."""

from datetime import date, datetime, timezone

import pytest

from chatledger.models.ledger import Language
from chatledger.parsing import (
    DateResolver,
    add_months,
    local_midnight,
    month_window,
    start_of_today,
    to_utc,
    week_window,
)


NOW = datetime(2024, 7, 20, 12, 0, tzinfo=timezone.utc)


def utc_midnight(year, month, day):
    return datetime(year, month, day, tzinfo=timezone.utc)


class TestRelativeDates:
    """Relative markers in both languages."""

    @pytest.fixture
    def resolver(self):
        return DateResolver()

    def test_kemarin_is_previous_day(self, resolver):
        """Test 'kemarin' resolves to the day before."""
        assert resolver.resolve("beli kopi kemarin", Language.INDONESIAN, now=NOW) == utc_midnight(2024, 7, 19)

    def test_yesterday(self, resolver):
        """Test 'yesterday' in English."""
        assert resolver.resolve("lunch yesterday", Language.ENGLISH, now=NOW) == utc_midnight(2024, 7, 19)

    def test_tomorrow_and_lusa(self, resolver):
        """Test forward offsets."""
        assert resolver.resolve("besok", Language.INDONESIAN, now=NOW) == utc_midnight(2024, 7, 21)
        assert resolver.resolve("lusa", Language.INDONESIAN, now=NOW) == utc_midnight(2024, 7, 22)

    def test_minggu_lalu_wins_over_kemarin(self, resolver):
        """Test the week phrase is not read as 'kemarin'."""
        assert resolver.resolve("minggu kemarin", Language.INDONESIAN, now=NOW) == utc_midnight(2024, 7, 13)

    def test_weeks_ago(self, resolver):
        """Test "3 minggu lalu" is three weeks back, not last week."""
        assert resolver.resolve("3 minggu lalu", Language.INDONESIAN, now=NOW) == utc_midnight(2024, 6, 29)
        assert resolver.resolve("2 weeks ago", Language.ENGLISH, now=NOW) == utc_midnight(2024, 7, 6)
        assert resolver.resolve("minggu lalu", Language.INDONESIAN, now=NOW) == utc_midnight(2024, 7, 13)

    def test_days_ago(self, resolver):
        """Test 'N hari lalu' and 'N days ago'."""
        assert resolver.resolve("3 hari lalu", Language.INDONESIAN, now=NOW) == utc_midnight(2024, 7, 17)
        assert resolver.resolve("2 days ago", Language.ENGLISH, now=NOW) == utc_midnight(2024, 7, 18)

    def test_result_is_local_midnight_in_utc(self, resolver):
        """Test the resolved day starts at midnight in the user's timezone."""
        resolved = resolver.resolve("kemarin", Language.INDONESIAN, tz="Asia/Jakarta", now=NOW)
        # 2024-07-19 00:00 WIB is 2024-07-18 17:00 UTC
        assert resolved == datetime(2024, 7, 18, 17, 0, tzinfo=timezone.utc)


class TestAbsoluteDates:
    """Named-month and numeric dates."""

    @pytest.fixture
    def resolver(self):
        return DateResolver()

    def test_named_indonesian_month_uses_current_year(self, resolver):
        """Test '15 juli' resolves to July 15 of the current year."""
        assert resolver.resolve("15 juli", Language.INDONESIAN, now=NOW) == utc_midnight(2024, 7, 15)

    def test_tanggal_prefix_and_year(self, resolver):
        """Test 'tanggal 3 agustus 2023'."""
        assert resolver.resolve("tanggal 3 agustus 2023", Language.INDONESIAN, now=NOW) == utc_midnight(2023, 8, 3)

    def test_english_month_first(self, resolver):
        """Test 'July 4th, 2023'."""
        assert resolver.resolve("paid on July 4th, 2023", Language.ENGLISH, now=NOW) == utc_midnight(2023, 7, 4)

    def test_english_months_accepted_in_indonesian(self, resolver):
        """Test English month names also work for Indonesian users."""
        assert resolver.resolve("5 march", Language.INDONESIAN, now=NOW) == utc_midnight(2024, 3, 5)

    def test_numeric_day_month(self, resolver):
        """Test "15/7/2024", "15/7" and "15-7-2024"."""
        assert resolver.resolve("15/7/2024", now=NOW) == utc_midnight(2024, 7, 15)
        assert resolver.resolve("15/7", now=NOW) == utc_midnight(2024, 7, 15)
        assert resolver.resolve("15-7-2024", now=NOW) == utc_midnight(2024, 7, 15)

    def test_quantity_range_is_not_a_date(self, resolver):
        """Test "2-3 kg" is not read as 2 March."""
        assert resolver.resolve("beli beras 2-3 kg", Language.INDONESIAN, now=NOW) is None

    def test_iso_date(self, resolver):
        """Test '2024-06-30'."""
        assert resolver.resolve("2024-06-30", now=NOW) == utc_midnight(2024, 6, 30)

    def test_impossible_date_is_none(self, resolver):
        """Test 31/2 gives None instead of raising."""
        assert resolver.resolve("31/2", now=NOW) is None
        assert resolver.resolve("31 februari", Language.INDONESIAN, now=NOW) is None

    def test_unparseable_is_none(self, resolver):
        """Test text with no date gives None."""
        assert resolver.resolve("beli kopi 25000", Language.INDONESIAN, now=NOW) is None
        assert resolver.resolve("", now=NOW) is None
        assert resolver.resolve("   ", now=NOW) is None

    def test_unknown_language_falls_back_to_english(self, resolver):
        """Test an unsupported language code does not raise."""
        assert resolver.resolve("yesterday", "fr", now=NOW) == utc_midnight(2024, 7, 19)


class TestCalendarWindows:
    """Month and week boundaries in the user's timezone."""

    def test_add_months_clamps_day(self):
        """Test Jan 31 + 1 month is the last day of February."""
        assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)
        assert add_months(date(2023, 1, 31), 1) == date(2023, 2, 28)
        assert add_months(date(2024, 11, 15), 3) == date(2025, 2, 15)
        assert add_months(date(2024, 3, 15), -3) == date(2023, 12, 15)

    def test_month_window_utc(self):
        """Test the month window runs first-to-first."""
        start, end = month_window(NOW, "UTC")
        assert start == utc_midnight(2024, 7, 1)
        assert end == utc_midnight(2024, 8, 1)

    def test_month_window_in_jakarta(self):
        """Test the window starts at local midnight."""
        start, _ = month_window(NOW, "Asia/Jakarta")
        assert start == datetime(2024, 6, 30, 17, 0, tzinfo=timezone.utc)

    def test_week_window_starts_monday(self):
        """Test 2024-07-20 (Saturday) falls in the week of Monday 2024-07-15."""
        start, end = week_window(NOW, "UTC")
        assert start == utc_midnight(2024, 7, 15)
        assert end == utc_midnight(2024, 7, 22)

    def test_start_of_today(self):
        """Test start_of_today is local midnight."""
        assert start_of_today(NOW, "UTC") == utc_midnight(2024, 7, 20)

    def test_to_utc_reads_naive_in_timezone(self):
        """Test naive datetimes are interpreted in the given timezone."""
        assert to_utc(datetime(2024, 7, 20, 7, 0), "Asia/Jakarta") == datetime(2024, 7, 20, 0, 0, tzinfo=timezone.utc)

    def test_unknown_timezone_falls_back_to_utc(self):
        """Test an unknown zone name does not raise."""
        assert local_midnight(date(2024, 7, 20), "Mars/Olympus") == utc_midnight(2024, 7, 20)
