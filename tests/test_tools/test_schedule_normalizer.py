"""
Tests for Schedule Normalizer
Tests frequency/time normalization and the calendar day gate
"""

import pytest
from datetime import datetime, date, timezone
from zoneinfo import ZoneInfo

from tools.schedule_normalizer import (
    normalize_frequency,
    normalize_time,
    infer_time_from_name,
    local_day_bounds,
    local_hhmm,
    local_today,
    days_since_creation,
    is_due_today,
    to_utc_naive,
)


KOLKATA = ZoneInfo("Asia/Kolkata")
NEW_YORK = ZoneInfo("America/New_York")


# =============================================================================
# Frequency
# =============================================================================

@pytest.mark.unit
class TestNormalizeFrequency:
    """Tests for frequency → interval days"""

    @pytest.mark.parametrize("raw,expected", [
        (None, 1),
        (1, 1),
        (3, 3),
        (0, 1),
        (-4, 1),
        (2.7, 2),
        ("daily", 1),
        ("Every day", 1),
        ("every other day", 2),
        ("alternate days", 2),
        ("weekly", 7),
        ("every 3 days", 3),
        ("5", 5),
        ("whenever", 1),
        ("", 1),
    ])
    def test_normalization(self, raw, expected):
        assert normalize_frequency(raw) == expected

    def test_booleans_are_not_numbers(self):
        assert normalize_frequency(True) == 1
        assert normalize_frequency(False) == 1

    def test_never_below_one(self):
        assert normalize_frequency("every 0 days") == 1


# =============================================================================
# Time
# =============================================================================

@pytest.mark.unit
class TestNormalizeTime:
    """Tests for HH:MM canonicalization and inference"""

    def test_well_formed_time_passes_through(self):
        assert normalize_time("14:30", "Metformin") == "14:30"

    def test_single_digit_hour_is_zero_padded(self):
        assert normalize_time("8:00") == "08:00"

    def test_invalid_time_falls_back_to_inference(self):
        assert normalize_time("25:00", "Metformin") == "09:00"
        assert normalize_time("8pm", "Metformin") == "09:00"

    def test_missing_time_infers_from_sedative_name(self):
        assert normalize_time(None, "Melatonin 3mg") == "22:00"

    def test_missing_time_infers_thyroid_morning(self):
        assert normalize_time(None, "Levothyroxine") == "08:00"

    def test_missing_time_defaults_to_nine(self):
        assert normalize_time(None, "Lisinopril") == "09:00"
        assert normalize_time(None, None) == "09:00"

    @pytest.mark.parametrize("name,expected", [
        ("Night-time cough syrup", "22:00"),
        ("Vitamin D", "08:00"),
        ("After lunch tablet", "13:00"),
        ("Evening primrose", "19:00"),
    ])
    def test_inference_rules(self, name, expected):
        assert infer_time_from_name(name) == expected


# =============================================================================
# Timezone helpers
# =============================================================================

@pytest.mark.unit
class TestLocalCalendar:
    """Tests for local day arithmetic"""

    def test_local_hhmm_and_today(self):
        now = datetime(2026, 3, 10, 3, 30, tzinfo=timezone.utc)
        assert local_hhmm(now, KOLKATA) == "09:00"
        assert local_today(now, KOLKATA) == date(2026, 3, 10)

    def test_late_utc_evening_is_next_local_day(self):
        now = datetime(2026, 3, 10, 20, 0, tzinfo=timezone.utc)
        assert local_today(now, KOLKATA) == date(2026, 3, 11)

    def test_day_bounds_are_utc(self):
        start, end = local_day_bounds(date(2026, 3, 10), KOLKATA)
        assert start == datetime(2026, 3, 9, 18, 30)
        assert end == datetime(2026, 3, 10, 18, 30)

    def test_day_bounds_on_short_dst_day(self):
        start, end = local_day_bounds(date(2026, 3, 8), NEW_YORK)
        assert start == datetime(2026, 3, 8, 5, 0)
        assert end == datetime(2026, 3, 9, 4, 0)
        assert (end - start).total_seconds() == 23 * 3600

    def test_naive_datetimes_are_utc(self):
        assert to_utc_naive(datetime(2026, 3, 10, 9, 0)) == datetime(2026, 3, 10, 9, 0)


# =============================================================================
# Day gate
# =============================================================================

@pytest.mark.unit
class TestDayGate:
    """Tests for the frequency day gate"""

    def test_daily_is_always_due(self):
        created = datetime(2026, 3, 1, 3, 0)
        now = datetime(2026, 3, 4, 3, 30, tzinfo=timezone.utc)
        assert is_due_today(created, 1, now, KOLKATA)

    def test_missing_creation_is_due(self):
        now = datetime(2026, 3, 4, 3, 30, tzinfo=timezone.utc)
        assert is_due_today(None, 3, now, KOLKATA)

    def test_every_third_day(self):
        # Created on local 2026-03-01
        created = datetime(2026, 3, 1, 3, 0)
        due_days = []
        for day in range(1, 10):
            now = datetime(2026, 3, day, 3, 30, tzinfo=timezone.utc)
            if is_due_today(created, 3, now, KOLKATA):
                due_days.append(day)
        assert due_days == [1, 4, 7]

    def test_counts_local_calendar_days_not_elapsed_hours(self):
        # 23:50 local on day 1, then 00:10 local on day 2: one calendar day
        created = datetime(2026, 3, 1, 18, 20)
        now = datetime(2026, 3, 1, 18, 40, tzinfo=timezone.utc)
        assert days_since_creation(created, now, KOLKATA) == 1

    def test_spring_forward_does_not_drift(self):
        created = to_utc_naive(datetime(2026, 3, 7, 0, 0, tzinfo=NEW_YORK))
        now = datetime(2026, 3, 9, 0, 0, tzinfo=NEW_YORK)
        assert days_since_creation(created, now, NEW_YORK) == 2
        assert is_due_today(created, 2, now, NEW_YORK)

    def test_fall_back_does_not_drift(self):
        created = to_utc_naive(datetime(2026, 10, 31, 0, 0, tzinfo=NEW_YORK))
        now = datetime(2026, 11, 2, 0, 0, tzinfo=NEW_YORK)
        assert days_since_creation(created, now, NEW_YORK) == 2
        assert is_due_today(created, 2, now, NEW_YORK)
