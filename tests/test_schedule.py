"""
Tests para el cálculo de próxima ejecución y "toca ejecutar".
"""

from datetime import datetime, timedelta

import pytest

from remitbridge.scheduler.schedule import compute_next_run, is_due, parse_time_of_day
from remitbridge.shared.models import RoutineV1


NOW = datetime(2026, 10, 19, 13, 0, 0)


def test_hourly_adds_one_hour():
    """Test: hourly -> now + 1h exacto."""
    assert compute_next_run("hourly", now=NOW) == NOW + timedelta(seconds=3600)


def test_weekly_adds_seven_days():
    assert compute_next_run("weekly", now=NOW) == NOW + timedelta(days=7)


def test_daily_time_later_today():
    """Test: daily 14:00 a las 13:00 -> hoy a las 14:00."""
    assert compute_next_run("daily", "14:00", now=NOW) == datetime(2026, 10, 19, 14, 0)


def test_daily_time_already_passed():
    """Test: daily 14:00 a las 15:00 -> mañana a las 14:00."""
    now = NOW.replace(hour=15)
    assert compute_next_run("daily", "14:00", now=now) == datetime(2026, 10, 20, 14, 0)


def test_daily_time_equal_now_goes_to_tomorrow():
    assert compute_next_run("daily", "13:00", now=NOW) == datetime(2026, 10, 20, 13, 0)


def test_daily_without_time_adds_24h():
    assert compute_next_run("daily", now=NOW) == NOW + timedelta(hours=24)


def test_invalid_frequency():
    with pytest.raises(ValueError):
        compute_next_run("monthly", now=NOW)


@pytest.mark.parametrize("value", ["25:00", "9h", "", "12:61"])
def test_invalid_time_of_day(value):
    with pytest.raises(ValueError):
        parse_time_of_day(value)


def test_is_due():
    """Test: activa sin next_run o con next_run pasado -> toca; pausada nunca."""
    routine = RoutineV1(name="r", folder_path="/tmp/r")
    assert is_due(routine, NOW) is True

    routine.next_run = NOW + timedelta(minutes=1)
    assert is_due(routine, NOW) is False

    routine.next_run = NOW
    assert is_due(routine, NOW) is True

    routine.status = "paused"
    assert is_due(routine, NOW) is False
