"""
Local-day arithmetic used by the revenue and expiry reports.
"""

import time
from datetime import datetime, timezone

import pytest

from retail_ops.time_utils import local_day_bounds_utc

pytestmark = pytest.mark.skipif(not hasattr(time, "tzset"), reason="needs time.tzset")

# POSIX rule, so no tz database is needed: EST/EDT, second Sunday of March to first Sunday of November.
US_EASTERN = "EST5EDT,M3.2.0,M11.1.0"


@pytest.fixture
def local_zone(monkeypatch):
    def _set(name):
        monkeypatch.setenv("TZ", name)
        time.tzset()

    yield _set
    monkeypatch.undo()
    time.tzset()


class TestLocalDayBounds:
    def test_plain_day(self, local_zone):
        local_zone(US_EASTERN)
        start, end = local_day_bounds_utc(datetime(2026, 1, 15, 17, 0, tzinfo=timezone.utc))
        assert start == datetime(2026, 1, 15, 5, 0, 0)
        assert end == datetime(2026, 1, 16, 4, 59, 59)

    def test_spring_forward_day(self, local_zone):
        local_zone(US_EASTERN)
        # Clocks jump from EST to EDT at 02:00 local on 2026-03-08.
        start, end = local_day_bounds_utc(datetime(2026, 3, 8, 18, 0, tzinfo=timezone.utc))
        assert start == datetime(2026, 3, 8, 5, 0, 0)
        assert end == datetime(2026, 3, 9, 3, 59, 59)

    def test_fall_back_day(self, local_zone):
        local_zone(US_EASTERN)
        # Clocks fall back from EDT to EST at 02:00 local on 2026-11-01.
        start, end = local_day_bounds_utc(datetime(2026, 11, 1, 12, 0, tzinfo=timezone.utc))
        assert start == datetime(2026, 11, 1, 4, 0, 0)
        assert end == datetime(2026, 11, 2, 4, 59, 59)
