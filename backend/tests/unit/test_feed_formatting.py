from datetime import datetime, timedelta, timezone

import pytest

from app.domain.feed.formatting import format_time_ago, to_iso

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "delta, expected",
    [
        (timedelta(seconds=0), "just now"),
        (timedelta(seconds=59), "just now"),
        (timedelta(minutes=1), "1m"),
        (timedelta(minutes=59), "59m"),
        (timedelta(hours=1), "1h"),
        (timedelta(hours=23, minutes=59), "23h"),
        (timedelta(days=1), "1d"),
        (timedelta(days=6, hours=23), "6d"),
    ],
)
def test_format_time_ago_relative(delta, expected):
    assert format_time_ago(NOW - delta, NOW) == expected


def test_format_time_ago_falls_back_to_month_and_day():
    assert format_time_ago(datetime(2026, 2, 3, 9, 0, tzinfo=timezone.utc), NOW) == "Feb 3"


def test_format_time_ago_accepts_naive_timestamps():
    assert format_time_ago(datetime(2026, 3, 10, 10, 0), NOW) == "2h"


def test_future_timestamps_read_as_just_now():
    assert format_time_ago(NOW + timedelta(minutes=5), NOW) == "just now"


def test_to_iso_is_timezone_aware():
    assert to_iso(datetime(2026, 3, 10, 12, 0)) == "2026-03-10T12:00:00+00:00"
