from datetime import date, datetime, time, timedelta, timezone

import pytest

from clinic_booking.services.datetime_normalizer import (
    add_minutes,
    format_clock_label,
    parse_date,
    parse_time,
)


@pytest.mark.parametrize("value", ["2025-06-03", "1999-12-31", "2024-02-29"])
def test_canonical_dates_are_returned_unchanged(value):
    assert parse_date(value) == value


def test_canonical_looking_but_impossible_date_is_rejected():
    assert parse_date("2025-02-30") is None


@pytest.mark.parametrize(
    "value",
    [
        "Mon, 3rd June 2025",
        "Monday, 3rd June 2025",
        "3rd June 2025",
        "June 3rd, 2025",
        "3 June 2025",
    ],
)
def test_weekday_prefix_and_ordinal_suffix_are_stripped(value):
    assert parse_date(value) == parse_date("2025-06-03") == "2025-06-03"


def test_date_objects_use_their_own_calendar_fields():
    late_evening_new_york = datetime(2025, 7, 1, 23, 30, tzinfo=timezone(timedelta(hours=-5)))

    assert parse_date(date(2025, 7, 1)) == "2025-07-01"
    assert parse_date(late_evening_new_york) == "2025-07-01"


def test_ambiguous_numeric_dates_follow_dayfirst_flag():
    assert parse_date("03/06/2025") == "2025-03-06"
    assert parse_date("03/06/2025", dayfirst=True) == "2025-06-03"


@pytest.mark.parametrize(
    "value",
    [None, "", "not a date", "31st February 2025", "10:00", "5", "June 2025", "3rd June", "2025"],
)
def test_unparseable_dates_return_none(value):
    assert parse_date(value) is None


def test_twelve_and_twenty_four_hour_times_agree():
    assert parse_time("5:15 pm") == parse_time("17:15") == "17:15:00"


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("12:00 am", "00:00:00"),
        ("12:00 pm", "12:00:00"),
        ("12:30AM", "00:30:00"),
        ("10:00AM", "10:00:00"),
        ("9:05 am", "09:05:00"),
        ("11:45 PM", "23:45:00"),
        ("17:15:00", "17:15:00"),
        ("7:00", "07:00:00"),
        (time(14, 30), "14:30:00"),
    ],
)
def test_parse_time_normalizes(value, expected):
    assert parse_time(value) == expected


@pytest.mark.parametrize("value", [None, "", "noon", "25:00", "13:00 pm", "10:75"])
def test_unparseable_times_return_none(value):
    assert parse_time(value) is None


def test_add_minutes_stays_within_the_day():
    assert add_minutes("14:00:00", 45) == "14:45:00"
    assert add_minutes("23:00:00", 45) == "23:45:00"
    assert add_minutes("23:30:00", 45) is None


@pytest.mark.parametrize(
    ("value", "label"),
    [(time(0, 5), "12:05 am"), (time(12, 0), "12:00 pm"), (time(17, 15), "5:15 pm"), (time(9, 0), "9:00 am")],
)
def test_clock_labels_round_trip_through_parse_time(value, label):
    assert format_clock_label(value) == label
    assert parse_time(label) == value.isoformat()
