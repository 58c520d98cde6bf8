from datetime import time

import pytest

from clinic_booking.core.errors import BookingValidationError
from clinic_booking.services.availability_service import available_slots, slot_grid
from clinic_booking.services.overlap_guard import intervals_overlap

NINE = time(9, 0)
SIX_PM = time(18, 0)


def _seconds(hours: int, minutes: int = 0) -> int:
    return hours * 3600 + minutes * 60


def test_grid_covers_the_working_day_without_overrunning_it():
    slots = available_slots([], 30, NINE, SIX_PM, 15)

    assert slots[0] == "09:00:00"
    assert slots[-1] == "17:30:00"
    assert len(slots) == 35


def test_last_slot_depends_on_service_duration():
    assert available_slots([], 45, NINE, SIX_PM, 15)[-1] == "17:15:00"
    assert available_slots([], 60, NINE, SIX_PM, 15)[-1] == "17:00:00"


def test_booked_interval_removes_overlapping_slots_only():
    reserved = [(_seconds(10), _seconds(10, 30))]

    slots = available_slots(reserved, 30, NINE, SIX_PM, 15)

    assert "09:45:00" not in slots
    assert "10:00:00" not in slots
    assert "10:15:00" not in slots
    assert "09:30:00" in slots
    assert "10:30:00" in slots


def test_slots_are_ascending_and_unique():
    reserved = [(_seconds(12), _seconds(13)), (_seconds(9, 30), _seconds(10))]

    slots = available_slots(reserved, 30, NINE, SIX_PM, 15)

    assert slots == sorted(set(slots))


def test_repeated_queries_return_the_same_sequence():
    reserved = [(_seconds(10), _seconds(10, 30))]

    assert available_slots(reserved, 30, NINE, SIX_PM, 15) == available_slots(reserved, 30, NINE, SIX_PM, 15)


def test_service_longer_than_the_day_has_no_slots():
    assert available_slots([], 10 * 60, NINE, SIX_PM, 15) == []


def test_grid_rejects_non_positive_interval():
    with pytest.raises(BookingValidationError):
        slot_grid(30, NINE, SIX_PM, 0)


def test_explicit_zero_interval_is_not_replaced_by_the_default():
    with pytest.raises(BookingValidationError):
        available_slots([], 30, NINE, SIX_PM, 0)


@pytest.mark.parametrize(
    ("candidate", "expected"),
    [
        ((_seconds(10, 15), _seconds(10, 45)), True),
        ((_seconds(10, 30), _seconds(11)), False),
        ((_seconds(9, 30), _seconds(10)), False),
        ((_seconds(9), _seconds(11)), True),
        ((_seconds(10, 5), _seconds(10, 10)), True),
    ],
)
def test_half_open_overlap(candidate, expected):
    existing = (_seconds(10), _seconds(10, 30))

    assert intervals_overlap(candidate[0], candidate[1], existing[0], existing[1]) is expected
