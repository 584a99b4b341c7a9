import math
from datetime import date, datetime, time
from types import SimpleNamespace

import pytest

from barberhub.domain.scheduling import slots
from barberhub.domain.scheduling.slots import SlotKind
from barberhub.shared.enums import AppointmentStatus

MONDAY = date(2030, 1, 7)
SUNDAY = date(2030, 1, 13)
HOURS = {"monday": {"open": "09:00", "close": "18:00"}, "sunday": {"closed": True}}


def appt(id, start, end, barber_id=1, status=AppointmentStatus.SCHEDULED):
    return SimpleNamespace(id=id, start_time=start, end_time=end, barber_id=barber_id, status=status)


@pytest.mark.parametrize("duration", [1, 14, 15, 16, 30, 45, 50, 61, 120])
@pytest.mark.parametrize("interval", [5, 10, 15, 30])
def test_slots_count_is_ceiling(duration, interval):
    assert slots.slots_count(duration, interval) == math.ceil(duration / interval)


def test_zero_duration_still_takes_one_slot():
    assert slots.slots_count(0, 15) == 1


def test_slots_count_rejects_non_positive_interval():
    with pytest.raises(ValueError):
        slots.slots_count(30, 0)


def test_time_in_range_is_half_open():
    assert slots.is_time_in_range("09:00", "09:00", "09:30")
    assert slots.is_time_in_range("09:29", "09:00", "09:30")
    assert not slots.is_time_in_range("09:30", "09:00", "09:30")
    assert not slots.is_time_in_range("08:59", "09:00", "09:30")


def test_time_in_range_accepts_stored_times():
    assert slots.is_time_in_range("10:15", time(10, 0), "10:30:00")


def test_nine_to_six_with_fifteen_minutes_gives_36_slots():
    labels = slots.generate_time_slots(MONDAY, HOURS, 15)

    assert len(labels) == 36
    assert labels[0] == "09:00"
    assert labels[-1] == "17:45"


def test_closed_day_has_no_slots():
    assert slots.generate_time_slots(SUNDAY, HOURS, 15) == []


def test_day_missing_from_configuration_is_closed():
    tuesday = date(2030, 1, 8)
    assert slots.working_window(tuesday, HOURS) is None


def test_missing_configuration_uses_fallback_window():
    assert slots.working_window(MONDAY, None) == (9 * 60, 18 * 60)


def test_malformed_day_entry_uses_fallback_window():
    broken = {"monday": {"open": "late", "close": "18:00"}}
    assert slots.working_window(MONDAY, broken) == (9 * 60, 18 * 60)


def test_back_to_back_appointments_resolve_to_their_own_slots():
    first = appt(1, "09:00", "09:30")
    second = appt(2, "09:30", "10:00")
    day = [first, second]

    at_nine = slots.resolve_slot("09:00", day)
    assert at_nine.kind is SlotKind.START
    assert at_nine.appointment_id == 1
    assert at_nine.span == 2

    covered = slots.resolve_slot("09:15", day)
    assert covered.kind is SlotKind.COVERED
    assert covered.appointment_id == 1

    at_half_past = slots.resolve_slot("09:30", day)
    assert at_half_past.kind is SlotKind.START
    assert at_half_past.appointment_id == 2

    assert slots.resolve_slot("10:00", day).kind is SlotKind.FREE


def test_cancelled_appointments_do_not_occupy_slots():
    cancelled = appt(1, "09:00", "09:30", status=AppointmentStatus.CANCELLED)
    assert slots.resolve_slot("09:00", [cancelled]).kind is SlotKind.FREE


def test_overlapping_bookings_resolve_to_earliest_start_then_lowest_id():
    late = appt(7, "09:15", "10:00")
    early = appt(9, "09:00", "09:45")
    twin = appt(3, "09:00", "09:30")

    state = slots.resolve_slot("09:00", [late, early, twin])
    assert state.kind is SlotKind.START
    assert state.appointment_id == 3

    # 09:15 is the start of appointment 7, which wins over merely covering it
    assert slots.resolve_slot("09:15", [late, early, twin]).appointment_id == 7
    assert slots.resolve_slot("09:30", [late, early, twin]).appointment_id == 9


def test_grid_has_one_column_per_barber():
    barbers = [SimpleNamespace(id=1, full_name="Carlos"), SimpleNamespace(id=2, full_name="Diego")]
    appointments = [appt(1, "09:00", "09:30", barber_id=2)]

    grid = slots.build_grid(MONDAY, barbers, appointments, HOURS, 15)

    assert [c.barber_id for c in grid.columns] == [1, 2]
    assert all(len(c.cells) == 36 for c in grid.columns)
    assert grid.columns[0].cells[0][1].kind is SlotKind.FREE
    assert grid.columns[1].cells[0][1].kind is SlotKind.START


def test_available_times_skip_busy_ranges_and_closing_time():
    busy = [("10:00", "10:30")]
    times = slots.available_start_times(MONDAY, HOURS, 30, busy, 15)

    assert "09:30" in times
    assert "09:45" not in times
    assert "10:00" not in times
    assert "10:15" not in times
    assert "10:30" in times
    assert times[-1] == "17:30"


def test_available_times_drop_past_slots_today():
    now = datetime(2030, 1, 7, 12, 5)
    times = slots.available_start_times(MONDAY, HOURS, 30, [], 15, now=now)
    assert times[0] == "12:15"


def test_minutes_outside_the_day_are_rejected():
    with pytest.raises(ValueError):
        slots.minutes_to_time(24 * 60)
