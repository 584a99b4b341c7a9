"""
Slot arithmetic for the appointment grid

Pure functions: time labels are "HH:MM" strings, durations are minutes.
Stored times may arrive as datetime.time or "HH:MM:SS" and are normalized first.
"""

import math
from dataclasses import dataclass, field
from datetime import date, datetime, time
from enum import Enum
from typing import Iterable, Optional, Sequence, Union

from ...config import DEFAULT_SLOT_INTERVAL, FALLBACK_CLOSE, FALLBACK_OPEN
from ...shared.enums import AppointmentStatus

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")
MINUTES_PER_DAY = 24 * 60

TimeLike = Union[str, time]


def normalize_time(value: TimeLike) -> str:
    """Reduce a stored time ("HH:MM:SS", "HH:MM" or datetime.time) to "HH:MM" """
    if isinstance(value, time):
        return value.strftime("%H:%M")
    return str(value).strip()[:5]


def time_to_minutes(value: TimeLike) -> int:
    hours, minutes = normalize_time(value).split(":")
    return int(hours) * 60 + int(minutes)


def minutes_to_time(total: int) -> str:
    if total < 0 or total >= MINUTES_PER_DAY:
        raise ValueError(f"{total} minutes is outside a single day")
    return f"{total // 60:02d}:{total % 60:02d}"


def label_to_time(label: str) -> time:
    return time(*divmod(time_to_minutes(label), 60))


def slots_count(duration_minutes: int, interval: int = DEFAULT_SLOT_INTERVAL) -> int:
    """Number of grid rows an appointment of this duration spans (at least one)"""
    if interval <= 0:
        raise ValueError("Slot interval must be positive")
    return max(1, math.ceil(max(duration_minutes, 0) / interval))


def is_time_in_range(slot: TimeLike, start: TimeLike, end: TimeLike) -> bool:
    """True when start <= slot < end"""
    minute = time_to_minutes(slot)
    return time_to_minutes(start) <= minute < time_to_minutes(end)


def _fallback_window() -> tuple[int, int]:
    return time_to_minutes(FALLBACK_OPEN), time_to_minutes(FALLBACK_CLOSE)


def working_window(day: date, opening_hours: Optional[dict]) -> Optional[tuple[int, int]]:
    """
    Open and close minute for a weekday, or None when the barbershop is closed.

    A missing or non-dict configuration, and a day entry whose hours cannot be
    parsed or are inverted, resolve to the fallback window. A configuration that
    simply omits the weekday, or marks it closed, means closed.
    """
    if not isinstance(opening_hours, dict):
        return _fallback_window()

    entry = opening_hours.get(WEEKDAYS[day.weekday()])
    if not entry:
        return None
    if not isinstance(entry, dict):
        return _fallback_window()
    if entry.get("closed") or entry.get("is_open") is False:
        return None

    try:
        open_minute = time_to_minutes(entry["open"])
        close_minute = time_to_minutes(entry["close"])
    except (KeyError, ValueError, TypeError, AttributeError):
        return _fallback_window()

    if not (0 <= open_minute < close_minute <= MINUTES_PER_DAY):
        return _fallback_window()
    return open_minute, close_minute


def generate_time_slots(
    day: date, opening_hours: Optional[dict], interval: int = DEFAULT_SLOT_INTERVAL
) -> list[str]:
    """Ordered labels covering [open, close) stepped by interval; empty on closed days"""
    if interval <= 0:
        raise ValueError("Slot interval must be positive")

    window = working_window(day, opening_hours)
    if window is None:
        return []

    open_minute, close_minute = window
    return [minutes_to_time(m) for m in range(open_minute, close_minute, interval)]


# ============================================================================
# OCCUPANCY
# ============================================================================


class SlotKind(str, Enum):
    START = "start"
    COVERED = "covered"
    FREE = "free"


@dataclass(frozen=True)
class SlotState:
    kind: SlotKind
    appointment_id: Optional[int] = None
    span: int = 1


FREE_SLOT = SlotState(SlotKind.FREE)


def _occupying(appointments: Iterable) -> list:
    """Non-cancelled appointments in deterministic order: start time, then id"""
    active = [a for a in appointments if AppointmentStatus(a.status).occupies_slot]
    return sorted(active, key=lambda a: (time_to_minutes(a.start_time), a.id or 0))


def resolve_slot(
    slot: str, appointments: Iterable, interval: int = DEFAULT_SLOT_INTERVAL, ordered: bool = False
) -> SlotState:
    """
    State of one slot for one barber's appointments of one day.

    An appointment starting exactly at the slot wins over one merely covering it.
    Among overlapping bookings the earliest start (then lowest id) wins.
    """
    candidates = list(appointments) if ordered else _occupying(appointments)
    label = normalize_time(slot)

    for appointment in candidates:
        if normalize_time(appointment.start_time) == label:
            length = time_to_minutes(appointment.end_time) - time_to_minutes(appointment.start_time)
            return SlotState(SlotKind.START, appointment.id, slots_count(length, interval))

    for appointment in candidates:
        if is_time_in_range(label, appointment.start_time, appointment.end_time):
            return SlotState(SlotKind.COVERED, appointment.id, 0)

    return FREE_SLOT


@dataclass
class GridColumn:
    barber_id: int
    barber_name: str
    cells: list[tuple[str, SlotState]] = field(default_factory=list)


@dataclass
class DayGrid:
    day: date
    interval: int
    slots: list[str]
    columns: list[GridColumn]


def build_grid(
    day: date,
    barbers: Sequence,
    appointments: Iterable,
    opening_hours: Optional[dict],
    interval: int = DEFAULT_SLOT_INTERVAL,
) -> DayGrid:
    """Barbers as columns, slot labels as rows"""
    slots = generate_time_slots(day, opening_hours, interval)
    by_barber: dict[int, list] = {}
    for appointment in appointments:
        by_barber.setdefault(appointment.barber_id, []).append(appointment)

    columns = []
    for barber in barbers:
        ordered = _occupying(by_barber.get(barber.id, []))
        column = GridColumn(barber_id=barber.id, barber_name=barber.full_name)
        for label in slots:
            column.cells.append((label, resolve_slot(label, ordered, interval, ordered=True)))
        columns.append(column)

    return DayGrid(day=day, interval=interval, slots=slots, columns=columns)


def intervals_overlap(start_a: int, end_a: int, start_b: int, end_b: int) -> bool:
    return start_a < end_b and end_a > start_b


def available_start_times(
    day: date,
    opening_hours: Optional[dict],
    duration_minutes: int,
    busy: Iterable[tuple[TimeLike, TimeLike]],
    interval: int = DEFAULT_SLOT_INTERVAL,
    now: Optional[datetime] = None,
) -> list[str]:
    """
    Start labels where a service of this duration fits before closing time
    without overlapping any busy (start, end) range. Past times are dropped
    when day is today.
    """
    window = working_window(day, opening_hours)
    if window is None:
        return []
    _, close_minute = window

    busy_minutes = [(time_to_minutes(s), time_to_minutes(e)) for s, e in busy]
    cutoff = None
    if now is not None and now.date() == day:
        cutoff = now.hour * 60 + now.minute

    available = []
    for label in generate_time_slots(day, opening_hours, interval):
        start = time_to_minutes(label)
        end = start + duration_minutes
        if end > close_minute:
            continue
        if cutoff is not None and start <= cutoff:
            continue
        if any(intervals_overlap(start, end, b_start, b_end) for b_start, b_end in busy_minutes):
            continue
        available.append(label)
    return available
