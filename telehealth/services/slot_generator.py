import re
from datetime import date

from telehealth.models.availability import WEEKDAYS

CLOCK_TIME_PATTERN = re.compile(r'^([01]\d|2[0-3]):([0-5]\d)$')


def is_clock_time(value: str) -> bool:
    return bool(CLOCK_TIME_PATTERN.match(value or ''))


def time_to_minutes(value: str) -> int:
    hours, minutes = value.split(':')
    return int(hours) * 60 + int(minutes)


def minutes_to_time(total_minutes: int) -> str:
    # Slot ends may run past midnight; hours are not wrapped.
    return f'{total_minutes // 60:02d}:{total_minutes % 60:02d}'


def weekday_name(slot_date: date) -> str:
    return WEEKDAYS[slot_date.weekday()]


def generate_day_slots(
    start_time: str,
    end_time: str,
    duration_minutes: int,
    buffer_minutes: int,
) -> list[tuple[str, str]]:
    """Lay out one working day's slots from the doctor's hours.

    A slot is emitted for every start strictly before ``end_time``; the last
    slot keeps its full duration even if that carries it past ``end_time``.
    """
    if duration_minutes <= 0:
        raise ValueError('Appointment duration must be positive.')
    if buffer_minutes < 0:
        raise ValueError('Buffer time cannot be negative.')

    slots: list[tuple[str, str]] = []
    current = time_to_minutes(start_time)
    day_end = time_to_minutes(end_time)

    while current < day_end:
        slots.append((minutes_to_time(current), minutes_to_time(current + duration_minutes)))
        current += duration_minutes + buffer_minutes

    return slots
