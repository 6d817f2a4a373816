"""Doctor availability and slot reservation.

Every operation works on a loaded :class:`Availability` record and the
caller's session. The cached ``time_slots`` rows carry per-slot state; when a
day has no cached rows its slots are laid out on the fly from the doctor's
hours and are not persisted.

Holds are time-boxed: ``reserve`` stamps ``reserved_until`` and a hold that
has lapsed is cleared the next time the slot is read. ``confirm`` turns a hold
into a permanent booking and ``release`` gives the slot back.
"""

import logging
from datetime import date, datetime, timedelta
from enum import Enum

from pydantic import BaseModel
from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from telehealth.core import config
from telehealth.models.appointment import Appointment, SLOT_BLOCKING_STATUSES, STATUS_APPROVED
from telehealth.models.availability import (
    Availability,
    DEFAULT_APPOINTMENT_DURATION,
    DEFAULT_BUFFER_TIME,
    DEFAULT_END_TIME,
    DEFAULT_START_TIME,
    TimeSlot,
    WEEKDAYS,
    default_working_days,
)
from telehealth.models.user import DOCTOR_ROLE, User
from telehealth.services.slot_generator import (
    generate_day_slots,
    minutes_to_time,
    time_to_minutes,
    weekday_name,
)

logger = logging.getLogger(__name__)


class AvailabilityError(Exception):
    """Base exception for availability operations."""


class AvailabilityNotFoundError(AvailabilityError):
    """Raised when a doctor has no availability record."""


class DoctorNotFoundError(AvailabilityError):
    """Raised when availability is set for an unknown doctor."""


class SlotAvailabilityStatus(str, Enum):
    NOT_WORKING_DAY = 'not_working_day'
    FULLY_BOOKED = 'fully_booked'
    AVAILABLE = 'available'


class SlotCheckResult(str, Enum):
    AVAILABLE = 'available'
    NOT_WORKING_DAY = 'not_working_day'
    OUTSIDE_WORKING_HOURS = 'outside_working_hours'
    RESERVED = 'reserved'
    BOOKED = 'booked'


class ReservationResult(str, Enum):
    RESERVED = 'reserved'
    NOT_WORKING_DAY = 'not_working_day'
    BOOKED = 'booked'
    ALREADY_HELD = 'already_held'


class AvailableSlotsResult(BaseModel):
    status: SlotAvailabilityStatus
    slots: list[str]


def _commit(db: Session) -> None:
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise


def _day_layout(availability: Availability) -> list[tuple[str, str]]:
    duration = availability.appointment_duration
    buffer_time = availability.buffer_time
    return generate_day_slots(
        availability.start_time or DEFAULT_START_TIME,
        availability.end_time or DEFAULT_END_TIME,
        DEFAULT_APPOINTMENT_DURATION if duration is None else duration,
        DEFAULT_BUFFER_TIME if buffer_time is None else buffer_time,
    )


def _clear_reservation(slot: TimeSlot) -> None:
    slot.is_available = True
    slot.reserved_until = None


def get_booked_times(db: Session, doctor_id: int, slot_date: date) -> set[str]:
    rows = db.query(Appointment.appointment_time).filter(
        Appointment.doctor_id == doctor_id,
        Appointment.appointment_date == slot_date,
        Appointment.status.in_(SLOT_BLOCKING_STATUSES),
    ).all()

    return {appointment_time for (appointment_time,) in rows if appointment_time}


def has_conflicting_appointment(db: Session, doctor_id: int, slot_date: date, slot_time: str) -> bool:
    conflict = db.query(Appointment.id).filter(
        Appointment.doctor_id == doctor_id,
        Appointment.appointment_date == slot_date,
        Appointment.appointment_time == slot_time,
        Appointment.status.in_(SLOT_BLOCKING_STATUSES),
    ).first()

    return conflict is not None


def get_availability(db: Session, doctor_id: int) -> Availability:
    availability = db.query(Availability).filter(Availability.doctor_id == doctor_id).first()

    if availability is None:
        raise AvailabilityNotFoundError('Availability not found for this doctor')

    return availability


def set_availability(db: Session, doctor_id: int, data: dict) -> Availability:
    """Create or update a doctor's availability with the given fields."""
    doctor = db.query(User).filter(User.id == doctor_id, User.role == DOCTOR_ROLE).first()
    if doctor is None:
        raise DoctorNotFoundError('Doctor not found')

    availability = db.query(Availability).filter(Availability.doctor_id == doctor_id).first()

    data = dict(data)
    if 'working_days' in data:
        # Days left out of the update keep their current setting.
        current = dict(availability.working_days or {}) if availability is not None else {}
        data['working_days'] = {**default_working_days(), **current, **data['working_days']}

    if availability is not None:
        for key, value in data.items():
            setattr(availability, key, value)
    else:
        availability = Availability(doctor_id=doctor_id, **data)
        db.add(availability)

    _commit(db)
    db.refresh(availability)

    return availability


def generate_time_slots(db: Session, availability: Availability) -> dict[str, list[dict]]:
    """Rebuild and persist the slot cache for every working day.

    Days that are not working days lose their cached slots. Existing holds
    and confirmations on the regenerated days are discarded.
    """
    layout = _day_layout(availability)

    # Old rows must be gone before new ones with the same start times land.
    availability.time_slots.clear()
    db.flush()

    generated: dict[str, list[dict]] = {}
    for day in WEEKDAYS:
        if not availability.works_on(day):
            continue

        day_slots = [
            TimeSlot(day=day, start_time=start_time, end_time=end_time, is_available=True)
            for start_time, end_time in layout
        ]
        availability.time_slots.extend(day_slots)
        generated[day] = [slot.to_dict() for slot in day_slots]

    _commit(db)
    logger.info(
        'Generated %d slots per day for doctor %s on %d working days',
        len(layout),
        availability.doctor_id,
        len(generated),
    )

    return generated


def _materialize_day(db: Session, availability: Availability, day: str) -> None:
    """Persist the generated layout for one uncached day, leaving other days alone."""
    availability.time_slots.extend(
        TimeSlot(day=day, start_time=start_time, end_time=end_time, is_available=True)
        for start_time, end_time in _day_layout(availability)
    )
    try:
        db.commit()
    except IntegrityError:
        # Another booking flow cached this day first.
        db.rollback()
    except SQLAlchemyError:
        db.rollback()
        raise


def query_available_slots(
    db: Session,
    availability: Availability,
    slot_date: date,
    now: datetime | None = None,
) -> AvailableSlotsResult:
    day = weekday_name(slot_date)
    if not availability.works_on(day):
        return AvailableSlotsResult(status=SlotAvailabilityStatus.NOT_WORKING_DAY, slots=[])

    now = now or datetime.now()
    booked_times = get_booked_times(db, availability.doctor_id, slot_date)
    cached_slots = availability.slots_for_day(day)

    if cached_slots:
        slots: list[str] = []
        cleared = False
        for slot in cached_slots:
            if slot.reservation_expired(now):
                _clear_reservation(slot)
                cleared = True
            if slot.is_available and slot.start_time not in booked_times:
                slots.append(slot.start_time)
        if cleared:
            _commit(db)
    else:
        # Holds always materialise the day's cache first, so an uncached day
        # has no reservations to consult.
        slots = [start_time for start_time, _ in _day_layout(availability) if start_time not in booked_times]

    status = SlotAvailabilityStatus.AVAILABLE if slots else SlotAvailabilityStatus.FULLY_BOOKED
    return AvailableSlotsResult(status=status, slots=slots)


def get_available_slots(
    db: Session,
    availability: Availability,
    slot_date: date,
    now: datetime | None = None,
) -> list[str]:
    return query_available_slots(db, availability, slot_date, now=now).slots


def check_slot(
    db: Session,
    availability: Availability,
    slot_date: date,
    slot_time: str,
    now: datetime | None = None,
) -> SlotCheckResult:
    day = weekday_name(slot_date)
    if not availability.works_on(day):
        return SlotCheckResult.NOT_WORKING_DAY

    requested = time_to_minutes(slot_time)
    day_start = time_to_minutes(availability.start_time or DEFAULT_START_TIME)
    day_end = time_to_minutes(availability.end_time or DEFAULT_END_TIME)
    if not day_start <= requested < day_end:
        return SlotCheckResult.OUTSIDE_WORKING_HOURS

    slot = availability.find_slot(day, slot_time)
    if slot is not None:
        if slot.reservation_expired(now or datetime.now()):
            _clear_reservation(slot)
            _commit(db)
            return SlotCheckResult.AVAILABLE
        # The cached flag is authoritative once a slot exists.
        if slot.is_available:
            return SlotCheckResult.AVAILABLE
        return SlotCheckResult.RESERVED if slot.reserved_until is not None else SlotCheckResult.BOOKED

    if has_conflicting_appointment(db, availability.doctor_id, slot_date, slot_time):
        return SlotCheckResult.BOOKED

    return SlotCheckResult.AVAILABLE


def is_available(
    db: Session,
    availability: Availability,
    slot_date: date,
    slot_time: str,
    now: datetime | None = None,
) -> bool:
    return check_slot(db, availability, slot_date, slot_time, now=now) == SlotCheckResult.AVAILABLE


def try_reserve_slot(
    db: Session,
    availability: Availability,
    slot_date: date,
    slot_time: str,
    now: datetime | None = None,
) -> ReservationResult:
    """Place a temporary hold on one slot.

    The hold on an existing slot is a single conditional update, so of two
    concurrent callers only one can take a free slot.
    """
    day = weekday_name(slot_date)
    if not availability.works_on(day):
        return ReservationResult.NOT_WORKING_DAY

    if not availability.slots_for_day(day):
        _materialize_day(db, availability, day)

    if has_conflicting_appointment(db, availability.doctor_id, slot_date, slot_time):
        return ReservationResult.BOOKED

    now = now or datetime.now()
    hold_until = now + timedelta(hours=config.SLOT_RESERVATION_HOLD_HOURS)
    slot = availability.find_slot(day, slot_time)

    if slot is None:
        duration = availability.appointment_duration or DEFAULT_APPOINTMENT_DURATION
        availability.time_slots.append(
            TimeSlot(
                day=day,
                start_time=slot_time,
                end_time=minutes_to_time(time_to_minutes(slot_time) + duration),
                is_available=False,
                reserved_until=hold_until,
            )
        )
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            logger.info('Slot %s %s for doctor %s was taken concurrently', day, slot_time, availability.doctor_id)
            return ReservationResult.ALREADY_HELD
        except SQLAlchemyError:
            db.rollback()
            raise
        return ReservationResult.RESERVED

    updated = db.query(TimeSlot).filter(
        TimeSlot.id == slot.id,
        or_(TimeSlot.is_available.is_(True), TimeSlot.reserved_until < now),
    ).update(
        {TimeSlot.is_available: False, TimeSlot.reserved_until: hold_until},
        synchronize_session=False,
    )
    _commit(db)

    if updated:
        return ReservationResult.RESERVED

    if slot.reserved_until is None:
        return ReservationResult.BOOKED
    return ReservationResult.ALREADY_HELD


def reserve_slot(
    db: Session,
    availability: Availability,
    slot_date: date,
    slot_time: str,
    now: datetime | None = None,
) -> bool:
    return try_reserve_slot(db, availability, slot_date, slot_time, now=now) == ReservationResult.RESERVED


def confirm_slot(db: Session, availability: Availability, slot_date: date, slot_time: str) -> bool:
    slot = availability.find_slot(weekday_name(slot_date), slot_time)

    if slot is not None:
        slot.is_available = False
        slot.reserved_until = None
        _commit(db)

    return True


def release_slot(db: Session, availability: Availability, slot_date: date, slot_time: str) -> bool:
    slot = availability.find_slot(weekday_name(slot_date), slot_time)

    if slot is not None:
        _clear_reservation(slot)
        _commit(db)

    return True


def get_appointment_stats(db: Session, availability: Availability, today: date | None = None) -> dict[str, int]:
    """Approved appointments per day for the Sunday-to-Saturday week containing ``today``."""
    today = today or date.today()
    week_start = today - timedelta(days=(today.weekday() + 1) % 7)
    week_end = week_start + timedelta(days=6)

    rows = db.query(Appointment.appointment_date, func.count(Appointment.id)).filter(
        Appointment.doctor_id == availability.doctor_id,
        Appointment.status == STATUS_APPROVED,
        Appointment.appointment_date >= week_start,
        Appointment.appointment_date <= week_end,
    ).group_by(Appointment.appointment_date).all()

    stats = {weekday_name(week_start + timedelta(days=offset)): 0 for offset in range(7)}
    for appointment_date, count in rows:
        stats[weekday_name(appointment_date)] = count

    return stats
