"""
Automated status transitions for appointments.
Handles approved → completed once the appointment time has passed
Handles under-review → rejected once the appointment date has passed
"""

import logging
from datetime import datetime, time, timedelta

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from telehealth.core import config
from telehealth.database import SessionLocal
from telehealth.models.appointment import (
    Appointment,
    STATUS_APPROVED,
    STATUS_COMPLETED,
    STATUS_REJECTED,
    STATUS_UNDER_REVIEW,
)
from telehealth.services.slot_generator import is_clock_time, time_to_minutes

logger = logging.getLogger(__name__)


def _start_of_day(moment: datetime) -> datetime:
    return datetime.combine(moment.date(), time.min)


def _approved_appointment_is_over(appointment: Appointment, now: datetime, grace: timedelta) -> bool:
    today = now.date()

    if appointment.appointment_date < today:
        return True
    if appointment.appointment_date > today:
        return False

    # Same-day appointments need a time to decide on.
    if not is_clock_time(appointment.appointment_time):
        return False

    scheduled_at = _start_of_day(now) + timedelta(minutes=time_to_minutes(appointment.appointment_time))
    return now >= scheduled_at + grace


def _save(db: Session, appointment: Appointment, transition: str) -> bool:
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception('Failed to move appointment %s %s', appointment.id, transition)
        return False

    logger.info('Appointment %s transitioned: %s', appointment.id, transition)
    return True


def update_appointment_statuses(db: Session, now: datetime | None = None) -> dict:
    """
    Advance appointments whose scheduled time has passed.

    Each appointment is saved on its own, so one failed write does not stop
    the rest of the sweep.

    Returns:
        dict: Summary of status changes made
    """
    now = now or datetime.now()
    grace = timedelta(minutes=config.APPOINTMENT_COMPLETION_GRACE_MINUTES)
    summary = {
        'approved_to_completed': 0,
        'under_review_to_rejected': 0,
        'failed': 0,
    }

    approved_appointments = db.query(Appointment).filter(
        Appointment.status == STATUS_APPROVED,
        Appointment.appointment_date.is_not(None),
        Appointment.appointment_date <= now.date(),
    ).all()

    for appointment in approved_appointments:
        if not _approved_appointment_is_over(appointment, now, grace):
            continue

        appointment.status = STATUS_COMPLETED
        appointment.is_completed = True
        appointment.completed_at = now
        if _save(db, appointment, 'approved → completed'):
            summary['approved_to_completed'] += 1
        else:
            summary['failed'] += 1

    under_review_appointments = db.query(Appointment).filter(
        Appointment.status == STATUS_UNDER_REVIEW,
        Appointment.appointment_date.is_not(None),
        Appointment.appointment_date <= now.date(),
    ).all()

    for appointment in under_review_appointments:
        # Compared by date only: the appointment day counts from midnight.
        if datetime.combine(appointment.appointment_date, time.min) >= now:
            continue

        appointment.status = STATUS_REJECTED
        if _save(db, appointment, 'under-review → rejected'):
            summary['under_review_to_rejected'] += 1
        else:
            summary['failed'] += 1

    if summary['approved_to_completed'] or summary['under_review_to_rejected'] or summary['failed']:
        logger.info('Appointment status update summary: %s', summary)
    else:
        logger.debug('No appointment status updates needed')

    return summary


def run_appointment_status_update(session_factory=SessionLocal) -> dict:
    """Run one sweep in a session of its own."""
    db = session_factory()
    try:
        return update_appointment_statuses(db)
    finally:
        db.close()
