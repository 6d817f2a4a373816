"""Availability model definitions."""

from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, JSON, String, UniqueConstraint
from sqlalchemy.ext.mutable import MutableDict
from sqlalchemy.orm import relationship
from telehealth.database import Base

WEEKDAYS = ('monday', 'tuesday', 'wednesday', 'thursday', 'friday', 'saturday', 'sunday')

DEFAULT_START_TIME = '09:00'
DEFAULT_END_TIME = '17:00'
DEFAULT_WEEKLY_HOLIDAY = 'sunday'
DEFAULT_APPOINTMENT_DURATION = 30
DEFAULT_BUFFER_TIME = 10
DEFAULT_MAX_APPOINTMENTS_PER_DAY = 10


def default_working_days() -> dict[str, bool]:
    return {day: False for day in WEEKDAYS}


class Availability(Base):
    """Represents a doctor's working hours and cached appointment slots."""
    __tablename__ = "availability"

    id = Column(Integer, primary_key=True)
    doctor_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False, index=True)
    working_days = Column(MutableDict.as_mutable(JSON), default=default_working_days)
    start_time = Column(String(5), nullable=False, default=DEFAULT_START_TIME)
    end_time = Column(String(5), nullable=False, default=DEFAULT_END_TIME)
    weekly_holiday = Column(String, default=DEFAULT_WEEKLY_HOLIDAY)
    appointment_duration = Column(Integer, default=DEFAULT_APPOINTMENT_DURATION)
    buffer_time = Column(Integer, default=DEFAULT_BUFFER_TIME)
    max_appointments_per_day = Column(Integer, default=DEFAULT_MAX_APPOINTMENTS_PER_DAY)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    time_slots = relationship(
        "TimeSlot",
        back_populates="availability",
        cascade="all, delete-orphan",
        order_by="TimeSlot.start_time",
    )

    def works_on(self, day: str) -> bool:
        """The weekly holiday wins over the working-day flag."""
        if day == self.weekly_holiday:
            return False
        return bool((self.working_days or {}).get(day, False))

    def slots_for_day(self, day: str) -> list["TimeSlot"]:
        slots = [slot for slot in self.time_slots if slot.day == day]
        return sorted(slots, key=lambda slot: slot.start_time)

    def find_slot(self, day: str, start_time: str) -> "TimeSlot | None":
        for slot in self.time_slots:
            if slot.day == day and slot.start_time == start_time:
                return slot
        return None


class TimeSlot(Base):
    """Represents one cached slot within a working day."""
    __tablename__ = "availability_time_slots"
    __table_args__ = (
        UniqueConstraint('availability_id', 'day', 'start_time', name='uq_time_slot_day_start'),
    )

    id = Column(Integer, primary_key=True)
    availability_id = Column(Integer, ForeignKey("availability.id", ondelete="CASCADE"), nullable=False)
    day = Column(String, nullable=False)
    start_time = Column(String(5), nullable=False)
    end_time = Column(String(5), nullable=False)
    is_available = Column(Boolean, default=True, nullable=False)
    reserved_until = Column(DateTime, nullable=True)

    availability = relationship("Availability", back_populates="time_slots")

    def reservation_expired(self, now: datetime) -> bool:
        return self.reserved_until is not None and self.reserved_until < now

    def is_open(self, now: datetime) -> bool:
        """True when the slot is free or its temporary hold has lapsed."""
        return bool(self.is_available) or self.reservation_expired(now)

    def to_dict(self) -> dict:
        return {
            'start_time': self.start_time,
            'end_time': self.end_time,
            'is_available': self.is_available,
            'reserved_until': self.reserved_until,
        }
