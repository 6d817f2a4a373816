"""Appointment model definitions."""

from datetime import datetime

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Index, Integer, String
from telehealth.database import Base

STATUS_PENDING = "pending"
STATUS_OPINION_NEEDED = "opinion-needed"
STATUS_OPINION_NOT_NEEDED = "opinion-not-needed"
STATUS_UNDER_REVIEW = "under-review"
STATUS_APPROVED = "approved"
STATUS_REJECTED = "rejected"
STATUS_COMPLETED = "completed"

APPOINTMENT_STATUSES = (
    STATUS_PENDING,
    STATUS_OPINION_NEEDED,
    STATUS_OPINION_NOT_NEEDED,
    STATUS_UNDER_REVIEW,
    STATUS_APPROVED,
    STATUS_REJECTED,
    STATUS_COMPLETED,
)

# An appointment in one of these states occupies its slot.
SLOT_BLOCKING_STATUSES = (STATUS_APPROVED, STATUS_UNDER_REVIEW)


class Appointment(Base):
    """Represents a patient's appointment request with a doctor."""
    __tablename__ = "appointments"
    __table_args__ = (
        Index("idx_appointments_doctor_date_status", "doctor_id", "appointment_date", "status"),
        Index("idx_appointments_status_date", "status", "appointment_date"),
    )

    id = Column(Integer, primary_key=True)
    patient_id = Column(Integer, ForeignKey("users.id"))
    doctor_id = Column(Integer, ForeignKey("users.id"))
    status = Column(String, default=STATUS_PENDING)
    appointment_date = Column(Date)
    appointment_time = Column(String(5))  # HH:MM
    is_completed = Column(Boolean, default=False)
    completed_at = Column(DateTime)
    created_at = Column(DateTime, default=datetime.now)
