"""User model definitions."""

from sqlalchemy import Column, Integer, String
from telehealth.database import Base

DOCTOR_ROLE = "doctor"


class User(Base):
    """Represents an application user."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True)
    full_name = Column(String)
    role = Column(String)  # doctor/patient/admin
