import os
from datetime import date

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')
os.environ.setdefault('APPOINTMENT_STATUS_SWEEP_ENABLED', 'false')

from telehealth.database import Base  # noqa: E402
from telehealth.models.appointment import Appointment  # noqa: E402
from telehealth.models.availability import Availability, TimeSlot  # noqa: E402
from telehealth.models.user import User  # noqa: E402

TABLES = [User.__table__, Availability.__table__, TimeSlot.__table__, Appointment.__table__]


@pytest.fixture
def db():
    engine = create_engine('sqlite:///:memory:')
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine, tables=TABLES)

    session = testing_session_local()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine, tables=list(reversed(TABLES)))


@pytest.fixture
def doctor(db):
    user = User(email='doctor@example.com', full_name='Dr. Amara Osei', role='doctor')
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def availability(db, doctor):
    record = Availability(
        doctor_id=doctor.id,
        working_days={
            'monday': True,
            'tuesday': True,
            'wednesday': True,
            'thursday': True,
            'friday': True,
            'saturday': False,
            'sunday': True,
        },
        start_time='09:00',
        end_time='12:00',
        weekly_holiday='sunday',
        appointment_duration=30,
        buffer_time=10,
    )
    db.add(record)
    db.commit()
    db.refresh(record)
    return record


@pytest.fixture
def add_appointment(db, doctor):
    def _add(appointment_date: date | None, appointment_time: str | None, status: str) -> Appointment:
        appointment = Appointment(
            doctor_id=doctor.id,
            appointment_date=appointment_date,
            appointment_time=appointment_time,
            status=status,
        )
        db.add(appointment)
        db.commit()
        db.refresh(appointment)
        return appointment

    return _add


@pytest.fixture
def file_sessions(tmp_path):
    """Session factory on a file database, so separate sessions see each other's commits."""
    engine = create_engine(f"sqlite:///{tmp_path / 'telehealth.db'}")
    Base.metadata.create_all(bind=engine, tables=TABLES)
    try:
        yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    finally:
        engine.dispose()
