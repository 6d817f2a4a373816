from datetime import date, datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator, model_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from telehealth.database import SessionLocal, ensure_appointment_schema
from telehealth.models.availability import Availability, DEFAULT_END_TIME, DEFAULT_START_TIME, WEEKDAYS
from telehealth.services import availability_service
from telehealth.services.availability_service import (
    AvailabilityNotFoundError,
    AvailableSlotsResult,
    DoctorNotFoundError,
    ReservationResult,
    SlotCheckResult,
)
from telehealth.services.slot_generator import is_clock_time, time_to_minutes

router = APIRouter(tags=['availability'])

DATABASE_UNAVAILABLE_DETAIL = 'Database unavailable. Verify DATABASE_URL and Postgres credentials.'

RESERVATION_FAILURE_DETAILS = {
    ReservationResult.NOT_WORKING_DAY: 'The doctor does not work on this day.',
    ReservationResult.BOOKED: 'This time is already booked.',
    ReservationResult.ALREADY_HELD: 'This time is being held by another booking.',
}


def _validate_clock_time(value: str) -> str:
    normalized = value.strip()
    if not is_clock_time(normalized):
        raise ValueError('Times must use the 24-hour HH:MM format.')
    return normalized


def _validate_weekday(value: str) -> str:
    normalized = value.strip().lower()
    if normalized not in WEEKDAYS:
        raise ValueError('Invalid weekday.')
    return normalized


class AvailabilityUpdateRequest(BaseModel):
    working_days: dict[str, bool] | None = None
    start_time: str | None = None
    end_time: str | None = None
    weekly_holiday: str | None = None
    appointment_duration: int | None = None
    buffer_time: int | None = None
    max_appointments_per_day: int | None = None

    @field_validator('working_days')
    @classmethod
    def validate_working_days(cls, value: dict[str, bool] | None) -> dict[str, bool] | None:
        if value is None:
            return None
        return {_validate_weekday(day): works for day, works in value.items()}

    @field_validator('start_time', 'end_time')
    @classmethod
    def validate_times(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return _validate_clock_time(value)

    @field_validator('weekly_holiday')
    @classmethod
    def validate_weekly_holiday(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return _validate_weekday(value)

    @field_validator('appointment_duration', 'max_appointments_per_day')
    @classmethod
    def validate_positive(cls, value: int | None) -> int | None:
        if value is not None and value <= 0:
            raise ValueError('Value must be positive.')
        return value

    @field_validator('buffer_time')
    @classmethod
    def validate_buffer_time(cls, value: int | None) -> int | None:
        if value is not None and value < 0:
            raise ValueError('Buffer time cannot be negative.')
        return value

    @model_validator(mode='after')
    def validate_working_window(self) -> 'AvailabilityUpdateRequest':
        if self.start_time and self.end_time and time_to_minutes(self.start_time) >= time_to_minutes(self.end_time):
            raise ValueError('Start time must be before end time.')
        return self


class SlotRequest(BaseModel):
    date: date
    time: str

    @field_validator('time')
    @classmethod
    def validate_time(cls, value: str) -> str:
        return _validate_clock_time(value)


class TimeSlotResponse(BaseModel):
    day: str
    start_time: str
    end_time: str
    is_available: bool
    reserved_until: datetime | None = None

    class Config:
        from_attributes = True


class AvailabilityResponse(BaseModel):
    id: int
    doctor_id: int
    working_days: dict[str, bool]
    start_time: str
    end_time: str
    weekly_holiday: str
    appointment_duration: int
    buffer_time: int
    max_appointments_per_day: int
    time_slots: list[TimeSlotResponse]

    class Config:
        from_attributes = True


class GeneratedSlotResponse(BaseModel):
    start_time: str
    end_time: str
    is_available: bool
    reserved_until: datetime | None = None


class SlotCheckResponse(BaseModel):
    date: date
    time: str
    status: SlotCheckResult
    is_available: bool


class SlotActionResponse(BaseModel):
    date: date
    time: str
    status: str
    success: bool


def ensure_database_ready() -> None:
    try:
        ensure_appointment_schema()
    except SQLAlchemyError as exc:
        raise _database_unavailable() from exc


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def validate_doctor_id(doctor_id: int) -> int:
    if doctor_id <= 0:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Invalid doctor ID',
        )
    return doctor_id


def load_availability(doctor_id: int, db: Session) -> Availability:
    validate_doctor_id(doctor_id)
    try:
        return availability_service.get_availability(db, doctor_id)
    except AvailabilityNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc


def _database_unavailable() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=DATABASE_UNAVAILABLE_DETAIL,
    )


@router.get('/{doctor_id}', response_model=AvailabilityResponse)
def read_availability(doctor_id: int, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        return load_availability(doctor_id, db)
    except SQLAlchemyError as exc:
        raise _database_unavailable() from exc


@router.put('/{doctor_id}', response_model=AvailabilityResponse)
def update_availability(doctor_id: int, data: AvailabilityUpdateRequest, db: Session = Depends(get_db)):
    validate_doctor_id(doctor_id)
    ensure_database_ready()

    try:
        existing = db.query(Availability).filter(Availability.doctor_id == doctor_id).first()
        start_time = data.start_time or (existing.start_time if existing else DEFAULT_START_TIME)
        end_time = data.end_time or (existing.end_time if existing else DEFAULT_END_TIME)
        if start_time and end_time and time_to_minutes(start_time) >= time_to_minutes(end_time):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail='Start time must be before end time.',
            )

        return availability_service.set_availability(db, doctor_id, data.model_dump(exclude_none=True))
    except DoctorNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise _database_unavailable() from exc


@router.post('/{doctor_id}/generate', response_model=dict[str, list[GeneratedSlotResponse]])
def generate_slots(doctor_id: int, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        availability = load_availability(doctor_id, db)
        return availability_service.generate_time_slots(db, availability)
    except SQLAlchemyError as exc:
        db.rollback()
        raise _database_unavailable() from exc


@router.get('/{doctor_id}/slots', response_model=AvailableSlotsResult)
def list_available_slots(
    doctor_id: int,
    slot_date: date = Query(..., alias='date'),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        availability = load_availability(doctor_id, db)
        return availability_service.query_available_slots(db, availability, slot_date)
    except SQLAlchemyError as exc:
        raise _database_unavailable() from exc


@router.get('/{doctor_id}/slots/check', response_model=SlotCheckResponse)
def check_slot_availability(
    doctor_id: int,
    slot_date: date = Query(..., alias='date'),
    slot_time: str = Query(..., alias='time'),
    db: Session = Depends(get_db),
):
    if not is_clock_time(slot_time.strip()):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Times must use the 24-hour HH:MM format.',
        )

    ensure_database_ready()

    try:
        availability = load_availability(doctor_id, db)
        result = availability_service.check_slot(db, availability, slot_date, slot_time.strip())
    except SQLAlchemyError as exc:
        raise _database_unavailable() from exc

    return SlotCheckResponse(
        date=slot_date,
        time=slot_time.strip(),
        status=result,
        is_available=result == SlotCheckResult.AVAILABLE,
    )


@router.post('/{doctor_id}/slots/reserve', response_model=SlotActionResponse)
def reserve_slot(doctor_id: int, data: SlotRequest, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        availability = load_availability(doctor_id, db)
        result = availability_service.try_reserve_slot(db, availability, data.date, data.time)
    except SQLAlchemyError as exc:
        db.rollback()
        raise _database_unavailable() from exc

    if result != ReservationResult.RESERVED:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=RESERVATION_FAILURE_DETAILS[result],
        )

    return SlotActionResponse(date=data.date, time=data.time, status=result.value, success=True)


@router.post('/{doctor_id}/slots/confirm', response_model=SlotActionResponse)
def confirm_slot(doctor_id: int, data: SlotRequest, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        availability = load_availability(doctor_id, db)
        success = availability_service.confirm_slot(db, availability, data.date, data.time)
    except SQLAlchemyError as exc:
        db.rollback()
        raise _database_unavailable() from exc

    return SlotActionResponse(date=data.date, time=data.time, status='confirmed', success=success)


@router.post('/{doctor_id}/slots/release', response_model=SlotActionResponse)
def release_slot(doctor_id: int, data: SlotRequest, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        availability = load_availability(doctor_id, db)
        success = availability_service.release_slot(db, availability, data.date, data.time)
    except SQLAlchemyError as exc:
        db.rollback()
        raise _database_unavailable() from exc

    return SlotActionResponse(date=data.date, time=data.time, status='released', success=success)


@router.get('/{doctor_id}/stats', response_model=dict[str, int])
def read_appointment_stats(doctor_id: int, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        availability = load_availability(doctor_id, db)
        return availability_service.get_appointment_stats(db, availability)
    except SQLAlchemyError as exc:
        raise _database_unavailable() from exc
