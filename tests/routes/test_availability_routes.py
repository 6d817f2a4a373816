from datetime import date

import pytest
from fastapi import HTTPException
from pydantic import ValidationError

from telehealth.routes.availability_routes import (
    AvailabilityUpdateRequest,
    SlotRequest,
    check_slot_availability,
    confirm_slot,
    generate_slots,
    list_available_slots,
    read_appointment_stats,
    read_availability,
    release_slot,
    reserve_slot,
    update_availability,
    validate_doctor_id,
)
from telehealth.services.availability_service import SlotAvailabilityStatus, SlotCheckResult

MONDAY = date(2026, 1, 5)
SUNDAY = date(2026, 1, 4)


@pytest.fixture(autouse=True)
def skip_schema_checks(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr('telehealth.routes.availability_routes.ensure_database_ready', lambda: None)


def test_availability_update_request_normalizes_weekdays() -> None:
    request = AvailabilityUpdateRequest(
        working_days={' Monday ': True, 'FRIDAY': False},
        weekly_holiday=' Sunday ',
        start_time=' 08:00 ',
    )

    assert request.working_days == {'monday': True, 'friday': False}
    assert request.weekly_holiday == 'sunday'
    assert request.start_time == '08:00'


@pytest.mark.parametrize(
    'payload',
    [
        {'start_time': '9am'},
        {'end_time': '24:00'},
        {'weekly_holiday': 'funday'},
        {'working_days': {'someday': True}},
        {'appointment_duration': 0},
        {'buffer_time': -1},
        {'max_appointments_per_day': 0},
        {'start_time': '17:00', 'end_time': '09:00'},
    ],
)
def test_availability_update_request_rejects_invalid_payloads(payload: dict) -> None:
    with pytest.raises(ValidationError):
        AvailabilityUpdateRequest(**payload)


def test_slot_request_rejects_malformed_time() -> None:
    with pytest.raises(ValidationError):
        SlotRequest(date=MONDAY, time='9:00')


def test_validate_doctor_id_rejects_non_positive_ids() -> None:
    with pytest.raises(HTTPException) as exception_info:
        validate_doctor_id(0)

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail == 'Invalid doctor ID'


def test_read_availability_returns_not_found_when_missing(db, doctor) -> None:
    with pytest.raises(HTTPException) as exception_info:
        read_availability(doctor_id=doctor.id, db=db)

    assert exception_info.value.status_code == 404
    assert exception_info.value.detail == 'Availability not found for this doctor'


def test_update_availability_returns_not_found_for_unknown_doctor(db) -> None:
    with pytest.raises(HTTPException) as exception_info:
        update_availability(doctor_id=42, data=AvailabilityUpdateRequest(start_time='08:00'), db=db)

    assert exception_info.value.status_code == 404
    assert exception_info.value.detail == 'Doctor not found'


def test_update_availability_creates_and_reads_back_record(db, doctor) -> None:
    update_availability(
        doctor_id=doctor.id,
        data=AvailabilityUpdateRequest(working_days={'tuesday': True}, start_time='10:00', end_time='11:00'),
        db=db,
    )

    record = read_availability(doctor_id=doctor.id, db=db)

    assert record.doctor_id == doctor.id
    assert record.working_days['tuesday'] is True
    assert record.working_days['monday'] is False
    assert (record.start_time, record.end_time) == ('10:00', '11:00')


def test_update_availability_rejects_window_that_ends_before_existing_start(db, availability) -> None:
    with pytest.raises(HTTPException) as exception_info:
        update_availability(
            doctor_id=availability.doctor_id,
            data=AvailabilityUpdateRequest(end_time='08:00'),
            db=db,
        )

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail == 'Start time must be before end time.'


def test_generate_slots_returns_layout_per_working_day(db, availability) -> None:
    generated = generate_slots(doctor_id=availability.doctor_id, db=db)

    assert set(generated) == {'monday', 'tuesday', 'wednesday', 'thursday', 'friday'}
    assert generated['friday'][0] == {
        'start_time': '09:00',
        'end_time': '09:30',
        'is_available': True,
        'reserved_until': None,
    }


def test_list_available_slots_tags_holiday(db, availability) -> None:
    result = list_available_slots(doctor_id=availability.doctor_id, slot_date=SUNDAY, db=db)

    assert result.status == SlotAvailabilityStatus.NOT_WORKING_DAY
    assert result.slots == []


def test_reserve_confirm_release_flow(db, availability) -> None:
    doctor_id = availability.doctor_id
    request = SlotRequest(date=MONDAY, time='09:40')

    reserved = reserve_slot(doctor_id=doctor_id, data=request, db=db)
    assert reserved.success is True
    assert reserved.status == 'reserved'

    with pytest.raises(HTTPException) as exception_info:
        reserve_slot(doctor_id=doctor_id, data=request, db=db)
    assert exception_info.value.status_code == 409
    assert exception_info.value.detail == 'This time is being held by another booking.'

    confirmed = confirm_slot(doctor_id=doctor_id, data=request, db=db)
    assert confirmed.success is True
    check = check_slot_availability(doctor_id=doctor_id, slot_date=MONDAY, slot_time='09:40', db=db)
    assert check.status == SlotCheckResult.BOOKED
    assert check.is_available is False

    released = release_slot(doctor_id=doctor_id, data=request, db=db)
    assert released.status == 'released'
    check = check_slot_availability(doctor_id=doctor_id, slot_date=MONDAY, slot_time='09:40', db=db)
    assert check.is_available is True


def test_reserve_slot_on_holiday_is_conflict(db, availability) -> None:
    with pytest.raises(HTTPException) as exception_info:
        reserve_slot(doctor_id=availability.doctor_id, data=SlotRequest(date=SUNDAY, time='09:00'), db=db)

    assert exception_info.value.status_code == 409
    assert exception_info.value.detail == 'The doctor does not work on this day.'


def test_check_slot_availability_rejects_malformed_time(db, availability) -> None:
    with pytest.raises(HTTPException) as exception_info:
        check_slot_availability(doctor_id=availability.doctor_id, slot_date=MONDAY, slot_time='noon', db=db)

    assert exception_info.value.status_code == 400


def test_read_appointment_stats_covers_whole_week(db, availability) -> None:
    stats = read_appointment_stats(doctor_id=availability.doctor_id, db=db)

    assert list(stats) == ['sunday', 'monday', 'tuesday', 'wednesday', 'thursday', 'friday', 'saturday']
    assert sum(stats.values()) == 0
