import os



def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_list(value: str | None, default: list[str]) -> list[str]:
    if not value:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]

APP_ENV = os.getenv("APP_ENV", "development")

CORS_ALLOWED_ORIGINS = _get_list(os.getenv("CORS_ALLOWED_ORIGINS"), ["http://localhost:3000"])

# Slot holds placed during a booking flow lapse after this many hours.
SLOT_RESERVATION_HOLD_HOURS = int(os.getenv("SLOT_RESERVATION_HOLD_HOURS", "24"))

# Approved appointments are completed this long after their scheduled time.
APPOINTMENT_COMPLETION_GRACE_MINUTES = int(os.getenv("APPOINTMENT_COMPLETION_GRACE_MINUTES", "30"))

APPOINTMENT_STATUS_SWEEP_ENABLED = _get_bool(os.getenv("APPOINTMENT_STATUS_SWEEP_ENABLED"), default=True)
# The sweep runs at this minute of every hour, and once when the worker starts.
APPOINTMENT_STATUS_SWEEP_MINUTE = int(os.getenv("APPOINTMENT_STATUS_SWEEP_MINUTE", "0"))
# Must stay under an hour so a slow sweep ends before the next one is due.
APPOINTMENT_STATUS_SWEEP_TIMEOUT_SECONDS = int(os.getenv("APPOINTMENT_STATUS_SWEEP_TIMEOUT_SECONDS", "3000"))

REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379")

def validate_runtime_config() -> None:
    if SLOT_RESERVATION_HOLD_HOURS <= 0:
        raise RuntimeError("SLOT_RESERVATION_HOLD_HOURS must be positive.")
    if APPOINTMENT_COMPLETION_GRACE_MINUTES < 0:
        raise RuntimeError("APPOINTMENT_COMPLETION_GRACE_MINUTES cannot be negative.")
    if not 0 <= APPOINTMENT_STATUS_SWEEP_MINUTE <= 59:
        raise RuntimeError("APPOINTMENT_STATUS_SWEEP_MINUTE must be between 0 and 59.")
    if not 0 < APPOINTMENT_STATUS_SWEEP_TIMEOUT_SECONDS < 3600:
        raise RuntimeError("APPOINTMENT_STATUS_SWEEP_TIMEOUT_SECONDS must be between 1 and 3599.")
