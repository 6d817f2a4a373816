"""
ARQ background worker.

Run with ``arq telehealth.worker.WorkerSettings``.
"""

import logging

from arq.connections import RedisSettings
from arq.cron import cron
from fastapi.concurrency import run_in_threadpool

from telehealth.core import config
from telehealth.database import SessionLocal
from telehealth.jobs.appointment_status_updater import run_appointment_status_update

# Register every model so relationships resolve inside the worker process.
from telehealth.models import appointment, availability, user  # noqa: F401

logger = logging.getLogger(__name__)


async def startup(ctx) -> None:
    ctx['session_factory'] = SessionLocal


async def appointment_status_update_task(ctx):
    """
    Hourly cron job, also run once at worker startup.
    - Appointments: approved → completed (grace period after the slot)
    - Appointments: under-review → rejected (once the date has started)
    """
    if not config.APPOINTMENT_STATUS_SWEEP_ENABLED:
        logger.info('Appointment status updater disabled')
        return None

    session_factory = ctx.get('session_factory', SessionLocal)
    try:
        return await run_in_threadpool(run_appointment_status_update, session_factory)
    except Exception:
        logger.exception('Appointment status update job failed')
        raise


class WorkerSettings:
    functions = [appointment_status_update_task]
    on_startup = startup
    redis_settings = RedisSettings.from_dsn(config.REDIS_URL)

    # The timeout is shorter than the hourly cadence, so runs never overlap.
    cron_jobs = [
        cron(
            appointment_status_update_task,
            minute=config.APPOINTMENT_STATUS_SWEEP_MINUTE,
            run_at_startup=True,
            timeout=config.APPOINTMENT_STATUS_SWEEP_TIMEOUT_SECONDS,
            max_tries=1,
        ),
    ]
