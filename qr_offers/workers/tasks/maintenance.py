from __future__ import annotations

from datetime import datetime, timezone

import structlog

from qr_offers.db.repo.otp_attempts_repo import OtpAttemptsRepo
from qr_offers.db.repo.otp_sessions_repo import OtpSessionsRepo
from qr_offers.db.repo.redemptions_repo import RedemptionsRepo
from qr_offers.db.session import SessionLocal
from qr_offers.otp.constants import OTP_ATTEMPTS_RETENTION
from qr_offers.workers.asyncio_runner import run_async_job
from qr_offers.workers.celery_app import celery_app

logger = structlog.get_logger(__name__)
OTP_EXPIRY_BATCH_SIZE = 1000


async def run_otp_session_expiry_async(*, now_utc: datetime | None = None) -> dict[str, int]:
    now_utc = now_utc or datetime.now(timezone.utc)
    async with SessionLocal.begin() as session:
        expired_count = await OtpSessionsRepo.expire_stale(
            session,
            now_utc=now_utc,
            limit=OTP_EXPIRY_BATCH_SIZE,
        )

    result = {"expired_sessions": expired_count}
    logger.info("otp_session_expiry_finished", **result)
    return result


async def run_redemption_expiry_async(*, now_utc: datetime | None = None) -> dict[str, int]:
    now_utc = now_utc or datetime.now(timezone.utc)
    async with SessionLocal.begin() as session:
        expired_count = await RedemptionsRepo.expire_pending_for_expired_offers(
            session,
            now_utc=now_utc,
        )

    result = {"expired_redemptions": expired_count}
    logger.info("redemption_expiry_finished", **result)
    return result


async def run_otp_attempts_retention_async(*, now_utc: datetime | None = None) -> dict[str, int]:
    now_utc = now_utc or datetime.now(timezone.utc)
    async with SessionLocal.begin() as session:
        deleted_count = await OtpAttemptsRepo.delete_before(
            session,
            cutoff_utc=now_utc - OTP_ATTEMPTS_RETENTION,
        )

    result = {"deleted_attempts": deleted_count}
    logger.info("otp_attempts_retention_finished", **result)
    return result


@celery_app.task(name="qr_offers.workers.tasks.maintenance.run_otp_session_expiry")
def run_otp_session_expiry() -> dict[str, int]:
    return run_async_job(run_otp_session_expiry_async())


@celery_app.task(name="qr_offers.workers.tasks.maintenance.run_redemption_expiry")
def run_redemption_expiry() -> dict[str, int]:
    return run_async_job(run_redemption_expiry_async())


@celery_app.task(name="qr_offers.workers.tasks.maintenance.run_otp_attempts_retention")
def run_otp_attempts_retention() -> dict[str, int]:
    return run_async_job(run_otp_attempts_retention_async())


celery_app.conf.beat_schedule = celery_app.conf.beat_schedule or {}
celery_app.conf.beat_schedule.update(
    {
        "otp-session-expiry-every-minute": {
            "task": "qr_offers.workers.tasks.maintenance.run_otp_session_expiry",
            "schedule": 60.0,
            "options": {"queue": "q_normal"},
        },
        "redemption-expiry-every-10-minutes": {
            "task": "qr_offers.workers.tasks.maintenance.run_redemption_expiry",
            "schedule": 600.0,
            "options": {"queue": "q_normal"},
        },
        "otp-attempts-retention-daily": {
            "task": "qr_offers.workers.tasks.maintenance.run_otp_attempts_retention",
            "schedule": 86400.0,
            "options": {"queue": "q_normal"},
        },
    }
)
