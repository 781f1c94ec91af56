from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from qr_offers.db.models.otp_sessions import OtpSession


class VerifyStatus(str, Enum):
    ISSUED = "issued"
    VERIFIED = "verified"
    EXPIRED = "expired"


class InvalidatedReason(str, Enum):
    SUPERSEDED = "superseded"
    EXPIRED = "expired"
    LOCKED = "locked"


class AttemptResult(str, Enum):
    ACCEPTED = "accepted"
    MISMATCH = "mismatch"
    EXPIRED = "expired"
    NOT_FOUND = "not_found"
    LOCKED = "locked"


class OptInSource(str, Enum):
    QR_SCAN = "qr_scan"
    JOIN = "join"
    OFFER = "offer"


def derive_verify_status(otp_session: OtpSession, *, now_utc: datetime) -> VerifyStatus:
    if otp_session.verify_status == VerifyStatus.ISSUED.value and otp_session.expires_at <= now_utc:
        return VerifyStatus.EXPIRED
    return VerifyStatus(otp_session.verify_status)


@dataclass(slots=True)
class IssuedOtp:
    session: OtpSession
    otp_code: str
    superseded_count: int = 0
