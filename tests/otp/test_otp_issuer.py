from __future__ import annotations

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from uuid import uuid4

import pytest
from sqlalchemy.exc import IntegrityError

from qr_offers.core.config import get_settings
from qr_offers.otp import service as otp_service
from qr_offers.otp.constants import OTP_MAX_VERIFY_FAILURES, OTP_TTL
from qr_offers.otp.errors import (
    InvalidPhoneNumberError,
    OtpExpiredError,
    OtpLockedError,
    OtpMismatchError,
    OtpNotFoundError,
    OtpValidationError,
)
from qr_offers.otp.service import OtpIssuer
from qr_offers.otp.types import OptInSource, VerifyStatus, derive_verify_status
from qr_offers.services.secrets_hashing import hash_secret
from tests.helpers import DummySession, DummySessionLocal

NOW_UTC = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)
PHONE = "+919876543210"


def _otp_session(*, code: str = "123456", **overrides) -> SimpleNamespace:
    values = {
        "id": uuid4(),
        "phone_number": PHONE,
        "customer_name": "Asha",
        "vendor_id": uuid4(),
        "offer_id": uuid4(),
        "otp_hash": hash_secret(value=code, pepper=get_settings().secret_pepper),
        "issued_at": NOW_UTC - timedelta(minutes=1),
        "expires_at": NOW_UTC + timedelta(minutes=9),
        "verify_status": "issued",
        "verified_at": None,
        "invalidated_reason": None,
    }
    values.update(overrides)
    return SimpleNamespace(**values)


class _AttemptLog:
    def __init__(self) -> None:
        self.results: list[str] = []
        self.events: list[str] = []
        self.rows: dict = {}

    async def create(self, session, *, attempt):
        self.events.append("create")
        self.results.append(attempt.result)
        return attempt

    async def count_for_session(self, session, *, otp_session_id, attempt_results):
        self.events.append("count")
        return sum(1 for result in self.results if result in attempt_results)

    async def get_by_id_for_update(self, session, session_id):
        self.events.append("lock")
        return self.rows.get(session_id)


@pytest.fixture
def attempt_log(monkeypatch) -> _AttemptLog:
    log = _AttemptLog()
    monkeypatch.setattr(otp_service, "SessionLocal", DummySessionLocal())
    monkeypatch.setattr(otp_service.OtpAttemptsRepo, "create", log.create)
    monkeypatch.setattr(otp_service.OtpAttemptsRepo, "count_for_session", log.count_for_session)
    monkeypatch.setattr(otp_service.OtpSessionsRepo, "get_by_id_for_update", log.get_by_id_for_update)
    return log


def test_derive_verify_status_reports_lapsed_issued_session_as_expired() -> None:
    otp_session = _otp_session(expires_at=NOW_UTC)

    assert derive_verify_status(otp_session, now_utc=NOW_UTC) is VerifyStatus.EXPIRED
    assert derive_verify_status(otp_session, now_utc=NOW_UTC - timedelta(seconds=1)) is VerifyStatus.ISSUED


@pytest.mark.asyncio
async def test_issue_supersedes_previous_session_and_stores_only_hash(monkeypatch) -> None:
    created: list = []

    async def _fake_hash_exists(session, *, vendor_id, otp_hash):
        return False

    async def _fake_supersede(session, *, phone_number, vendor_id, offer_id, now_utc):
        assert phone_number == PHONE
        return 1

    async def _fake_create(session, *, otp_session):
        created.append(otp_session)
        return otp_session

    monkeypatch.setattr(otp_service.OtpSessionsRepo, "live_hash_exists_at_vendor", _fake_hash_exists)
    monkeypatch.setattr(otp_service.OtpSessionsRepo, "supersede_active", _fake_supersede)
    monkeypatch.setattr(otp_service.OtpSessionsRepo, "create", _fake_create)

    issued = await OtpIssuer.issue(
        DummySession(),
        customer_name=" Asha ",
        phone_number="+91 98765 43210",
        vendor_id=uuid4(),
        offer_id=uuid4(),
        now_utc=NOW_UTC,
    )

    assert issued.superseded_count == 1
    assert len(issued.otp_code) == 6
    assert issued.session.customer_name == "Asha"
    assert issued.session.expires_at == NOW_UTC + OTP_TTL
    assert issued.session.verify_status == "issued"
    assert issued.session.otp_hash == hash_secret(value=issued.otp_code, pepper=get_settings().secret_pepper)
    assert issued.otp_code not in issued.session.otp_hash


@pytest.mark.asyncio
async def test_issue_regenerates_code_already_live_at_vendor(monkeypatch) -> None:
    codes = iter(["111111", "222222"])
    live_hash = hash_secret(value="111111", pepper=get_settings().secret_pepper)

    async def _fake_hash_exists(session, *, vendor_id, otp_hash):
        return otp_hash == live_hash

    async def _fake_supersede(session, **kwargs):
        return 0

    async def _fake_create(session, *, otp_session):
        return otp_session

    monkeypatch.setattr(otp_service, "generate_otp_code", lambda: next(codes))
    monkeypatch.setattr(otp_service.OtpSessionsRepo, "live_hash_exists_at_vendor", _fake_hash_exists)
    monkeypatch.setattr(otp_service.OtpSessionsRepo, "supersede_active", _fake_supersede)
    monkeypatch.setattr(otp_service.OtpSessionsRepo, "create", _fake_create)

    issued = await OtpIssuer.issue(
        DummySession(),
        customer_name="Asha",
        phone_number=PHONE,
        vendor_id=uuid4(),
        offer_id=uuid4(),
        now_utc=NOW_UTC,
    )

    assert issued.otp_code == "222222"


@pytest.mark.asyncio
async def test_issue_retries_after_concurrent_insert_conflict(monkeypatch) -> None:
    attempts: list[str] = []
    codes = iter(["111111", "222222"])

    async def _fake_hash_exists(session, **kwargs):
        return False

    async def _fake_supersede(session, **kwargs):
        return 0

    async def _fake_create(session, *, otp_session):
        attempts.append(otp_session.otp_hash)
        if len(attempts) == 1:
            raise IntegrityError("INSERT", {}, Exception("uq_otp_sessions_live_vendor_hash"))
        return otp_session

    monkeypatch.setattr(otp_service, "generate_otp_code", lambda: next(codes))
    monkeypatch.setattr(otp_service.OtpSessionsRepo, "live_hash_exists_at_vendor", _fake_hash_exists)
    monkeypatch.setattr(otp_service.OtpSessionsRepo, "supersede_active", _fake_supersede)
    monkeypatch.setattr(otp_service.OtpSessionsRepo, "create", _fake_create)
    session = DummySession()

    issued = await OtpIssuer.issue(
        session,
        customer_name="Asha",
        phone_number=PHONE,
        vendor_id=uuid4(),
        offer_id=uuid4(),
        now_utc=NOW_UTC,
    )

    assert issued.session is not None
    assert len(attempts) == 2
    assert session.nested_count == 2
    # The code that lost the race is not reused.
    assert issued.otp_code == "222222"
    assert attempts[0] != attempts[1]
    assert issued.session.otp_hash == attempts[1]


@pytest.mark.asyncio
async def test_issue_join_session_allows_blank_name_and_no_offer(monkeypatch) -> None:
    superseded_for: list = []

    async def _fake_hash_exists(session, **kwargs):
        return False

    async def _fake_supersede(session, *, phone_number, vendor_id, offer_id, now_utc):
        superseded_for.append(offer_id)
        return 0

    async def _fake_create(session, *, otp_session):
        return otp_session

    monkeypatch.setattr(otp_service.OtpSessionsRepo, "live_hash_exists_at_vendor", _fake_hash_exists)
    monkeypatch.setattr(otp_service.OtpSessionsRepo, "supersede_active", _fake_supersede)
    monkeypatch.setattr(otp_service.OtpSessionsRepo, "create", _fake_create)

    issued = await OtpIssuer.issue(
        DummySession(),
        customer_name="",
        phone_number=PHONE,
        vendor_id=uuid4(),
        offer_id=None,
        now_utc=NOW_UTC,
    )

    assert issued.session.offer_id is None
    assert issued.session.customer_name == ""
    assert superseded_for == [None]


@pytest.mark.asyncio
async def test_issue_rejects_invalid_phone_and_name() -> None:
    with pytest.raises(InvalidPhoneNumberError):
        await OtpIssuer.issue(
            DummySession(),
            customer_name="Asha",
            phone_number="12",
            vendor_id=uuid4(),
            offer_id=uuid4(),
        )
    with pytest.raises(OtpValidationError):
        await OtpIssuer.issue(
            DummySession(),
            customer_name="   ",
            phone_number=PHONE,
            vendor_id=uuid4(),
            offer_id=uuid4(),
        )


def _patch_triple_lookup(monkeypatch, otp_session) -> None:
    async def _fake_find(session, *, phone_number, vendor_id, offer_id):
        return otp_session

    monkeypatch.setattr(otp_service.OtpSessionsRepo, "find_latest_for_triple", _fake_find)


@pytest.mark.asyncio
async def test_verify_correct_code_marks_session_verified(monkeypatch, attempt_log) -> None:
    otp_session = _otp_session()
    _patch_triple_lookup(monkeypatch, otp_session)

    async def _fake_mark_verified(session, *, session_id, now_utc):
        otp_session.verify_status = "verified"
        otp_session.verified_at = now_utc
        return True

    monkeypatch.setattr(otp_service.OtpSessionsRepo, "mark_verified_if_issued", _fake_mark_verified)

    result = await OtpIssuer.verify(
        DummySession(),
        phone_number=PHONE,
        otp_code="123 456",
        vendor_id=otp_session.vendor_id,
        offer_id=otp_session.offer_id,
        now_utc=NOW_UTC,
    )

    assert result.verify_status == "verified"
    assert attempt_log.results == ["accepted"]


@pytest.mark.asyncio
async def test_verify_wrong_code_records_mismatch(monkeypatch, attempt_log) -> None:
    otp_session = _otp_session()
    _patch_triple_lookup(monkeypatch, otp_session)

    with pytest.raises(OtpMismatchError):
        await OtpIssuer.verify(
            DummySession(),
            phone_number=PHONE,
            otp_code="654321",
            vendor_id=otp_session.vendor_id,
            offer_id=otp_session.offer_id,
            now_utc=NOW_UTC,
        )

    assert attempt_log.results == ["mismatch"]
    assert otp_session.verify_status == "issued"


@pytest.mark.asyncio
async def test_verify_locks_session_after_failure_budget(monkeypatch, attempt_log) -> None:
    otp_session = _otp_session()
    _patch_triple_lookup(monkeypatch, otp_session)
    invalidations: list[str] = []

    async def _fake_invalidate(session, *, session_id, reason, now_utc):
        invalidations.append(reason)
        otp_session.verify_status = "expired"
        otp_session.invalidated_reason = reason
        return True

    monkeypatch.setattr(otp_service.OtpSessionsRepo, "invalidate_if_issued", _fake_invalidate)

    errors: list[type[Exception]] = []
    for _ in range(OTP_MAX_VERIFY_FAILURES + 1):
        try:
            await OtpIssuer.verify(
                DummySession(),
                phone_number=PHONE,
                otp_code="000000",
                vendor_id=otp_session.vendor_id,
                offer_id=otp_session.offer_id,
                now_utc=NOW_UTC,
            )
        except (OtpMismatchError, OtpLockedError) as exc:
            errors.append(type(exc))

    assert errors == [OtpMismatchError] * (OTP_MAX_VERIFY_FAILURES - 1) + [OtpLockedError, OtpLockedError]
    assert invalidations == ["locked"]

    # Even the right code is refused once the session is locked.
    with pytest.raises(OtpLockedError):
        await OtpIssuer.verify(
            DummySession(),
            phone_number=PHONE,
            otp_code="123456",
            vendor_id=otp_session.vendor_id,
            offer_id=otp_session.offer_id,
            now_utc=NOW_UTC,
        )


@pytest.mark.asyncio
async def test_mismatch_locks_session_row_before_counting(monkeypatch, attempt_log) -> None:
    otp_session = _otp_session()
    _patch_triple_lookup(monkeypatch, otp_session)
    attempt_log.rows[otp_session.id] = otp_session

    with pytest.raises(OtpMismatchError):
        await OtpIssuer.verify(
            DummySession(),
            phone_number=PHONE,
            otp_code="654321",
            vendor_id=otp_session.vendor_id,
            offer_id=otp_session.offer_id,
            now_utc=NOW_UTC,
        )

    assert attempt_log.events == ["lock", "create", "count"]


@pytest.mark.asyncio
async def test_mismatch_after_concurrent_lock_does_not_count_again(monkeypatch, attempt_log) -> None:
    # The caller loaded the row before a parallel guess locked it.
    otp_session = _otp_session()
    _patch_triple_lookup(monkeypatch, otp_session)
    attempt_log.rows[otp_session.id] = _otp_session(
        id=otp_session.id,
        verify_status="expired",
        invalidated_reason="locked",
    )

    async def _unexpected_invalidate(session, **kwargs):
        raise AssertionError("an already locked session must not be invalidated again")

    monkeypatch.setattr(otp_service.OtpSessionsRepo, "invalidate_if_issued", _unexpected_invalidate)

    with pytest.raises(OtpLockedError):
        await OtpIssuer.verify(
            DummySession(),
            phone_number=PHONE,
            otp_code="654321",
            vendor_id=otp_session.vendor_id,
            offer_id=otp_session.offer_id,
            now_utc=NOW_UTC,
        )

    assert attempt_log.results == ["locked"]
    assert "count" not in attempt_log.events


@pytest.mark.asyncio
async def test_verify_expired_session_raises_expired(monkeypatch, attempt_log) -> None:
    otp_session = _otp_session(expires_at=NOW_UTC - timedelta(seconds=1))
    _patch_triple_lookup(monkeypatch, otp_session)

    with pytest.raises(OtpExpiredError):
        await OtpIssuer.verify(
            DummySession(),
            phone_number=PHONE,
            otp_code="123456",
            vendor_id=otp_session.vendor_id,
            offer_id=otp_session.offer_id,
            now_utc=NOW_UTC,
        )

    assert attempt_log.results == ["expired"]


@pytest.mark.asyncio
async def test_verify_superseded_session_raises_expired(monkeypatch, attempt_log) -> None:
    otp_session = _otp_session(verify_status="expired", invalidated_reason="superseded")
    _patch_triple_lookup(monkeypatch, otp_session)

    with pytest.raises(OtpExpiredError):
        await OtpIssuer.verify(
            DummySession(),
            phone_number=PHONE,
            otp_code="123456",
            vendor_id=otp_session.vendor_id,
            offer_id=otp_session.offer_id,
            now_utc=NOW_UTC,
        )


@pytest.mark.asyncio
async def test_verify_without_session_records_not_found(monkeypatch, attempt_log) -> None:
    _patch_triple_lookup(monkeypatch, None)

    with pytest.raises(OtpNotFoundError):
        await OtpIssuer.verify(
            DummySession(),
            phone_number=PHONE,
            otp_code="123456",
            vendor_id=uuid4(),
            offer_id=uuid4(),
            now_utc=NOW_UTC,
        )

    assert attempt_log.results == ["not_found"]


@pytest.mark.asyncio
async def test_verify_replayed_code_on_verified_session_is_idempotent(monkeypatch, attempt_log) -> None:
    otp_session = _otp_session(verify_status="verified", verified_at=NOW_UTC)
    _patch_triple_lookup(monkeypatch, otp_session)

    result = await OtpIssuer.verify(
        DummySession(),
        phone_number=PHONE,
        otp_code="123456",
        vendor_id=otp_session.vendor_id,
        offer_id=otp_session.offer_id,
        now_utc=NOW_UTC + timedelta(hours=1),
    )

    assert result is otp_session
    assert attempt_log.results == []


@pytest.mark.asyncio
async def test_verify_losing_race_to_expiry_raises_expired(monkeypatch, attempt_log) -> None:
    otp_session = _otp_session()
    _patch_triple_lookup(monkeypatch, otp_session)

    async def _fake_mark_verified(session, *, session_id, now_utc):
        otp_session.verify_status = "expired"
        return False

    monkeypatch.setattr(otp_service.OtpSessionsRepo, "mark_verified_if_issued", _fake_mark_verified)

    with pytest.raises(OtpExpiredError):
        await OtpIssuer.verify(
            DummySession(),
            phone_number=PHONE,
            otp_code="123456",
            vendor_id=otp_session.vendor_id,
            offer_id=otp_session.offer_id,
            now_utc=NOW_UTC,
        )


@pytest.mark.asyncio
async def test_verify_for_vendor_rejects_malformed_code_without_lookup(monkeypatch) -> None:
    async def _unexpected_find(session, **kwargs):
        raise AssertionError("malformed codes must not be looked up")

    monkeypatch.setattr(otp_service.OtpSessionsRepo, "find_by_vendor_hash", _unexpected_find)

    with pytest.raises(OtpNotFoundError):
        await OtpIssuer.verify_for_vendor(DummySession(), otp_code="12ab", vendor_id=uuid4())


@pytest.mark.asyncio
async def test_verify_for_vendor_finds_session_by_code_hash(monkeypatch, attempt_log) -> None:
    otp_session = _otp_session()
    captured: dict[str, object] = {}

    async def _fake_find(session, *, vendor_id, otp_hash):
        captured["otp_hash"] = otp_hash
        return otp_session

    async def _fake_mark_verified(session, *, session_id, now_utc):
        otp_session.verify_status = "verified"
        return True

    monkeypatch.setattr(otp_service.OtpSessionsRepo, "find_by_vendor_hash", _fake_find)
    monkeypatch.setattr(otp_service.OtpSessionsRepo, "mark_verified_if_issued", _fake_mark_verified)

    result = await OtpIssuer.verify_for_vendor(
        DummySession(),
        otp_code=" 123456 ",
        vendor_id=otp_session.vendor_id,
        now_utc=NOW_UTC,
    )

    assert result is otp_session
    assert captured["otp_hash"] == otp_session.otp_hash


@pytest.mark.asyncio
async def test_opt_in_upserts_normalized_phone(monkeypatch) -> None:
    captured: dict[str, object] = {}

    async def _fake_upsert(session, *, phone_number, vendor_id, source, now_utc):
        captured.update(phone_number=phone_number, source=source)
        return SimpleNamespace(phone_number=phone_number, vendor_id=vendor_id, source=source, opted_in_at=now_utc)

    monkeypatch.setattr(otp_service.OptInsRepo, "upsert", _fake_upsert)

    opt_in = await OtpIssuer.opt_in(
        DummySession(),
        phone_number="+91 98765-43210",
        vendor_id=uuid4(),
        source="join",
        now_utc=NOW_UTC,
    )

    assert captured == {"phone_number": PHONE, "source": OptInSource.JOIN.value}
    assert opt_in.opted_in_at == NOW_UTC


@pytest.mark.asyncio
async def test_opt_in_rejects_unknown_source() -> None:
    with pytest.raises(OtpValidationError):
        await OtpIssuer.opt_in(DummySession(), phone_number=PHONE, vendor_id=uuid4(), source="billboard")
