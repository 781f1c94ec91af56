from __future__ import annotations

from datetime import datetime, timezone
from uuid import UUID, uuid4

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from qr_offers.core.config import get_settings
from qr_offers.core.logging import mask_phone_number
from qr_offers.db.models.customer_opt_ins import CustomerOptIn
from qr_offers.db.models.otp_attempts import OtpAttempt
from qr_offers.db.models.otp_sessions import OtpSession
from qr_offers.db.repo.opt_ins_repo import OptInsRepo
from qr_offers.db.repo.otp_attempts_repo import OtpAttemptsRepo
from qr_offers.db.repo.otp_sessions_repo import OtpSessionsRepo
from qr_offers.db.session import SessionLocal
from qr_offers.otp.codes import generate_otp_code, is_well_formed_otp_code, normalize_otp_code
from qr_offers.otp.constants import (
    CUSTOMER_NAME_MAX_LENGTH,
    OTP_MAX_CODE_GENERATION_ATTEMPTS,
    OTP_MAX_ISSUE_ATTEMPTS,
    OTP_MAX_VERIFY_FAILURES,
    OTP_TTL,
)
from qr_offers.otp.errors import (
    InvalidPhoneNumberError,
    OtpExpiredError,
    OtpLockedError,
    OtpMismatchError,
    OtpNotFoundError,
    OtpValidationError,
)
from qr_offers.otp.types import (
    AttemptResult,
    InvalidatedReason,
    IssuedOtp,
    OptInSource,
    VerifyStatus,
    derive_verify_status,
)
from qr_offers.services.phone_numbers import normalize_phone_number
from qr_offers.services.secrets_hashing import hash_secret, secrets_match

logger = structlog.get_logger(__name__)


def _require_phone_number(raw_phone: str) -> str:
    phone_number = normalize_phone_number(raw_phone)
    if phone_number is None:
        raise InvalidPhoneNumberError
    return phone_number


def _hash_otp(otp_code: str) -> str:
    return hash_secret(value=otp_code, pepper=get_settings().secret_pepper)


class OtpIssuer:
    @staticmethod
    async def _allocate_code(
        session: AsyncSession,
        *,
        vendor_id: UUID,
    ) -> tuple[str, str]:
        # Codes are looked up by (vendor, hash) on the vendor-side path, so two
        # issued sessions at one vendor must never share a code.
        for _ in range(OTP_MAX_CODE_GENERATION_ATTEMPTS):
            otp_code = generate_otp_code()
            otp_hash = _hash_otp(otp_code)
            if not await OtpSessionsRepo.live_hash_exists_at_vendor(
                session,
                vendor_id=vendor_id,
                otp_hash=otp_hash,
            ):
                return otp_code, otp_hash
        raise RuntimeError("unable to allocate a unique otp code for vendor")

    @staticmethod
    async def issue(
        session: AsyncSession,
        *,
        customer_name: str,
        phone_number: str,
        vendor_id: UUID,
        offer_id: UUID | None,
        now_utc: datetime | None = None,
    ) -> IssuedOtp:
        """Issue a code for an offer, or a join code when offer_id is None."""
        now_utc = now_utc or datetime.now(timezone.utc)
        normalized_phone = _require_phone_number(phone_number)
        cleaned_name = customer_name.strip()
        if len(cleaned_name) > CUSTOMER_NAME_MAX_LENGTH:
            raise OtpValidationError("customer_name is invalid")
        if not cleaned_name and offer_id is not None:
            raise OtpValidationError("customer_name is invalid")

        for attempt in range(1, OTP_MAX_ISSUE_ATTEMPTS + 1):
            otp_code, otp_hash = await OtpIssuer._allocate_code(session, vendor_id=vendor_id)
            try:
                async with session.begin_nested():
                    superseded = await OtpSessionsRepo.supersede_active(
                        session,
                        phone_number=normalized_phone,
                        vendor_id=vendor_id,
                        offer_id=offer_id,
                        now_utc=now_utc,
                    )
                    otp_session = await OtpSessionsRepo.create(
                        session,
                        otp_session=OtpSession(
                            id=uuid4(),
                            phone_number=normalized_phone,
                            customer_name=cleaned_name,
                            vendor_id=vendor_id,
                            offer_id=offer_id,
                            otp_hash=otp_hash,
                            issued_at=now_utc,
                            expires_at=now_utc + OTP_TTL,
                            verify_status=VerifyStatus.ISSUED.value,
                            verified_at=None,
                            invalidated_reason=None,
                            updated_at=now_utc,
                        ),
                    )
            except IntegrityError:
                # A concurrent issue took this triple's live slot or this code at
                # the vendor. Supersede again with a fresh code.
                logger.info(
                    "otp_session_issue_conflict",
                    vendor_id=str(vendor_id),
                    offer_id=str(offer_id) if offer_id else None,
                    attempt=attempt,
                )
                continue

            logger.info(
                "otp_session_issued",
                session_id=str(otp_session.id),
                vendor_id=str(vendor_id),
                offer_id=str(offer_id) if offer_id else None,
                phone=mask_phone_number(normalized_phone),
                superseded=superseded,
            )
            return IssuedOtp(session=otp_session, otp_code=otp_code, superseded_count=superseded)

        raise RuntimeError("unable to issue otp session after concurrent conflicts")

    @staticmethod
    async def _record_attempt(
        session: AsyncSession,
        *,
        otp_session_id: UUID | None,
        phone_number: str,
        vendor_id: UUID,
        result: AttemptResult,
        now_utc: datetime,
        metadata: dict[str, object] | None = None,
    ) -> None:
        await OtpAttemptsRepo.create(
            session,
            attempt=OtpAttempt(
                otp_session_id=otp_session_id,
                phone_number=phone_number,
                vendor_id=vendor_id,
                result=result.value,
                attempted_at=now_utc,
                metadata_=metadata or {},
            ),
        )

    @staticmethod
    async def _record_failed_attempt(
        *,
        otp_session_id: UUID | None,
        phone_number: str,
        vendor_id: UUID,
        result: AttemptResult,
        now_utc: datetime,
        metadata: dict[str, object] | None = None,
    ) -> None:
        async with SessionLocal.begin() as attempt_session:
            await OtpIssuer._record_attempt(
                attempt_session,
                otp_session_id=otp_session_id,
                phone_number=phone_number,
                vendor_id=vendor_id,
                result=result,
                now_utc=now_utc,
                metadata=metadata,
            )

    @staticmethod
    async def _record_mismatch(*, otp_session: OtpSession, now_utc: datetime) -> bool:
        """Log a wrong code and lock the session once the failure budget is spent.

        Runs in its own transaction so the count survives the failing request.
        The session row is locked first so concurrent guesses count serially.
        Returns True when the session is locked after this mismatch.
        """
        async with SessionLocal.begin() as attempt_session:
            current = await OtpSessionsRepo.get_by_id_for_update(attempt_session, otp_session.id)
            if current is not None and current.invalidated_reason == InvalidatedReason.LOCKED.value:
                await OtpIssuer._record_attempt(
                    attempt_session,
                    otp_session_id=otp_session.id,
                    phone_number=otp_session.phone_number,
                    vendor_id=otp_session.vendor_id,
                    result=AttemptResult.LOCKED,
                    now_utc=now_utc,
                )
                return True
            await OtpIssuer._record_attempt(
                attempt_session,
                otp_session_id=otp_session.id,
                phone_number=otp_session.phone_number,
                vendor_id=otp_session.vendor_id,
                result=AttemptResult.MISMATCH,
                now_utc=now_utc,
            )
            failures = await OtpAttemptsRepo.count_for_session(
                attempt_session,
                otp_session_id=otp_session.id,
                attempt_results=(AttemptResult.MISMATCH.value,),
            )
            if failures < OTP_MAX_VERIFY_FAILURES:
                return False

            invalidated = await OtpSessionsRepo.invalidate_if_issued(
                attempt_session,
                session_id=otp_session.id,
                reason=InvalidatedReason.LOCKED.value,
                now_utc=now_utc,
            )
            if not invalidated:
                return False
        logger.warning(
            "otp_session_locked",
            session_id=str(otp_session.id),
            vendor_id=str(otp_session.vendor_id),
            failures=failures,
        )
        return True

    @staticmethod
    async def _verify_loaded(
        session: AsyncSession,
        *,
        otp_session: OtpSession,
        otp_code: str,
        now_utc: datetime,
    ) -> OtpSession:
        pepper = get_settings().secret_pepper
        normalized_code = normalize_otp_code(otp_code)
        code_matches = secrets_match(
            value=normalized_code,
            expected_hash=otp_session.otp_hash,
            pepper=pepper,
        )

        if otp_session.invalidated_reason == InvalidatedReason.LOCKED.value:
            await OtpIssuer._record_failed_attempt(
                otp_session_id=otp_session.id,
                phone_number=otp_session.phone_number,
                vendor_id=otp_session.vendor_id,
                result=AttemptResult.LOCKED,
                now_utc=now_utc,
            )
            raise OtpLockedError

        status = derive_verify_status(otp_session, now_utc=now_utc)
        if status == VerifyStatus.VERIFIED:
            # Replaying the right code against a verified session is a no-op.
            if code_matches:
                return otp_session
            raise OtpMismatchError

        if status == VerifyStatus.EXPIRED:
            await OtpIssuer._record_failed_attempt(
                otp_session_id=otp_session.id,
                phone_number=otp_session.phone_number,
                vendor_id=otp_session.vendor_id,
                result=AttemptResult.EXPIRED,
                now_utc=now_utc,
            )
            raise OtpExpiredError

        if not code_matches:
            locked = await OtpIssuer._record_mismatch(otp_session=otp_session, now_utc=now_utc)
            if locked:
                raise OtpLockedError
            raise OtpMismatchError

        verified = await OtpSessionsRepo.mark_verified_if_issued(
            session,
            session_id=otp_session.id,
            now_utc=now_utc,
        )
        if not verified:
            # Lost a race against expiry or another verification.
            await session.refresh(otp_session)
            if otp_session.verify_status == VerifyStatus.VERIFIED.value:
                return otp_session
            raise OtpExpiredError

        await OtpIssuer._record_attempt(
            session,
            otp_session_id=otp_session.id,
            phone_number=otp_session.phone_number,
            vendor_id=otp_session.vendor_id,
            result=AttemptResult.ACCEPTED,
            now_utc=now_utc,
        )
        await session.refresh(otp_session)
        logger.info(
            "otp_session_verified",
            session_id=str(otp_session.id),
            vendor_id=str(otp_session.vendor_id),
            offer_id=str(otp_session.offer_id) if otp_session.offer_id else None,
        )
        return otp_session

    @staticmethod
    async def verify(
        session: AsyncSession,
        *,
        phone_number: str,
        otp_code: str,
        vendor_id: UUID,
        offer_id: UUID,
        now_utc: datetime | None = None,
    ) -> OtpSession:
        now_utc = now_utc or datetime.now(timezone.utc)
        normalized_phone = _require_phone_number(phone_number)

        otp_session = await OtpSessionsRepo.find_latest_for_triple(
            session,
            phone_number=normalized_phone,
            vendor_id=vendor_id,
            offer_id=offer_id,
        )
        if otp_session is None:
            await OtpIssuer._record_failed_attempt(
                otp_session_id=None,
                phone_number=normalized_phone,
                vendor_id=vendor_id,
                result=AttemptResult.NOT_FOUND,
                now_utc=now_utc,
                metadata={"offer_id": str(offer_id)},
            )
            raise OtpNotFoundError

        return await OtpIssuer._verify_loaded(
            session,
            otp_session=otp_session,
            otp_code=otp_code,
            now_utc=now_utc,
        )

    @staticmethod
    async def verify_session(
        session: AsyncSession,
        *,
        session_id: UUID,
        otp_code: str,
        now_utc: datetime | None = None,
    ) -> OtpSession:
        now_utc = now_utc or datetime.now(timezone.utc)
        otp_session = await OtpSessionsRepo.get_by_id(session, session_id)
        if otp_session is None:
            raise OtpNotFoundError

        return await OtpIssuer._verify_loaded(
            session,
            otp_session=otp_session,
            otp_code=otp_code,
            now_utc=now_utc,
        )

    @staticmethod
    async def verify_for_vendor(
        session: AsyncSession,
        *,
        otp_code: str,
        vendor_id: UUID,
        now_utc: datetime | None = None,
    ) -> OtpSession:
        """Resolve a code typed in at the vendor's counter to its session."""
        now_utc = now_utc or datetime.now(timezone.utc)
        normalized_code = normalize_otp_code(otp_code)
        if not is_well_formed_otp_code(normalized_code):
            raise OtpNotFoundError

        otp_session = await OtpSessionsRepo.find_by_vendor_hash(
            session,
            vendor_id=vendor_id,
            otp_hash=_hash_otp(normalized_code),
        )
        if otp_session is None:
            raise OtpNotFoundError

        return await OtpIssuer._verify_loaded(
            session,
            otp_session=otp_session,
            otp_code=normalized_code,
            now_utc=now_utc,
        )

    @staticmethod
    async def get_session(session: AsyncSession, *, session_id: UUID) -> OtpSession:
        otp_session = await OtpSessionsRepo.get_by_id(session, session_id)
        if otp_session is None:
            raise OtpNotFoundError
        return otp_session

    @staticmethod
    async def status(
        session: AsyncSession,
        *,
        session_id: UUID,
        now_utc: datetime | None = None,
    ) -> VerifyStatus:
        now_utc = now_utc or datetime.now(timezone.utc)
        otp_session = await OtpIssuer.get_session(session, session_id=session_id)
        return derive_verify_status(otp_session, now_utc=now_utc)

    @staticmethod
    async def opt_in(
        session: AsyncSession,
        *,
        phone_number: str,
        vendor_id: UUID,
        source: OptInSource | str,
        now_utc: datetime | None = None,
    ) -> CustomerOptIn:
        now_utc = now_utc or datetime.now(timezone.utc)
        normalized_phone = _require_phone_number(phone_number)
        try:
            opt_in_source = OptInSource(source)
        except ValueError as exc:
            raise OtpValidationError(f"unknown opt-in source: {source}") from exc

        opt_in = await OptInsRepo.upsert(
            session,
            phone_number=normalized_phone,
            vendor_id=vendor_id,
            source=opt_in_source.value,
            now_utc=now_utc,
        )
        logger.info(
            "customer_opted_in",
            vendor_id=str(vendor_id),
            phone=mask_phone_number(normalized_phone),
            source=opt_in_source.value,
        )
        return opt_in

    @staticmethod
    async def count_opt_ins(session: AsyncSession, *, vendor_id: UUID) -> int:
        return await OptInsRepo.count_for_vendor(session, vendor_id=vendor_id)

    @staticmethod
    async def list_opt_ins(
        session: AsyncSession,
        *,
        vendor_id: UUID,
        page: int,
        limit: int,
    ) -> tuple[list[CustomerOptIn], int]:
        if page < 1 or limit < 1:
            raise OtpValidationError("page and limit must be positive")
        items = await OptInsRepo.list_for_vendor(
            session,
            vendor_id=vendor_id,
            offset=(page - 1) * limit,
            limit=limit,
        )
        total = await OptInsRepo.count_for_vendor(session, vendor_id=vendor_id)
        return items, total
