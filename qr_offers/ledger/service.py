from __future__ import annotations

from datetime import datetime, timezone
from uuid import UUID, uuid4

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from qr_offers.db.models.redemptions import Redemption
from qr_offers.db.repo.offers_repo import OffersRepo
from qr_offers.db.repo.otp_sessions_repo import OtpSessionsRepo
from qr_offers.db.repo.redemptions_repo import RedemptionsRepo
from qr_offers.ledger.codes import generate_redemption_code, normalize_redemption_code
from qr_offers.ledger.errors import (
    OtpSessionHasNoOfferError,
    OtpSessionNotVerifiedError,
    RedemptionAlreadyRedeemedError,
    RedemptionExpiredError,
    RedemptionNotFoundError,
    RedemptionVendorMismatchError,
)
from qr_offers.ledger.types import (
    RedemptionDetails,
    RedemptionStatus,
    VendorRedemptionStats,
    derive_redemption_status,
)
from qr_offers.otp.errors import OtpNotFoundError
from qr_offers.otp.service import OtpIssuer
from qr_offers.otp.types import VerifyStatus

logger = structlog.get_logger(__name__)

MAX_REDEMPTION_CODE_ATTEMPTS = 5


class RedemptionLedger:
    @staticmethod
    async def issue_redemption_code(
        session: AsyncSession,
        *,
        session_id: UUID,
        now_utc: datetime | None = None,
    ) -> Redemption:
        now_utc = now_utc or datetime.now(timezone.utc)
        otp_session = await OtpSessionsRepo.get_by_id(session, session_id)
        if otp_session is None:
            raise OtpNotFoundError
        if otp_session.offer_id is None:
            raise OtpSessionHasNoOfferError
        if otp_session.verify_status != VerifyStatus.VERIFIED.value:
            raise OtpSessionNotVerifiedError

        existing = await RedemptionsRepo.get_by_session_id(session, session_id)
        if existing is not None:
            return existing

        for attempt in range(1, MAX_REDEMPTION_CODE_ATTEMPTS + 1):
            code = generate_redemption_code(now_utc=now_utc)
            try:
                async with session.begin_nested():
                    redemption = await RedemptionsRepo.create(
                        session,
                        redemption=Redemption(
                            id=uuid4(),
                            code=code,
                            otp_session_id=otp_session.id,
                            vendor_id=otp_session.vendor_id,
                            offer_id=otp_session.offer_id,
                            customer_phone=otp_session.phone_number,
                            customer_name=otp_session.customer_name,
                            status=RedemptionStatus.PENDING.value,
                            created_at=now_utc,
                            redeemed_at=None,
                            updated_at=now_utc,
                        ),
                    )
            except IntegrityError:
                # Either the code collided or a concurrent request already
                # created the record for this session.
                existing = await RedemptionsRepo.get_by_session_id(session, session_id)
                if existing is not None:
                    return existing
                logger.info("redemption_code_collision", attempt=attempt)
                continue

            logger.info(
                "redemption_code_issued",
                redemption_id=str(redemption.id),
                session_id=str(session_id),
                vendor_id=str(redemption.vendor_id),
                offer_id=str(redemption.offer_id),
            )
            return redemption

        raise RuntimeError("unable to allocate a unique redemption code")

    @staticmethod
    async def _details(
        session: AsyncSession,
        *,
        redemption: Redemption,
        now_utc: datetime,
    ) -> RedemptionDetails:
        offer = await OffersRepo.get_by_id(session, redemption.offer_id)
        return RedemptionDetails(
            redemption=redemption,
            offer=offer,
            status=derive_redemption_status(redemption, offer=offer, now_utc=now_utc),
        )

    @staticmethod
    async def verify_code(
        session: AsyncSession,
        *,
        code: str,
        vendor_id: UUID,
        now_utc: datetime | None = None,
    ) -> RedemptionDetails:
        now_utc = now_utc or datetime.now(timezone.utc)
        redemption = await RedemptionsRepo.get_by_code(session, normalize_redemption_code(code))
        if redemption is None:
            raise RedemptionNotFoundError
        if redemption.vendor_id != vendor_id:
            raise RedemptionVendorMismatchError

        details = await RedemptionLedger._details(session, redemption=redemption, now_utc=now_utc)
        if details.status == RedemptionStatus.REDEEMED:
            raise RedemptionAlreadyRedeemedError
        if details.status == RedemptionStatus.EXPIRED:
            raise RedemptionExpiredError
        return details

    @staticmethod
    async def _confirm_locked(
        session: AsyncSession,
        *,
        redemption: Redemption | None,
        vendor_id: UUID,
        now_utc: datetime,
    ) -> RedemptionDetails:
        """The single pending -> redeemed transition; the caller holds the row lock."""
        if redemption is None:
            raise RedemptionNotFoundError
        if redemption.vendor_id != vendor_id:
            raise RedemptionVendorMismatchError

        details = await RedemptionLedger._details(session, redemption=redemption, now_utc=now_utc)
        if details.status == RedemptionStatus.REDEEMED:
            logger.info(
                "redemption_confirm_rejected",
                redemption_id=str(redemption.id),
                reason="already_redeemed",
            )
            raise RedemptionAlreadyRedeemedError
        if details.status == RedemptionStatus.EXPIRED:
            raise RedemptionExpiredError

        redemption.status = RedemptionStatus.REDEEMED.value
        redemption.redeemed_at = now_utc
        redemption.updated_at = now_utc
        await session.flush()

        logger.info(
            "redemption_confirmed",
            redemption_id=str(redemption.id),
            vendor_id=str(vendor_id),
            offer_id=str(redemption.offer_id),
        )
        details.status = RedemptionStatus.REDEEMED
        return details

    @staticmethod
    async def confirm(
        session: AsyncSession,
        *,
        code: str,
        vendor_id: UUID,
        now_utc: datetime | None = None,
    ) -> RedemptionDetails:
        now_utc = now_utc or datetime.now(timezone.utc)
        redemption = await RedemptionsRepo.get_by_code_for_update(
            session,
            normalize_redemption_code(code),
        )
        return await RedemptionLedger._confirm_locked(
            session,
            redemption=redemption,
            vendor_id=vendor_id,
            now_utc=now_utc,
        )

    @staticmethod
    async def confirm_by_redemption_id(
        session: AsyncSession,
        *,
        redemption_id: UUID,
        vendor_id: UUID,
        now_utc: datetime | None = None,
    ) -> RedemptionDetails:
        now_utc = now_utc or datetime.now(timezone.utc)
        redemption = await RedemptionsRepo.get_by_id_for_update(session, redemption_id)
        return await RedemptionLedger._confirm_locked(
            session,
            redemption=redemption,
            vendor_id=vendor_id,
            now_utc=now_utc,
        )

    @staticmethod
    async def verify_otp_for_vendor(
        session: AsyncSession,
        *,
        otp_code: str,
        vendor_id: UUID,
        now_utc: datetime | None = None,
    ) -> RedemptionDetails:
        now_utc = now_utc or datetime.now(timezone.utc)
        otp_session = await OtpIssuer.verify_for_vendor(
            session,
            otp_code=otp_code,
            vendor_id=vendor_id,
            now_utc=now_utc,
        )
        redemption = await RedemptionLedger.issue_redemption_code(
            session,
            session_id=otp_session.id,
            now_utc=now_utc,
        )
        return await RedemptionLedger._details(session, redemption=redemption, now_utc=now_utc)

    @staticmethod
    async def status(
        session: AsyncSession,
        *,
        redemption_id: UUID,
        now_utc: datetime | None = None,
    ) -> RedemptionDetails:
        now_utc = now_utc or datetime.now(timezone.utc)
        redemption = await RedemptionsRepo.get_by_id(session, redemption_id)
        if redemption is None:
            raise RedemptionNotFoundError
        return await RedemptionLedger._details(session, redemption=redemption, now_utc=now_utc)

    @staticmethod
    async def vendor_stats(
        session: AsyncSession,
        *,
        vendor_id: UUID,
        now_utc: datetime | None = None,
    ) -> VendorRedemptionStats:
        now_utc = now_utc or datetime.now(timezone.utc)
        counts = await RedemptionsRepo.count_by_effective_status(
            session,
            vendor_id=vendor_id,
            now_utc=now_utc,
        )
        return VendorRedemptionStats(
            pending=counts.get(RedemptionStatus.PENDING.value, 0),
            redeemed=counts.get(RedemptionStatus.REDEEMED.value, 0),
            expired=counts.get(RedemptionStatus.EXPIRED.value, 0),
        )

    @staticmethod
    async def find_for_session(session: AsyncSession, *, session_id: UUID) -> Redemption | None:
        return await RedemptionsRepo.get_by_session_id(session, session_id)
