from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from qr_offers.coordinator.errors import OfferNotAvailableError, OptInNotVerifiedError
from qr_offers.db.models.customer_opt_ins import CustomerOptIn
from qr_offers.db.models.otp_sessions import OtpSession
from qr_offers.db.models.redemptions import Redemption
from qr_offers.db.repo.offers_repo import OffersRepo
from qr_offers.distribution.errors import OfferExpiredError, OfferNotFoundError
from qr_offers.distribution.types import VendorDecision, is_offer_expired
from qr_offers.ledger.service import RedemptionLedger
from qr_offers.otp.service import OtpIssuer
from qr_offers.otp.errors import OtpNotFoundError
from qr_offers.otp.types import IssuedOtp, OptInSource, VerifyStatus, derive_verify_status
from qr_offers.services.phone_numbers import normalize_phone_number
from qr_offers.vendors.errors import VendorNotFoundError
from qr_offers.vendors.service import VendorService
from qr_offers.vendors.types import VendorProfileInput, VendorRegistration

logger = structlog.get_logger(__name__)


@dataclass(slots=True)
class OfferOtpVerification:
    otp_session: OtpSession
    redemption: Redemption


class Coordinator:
    """Sequences calls across components; owns no state of its own."""

    @staticmethod
    async def _after_verification(
        session: AsyncSession,
        *,
        otp_session: OtpSession,
        now_utc: datetime,
    ) -> OfferOtpVerification:
        await OtpIssuer.opt_in(
            session,
            phone_number=otp_session.phone_number,
            vendor_id=otp_session.vendor_id,
            source=OptInSource.OFFER,
            now_utc=now_utc,
        )
        redemption = await RedemptionLedger.issue_redemption_code(
            session,
            session_id=otp_session.id,
            now_utc=now_utc,
        )
        return OfferOtpVerification(otp_session=otp_session, redemption=redemption)

    @staticmethod
    async def register_vendor(
        session: AsyncSession,
        *,
        profile: VendorProfileInput,
        now_utc: datetime | None = None,
    ) -> VendorRegistration:
        return await VendorService.register(session, profile=profile, now_utc=now_utc)

    @staticmethod
    async def request_offer_otp(
        session: AsyncSession,
        *,
        customer_name: str,
        phone_number: str,
        vendor_id: UUID,
        offer_id: UUID,
        now_utc: datetime | None = None,
    ) -> IssuedOtp:
        now_utc = now_utc or datetime.now(timezone.utc)
        await VendorService.get(session, vendor_id=vendor_id)

        offer = await OffersRepo.get_by_id(session, offer_id)
        if offer is None:
            raise OfferNotFoundError

        decision = await OffersRepo.get_decision(session, offer_id=offer_id, vendor_id=vendor_id)
        if decision is None or decision.decision != VendorDecision.ACCEPTED.value:
            raise OfferNotAvailableError
        if is_offer_expired(offer, now_utc=now_utc):
            raise OfferExpiredError

        return await OtpIssuer.issue(
            session,
            customer_name=customer_name,
            phone_number=phone_number,
            vendor_id=vendor_id,
            offer_id=offer_id,
            now_utc=now_utc,
        )

    @staticmethod
    async def verify_offer_otp(
        session: AsyncSession,
        *,
        phone_number: str,
        otp_code: str,
        vendor_id: UUID,
        offer_id: UUID,
        now_utc: datetime | None = None,
    ) -> OfferOtpVerification:
        now_utc = now_utc or datetime.now(timezone.utc)
        otp_session = await OtpIssuer.verify(
            session,
            phone_number=phone_number,
            otp_code=otp_code,
            vendor_id=vendor_id,
            offer_id=offer_id,
            now_utc=now_utc,
        )
        return await Coordinator._after_verification(session, otp_session=otp_session, now_utc=now_utc)

    @staticmethod
    async def verify_session_otp(
        session: AsyncSession,
        *,
        session_id: UUID,
        otp_code: str,
        now_utc: datetime | None = None,
    ) -> OfferOtpVerification:
        now_utc = now_utc or datetime.now(timezone.utc)
        otp_session = await OtpIssuer.verify_session(
            session,
            session_id=session_id,
            otp_code=otp_code,
            now_utc=now_utc,
        )
        return await Coordinator._after_verification(session, otp_session=otp_session, now_utc=now_utc)

    @staticmethod
    async def request_join_otp(
        session: AsyncSession,
        *,
        phone_number: str,
        vendor_id: UUID,
        customer_name: str = "",
        now_utc: datetime | None = None,
    ) -> IssuedOtp:
        """Send a code that proves the customer owns the phone before opting in."""
        await VendorService.get(session, vendor_id=vendor_id)
        return await OtpIssuer.issue(
            session,
            customer_name=customer_name,
            phone_number=phone_number,
            vendor_id=vendor_id,
            offer_id=None,
            now_utc=now_utc,
        )

    @staticmethod
    async def verify_join_otp(
        session: AsyncSession,
        *,
        session_id: UUID,
        otp_code: str,
        source: OptInSource | str = OptInSource.JOIN,
        now_utc: datetime | None = None,
    ) -> CustomerOptIn:
        now_utc = now_utc or datetime.now(timezone.utc)
        otp_session = await OtpIssuer.verify_session(
            session,
            session_id=session_id,
            otp_code=otp_code,
            now_utc=now_utc,
        )
        return await OtpIssuer.opt_in(
            session,
            phone_number=otp_session.phone_number,
            vendor_id=otp_session.vendor_id,
            source=source,
            now_utc=now_utc,
        )

    @staticmethod
    async def opt_in(
        session: AsyncSession,
        *,
        phone_number: str,
        vendor_id: UUID,
        session_id: UUID,
        source: OptInSource | str,
        now_utc: datetime | None = None,
    ) -> CustomerOptIn:
        """Opt in a phone that a verified session at this vendor already proved."""
        now_utc = now_utc or datetime.now(timezone.utc)
        try:
            await VendorService.get(session, vendor_id=vendor_id)
        except VendorNotFoundError:
            logger.info("customer_opt_in_unknown_vendor", vendor_id=str(vendor_id))
            raise

        try:
            otp_session = await OtpIssuer.get_session(session, session_id=session_id)
        except OtpNotFoundError as exc:
            raise OptInNotVerifiedError from exc
        verified = derive_verify_status(otp_session, now_utc=now_utc) == VerifyStatus.VERIFIED
        if (
            not verified
            or otp_session.vendor_id != vendor_id
            or otp_session.phone_number != normalize_phone_number(phone_number)
        ):
            logger.info(
                "customer_opt_in_not_verified",
                vendor_id=str(vendor_id),
                session_id=str(session_id),
            )
            raise OptInNotVerifiedError

        return await OtpIssuer.opt_in(
            session,
            phone_number=otp_session.phone_number,
            vendor_id=vendor_id,
            source=source,
            now_utc=now_utc,
        )

    @staticmethod
    async def list_opt_ins(
        session: AsyncSession,
        *,
        vendor_id: UUID,
        page: int,
        limit: int,
    ) -> tuple[list[CustomerOptIn], int]:
        await VendorService.get(session, vendor_id=vendor_id)
        return await OtpIssuer.list_opt_ins(session, vendor_id=vendor_id, page=page, limit=limit)
