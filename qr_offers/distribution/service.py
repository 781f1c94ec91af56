from __future__ import annotations

from datetime import datetime, timezone
from uuid import UUID, uuid4

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from qr_offers.db.models.offer_broadcasts import OfferBroadcast
from qr_offers.db.models.offers import Offer
from qr_offers.db.repo.offers_repo import OffersRepo
from qr_offers.db.repo.opt_ins_repo import OptInsRepo
from qr_offers.db.repo.redemptions_repo import RedemptionsRepo
from qr_offers.db.repo.vendors_repo import VendorsRepo
from qr_offers.db.session import SessionLocal
from qr_offers.distribution.errors import (
    DecisionNotFoundError,
    DecisionNotPendingError,
    OfferAlreadyPublishedError,
    OfferEmptySelectionError,
    OfferExpiredError,
    OfferNotFoundError,
    OfferValidationError,
    VendorNotAcceptedError,
)
from qr_offers.distribution.types import (
    TERMINAL_DECISIONS,
    AdminOfferView,
    DecisionTally,
    OfferAnalytics,
    OfferLifecycle,
    PublishResult,
    SendToCustomersResult,
    VendorDecision,
    VendorOfferView,
    is_offer_expired,
)
from qr_offers.services.notifier import OfferMessage, deliver_offer_messages
from qr_offers.vendors.errors import VendorNotFoundError

logger = structlog.get_logger(__name__)

OFFER_TEXT_LIMITS = {"title": 128, "category": 64}
OFFER_DESCRIPTION_MAX_LENGTH = 4000


class OfferDistribution:
    """Admin -> vendor offer routing and vendor -> customer fan-out."""

    @staticmethod
    async def create_offer(
        session: AsyncSession,
        *,
        title: str,
        description: str,
        category: str,
        expiry_date: datetime,
        created_by: str,
        now_utc: datetime | None = None,
    ) -> Offer:
        now_utc = now_utc or datetime.now(timezone.utc)
        cleaned_title = title.strip()
        cleaned_category = category.strip()
        cleaned_description = description.strip()
        for field_name, value in (("title", cleaned_title), ("category", cleaned_category)):
            if not value:
                raise OfferValidationError(f"{field_name} is required")
            if len(value) > OFFER_TEXT_LIMITS[field_name]:
                raise OfferValidationError(f"{field_name} is too long")
        if len(cleaned_description) > OFFER_DESCRIPTION_MAX_LENGTH:
            raise OfferValidationError("description is too long")
        if expiry_date.tzinfo is None:
            raise OfferValidationError("expiry_date must be timezone-aware")
        if expiry_date <= now_utc:
            raise OfferValidationError("expiry_date must be in the future")

        offer = await OffersRepo.create(
            session,
            offer=Offer(
                id=uuid4(),
                title=cleaned_title,
                description=cleaned_description,
                category=cleaned_category,
                expiry_date=expiry_date,
                lifecycle_status=OfferLifecycle.DRAFT.value,
                published_at=None,
                created_by=created_by,
                created_at=now_utc,
                updated_at=now_utc,
            ),
        )
        logger.info("offer_created", offer_id=str(offer.id), created_by=created_by)
        return offer

    @staticmethod
    async def get_offer(session: AsyncSession, *, offer_id: UUID) -> Offer:
        offer = await OffersRepo.get_by_id(session, offer_id)
        if offer is None:
            raise OfferNotFoundError
        return offer

    @staticmethod
    async def publish(
        session: AsyncSession,
        *,
        offer_id: UUID,
        vendor_ids: list[UUID],
        now_utc: datetime | None = None,
    ) -> PublishResult:
        now_utc = now_utc or datetime.now(timezone.utc)
        target_vendor_ids = list(dict.fromkeys(vendor_ids))
        if not target_vendor_ids:
            raise OfferEmptySelectionError

        offer = await OffersRepo.get_by_id(session, offer_id)
        if offer is None:
            raise OfferNotFoundError

        known_vendor_ids = await VendorsRepo.list_existing_ids(session, target_vendor_ids)
        if len(known_vendor_ids) != len(target_vendor_ids):
            raise VendorNotFoundError

        published = await OffersRepo.publish_if_draft(session, offer_id=offer_id, now_utc=now_utc)
        if not published:
            raise OfferAlreadyPublishedError

        await OffersRepo.insert_pending_decisions(
            session,
            offer_id=offer_id,
            vendor_ids=target_vendor_ids,
            now_utc=now_utc,
        )
        await session.refresh(offer)
        logger.info(
            "offer_published",
            offer_id=str(offer_id),
            target_vendors=len(target_vendor_ids),
        )
        return PublishResult(offer=offer, target_vendor_ids=target_vendor_ids)

    @staticmethod
    async def record_vendor_decision(
        session: AsyncSession,
        *,
        offer_id: UUID,
        vendor_id: UUID,
        decision: VendorDecision,
        now_utc: datetime | None = None,
    ) -> VendorDecision:
        if decision not in TERMINAL_DECISIONS:
            raise OfferValidationError("decision must be accepted or rejected")
        now_utc = now_utc or datetime.now(timezone.utc)

        decided = await OffersRepo.decide_if_pending(
            session,
            offer_id=offer_id,
            vendor_id=vendor_id,
            decision=decision.value,
            now_utc=now_utc,
        )
        if decided:
            logger.info(
                "offer_decision_recorded",
                offer_id=str(offer_id),
                vendor_id=str(vendor_id),
                decision=decision.value,
            )
            return decision

        existing = await OffersRepo.get_decision(session, offer_id=offer_id, vendor_id=vendor_id)
        if existing is None:
            raise DecisionNotFoundError
        raise DecisionNotPendingError

    @staticmethod
    async def list_for_vendor(
        session: AsyncSession,
        *,
        vendor_id: UUID,
        decision: VendorDecision | None = None,
        now_utc: datetime | None = None,
    ) -> list[VendorOfferView]:
        now_utc = now_utc or datetime.now(timezone.utc)
        rows = await OffersRepo.list_for_vendor(
            session,
            vendor_id=vendor_id,
            decision=decision.value if decision is not None else None,
        )
        return [
            VendorOfferView(
                offer=offer,
                decision=VendorDecision(decision_row.decision),
                decided_at=decision_row.decided_at,
                expired=is_offer_expired(offer, now_utc=now_utc),
            )
            for offer, decision_row in rows
        ]

    @staticmethod
    async def list_storefront_offers(
        session: AsyncSession,
        *,
        vendor_id: UUID,
        now_utc: datetime | None = None,
    ) -> list[Offer]:
        """Offers a customer can still claim at this vendor."""
        now_utc = now_utc or datetime.now(timezone.utc)
        return await OffersRepo.list_live_accepted_for_vendor(
            session,
            vendor_id=vendor_id,
            now_utc=now_utc,
        )

    @staticmethod
    async def list_for_admin(session: AsyncSession, *, limit: int = 100) -> list[AdminOfferView]:
        offers = await OffersRepo.list_offers(session, limit=limit)
        tallies = await OffersRepo.count_decisions_by_offer(
            session,
            offer_ids=[offer.id for offer in offers],
        )
        views: list[AdminOfferView] = []
        for offer in offers:
            counts = tallies.get(offer.id, {})
            views.append(
                AdminOfferView(
                    offer=offer,
                    tally=DecisionTally(
                        accepted=counts.get("accepted", 0),
                        rejected=counts.get("rejected", 0),
                        pending=counts.get("pending", 0),
                    ),
                )
            )
        return views

    @staticmethod
    async def get_offer_analytics(
        session: AsyncSession,
        *,
        offer_id: UUID,
        vendor_id: UUID,
        now_utc: datetime | None = None,
    ) -> OfferAnalytics:
        now_utc = now_utc or datetime.now(timezone.utc)
        offer = await OffersRepo.get_by_id(session, offer_id)
        if offer is None:
            raise OfferNotFoundError
        decision = await OffersRepo.get_decision(session, offer_id=offer_id, vendor_id=vendor_id)
        if decision is None:
            raise DecisionNotFoundError

        redemptions_by_status = await RedemptionsRepo.count_by_status(
            session,
            vendor_id=vendor_id,
            offer_id=offer_id,
        )
        broadcasts_total, messages_sent_total = await OffersRepo.sum_broadcasts(
            session,
            offer_id=offer_id,
            vendor_id=vendor_id,
        )
        return OfferAnalytics(
            offer=offer,
            vendor_id=vendor_id,
            decision=VendorDecision(decision.decision),
            expired=is_offer_expired(offer, now_utc=now_utc),
            redemptions_by_status=redemptions_by_status,
            broadcasts_total=broadcasts_total,
            messages_sent_total=messages_sent_total,
        )

    @staticmethod
    async def send_to_customers(
        *,
        offer_id: UUID,
        vendor_id: UUID,
        now_utc: datetime | None = None,
    ) -> SendToCustomersResult:
        """Fan an accepted offer out to the vendor's opted-in customers.

        Opens its own transactions: the notifier is called with no database
        transaction held, and the broadcast row is written afterwards.
        """
        now_utc = now_utc or datetime.now(timezone.utc)

        async with SessionLocal.begin() as session:
            offer = await OffersRepo.get_by_id(session, offer_id)
            if offer is None:
                raise OfferNotFoundError
            decision = await OffersRepo.get_decision(
                session,
                offer_id=offer_id,
                vendor_id=vendor_id,
            )
            if decision is None or decision.decision != VendorDecision.ACCEPTED.value:
                raise VendorNotAcceptedError
            if is_offer_expired(offer, now_utc=now_utc):
                raise OfferExpiredError
            vendor = await VendorsRepo.get_by_id(session, vendor_id)
            if vendor is None:
                raise VendorNotFoundError
            phone_numbers = await OptInsRepo.list_phone_numbers_for_vendor(
                session,
                vendor_id=vendor_id,
            )
            messages = [
                OfferMessage(
                    phone_number=phone_number,
                    vendor_name=vendor.name,
                    offer_title=offer.title,
                    offer_description=offer.description,
                    expiry_date=offer.expiry_date,
                )
                for phone_number in phone_numbers
            ]

        report = await deliver_offer_messages(messages)

        async with SessionLocal.begin() as session:
            await OffersRepo.create_broadcast(
                session,
                broadcast=OfferBroadcast(
                    offer_id=offer_id,
                    vendor_id=vendor_id,
                    target_count=report.target_count,
                    sent_count=report.sent_count,
                    failed_count=report.failed_count,
                    created_at=now_utc,
                ),
            )

        logger.info(
            "offer_sent_to_customers",
            offer_id=str(offer_id),
            vendor_id=str(vendor_id),
            target_count=report.target_count,
            sent_count=report.sent_count,
            failed_count=report.failed_count,
        )
        return SendToCustomersResult(
            offer_id=offer_id,
            vendor_id=vendor_id,
            target_count=report.target_count,
            messages_sent_count=report.sent_count,
            failed_count=report.failed_count,
        )

    @staticmethod
    async def list_broadcasts(
        session: AsyncSession,
        *,
        offer_id: UUID | None = None,
        vendor_id: UUID | None = None,
        limit: int = 100,
    ) -> list[OfferBroadcast]:
        return await OffersRepo.list_broadcasts(
            session,
            offer_id=offer_id,
            vendor_id=vendor_id,
            limit=limit,
        )
