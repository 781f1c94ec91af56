from __future__ import annotations

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Query, Request
from pydantic import BaseModel, Field

from qr_offers.api.routes.route_helpers import (
    assert_admin_access,
    domain_http_error,
    require_vendor,
)
from qr_offers.core.errors import DomainError
from qr_offers.db.models.offers import Offer
from qr_offers.db.session import SessionLocal
from qr_offers.distribution.service import OfferDistribution
from qr_offers.distribution.types import VendorDecision

router = APIRouter(prefix="/api/offer", tags=["offer"])
broadcast_router = APIRouter(prefix="/api/broadcast", tags=["offer"])


class OfferCreateRequest(BaseModel):
    title: str = Field(min_length=1, max_length=128)
    description: str = Field(default="", max_length=4000)
    category: str = Field(min_length=1, max_length=64)
    expiry_date: datetime
    created_by: str = Field(default="admin", min_length=1, max_length=64)


class OfferResponse(BaseModel):
    id: UUID
    title: str
    description: str
    category: str
    expiry_date: datetime
    lifecycle_status: str
    published_at: datetime | None = None
    created_at: datetime


class AdminOfferResponse(OfferResponse):
    accepted_count: int = Field(ge=0)
    rejected_count: int = Field(ge=0)
    pending_count: int = Field(ge=0)
    target_vendor_count: int = Field(ge=0)


class AdminOfferListResponse(BaseModel):
    offers: list[AdminOfferResponse]


class OfferPublishRequest(BaseModel):
    vendor_ids: list[UUID] = Field(max_length=1000)


class OfferPublishResponse(BaseModel):
    offer: OfferResponse
    target_vendor_ids: list[UUID]


class VendorDecisionResponse(BaseModel):
    offer_id: UUID
    vendor_id: UUID
    decision: str


class SendToCustomersRequest(BaseModel):
    vendor_id: UUID


class SendToCustomersResponse(BaseModel):
    offer_id: UUID
    vendor_id: UUID
    target_count: int = Field(ge=0)
    messages_sent_count: int = Field(ge=0)
    failed_count: int = Field(ge=0)


class OfferAnalyticsResponse(BaseModel):
    offer: OfferResponse
    vendor_id: UUID
    decision: str
    expired: bool
    redemptions_by_status: dict[str, int]
    broadcasts_total: int = Field(ge=0)
    messages_sent_total: int = Field(ge=0)


class BroadcastResponse(BaseModel):
    id: int
    offer_id: UUID
    vendor_id: UUID
    target_count: int = Field(ge=0)
    sent_count: int = Field(ge=0)
    failed_count: int = Field(ge=0)
    created_at: datetime


class BroadcastListResponse(BaseModel):
    broadcasts: list[BroadcastResponse]


def offer_as_response(offer: Offer) -> OfferResponse:
    return OfferResponse(
        id=offer.id,
        title=offer.title,
        description=offer.description,
        category=offer.category,
        expiry_date=offer.expiry_date,
        lifecycle_status=offer.lifecycle_status,
        published_at=offer.published_at,
        created_at=offer.created_at,
    )


@router.post("", response_model=OfferResponse)
async def create_offer(payload: OfferCreateRequest, request: Request) -> OfferResponse:
    assert_admin_access(request)

    try:
        async with SessionLocal.begin() as session:
            offer = await OfferDistribution.create_offer(
                session,
                title=payload.title,
                description=payload.description,
                category=payload.category,
                expiry_date=payload.expiry_date,
                created_by=payload.created_by,
            )
    except DomainError as exc:
        raise domain_http_error(exc) from exc
    return offer_as_response(offer)


@router.get("", response_model=AdminOfferListResponse)
async def list_offers(
    request: Request,
    limit: int = Query(default=100, ge=1, le=500),
) -> AdminOfferListResponse:
    assert_admin_access(request)

    async with SessionLocal.begin() as session:
        views = await OfferDistribution.list_for_admin(session, limit=limit)

    return AdminOfferListResponse(
        offers=[
            AdminOfferResponse(
                **offer_as_response(view.offer).model_dump(),
                accepted_count=view.tally.accepted,
                rejected_count=view.tally.rejected,
                pending_count=view.tally.pending,
                target_vendor_count=view.tally.total,
            )
            for view in views
        ]
    )


@router.get("/{offer_id}", response_model=OfferResponse)
async def get_offer(offer_id: UUID) -> OfferResponse:
    try:
        async with SessionLocal.begin() as session:
            offer = await OfferDistribution.get_offer(session, offer_id=offer_id)
    except DomainError as exc:
        raise domain_http_error(exc) from exc
    return offer_as_response(offer)


@router.post("/{offer_id}/publish", response_model=OfferPublishResponse)
async def publish_offer(
    offer_id: UUID,
    payload: OfferPublishRequest,
    request: Request,
) -> OfferPublishResponse:
    assert_admin_access(request)

    try:
        async with SessionLocal.begin() as session:
            result = await OfferDistribution.publish(
                session,
                offer_id=offer_id,
                vendor_ids=payload.vendor_ids,
            )
    except DomainError as exc:
        raise domain_http_error(exc) from exc

    return OfferPublishResponse(
        offer=offer_as_response(result.offer),
        target_vendor_ids=result.target_vendor_ids,
    )


async def _record_decision(
    *,
    offer_id: UUID,
    vendor_id: UUID,
    decision: VendorDecision,
    request: Request,
) -> VendorDecisionResponse:
    try:
        async with SessionLocal.begin() as session:
            await require_vendor(session, request, vendor_id=vendor_id)
            recorded = await OfferDistribution.record_vendor_decision(
                session,
                offer_id=offer_id,
                vendor_id=vendor_id,
                decision=decision,
            )
    except DomainError as exc:
        raise domain_http_error(exc) from exc

    return VendorDecisionResponse(offer_id=offer_id, vendor_id=vendor_id, decision=recorded.value)


@router.post("/{offer_id}/vendor/{vendor_id}/accept", response_model=VendorDecisionResponse)
async def accept_offer(offer_id: UUID, vendor_id: UUID, request: Request) -> VendorDecisionResponse:
    return await _record_decision(
        offer_id=offer_id,
        vendor_id=vendor_id,
        decision=VendorDecision.ACCEPTED,
        request=request,
    )


@router.post("/{offer_id}/vendor/{vendor_id}/reject", response_model=VendorDecisionResponse)
async def reject_offer(offer_id: UUID, vendor_id: UUID, request: Request) -> VendorDecisionResponse:
    return await _record_decision(
        offer_id=offer_id,
        vendor_id=vendor_id,
        decision=VendorDecision.REJECTED,
        request=request,
    )


@router.post("/{offer_id}/send-to-customers", response_model=SendToCustomersResponse)
async def send_to_customers(
    offer_id: UUID,
    payload: SendToCustomersRequest,
    request: Request,
) -> SendToCustomersResponse:
    try:
        async with SessionLocal.begin() as session:
            await require_vendor(session, request, vendor_id=payload.vendor_id)
        result = await OfferDistribution.send_to_customers(
            offer_id=offer_id,
            vendor_id=payload.vendor_id,
        )
    except DomainError as exc:
        raise domain_http_error(exc) from exc

    return SendToCustomersResponse(
        offer_id=result.offer_id,
        vendor_id=result.vendor_id,
        target_count=result.target_count,
        messages_sent_count=result.messages_sent_count,
        failed_count=result.failed_count,
    )


@router.get("/{offer_id}/analytics", response_model=OfferAnalyticsResponse)
async def get_offer_analytics(
    offer_id: UUID,
    request: Request,
    vendor_id: UUID = Query(),
) -> OfferAnalyticsResponse:
    try:
        async with SessionLocal.begin() as session:
            await require_vendor(session, request, vendor_id=vendor_id)
            analytics = await OfferDistribution.get_offer_analytics(
                session,
                offer_id=offer_id,
                vendor_id=vendor_id,
            )
    except DomainError as exc:
        raise domain_http_error(exc) from exc

    return OfferAnalyticsResponse(
        offer=offer_as_response(analytics.offer),
        vendor_id=analytics.vendor_id,
        decision=analytics.decision.value,
        expired=analytics.expired,
        redemptions_by_status=analytics.redemptions_by_status,
        broadcasts_total=analytics.broadcasts_total,
        messages_sent_total=analytics.messages_sent_total,
    )


@broadcast_router.get("", response_model=BroadcastListResponse)
async def list_broadcasts(
    request: Request,
    offer_id: UUID | None = Query(default=None),
    vendor_id: UUID | None = Query(default=None),
    limit: int = Query(default=100, ge=1, le=500),
) -> BroadcastListResponse:
    assert_admin_access(request)

    async with SessionLocal.begin() as session:
        broadcasts = await OfferDistribution.list_broadcasts(
            session,
            offer_id=offer_id,
            vendor_id=vendor_id,
            limit=limit,
        )

    return BroadcastListResponse(
        broadcasts=[
            BroadcastResponse(
                id=broadcast.id,
                offer_id=broadcast.offer_id,
                vendor_id=broadcast.vendor_id,
                target_count=broadcast.target_count,
                sent_count=broadcast.sent_count,
                failed_count=broadcast.failed_count,
                created_at=broadcast.created_at,
            )
            for broadcast in broadcasts
        ]
    )
