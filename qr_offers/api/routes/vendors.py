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
from qr_offers.coordinator.service import Coordinator
from qr_offers.core.errors import DomainError
from qr_offers.db.models.vendors import Vendor
from qr_offers.db.session import SessionLocal
from qr_offers.distribution.service import OfferDistribution
from qr_offers.distribution.types import VendorDecision
from qr_offers.ledger.service import RedemptionLedger
from qr_offers.otp.service import OtpIssuer
from qr_offers.vendors.service import VendorService
from qr_offers.vendors.types import VendorProfileInput

router = APIRouter(prefix="/api/vendor", tags=["vendor"])


class VendorRegisterRequest(BaseModel):
    token_id: str = Field(min_length=1, max_length=32)
    name: str = Field(min_length=1, max_length=128)
    category: str = Field(min_length=1, max_length=64)
    city: str = Field(min_length=1, max_length=64)
    contact_phone: str = Field(min_length=1, max_length=32)
    contact_email: str | None = Field(default=None, max_length=254)
    address: str | None = Field(default=None, max_length=256)


class VendorResponse(BaseModel):
    id: UUID
    name: str
    category: str
    city: str
    contact_phone: str
    contact_email: str | None = None
    address: str | None = None
    qr_token_id: str
    created_at: datetime


class VendorRegisterResponse(BaseModel):
    vendor: VendorResponse
    access_token: str


class VendorListResponse(BaseModel):
    vendors: list[VendorResponse]


class VendorOfferResponse(BaseModel):
    offer_id: UUID
    title: str
    description: str
    category: str
    expiry_date: datetime
    decision: str
    decided_at: datetime | None = None
    expired: bool


class VendorOfferListResponse(BaseModel):
    offers: list[VendorOfferResponse]


class StorefrontOfferResponse(BaseModel):
    offer_id: UUID
    title: str
    description: str
    category: str
    expiry_date: datetime


class StorefrontResponse(BaseModel):
    vendor_id: UUID
    name: str
    category: str
    city: str
    address: str | None = None
    offers: list[StorefrontOfferResponse]


class VendorStatsResponse(BaseModel):
    vendor_id: UUID
    redemptions_pending: int = Field(ge=0)
    redemptions_redeemed: int = Field(ge=0)
    redemptions_expired: int = Field(ge=0)
    redemptions_total: int = Field(ge=0)
    opted_in_customers: int = Field(ge=0)


def vendor_as_response(vendor: Vendor) -> VendorResponse:
    return VendorResponse(
        id=vendor.id,
        name=vendor.name,
        category=vendor.category,
        city=vendor.city,
        contact_phone=vendor.contact_phone,
        contact_email=vendor.contact_email,
        address=vendor.address,
        qr_token_id=vendor.qr_token_id,
        created_at=vendor.created_at,
    )


@router.post("/register", response_model=VendorRegisterResponse)
async def register_vendor(payload: VendorRegisterRequest) -> VendorRegisterResponse:
    try:
        async with SessionLocal.begin() as session:
            registration = await Coordinator.register_vendor(
                session,
                profile=VendorProfileInput(
                    token_id=payload.token_id,
                    name=payload.name,
                    category=payload.category,
                    city=payload.city,
                    contact_phone=payload.contact_phone,
                    contact_email=payload.contact_email,
                    address=payload.address,
                ),
            )
    except DomainError as exc:
        raise domain_http_error(exc) from exc

    return VendorRegisterResponse(
        vendor=vendor_as_response(registration.vendor),
        access_token=registration.access_token,
    )


@router.get("", response_model=VendorListResponse)
async def list_vendors(
    request: Request,
    city: str | None = Query(default=None, max_length=64),
    category: str | None = Query(default=None, max_length=64),
    limit: int = Query(default=100, ge=1, le=500),
) -> VendorListResponse:
    assert_admin_access(request)

    async with SessionLocal.begin() as session:
        vendors = await VendorService.list_vendors(
            session,
            city=city,
            category=category,
            limit=limit,
        )
    return VendorListResponse(vendors=[vendor_as_response(vendor) for vendor in vendors])


@router.get("/{vendor_id}", response_model=VendorResponse)
async def get_vendor(vendor_id: UUID) -> VendorResponse:
    try:
        async with SessionLocal.begin() as session:
            vendor = await VendorService.get(session, vendor_id=vendor_id)
    except DomainError as exc:
        raise domain_http_error(exc) from exc
    return vendor_as_response(vendor)


@router.get("/{vendor_id}/storefront", response_model=StorefrontResponse)
async def get_vendor_storefront(vendor_id: UUID) -> StorefrontResponse:
    try:
        async with SessionLocal.begin() as session:
            vendor = await VendorService.get(session, vendor_id=vendor_id)
            offers = await OfferDistribution.list_storefront_offers(session, vendor_id=vendor_id)
    except DomainError as exc:
        raise domain_http_error(exc) from exc

    return StorefrontResponse(
        vendor_id=vendor.id,
        name=vendor.name,
        category=vendor.category,
        city=vendor.city,
        address=vendor.address,
        offers=[
            StorefrontOfferResponse(
                offer_id=offer.id,
                title=offer.title,
                description=offer.description,
                category=offer.category,
                expiry_date=offer.expiry_date,
            )
            for offer in offers
        ],
    )


@router.get("/{vendor_id}/offers", response_model=VendorOfferListResponse)
async def list_vendor_offers(
    vendor_id: UUID,
    request: Request,
    decision: VendorDecision | None = Query(default=None),
) -> VendorOfferListResponse:
    try:
        async with SessionLocal.begin() as session:
            await require_vendor(session, request, vendor_id=vendor_id)
            views = await OfferDistribution.list_for_vendor(
                session,
                vendor_id=vendor_id,
                decision=decision,
            )
    except DomainError as exc:
        raise domain_http_error(exc) from exc

    return VendorOfferListResponse(
        offers=[
            VendorOfferResponse(
                offer_id=view.offer.id,
                title=view.offer.title,
                description=view.offer.description,
                category=view.offer.category,
                expiry_date=view.offer.expiry_date,
                decision=view.decision.value,
                decided_at=view.decided_at,
                expired=view.expired,
            )
            for view in views
        ]
    )


@router.get("/{vendor_id}/stats", response_model=VendorStatsResponse)
async def get_vendor_stats(vendor_id: UUID, request: Request) -> VendorStatsResponse:
    try:
        async with SessionLocal.begin() as session:
            await require_vendor(session, request, vendor_id=vendor_id)
            stats = await RedemptionLedger.vendor_stats(session, vendor_id=vendor_id)
            opted_in_customers = await OtpIssuer.count_opt_ins(session, vendor_id=vendor_id)
    except DomainError as exc:
        raise domain_http_error(exc) from exc

    return VendorStatsResponse(
        vendor_id=vendor_id,
        redemptions_pending=stats.pending,
        redemptions_redeemed=stats.redeemed,
        redemptions_expired=stats.expired,
        redemptions_total=stats.total,
        opted_in_customers=opted_in_customers,
    )
