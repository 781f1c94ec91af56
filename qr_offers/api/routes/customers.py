from __future__ import annotations

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Query, Request
from pydantic import BaseModel, Field

from qr_offers.api.routes.route_helpers import assert_admin_access, domain_http_error
from qr_offers.coordinator.service import Coordinator
from qr_offers.core.config import get_settings
from qr_offers.core.errors import DomainError
from qr_offers.db.session import SessionLocal
from qr_offers.otp.types import OptInSource

router = APIRouter(prefix="/api/customer", tags=["customer"])


class OptInRequest(BaseModel):
    phone_number: str = Field(min_length=1, max_length=32)
    vendor_id: UUID
    session_id: UUID
    source: OptInSource = OptInSource.QR_SCAN


class OptInResponse(BaseModel):
    vendor_id: UUID
    source: str
    opted_in_at: datetime


class JoinOtpRequest(BaseModel):
    phone_number: str = Field(min_length=1, max_length=32)
    vendor_id: UUID
    customer_name: str = Field(default="", max_length=128)


class JoinOtpResponse(BaseModel):
    session_id: UUID
    expires_at: datetime
    otp_code: str | None = None


class JoinVerifyRequest(BaseModel):
    session_id: UUID
    otp_code: str = Field(min_length=1, max_length=16)


class OptInListItem(BaseModel):
    phone_number: str
    source: str
    opted_in_at: datetime


class OptInListResponse(BaseModel):
    vendor_id: UUID
    items: list[OptInListItem]
    total: int = Field(ge=0)
    page: int
    limit: int


@router.post("/join/request-otp", response_model=JoinOtpResponse)
async def request_join_otp(payload: JoinOtpRequest) -> JoinOtpResponse:
    try:
        async with SessionLocal.begin() as session:
            issued = await Coordinator.request_join_otp(
                session,
                phone_number=payload.phone_number,
                vendor_id=payload.vendor_id,
                customer_name=payload.customer_name,
            )
    except DomainError as exc:
        raise domain_http_error(exc) from exc

    return JoinOtpResponse(
        session_id=issued.session.id,
        expires_at=issued.session.expires_at,
        otp_code=issued.otp_code if get_settings().app_env == "dev" else None,
    )


@router.post("/join/verify-otp", response_model=OptInResponse)
async def verify_join_otp(payload: JoinVerifyRequest) -> OptInResponse:
    try:
        async with SessionLocal.begin() as session:
            opt_in_row = await Coordinator.verify_join_otp(
                session,
                session_id=payload.session_id,
                otp_code=payload.otp_code,
            )
    except DomainError as exc:
        raise domain_http_error(exc) from exc

    return OptInResponse(
        vendor_id=opt_in_row.vendor_id,
        source=opt_in_row.source,
        opted_in_at=opt_in_row.opted_in_at,
    )


@router.post("/opt-in", response_model=OptInResponse)
async def opt_in(payload: OptInRequest) -> OptInResponse:
    try:
        async with SessionLocal.begin() as session:
            opt_in_row = await Coordinator.opt_in(
                session,
                phone_number=payload.phone_number,
                vendor_id=payload.vendor_id,
                session_id=payload.session_id,
                source=payload.source,
            )
    except DomainError as exc:
        raise domain_http_error(exc) from exc

    return OptInResponse(
        vendor_id=opt_in_row.vendor_id,
        source=opt_in_row.source,
        opted_in_at=opt_in_row.opted_in_at,
    )


@router.get("/vendor/{vendor_id}/customers", response_model=OptInListResponse)
async def list_vendor_customers(
    vendor_id: UUID,
    request: Request,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
) -> OptInListResponse:
    assert_admin_access(request)

    try:
        async with SessionLocal.begin() as session:
            items, total = await Coordinator.list_opt_ins(
                session,
                vendor_id=vendor_id,
                page=page,
                limit=limit,
            )
    except DomainError as exc:
        raise domain_http_error(exc) from exc

    return OptInListResponse(
        vendor_id=vendor_id,
        items=[
            OptInListItem(
                phone_number=item.phone_number,
                source=item.source,
                opted_in_at=item.opted_in_at,
            )
            for item in items
        ],
        total=total,
        page=page,
        limit=limit,
    )
