from __future__ import annotations

from datetime import datetime, timezone
from uuid import UUID

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field, model_validator

from qr_offers.api.routes.route_helpers import domain_http_error, require_vendor
from qr_offers.coordinator.service import Coordinator, OfferOtpVerification
from qr_offers.core.config import get_settings
from qr_offers.core.errors import DomainError
from qr_offers.db.session import SessionLocal
from qr_offers.ledger.service import RedemptionLedger
from qr_offers.ledger.types import RedemptionDetails
from qr_offers.otp.service import OtpIssuer
from qr_offers.otp.types import derive_verify_status

router = APIRouter(prefix="/api/redemption", tags=["redemption"])


class OtpRegisterRequest(BaseModel):
    customer_name: str = Field(min_length=1, max_length=128)
    phone_number: str = Field(min_length=1, max_length=32)
    vendor_id: UUID
    offer_id: UUID


class OtpRegisterResponse(BaseModel):
    session_id: UUID
    expires_at: datetime
    otp_code: str | None = None


class OtpVerifyRequest(BaseModel):
    otp_code: str = Field(min_length=1, max_length=16)
    session_id: UUID | None = None
    phone_number: str | None = Field(default=None, max_length=32)
    vendor_id: UUID | None = None
    offer_id: UUID | None = None

    @model_validator(mode="after")
    def _require_session_or_triple(self) -> "OtpVerifyRequest":
        has_triple = (
            self.phone_number is not None
            and self.vendor_id is not None
            and self.offer_id is not None
        )
        if self.session_id is None and not has_triple:
            raise ValueError("session_id or phone_number, vendor_id and offer_id are required")
        return self


class OtpVerifyResponse(BaseModel):
    session_id: UUID
    verify_status: str
    redemption_id: UUID
    redemption_code: str


class SessionStatusResponse(BaseModel):
    session_id: UUID
    verify_status: str
    expires_at: datetime
    redemption_id: UUID | None = None
    redemption_code: str | None = None


class RedemptionCodeRequest(BaseModel):
    session_id: UUID


class RedemptionCodeResponse(BaseModel):
    redemption_id: UUID
    code: str
    status: str


class VerifyCodeRequest(BaseModel):
    code: str = Field(min_length=1, max_length=24)
    vendor_id: UUID


class ConfirmRequest(BaseModel):
    vendor_id: UUID
    code: str | None = Field(default=None, min_length=1, max_length=24)
    redemption_id: UUID | None = None

    @model_validator(mode="after")
    def _require_exactly_one_key(self) -> "ConfirmRequest":
        if (self.code is None) == (self.redemption_id is None):
            raise ValueError("exactly one of code or redemption_id is required")
        return self


class VendorOtpRequest(BaseModel):
    otp_code: str = Field(min_length=1, max_length=16)
    vendor_id: UUID


class RedemptionDetailsResponse(BaseModel):
    redemption_id: UUID
    code: str
    status: str
    vendor_id: UUID
    offer_id: UUID
    customer_name: str
    customer_phone: str
    offer_title: str | None = None
    offer_description: str | None = None
    offer_expiry_date: datetime | None = None
    created_at: datetime
    redeemed_at: datetime | None = None


class RedemptionStatusResponse(BaseModel):
    redemption_id: UUID
    status: str
    redeemed_at: datetime | None = None


def details_as_response(details: RedemptionDetails) -> RedemptionDetailsResponse:
    redemption = details.redemption
    offer = details.offer
    return RedemptionDetailsResponse(
        redemption_id=redemption.id,
        code=redemption.code,
        status=details.status.value,
        vendor_id=redemption.vendor_id,
        offer_id=redemption.offer_id,
        customer_name=redemption.customer_name,
        customer_phone=redemption.customer_phone,
        offer_title=offer.title if offer is not None else None,
        offer_description=offer.description if offer is not None else None,
        offer_expiry_date=offer.expiry_date if offer is not None else None,
        created_at=redemption.created_at,
        redeemed_at=redemption.redeemed_at,
    )


def _verification_as_response(verification: OfferOtpVerification) -> OtpVerifyResponse:
    return OtpVerifyResponse(
        session_id=verification.otp_session.id,
        verify_status=verification.otp_session.verify_status,
        redemption_id=verification.redemption.id,
        redemption_code=verification.redemption.code,
    )


@router.post("/register", response_model=OtpRegisterResponse)
async def register_for_offer(payload: OtpRegisterRequest) -> OtpRegisterResponse:
    try:
        async with SessionLocal.begin() as session:
            issued = await Coordinator.request_offer_otp(
                session,
                customer_name=payload.customer_name,
                phone_number=payload.phone_number,
                vendor_id=payload.vendor_id,
                offer_id=payload.offer_id,
            )
    except DomainError as exc:
        raise domain_http_error(exc) from exc

    return OtpRegisterResponse(
        session_id=issued.session.id,
        expires_at=issued.session.expires_at,
        otp_code=issued.otp_code if get_settings().app_env == "dev" else None,
    )


@router.post("/verify-otp", response_model=OtpVerifyResponse)
async def verify_otp(payload: OtpVerifyRequest) -> OtpVerifyResponse:
    try:
        async with SessionLocal.begin() as session:
            if payload.session_id is not None:
                verification = await Coordinator.verify_session_otp(
                    session,
                    session_id=payload.session_id,
                    otp_code=payload.otp_code,
                )
            else:
                verification = await Coordinator.verify_offer_otp(
                    session,
                    phone_number=payload.phone_number or "",
                    otp_code=payload.otp_code,
                    vendor_id=payload.vendor_id,
                    offer_id=payload.offer_id,
                )
    except DomainError as exc:
        raise domain_http_error(exc) from exc

    return _verification_as_response(verification)


@router.get("/session/{session_id}", response_model=SessionStatusResponse)
async def get_session_status(session_id: UUID) -> SessionStatusResponse:
    try:
        async with SessionLocal.begin() as session:
            otp_session = await OtpIssuer.get_session(session, session_id=session_id)
            redemption = await RedemptionLedger.find_for_session(session, session_id=session_id)
    except DomainError as exc:
        raise domain_http_error(exc) from exc

    return SessionStatusResponse(
        session_id=otp_session.id,
        verify_status=derive_verify_status(otp_session, now_utc=datetime.now(timezone.utc)).value,
        expires_at=otp_session.expires_at,
        redemption_id=redemption.id if redemption is not None else None,
        redemption_code=redemption.code if redemption is not None else None,
    )


@router.post("/code", response_model=RedemptionCodeResponse)
async def issue_redemption_code(payload: RedemptionCodeRequest) -> RedemptionCodeResponse:
    try:
        async with SessionLocal.begin() as session:
            redemption = await RedemptionLedger.issue_redemption_code(
                session,
                session_id=payload.session_id,
            )
    except DomainError as exc:
        raise domain_http_error(exc) from exc

    return RedemptionCodeResponse(
        redemption_id=redemption.id,
        code=redemption.code,
        status=redemption.status,
    )


@router.post("/verify-code", response_model=RedemptionDetailsResponse)
async def verify_redemption_code(
    payload: VerifyCodeRequest,
    request: Request,
) -> RedemptionDetailsResponse:
    try:
        async with SessionLocal.begin() as session:
            await require_vendor(session, request, vendor_id=payload.vendor_id)
            details = await RedemptionLedger.verify_code(
                session,
                code=payload.code,
                vendor_id=payload.vendor_id,
            )
    except DomainError as exc:
        raise domain_http_error(exc) from exc
    return details_as_response(details)


@router.post("/confirm", response_model=RedemptionDetailsResponse)
async def confirm_redemption(payload: ConfirmRequest, request: Request) -> RedemptionDetailsResponse:
    try:
        async with SessionLocal.begin() as session:
            await require_vendor(session, request, vendor_id=payload.vendor_id)
            if payload.redemption_id is not None:
                details = await RedemptionLedger.confirm_by_redemption_id(
                    session,
                    redemption_id=payload.redemption_id,
                    vendor_id=payload.vendor_id,
                )
            else:
                details = await RedemptionLedger.confirm(
                    session,
                    code=payload.code or "",
                    vendor_id=payload.vendor_id,
                )
    except DomainError as exc:
        raise domain_http_error(exc) from exc
    return details_as_response(details)


@router.post("/verify-otp-for-vendor", response_model=RedemptionDetailsResponse)
async def verify_otp_for_vendor(
    payload: VendorOtpRequest,
    request: Request,
) -> RedemptionDetailsResponse:
    try:
        async with SessionLocal.begin() as session:
            await require_vendor(session, request, vendor_id=payload.vendor_id)
            details = await RedemptionLedger.verify_otp_for_vendor(
                session,
                otp_code=payload.otp_code,
                vendor_id=payload.vendor_id,
            )
    except DomainError as exc:
        raise domain_http_error(exc) from exc
    return details_as_response(details)


@router.get("/{redemption_id}/status", response_model=RedemptionStatusResponse)
async def get_redemption_status(redemption_id: UUID) -> RedemptionStatusResponse:
    try:
        async with SessionLocal.begin() as session:
            details = await RedemptionLedger.status(session, redemption_id=redemption_id)
    except DomainError as exc:
        raise domain_http_error(exc) from exc

    return RedemptionStatusResponse(
        redemption_id=details.redemption.id,
        status=details.status.value,
        redeemed_at=details.redemption.redeemed_at,
    )
