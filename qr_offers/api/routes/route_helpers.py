from __future__ import annotations

from uuid import UUID

import structlog
from fastapi import HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from qr_offers.core.config import get_settings
from qr_offers.core.errors import (
    ConflictError,
    DomainError,
    ExpiredError,
    ForbiddenError,
    InvalidRequestError,
    MismatchError,
    NotFoundError,
    RateLimitedError,
)
from qr_offers.db.models.vendors import Vendor
from qr_offers.services.internal_auth import (
    extract_client_ip,
    extract_vendor_token,
    is_admin_request_authenticated,
    is_client_ip_allowed,
)
from qr_offers.vendors.service import VendorService

logger = structlog.get_logger(__name__)

_STATUS_BY_FAMILY: tuple[tuple[type[DomainError], int], ...] = (
    (InvalidRequestError, 422),
    (NotFoundError, 404),
    (ConflictError, 409),
    (ForbiddenError, 403),
    (ExpiredError, 410),
    (RateLimitedError, 429),
    (MismatchError, 400),
)


def domain_http_error(exc: DomainError) -> HTTPException:
    for family, status_code in _STATUS_BY_FAMILY:
        if isinstance(exc, family):
            return HTTPException(status_code=status_code, detail={"code": exc.code})
    logger.error("unmapped_domain_error", error_type=type(exc).__name__, code=exc.code)
    return HTTPException(status_code=500, detail={"code": exc.code})


def assert_admin_access(request: Request) -> None:
    settings = get_settings()
    client_ip = extract_client_ip(
        request,
        trusted_proxies=getattr(settings, "internal_api_trusted_proxies", ""),
    )

    if not is_client_ip_allowed(client_ip=client_ip, allowlist=settings.internal_api_allowlist):
        logger.warning("admin_auth_failed", reason="ip_not_allowed", client_ip=client_ip)
        raise HTTPException(status_code=403, detail={"code": "E_FORBIDDEN"})

    if not is_admin_request_authenticated(request, expected_token=settings.internal_api_token):
        logger.warning("admin_auth_failed", reason="invalid_credentials", client_ip=client_ip)
        raise HTTPException(status_code=403, detail={"code": "E_FORBIDDEN"})


async def require_vendor(session: AsyncSession, request: Request, *, vendor_id: UUID) -> Vendor:
    return await VendorService.authenticate(
        session,
        vendor_id=vendor_id,
        access_token=extract_vendor_token(request),
    )
