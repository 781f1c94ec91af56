from __future__ import annotations

from datetime import datetime, timezone
from uuid import UUID, uuid4

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from qr_offers.core.config import get_settings
from qr_offers.db.models.vendors import Vendor
from qr_offers.db.repo.vendors_repo import VendorsRepo
from qr_offers.registry.service import TokenRegistry
from qr_offers.services.secrets_hashing import (
    generate_vendor_access_token,
    hash_secret,
    secrets_match,
)
from qr_offers.vendors.errors import VendorAuthenticationError, VendorNotFoundError
from qr_offers.vendors.types import VendorProfileInput, VendorRegistration
from qr_offers.vendors.validation import normalize_vendor_profile

logger = structlog.get_logger(__name__)


class VendorService:
    @staticmethod
    async def register(
        session: AsyncSession,
        *,
        profile: VendorProfileInput,
        now_utc: datetime | None = None,
    ) -> VendorRegistration:
        now_utc = now_utc or datetime.now(timezone.utc)
        profile = normalize_vendor_profile(profile)
        vendor_id = uuid4()

        # The token claim is the serialization point; the vendor row only
        # exists if this request won it, and both commit or roll back together.
        await TokenRegistry.claim(
            session,
            token_id=profile.token_id,
            vendor_id=vendor_id,
            now_utc=now_utc,
        )

        access_token = generate_vendor_access_token()
        vendor = await VendorsRepo.create(
            session,
            vendor=Vendor(
                id=vendor_id,
                name=profile.name,
                category=profile.category,
                city=profile.city,
                contact_phone=profile.contact_phone,
                contact_email=profile.contact_email,
                address=profile.address,
                qr_token_id=profile.token_id,
                access_token_hash=hash_secret(
                    value=access_token,
                    pepper=get_settings().secret_pepper,
                ),
                created_at=now_utc,
                updated_at=now_utc,
            ),
        )
        logger.info(
            "vendor_registered",
            vendor_id=str(vendor_id),
            token_id=profile.token_id,
            city=profile.city,
            category=profile.category,
        )
        return VendorRegistration(vendor=vendor, access_token=access_token)

    @staticmethod
    async def get(session: AsyncSession, *, vendor_id: UUID) -> Vendor:
        vendor = await VendorsRepo.get_by_id(session, vendor_id)
        if vendor is None:
            raise VendorNotFoundError
        return vendor

    @staticmethod
    async def list_vendors(
        session: AsyncSession,
        *,
        city: str | None = None,
        category: str | None = None,
        limit: int = 100,
    ) -> list[Vendor]:
        return await VendorsRepo.list_vendors(session, city=city, category=category, limit=limit)

    @staticmethod
    async def authenticate(
        session: AsyncSession,
        *,
        vendor_id: UUID,
        access_token: str | None,
    ) -> Vendor:
        if not access_token:
            raise VendorAuthenticationError
        vendor = await VendorsRepo.get_by_id(session, vendor_id)
        if vendor is None:
            raise VendorAuthenticationError
        if not secrets_match(
            value=access_token,
            expected_hash=vendor.access_token_hash,
            pepper=get_settings().secret_pepper,
        ):
            logger.warning("vendor_auth_failed", vendor_id=str(vendor_id))
            raise VendorAuthenticationError
        return vendor
