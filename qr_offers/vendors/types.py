from __future__ import annotations

from dataclasses import dataclass

from qr_offers.db.models.vendors import Vendor


@dataclass(slots=True)
class VendorProfileInput:
    token_id: str
    name: str
    category: str
    city: str
    contact_phone: str
    contact_email: str | None = None
    address: str | None = None


@dataclass(slots=True)
class VendorRegistration:
    vendor: Vendor
    access_token: str
