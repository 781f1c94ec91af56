from __future__ import annotations

import re

from qr_offers.registry.batch import normalize_token_id
from qr_offers.services.phone_numbers import normalize_phone_number
from qr_offers.vendors.errors import VendorValidationError
from qr_offers.vendors.types import VendorProfileInput

_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_REQUIRED_TEXT_LIMITS = {"name": 128, "category": 64, "city": 64}
ADDRESS_MAX_LENGTH = 256


def _clean_optional(value: str | None) -> str | None:
    if value is None:
        return None
    cleaned = value.strip()
    return cleaned or None


def normalize_vendor_profile(profile: VendorProfileInput) -> VendorProfileInput:
    """Return a trimmed copy of the profile or raise before anything is written."""
    token_id = normalize_token_id(profile.token_id)
    if not token_id:
        raise VendorValidationError("token_id is required")

    cleaned: dict[str, str] = {}
    for field_name, max_length in _REQUIRED_TEXT_LIMITS.items():
        value = getattr(profile, field_name).strip()
        if not value:
            raise VendorValidationError(f"{field_name} is required")
        if len(value) > max_length:
            raise VendorValidationError(f"{field_name} is too long")
        cleaned[field_name] = value

    contact_phone = normalize_phone_number(profile.contact_phone)
    if contact_phone is None:
        raise VendorValidationError("contact_phone is invalid")

    contact_email = _clean_optional(profile.contact_email)
    if contact_email is not None and _EMAIL_PATTERN.fullmatch(contact_email) is None:
        raise VendorValidationError("contact_email is invalid")

    address = _clean_optional(profile.address)
    if address is not None and len(address) > ADDRESS_MAX_LENGTH:
        raise VendorValidationError("address is too long")

    return VendorProfileInput(
        token_id=token_id,
        name=cleaned["name"],
        category=cleaned["category"],
        city=cleaned["city"],
        contact_phone=contact_phone,
        contact_email=contact_email,
        address=address,
    )
