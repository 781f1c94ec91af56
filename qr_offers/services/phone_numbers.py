from __future__ import annotations

import re

_PHONE_STRIP_PATTERN = re.compile(r"[\s\-().]+")
_PHONE_VALID_PATTERN = re.compile(r"^\+?[0-9]{10,15}$")


def normalize_phone_number(raw_phone: str) -> str | None:
    candidate = _PHONE_STRIP_PATTERN.sub("", raw_phone.strip())
    if _PHONE_VALID_PATTERN.fullmatch(candidate) is None:
        return None
    return candidate
