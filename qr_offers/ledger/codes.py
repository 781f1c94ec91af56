from __future__ import annotations

import secrets
from datetime import datetime

REDEMPTION_CODE_PREFIX = "RDM"
REDEMPTION_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
REDEMPTION_CODE_SUFFIX_LENGTH = 6


def generate_redemption_code(*, now_utc: datetime) -> str:
    suffix = "".join(
        secrets.choice(REDEMPTION_CODE_ALPHABET) for _ in range(REDEMPTION_CODE_SUFFIX_LENGTH)
    )
    return f"{REDEMPTION_CODE_PREFIX}-{now_utc:%y%m%d}-{suffix}"


def normalize_redemption_code(raw_code: str) -> str:
    return raw_code.strip().upper()
