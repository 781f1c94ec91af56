from __future__ import annotations

import secrets

from qr_offers.otp.constants import OTP_LENGTH


def generate_otp_code(length: int = OTP_LENGTH) -> str:
    if length <= 0:
        raise ValueError("length must be positive")
    return f"{secrets.randbelow(10**length):0{length}d}"


def normalize_otp_code(raw_code: str) -> str:
    return "".join(raw_code.split())


def is_well_formed_otp_code(code: str, length: int = OTP_LENGTH) -> bool:
    return len(code) == length and code.isdigit()
