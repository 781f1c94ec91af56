from __future__ import annotations

import hashlib
import hmac
import secrets

VENDOR_ACCESS_TOKEN_BYTES = 32


def hash_secret(*, value: str, pepper: str) -> str:
    digest = hmac.new(
        pepper.encode("utf-8"),
        value.encode("utf-8"),
        hashlib.sha256,
    )
    return digest.hexdigest()


def secrets_match(*, value: str, expected_hash: str, pepper: str) -> bool:
    return secrets.compare_digest(hash_secret(value=value, pepper=pepper), expected_hash)


def generate_vendor_access_token() -> str:
    return secrets.token_urlsafe(VENDOR_ACCESS_TOKEN_BYTES)
