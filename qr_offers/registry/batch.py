from __future__ import annotations

import secrets

from qr_offers.registry.constants import TOKEN_ALPHABET, TOKEN_PREFIX, TOKEN_RANDOM_LENGTH
from qr_offers.registry.errors import TokenBatchValidationError
from qr_offers.registry.types import LayoutVariant


def generate_token_ids(
    *,
    count: int,
    random_length: int = TOKEN_RANDOM_LENGTH,
    prefix: str = TOKEN_PREFIX,
    exclude: set[str] | None = None,
) -> list[str]:
    if count <= 0:
        raise ValueError("count must be positive")
    if random_length <= 0:
        raise ValueError("random_length must be positive")

    seen = set(exclude) if exclude is not None else set()
    generated: list[str] = []
    attempts = 0
    max_attempts = max(100, count * 50)

    while len(generated) < count:
        attempts += 1
        if attempts > max_attempts:
            raise RuntimeError("unable to generate unique qr tokens")

        token_id = prefix + "".join(secrets.choice(TOKEN_ALPHABET) for _ in range(random_length))
        if token_id in seen:
            continue

        seen.add(token_id)
        generated.append(token_id)

    return generated


def normalize_token_id(raw_token: str) -> str:
    return raw_token.strip().upper()


def validate_batch_request(*, count: int, layout_variant: str, max_count: int) -> LayoutVariant:
    if not 1 <= count <= max_count:
        raise TokenBatchValidationError(f"count must be within 1..{max_count}")
    try:
        return LayoutVariant(layout_variant.strip().lower())
    except ValueError as exc:
        raise TokenBatchValidationError(f"unknown layout variant: {layout_variant}") from exc
