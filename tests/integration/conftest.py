from __future__ import annotations

import pytest
from sqlalchemy import text

from qr_offers.core.integration_db_safety import assert_safe_integration_db
from qr_offers.db.session import engine

TRUNCATE_TABLES = (
    "otp_attempts",
    "redemptions",
    "otp_sessions",
    "offer_broadcasts",
    "vendor_offer_decisions",
    "customer_opt_ins",
    "offers",
    "vendors",
    "qr_tokens",
    "qr_token_batches",
)

TRUNCATE_SQL = f"TRUNCATE TABLE {', '.join(TRUNCATE_TABLES)} RESTART IDENTITY CASCADE"


@pytest.fixture(scope="session", autouse=True)
def guard_integration_db_target() -> None:
    assert_safe_integration_db(str(engine.url))


@pytest.fixture(autouse=True)
async def cleanup_db() -> None:
    # Dispose pooled connections between tests to avoid cross-event-loop asyncpg reuse.
    await engine.dispose()

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as exc:  # pragma: no cover - environment-dependent
        pytest.skip(f"Postgres is required for integration tests: {exc}")

    async with engine.begin() as conn:
        await conn.execute(text(TRUNCATE_SQL))

    yield

    await engine.dispose()
