from __future__ import annotations

import asyncio
import re

import asyncpg
from sqlalchemy.engine import make_url

from qr_offers.core.config import get_settings
from qr_offers.core.integration_db_safety import assert_safe_integration_db

IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def resolve_test_database(database_url: str) -> tuple[str, dict[str, object]]:
    """Return the database name and the maintenance-db connect kwargs."""
    assert_safe_integration_db(database_url)

    parsed = make_url(database_url)
    db_name = (parsed.database or "").strip()
    if IDENTIFIER_RE.fullmatch(db_name) is None:
        raise RuntimeError(f"Unsupported database name '{db_name}'.")
    if parsed.username is None:
        raise RuntimeError("DATABASE_URL username is required.")

    return db_name, {
        "host": parsed.host or "localhost",
        "port": int(parsed.port or 5432),
        "user": parsed.username,
        "password": parsed.password,
        "database": "postgres",
    }


async def _ensure_database_exists(database_url: str) -> bool:
    db_name, connect_kwargs = resolve_test_database(database_url)
    conn = await asyncpg.connect(**connect_kwargs)
    try:
        if await conn.fetchval("SELECT 1 FROM pg_database WHERE datname = $1", db_name):
            return False
        await conn.execute(f'CREATE DATABASE "{db_name}"')
        return True
    finally:
        await conn.close()


def main() -> int:
    database_url = get_settings().database_url
    created = asyncio.run(_ensure_database_exists(database_url))
    state = "created" if created else "exists"
    print(f"ensure_test_db: {state} db={make_url(database_url).database}")  # noqa: T201
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
