from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from typing import TypeVar

from qr_offers.db.session import dispose_engine

T = TypeVar("T")


async def _with_fresh_pool(awaitable: Awaitable[T]) -> T:
    # asyncpg connections are bound to the loop that opened them; every
    # asyncio.run() gets a new loop, so the pool must not outlive it.
    await dispose_engine()
    try:
        return await awaitable
    finally:
        await dispose_engine()


def run_async_job(awaitable: Awaitable[T]) -> T:
    return asyncio.run(_with_fresh_pool(awaitable))
