from __future__ import annotations

from typing import Any


class DummyNestedTransaction:
    async def __aenter__(self) -> None:
        return None

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        return False


class DummySession:
    def __init__(self) -> None:
        self.refreshed: list[Any] = []
        self.flush_count = 0
        self.nested_count = 0

    def begin_nested(self) -> DummyNestedTransaction:
        self.nested_count += 1
        return DummyNestedTransaction()

    async def refresh(self, instance: Any) -> None:
        self.refreshed.append(instance)

    async def flush(self) -> None:
        self.flush_count += 1


class DummySessionBegin:
    def __init__(self, session: DummySession) -> None:
        self._session = session

    async def __aenter__(self) -> DummySession:
        return self._session

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        return False


class DummySessionLocal:
    def __init__(self) -> None:
        self.sessions: list[DummySession] = []

    def begin(self) -> DummySessionBegin:
        session = DummySession()
        self.sessions.append(session)
        return DummySessionBegin(session)
