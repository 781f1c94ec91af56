from __future__ import annotations

from datetime import datetime, timezone
from types import SimpleNamespace
from uuid import uuid4

import pytest

from qr_offers.registry import service as registry_service
from qr_offers.registry.errors import TokenAlreadyClaimedError, TokenNotFoundError
from qr_offers.registry.service import TokenRegistry
from qr_offers.registry.types import LayoutVariant

NOW_UTC = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_generate_batch_retries_colliding_token_ids(monkeypatch) -> None:
    inserted_rounds: list[list[str]] = []

    async def _fake_create_batch(session, *, batch):
        batch.id = 7
        return batch

    async def _fake_insert(session, *, token_ids, batch_id, layout_variant, now_utc):
        inserted_rounds.append(list(token_ids))
        assert batch_id == 7
        assert layout_variant == "layout2"
        # First round loses one candidate to an existing row.
        if len(inserted_rounds) == 1:
            return token_ids[1:]
        return token_ids

    monkeypatch.setattr(registry_service.QRTokensRepo, "create_batch", _fake_create_batch)
    monkeypatch.setattr(registry_service.QRTokensRepo, "insert_tokens_if_absent", _fake_insert)

    batch = await TokenRegistry.generate_batch(
        object(),
        count=3,
        layout_variant="layout2",
        created_by="ops",
        max_count=100,
        now_utc=NOW_UTC,
    )

    assert batch.batch_id == 7
    assert batch.layout_variant is LayoutVariant.LAYOUT2
    assert len(batch.token_ids) == 3
    assert [len(round_ids) for round_ids in inserted_rounds] == [3, 1]
    assert inserted_rounds[0][0] not in inserted_rounds[1]


@pytest.mark.asyncio
async def test_validate_reports_claim_state(monkeypatch) -> None:
    vendor_id = uuid4()

    async def _fake_get_by_id(session, token_id):
        assert token_id == "QRABCD2345"
        return SimpleNamespace(id=token_id, claim_status="claimed", claimed_by_vendor_id=vendor_id)

    monkeypatch.setattr(registry_service.QRTokensRepo, "get_by_id", _fake_get_by_id)

    validation = await TokenRegistry.validate(object(), token_id=" qrabcd2345")

    assert validation.valid is True
    assert validation.claimed is True
    assert validation.vendor_id == vendor_id


@pytest.mark.asyncio
async def test_validate_unknown_token_raises_not_found(monkeypatch) -> None:
    async def _fake_get_by_id(session, token_id):
        return None

    monkeypatch.setattr(registry_service.QRTokensRepo, "get_by_id", _fake_get_by_id)

    with pytest.raises(TokenNotFoundError):
        await TokenRegistry.validate(object(), token_id="QRMISSING1")


@pytest.mark.asyncio
async def test_claim_succeeds_when_conditional_update_wins(monkeypatch) -> None:
    vendor_id = uuid4()
    captured: dict[str, object] = {}

    async def _fake_claim(session, *, token_id, vendor_id, now_utc):
        captured.update(token_id=token_id, vendor_id=vendor_id, now_utc=now_utc)
        return True

    monkeypatch.setattr(registry_service.QRTokensRepo, "claim_if_unclaimed", _fake_claim)

    await TokenRegistry.claim(object(), token_id="qrabcd2345", vendor_id=vendor_id, now_utc=NOW_UTC)

    assert captured == {"token_id": "QRABCD2345", "vendor_id": vendor_id, "now_utc": NOW_UTC}


@pytest.mark.asyncio
async def test_claim_of_claimed_token_raises_conflict(monkeypatch) -> None:
    async def _fake_claim(session, *, token_id, vendor_id, now_utc):
        return False

    async def _fake_get_by_id(session, token_id):
        return SimpleNamespace(id=token_id, claim_status="claimed")

    monkeypatch.setattr(registry_service.QRTokensRepo, "claim_if_unclaimed", _fake_claim)
    monkeypatch.setattr(registry_service.QRTokensRepo, "get_by_id", _fake_get_by_id)

    with pytest.raises(TokenAlreadyClaimedError):
        await TokenRegistry.claim(object(), token_id="QRABCD2345", vendor_id=uuid4())


@pytest.mark.asyncio
async def test_claim_of_unknown_token_raises_not_found(monkeypatch) -> None:
    async def _fake_claim(session, *, token_id, vendor_id, now_utc):
        return False

    async def _fake_get_by_id(session, token_id):
        return None

    monkeypatch.setattr(registry_service.QRTokensRepo, "claim_if_unclaimed", _fake_claim)
    monkeypatch.setattr(registry_service.QRTokensRepo, "get_by_id", _fake_get_by_id)

    with pytest.raises(TokenNotFoundError):
        await TokenRegistry.claim(object(), token_id="QRABCD2345", vendor_id=uuid4())
