from __future__ import annotations

from datetime import datetime, timezone
from types import SimpleNamespace

import httpx
import pytest

from qr_offers.services import notifier


def _settings(*, url: str = "https://gateway.test/messages", token: str = "gw-token") -> SimpleNamespace:
    return SimpleNamespace(
        whatsapp_api_url=url,
        whatsapp_api_token=token,
        notifier_timeout_seconds=1.0,
        notifier_max_concurrency=2,
    )


def _message(phone_number: str) -> notifier.OfferMessage:
    return notifier.OfferMessage(
        phone_number=phone_number,
        vendor_name="Chai Point",
        offer_title="Free samosa",
        offer_description="With every large chai",
        expiry_date=datetime(2026, 12, 31, tzinfo=timezone.utc),
    )


def _patch_transport(monkeypatch, handler) -> None:
    real_client = httpx.AsyncClient

    def _client_factory(**kwargs):
        return real_client(transport=httpx.MockTransport(handler), **kwargs)

    monkeypatch.setattr(notifier.httpx, "AsyncClient", _client_factory)


def test_build_message_text_includes_vendor_offer_and_expiry() -> None:
    text = notifier.build_message_text(_message("+919876543210"))

    assert text.startswith("Chai Point: Free samosa")
    assert "With every large chai" in text
    assert "31 Dec 2026" in text


@pytest.mark.asyncio
async def test_deliver_offer_messages_counts_sent_and_failed(monkeypatch) -> None:
    seen_auth: list[str | None] = []

    def _handler(request: httpx.Request) -> httpx.Response:
        seen_auth.append(request.headers.get("Authorization"))
        if b"+910000000002" in request.content:
            return httpx.Response(500)
        return httpx.Response(200, json={"ok": True})

    monkeypatch.setattr(notifier, "get_settings", lambda: _settings())
    _patch_transport(monkeypatch, _handler)

    report = await notifier.deliver_offer_messages(
        [_message("+910000000001"), _message("+910000000002"), _message("+910000000003")]
    )

    assert report.target_count == 3
    assert report.sent_count == 2
    assert report.failed_count == 1
    assert seen_auth == ["Bearer gw-token"] * 3


@pytest.mark.asyncio
async def test_deliver_offer_messages_counts_transport_errors_as_failed(monkeypatch) -> None:
    def _handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("gateway unreachable", request=request)

    monkeypatch.setattr(notifier, "get_settings", lambda: _settings())
    _patch_transport(monkeypatch, _handler)

    report = await notifier.deliver_offer_messages([_message("+910000000001")])

    assert report.sent_count == 0
    assert report.failed_count == 1


@pytest.mark.asyncio
async def test_deliver_offer_messages_without_channel_marks_all_failed(monkeypatch) -> None:
    monkeypatch.setattr(notifier, "get_settings", lambda: _settings(url=""))

    report = await notifier.deliver_offer_messages([_message("+910000000001"), _message("+910000000002")])

    assert (report.target_count, report.sent_count, report.failed_count) == (2, 0, 2)


@pytest.mark.asyncio
async def test_deliver_offer_messages_with_no_recipients_is_noop(monkeypatch) -> None:
    def _unexpected_settings():
        raise AssertionError("settings must not be read for an empty fan-out")

    monkeypatch.setattr(notifier, "get_settings", _unexpected_settings)

    report = await notifier.deliver_offer_messages([])

    assert (report.target_count, report.sent_count) == (0, 0)
