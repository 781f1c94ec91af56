from __future__ import annotations

from datetime import datetime, timezone
from types import SimpleNamespace
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from qr_offers.api.routes import customers as customer_routes
from qr_offers.api.routes import qr as qr_routes
from qr_offers.api.routes import vendors as vendor_routes
from qr_offers.coordinator import service as coordinator_service
from qr_offers.main import app
from qr_offers.registry.errors import TokenAlreadyClaimedError, TokenNotFoundError
from qr_offers.registry.types import TokenValidation
from qr_offers.vendors.errors import VendorNotFoundError
from qr_offers.vendors.types import VendorRegistration
from tests.helpers import DummySessionLocal

NOW_UTC = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)


def _vendor(**overrides) -> SimpleNamespace:
    values = {
        "id": uuid4(),
        "name": "Chai Point",
        "category": "Cafe",
        "city": "Pune",
        "contact_phone": "+919876543210",
        "contact_email": None,
        "address": None,
        "qr_token_id": "QRABCD2345",
        "created_at": NOW_UTC,
    }
    values.update(overrides)
    return SimpleNamespace(**values)


def test_validate_token_reports_unclaimed(monkeypatch) -> None:
    async def _fake_validate(session, *, token_id):
        return TokenValidation(token_id="QRABCD2345", valid=True, claimed=False)

    monkeypatch.setattr(qr_routes, "SessionLocal", DummySessionLocal())
    monkeypatch.setattr(qr_routes.TokenRegistry, "validate", _fake_validate)

    client = TestClient(app)
    response = client.get("/api/qr/validate/qrabcd2345")

    assert response.status_code == 200
    assert response.json() == {"token_id": "QRABCD2345", "valid": True, "claimed": False, "vendor_id": None}


def test_validate_token_unknown_returns_404(monkeypatch) -> None:
    async def _fake_validate(session, *, token_id):
        raise TokenNotFoundError

    monkeypatch.setattr(qr_routes, "SessionLocal", DummySessionLocal())
    monkeypatch.setattr(qr_routes.TokenRegistry, "validate", _fake_validate)

    client = TestClient(app)
    response = client.get("/api/qr/validate/QRMISSING1")

    assert response.status_code == 404
    assert response.json() == {"detail": {"code": "E_TOKEN_NOT_FOUND"}}


def test_token_image_returns_png(monkeypatch) -> None:
    async def _fake_validate(session, *, token_id):
        return TokenValidation(token_id="QRABCD2345", valid=True, claimed=True, vendor_id=uuid4())

    monkeypatch.setattr(qr_routes, "SessionLocal", DummySessionLocal())
    monkeypatch.setattr(qr_routes.TokenRegistry, "validate", _fake_validate)

    client = TestClient(app)
    response = client.get("/api/qr/QRABCD2345/image")

    assert response.status_code == 200
    assert response.headers["content-type"] == "image/png"
    assert response.content.startswith(b"\x89PNG")


def test_register_vendor_returns_access_token_once(monkeypatch) -> None:
    vendor = _vendor()

    async def _fake_register(session, *, profile):
        assert profile.token_id == "QRABCD2345"
        return VendorRegistration(vendor=vendor, access_token="plain-access-token")

    monkeypatch.setattr(vendor_routes, "SessionLocal", DummySessionLocal())
    monkeypatch.setattr(vendor_routes.Coordinator, "register_vendor", _fake_register)

    client = TestClient(app)
    response = client.post(
        "/api/vendor/register",
        json={
            "token_id": "QRABCD2345",
            "name": "Chai Point",
            "category": "Cafe",
            "city": "Pune",
            "contact_phone": "+919876543210",
        },
    )

    assert response.status_code == 200
    payload = response.json()
    assert payload["access_token"] == "plain-access-token"
    assert payload["vendor"]["id"] == str(vendor.id)
    assert "access_token_hash" not in payload["vendor"]


def test_register_vendor_on_claimed_token_returns_409(monkeypatch) -> None:
    async def _fake_register(session, *, profile):
        raise TokenAlreadyClaimedError

    monkeypatch.setattr(vendor_routes, "SessionLocal", DummySessionLocal())
    monkeypatch.setattr(vendor_routes.Coordinator, "register_vendor", _fake_register)

    client = TestClient(app)
    response = client.post(
        "/api/vendor/register",
        json={
            "token_id": "QRABCD2345",
            "name": "Chai Point",
            "category": "Cafe",
            "city": "Pune",
            "contact_phone": "+919876543210",
        },
    )

    assert response.status_code == 409
    assert response.json() == {"detail": {"code": "E_TOKEN_ALREADY_CLAIMED"}}


def test_get_vendor_unknown_returns_404(monkeypatch) -> None:
    async def _fake_get(session, *, vendor_id):
        raise VendorNotFoundError

    monkeypatch.setattr(vendor_routes, "SessionLocal", DummySessionLocal())
    monkeypatch.setattr(vendor_routes.VendorService, "get", _fake_get)

    client = TestClient(app)
    response = client.get(f"/api/vendor/{uuid4()}")

    assert response.status_code == 404
    assert response.json() == {"detail": {"code": "E_VENDOR_NOT_FOUND"}}


def test_vendor_offers_require_vendor_token(monkeypatch) -> None:
    async def _fake_get_by_id(session, vendor_id):
        return _vendor(id=vendor_id, access_token_hash="0" * 64)

    monkeypatch.setattr(vendor_routes, "SessionLocal", DummySessionLocal())
    monkeypatch.setattr("qr_offers.vendors.service.VendorsRepo.get_by_id", _fake_get_by_id)

    client = TestClient(app)
    missing = client.get(f"/api/vendor/{uuid4()}/offers")
    wrong = client.get(f"/api/vendor/{uuid4()}/offers", headers={"X-Vendor-Token": "guess"})

    assert missing.status_code == 403
    assert wrong.status_code == 403
    assert wrong.json() == {"detail": {"code": "E_FORBIDDEN"}}


def test_vendor_stats_combines_redemptions_and_opt_ins(monkeypatch) -> None:
    vendor_id = uuid4()

    async def _fake_require_vendor(session, request, *, vendor_id):
        return _vendor(id=vendor_id)

    async def _fake_stats(session, *, vendor_id):
        return SimpleNamespace(pending=1, redeemed=3, expired=2, total=6)

    async def _fake_count_opt_ins(session, *, vendor_id):
        return 9

    monkeypatch.setattr(vendor_routes, "SessionLocal", DummySessionLocal())
    monkeypatch.setattr(vendor_routes, "require_vendor", _fake_require_vendor)
    monkeypatch.setattr(vendor_routes.RedemptionLedger, "vendor_stats", _fake_stats)
    monkeypatch.setattr(vendor_routes.OtpIssuer, "count_opt_ins", _fake_count_opt_ins)

    client = TestClient(app)
    response = client.get(f"/api/vendor/{vendor_id}/stats", headers={"X-Vendor-Token": "tok"})

    assert response.status_code == 200
    assert response.json() == {
        "vendor_id": str(vendor_id),
        "redemptions_pending": 1,
        "redemptions_redeemed": 3,
        "redemptions_expired": 2,
        "redemptions_total": 6,
        "opted_in_customers": 9,
    }


def test_customer_opt_in_defaults_to_qr_scan(monkeypatch) -> None:
    vendor_id = uuid4()
    session_id = uuid4()
    captured: dict[str, object] = {}

    async def _fake_opt_in(session, *, phone_number, vendor_id, session_id, source):
        captured.update(source=source, session_id=session_id)
        return SimpleNamespace(vendor_id=vendor_id, source=source.value, opted_in_at=NOW_UTC)

    monkeypatch.setattr(customer_routes, "SessionLocal", DummySessionLocal())
    monkeypatch.setattr(customer_routes.Coordinator, "opt_in", _fake_opt_in)

    client = TestClient(app)
    response = client.post(
        "/api/customer/opt-in",
        json={"phone_number": "+919876543210", "vendor_id": str(vendor_id), "session_id": str(session_id)},
    )

    assert response.status_code == 200
    assert response.json()["source"] == "qr_scan"
    assert captured["session_id"] == session_id
    assert "phone_number" not in response.json()


def test_customer_opt_in_rejects_unknown_source() -> None:
    client = TestClient(app)
    response = client.post(
        "/api/customer/opt-in",
        json={
            "phone_number": "+919876543210",
            "vendor_id": str(uuid4()),
            "session_id": str(uuid4()),
            "source": "billboard",
        },
    )

    assert response.status_code == 422



def test_customer_opt_in_requires_session_id() -> None:
    client = TestClient(app)
    response = client.post(
        "/api/customer/opt-in",
        json={"phone_number": "+919876543210", "vendor_id": str(uuid4())},
    )

    assert response.status_code == 422


def test_customer_opt_in_with_unverified_session_returns_403(monkeypatch) -> None:
    vendor_id = uuid4()
    written: list[object] = []

    async def _fake_vendor_get(session, *, vendor_id):
        return _vendor(id=vendor_id)

    async def _fake_get_session(session, *, session_id):
        return SimpleNamespace(
            id=session_id,
            phone_number="+919876543210",
            vendor_id=vendor_id,
            verify_status="issued",
            expires_at=datetime(2099, 1, 1, tzinfo=timezone.utc),
        )

    async def _unexpected_opt_in(session, **kwargs):
        written.append(kwargs)

    monkeypatch.setattr(customer_routes, "SessionLocal", DummySessionLocal())
    monkeypatch.setattr(coordinator_service.VendorService, "get", _fake_vendor_get)
    monkeypatch.setattr(coordinator_service.OtpIssuer, "get_session", _fake_get_session)
    monkeypatch.setattr(coordinator_service.OtpIssuer, "opt_in", _unexpected_opt_in)

    client = TestClient(app)
    response = client.post(
        "/api/customer/opt-in",
        json={"phone_number": "+919876543210", "vendor_id": str(vendor_id), "session_id": str(uuid4())},
    )

    assert response.status_code == 403
    assert response.json() == {"detail": {"code": "E_OPT_IN_NOT_VERIFIED"}}
    assert written == []


@pytest.mark.parametrize(("app_env", "exposes_code"), [("dev", True), ("production", False)])
def test_join_request_otp_exposes_code_only_in_dev(monkeypatch, app_env, exposes_code) -> None:
    session_id = uuid4()
    captured: dict[str, object] = {}

    async def _fake_request_join(session, *, phone_number, vendor_id, customer_name):
        captured.update(phone_number=phone_number, customer_name=customer_name)
        return SimpleNamespace(
            session=SimpleNamespace(id=session_id, expires_at=NOW_UTC),
            otp_code="123456",
        )

    monkeypatch.setattr(customer_routes, "SessionLocal", DummySessionLocal())
    monkeypatch.setattr(customer_routes, "get_settings", lambda: SimpleNamespace(app_env=app_env))
    monkeypatch.setattr(customer_routes.Coordinator, "request_join_otp", _fake_request_join)

    client = TestClient(app)
    response = client.post(
        "/api/customer/join/request-otp",
        json={"phone_number": "+919876543210", "vendor_id": str(uuid4())},
    )

    assert response.status_code == 200
    assert response.json()["session_id"] == str(session_id)
    assert (response.json()["otp_code"] == "123456") is exposes_code
    assert captured == {"phone_number": "+919876543210", "customer_name": ""}


def test_join_verify_otp_opts_customer_in(monkeypatch) -> None:
    vendor_id = uuid4()

    async def _fake_verify_join(session, *, session_id, otp_code):
        assert otp_code == "123456"
        return SimpleNamespace(vendor_id=vendor_id, source="join", opted_in_at=NOW_UTC)

    monkeypatch.setattr(customer_routes, "SessionLocal", DummySessionLocal())
    monkeypatch.setattr(customer_routes.Coordinator, "verify_join_otp", _fake_verify_join)

    client = TestClient(app)
    response = client.post(
        "/api/customer/join/verify-otp",
        json={"session_id": str(uuid4()), "otp_code": "123456"},
    )

    assert response.status_code == 200
    assert response.json()["vendor_id"] == str(vendor_id)
    assert response.json()["source"] == "join"


def test_vendor_customers_lists_opt_ins_for_admin(monkeypatch) -> None:
    vendor_id = uuid4()
    captured: dict[str, object] = {}

    async def _fake_list(session, *, vendor_id, page, limit):
        captured.update(page=page, limit=limit)
        return [SimpleNamespace(phone_number="+919876543210", source="join", opted_in_at=NOW_UTC)], 21

    monkeypatch.setattr(customer_routes, "SessionLocal", DummySessionLocal())
    monkeypatch.setattr(customer_routes, "assert_admin_access", lambda request: None)
    monkeypatch.setattr(customer_routes.Coordinator, "list_opt_ins", _fake_list)

    client = TestClient(app)
    response = client.get(f"/api/customer/vendor/{vendor_id}/customers?page=2&limit=20")

    assert response.status_code == 200
    payload = response.json()
    assert captured == {"page": 2, "limit": 20}
    assert payload["total"] == 21
    assert payload["page"] == 2
    assert payload["items"] == [
        {"phone_number": "+919876543210", "source": "join", "opted_in_at": "2026-05-01T12:00:00Z"}
    ]


def test_vendor_customers_rejects_non_admin() -> None:
    client = TestClient(app)
    response = client.get(f"/api/customer/vendor/{uuid4()}/customers")

    assert response.status_code == 403


def test_storefront_is_public_while_decision_listing_needs_token(monkeypatch) -> None:
    vendor = _vendor(address="FC Road")
    offer = SimpleNamespace(
        id=uuid4(),
        title="Free samosa",
        description="With any chai",
        category="Food",
        expiry_date=datetime(2026, 6, 1, tzinfo=timezone.utc),
    )

    async def _fake_get(session, *, vendor_id):
        return vendor

    async def _fake_storefront(session, *, vendor_id):
        assert vendor_id == vendor.id
        return [offer]

    async def _fake_get_by_id(session, vendor_id):
        return _vendor(id=vendor_id, access_token_hash="0" * 64)

    monkeypatch.setattr(vendor_routes, "SessionLocal", DummySessionLocal())
    monkeypatch.setattr(vendor_routes.VendorService, "get", _fake_get)
    monkeypatch.setattr(vendor_routes.OfferDistribution, "list_storefront_offers", _fake_storefront)
    monkeypatch.setattr("qr_offers.vendors.service.VendorsRepo.get_by_id", _fake_get_by_id)

    client = TestClient(app)
    storefront = client.get(f"/api/vendor/{vendor.id}/storefront")
    offers = client.get(f"/api/vendor/{vendor.id}/offers")

    assert storefront.status_code == 200
    payload = storefront.json()
    assert payload["name"] == "Chai Point"
    assert payload["address"] == "FC Road"
    assert "contact_phone" not in payload
    assert [item["offer_id"] for item in payload["offers"]] == [str(offer.id)]
    assert offers.status_code == 403


def test_storefront_unknown_vendor_returns_404(monkeypatch) -> None:
    async def _fake_get(session, *, vendor_id):
        raise VendorNotFoundError

    monkeypatch.setattr(vendor_routes, "SessionLocal", DummySessionLocal())
    monkeypatch.setattr(vendor_routes.VendorService, "get", _fake_get)

    client = TestClient(app)
    response = client.get(f"/api/vendor/{uuid4()}/storefront")

    assert response.status_code == 404
    assert response.json() == {"detail": {"code": "E_VENDOR_NOT_FOUND"}}
