"""Tests for subscriptions, the payment webhook and the balance."""

from datetime import UTC, datetime
from decimal import Decimal

import pytest
from httpx import AsyncClient
from sqlalchemy import insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.main import app
from app.models.balance import balance_movements
from app.models.organizations import organizations
from app.services.billing_service import from_timestamp, human_date
from app.services.stripe_gateway import get_stripe_gateway

TRIAL_END = 1793620800  # 2026-11-02 12:00 UTC
PERIOD_END = 1796299200  # 2026-12-03 12:00 UTC


class FakeGateway:
    """In-memory stand-in for the payment provider."""

    def __init__(self):
        self.calls: list[str] = []
        self.events: dict[str, dict] = {}
        self.subscription = {
            "id": "sub_123",
            "status": "trialing",
            "trial_start": 1792411200,
            "trial_end": TRIAL_END,
            "cancel_at_period_end": False,
            "metadata": {"plan": "avanzado"},
            "items": {
                "data": [
                    {
                        "current_period_start": 1792411200,
                        "current_period_end": PERIOD_END,
                        "price": {
                            "nickname": "Avanzado",
                            "unit_amount": 4900,
                            "currency": "eur",
                            "recurring": {"interval": "month"},
                        },
                    }
                ]
            },
            "default_payment_method": {
                "id": "pm_1",
                "type": "card",
                "card": {"brand": "visa", "last4": "4242", "exp_month": 12, "exp_year": 2030},
            },
            "pending_setup_intent": {"client_secret": "seti_secret"},
        }

    async def create_customer(self, email, name, metadata):
        self.calls.append("create_customer")
        return {"id": "cus_123"}

    async def retrieve_customer(self, customer_id):
        return {"id": customer_id}

    async def create_subscription(self, customer_id, price_id, trial_days, metadata):
        self.calls.append(f"create_subscription:{customer_id}:{price_id}:{trial_days}")
        return self.subscription

    async def retrieve_subscription(self, subscription_id):
        return self.subscription

    async def schedule_cancellation(self, subscription_id):
        self.calls.append("schedule_cancellation")
        self.subscription = {**self.subscription, "cancel_at_period_end": True}
        return self.subscription

    async def attach_payment_method(self, payment_method_id, customer_id):
        return {
            "id": payment_method_id,
            "type": "card",
            "card": {"brand": "mastercard", "last4": "4444", "exp_month": 1, "exp_year": 2029},
        }

    async def set_customer_default_payment_method(self, customer_id, payment_method_id):
        self.calls.append("set_customer_default")
        return {}

    async def set_subscription_default_payment_method(self, subscription_id, payment_method_id):
        self.calls.append("set_subscription_default")
        return {}

    def construct_event(self, payload: bytes, signature: str) -> dict:
        return self.events[signature]


@pytest.fixture
def gateway(client: AsyncClient, monkeypatch: pytest.MonkeyPatch) -> FakeGateway:
    fake = FakeGateway()
    monkeypatch.setattr(settings, "stripe_price_avanzado_monthly", "price_avanzado")
    app.dependency_overrides[get_stripe_gateway] = lambda: fake
    return fake


def _checkout_event(session_id: str, organization_id: int, base_amount: str) -> dict:
    return {
        "type": "checkout.session.completed",
        "data": {
            "object": {
                "id": session_id,
                "payment_intent": "pi_1",
                "metadata": {"orgId": str(organization_id), "baseAmount": base_amount},
            }
        },
    }


def test_timestamps():
    assert from_timestamp(0) is None
    assert from_timestamp(None) is None
    assert human_date(from_timestamp(TRIAL_END)) == "02/11/2026 12:00"


@pytest.mark.asyncio
async def test_create_subscription_creates_customer_once(
    client: AsyncClient, auth_headers: dict, gateway: FakeGateway, db_session: AsyncSession
) -> None:
    response = await client.post(
        "/api/v1/billing/subscription", json={"plan": "avanzado"}, headers=auth_headers
    )

    assert response.status_code == 201
    assert response.json()["client_secret"] == "seti_secret"
    assert response.json()["status"] == "trialing"
    assert gateway.calls == ["create_customer", "create_subscription:cus_123:price_avanzado:7"]

    row = (await db_session.execute(select(organizations))).mappings().one()
    assert row["stripe_customer_id"] == "cus_123"
    assert row["stripe_subscription_id"] == "sub_123"
    assert row["subscription_plan"] == "avanzado"
    assert row["subscription_interval"] == "month"


@pytest.mark.asyncio
async def test_unconfigured_plan_is_rejected(
    client: AsyncClient, auth_headers: dict, gateway: FakeGateway
) -> None:
    response = await client.post(
        "/api/v1/billing/subscription", json={"plan": "premium"}, headers=auth_headers
    )
    assert response.status_code == 400
    assert gateway.calls == []


@pytest.mark.asyncio
async def test_subscription_details(
    client: AsyncClient, auth_headers: dict, gateway: FakeGateway
) -> None:
    empty = await client.get("/api/v1/billing/subscription", headers=auth_headers)
    assert empty.json() == {"subscription": None}

    await client.post(
        "/api/v1/billing/subscription", json={"plan": "avanzado"}, headers=auth_headers
    )
    response = await client.get("/api/v1/billing/subscription", headers=auth_headers)

    details = response.json()["subscription"]
    assert details["plan"] == "Avanzado"
    assert Decimal(details["amount"]) == Decimal("49")
    assert details["trial_end"] == "02/11/2026 12:00"
    assert details["current_period_end"] == "03/12/2026 12:00"
    assert details["access_until"] == "02/11/2026 12:00"
    assert details["payment_method"]["last4"] == "4242"


@pytest.mark.asyncio
async def test_cancel_subscription_once(
    client: AsyncClient, auth_headers: dict, gateway: FakeGateway
) -> None:
    await client.post(
        "/api/v1/billing/subscription", json={"plan": "avanzado"}, headers=auth_headers
    )

    first = await client.post("/api/v1/billing/subscription/cancel", headers=auth_headers)
    second = await client.post("/api/v1/billing/subscription/cancel", headers=auth_headers)

    assert first.status_code == 200
    assert first.json()["cancel_at_period_end"] is True
    assert second.status_code == 400


@pytest.mark.asyncio
async def test_update_payment_method(
    client: AsyncClient, auth_headers: dict, gateway: FakeGateway
) -> None:
    missing = await client.post(
        "/api/v1/billing/payment-method",
        json={"payment_method_id": "pm_new"},
        headers=auth_headers,
    )
    assert missing.status_code == 404

    await client.post(
        "/api/v1/billing/subscription", json={"plan": "avanzado"}, headers=auth_headers
    )
    response = await client.post(
        "/api/v1/billing/payment-method",
        json={"payment_method_id": "pm_new"},
        headers=auth_headers,
    )

    assert response.status_code == 200
    assert response.json()["brand"] == "mastercard"
    assert gateway.calls[-2:] == ["set_customer_default", "set_subscription_default"]


@pytest.mark.asyncio
async def test_billing_changes_require_admin(
    client: AsyncClient, professional_headers: dict, gateway: FakeGateway
) -> None:
    response = await client.post(
        "/api/v1/billing/subscription", json={"plan": "avanzado"}, headers=professional_headers
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_webhook_requires_signature(client: AsyncClient, gateway: FakeGateway) -> None:
    response = await client.post("/api/v1/billing/webhook", content=b"{}")
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_top_up_is_recorded_once(
    client: AsyncClient, auth_headers: dict, gateway: FakeGateway, organization: dict
) -> None:
    """Redelivered checkout events do not duplicate the movement."""
    gateway.events["sig"] = _checkout_event("cs_1", organization["id"], "50.00")
    headers = {"Stripe-Signature": "sig"}

    first = await client.post("/api/v1/billing/webhook", content=b"{}", headers=headers)
    again = await client.post("/api/v1/billing/webhook", content=b"{}", headers=headers)

    assert first.json() == {"received": True, "result": "recorded"}
    assert again.json() == {"received": True, "result": "duplicate"}

    balance = await client.get("/api/v1/billing/balance", headers=auth_headers)
    data = balance.json()
    assert Decimal(data["balance"]) == Decimal("50.00")
    assert len(data["movements"]) == 1
    assert data["movements"][0]["reference_data"]["amount_with_vat"] == "60.50"


@pytest.mark.asyncio
async def test_top_up_with_bad_metadata(
    client: AsyncClient, gateway: FakeGateway, organization: dict
) -> None:
    gateway.events["sig"] = _checkout_event("cs_2", organization["id"], "not-a-number")

    response = await client.post(
        "/api/v1/billing/webhook", content=b"{}", headers={"Stripe-Signature": "sig"}
    )

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_top_up_for_unknown_organization_is_not_a_duplicate(
    client: AsyncClient, gateway: FakeGateway, organization: dict, db_session: AsyncSession
) -> None:
    gateway.events["sig"] = _checkout_event("cs_3", organization["id"] + 999, "20.00")

    response = await client.post(
        "/api/v1/billing/webhook", content=b"{}", headers={"Stripe-Signature": "sig"}
    )

    assert response.status_code == 404
    stored = await db_session.execute(
        select(balance_movements).where(balance_movements.c.reference_id == "cs_3")
    )
    assert stored.first() is None


@pytest.mark.asyncio
async def test_subscription_events_update_organization(
    client: AsyncClient, gateway: FakeGateway, organization: dict, db_session: AsyncSession
) -> None:
    await db_session.execute(
        update(organizations)
        .where(organizations.c.id == organization["id"])
        .values(stripe_subscription_id="sub_123")
    )
    await db_session.commit()
    gateway.events["updated"] = {
        "type": "customer.subscription.updated",
        "data": {"object": {**gateway.subscription, "status": "active", "trial_end": None}},
    }
    gateway.events["deleted"] = {
        "type": "customer.subscription.deleted",
        "data": {"object": gateway.subscription},
    }
    gateway.events["other"] = {"type": "invoice.created", "data": {"object": {}}}

    updated = await client.post(
        "/api/v1/billing/webhook", content=b"{}", headers={"Stripe-Signature": "updated"}
    )
    row = (await db_session.execute(select(organizations))).mappings().one()
    assert updated.json()["result"] == "updated"
    assert row["subscription_status"] == "active"
    assert row["subscription_expires"].replace(tzinfo=UTC) == datetime(
        2026, 12, 3, 12, 0, tzinfo=UTC
    )

    deleted = await client.post(
        "/api/v1/billing/webhook", content=b"{}", headers={"Stripe-Signature": "deleted"}
    )
    row = (await db_session.execute(select(organizations))).mappings().one()
    assert deleted.json()["result"] == "updated"
    assert row["subscription_status"] == "canceled"

    other = await client.post(
        "/api/v1/billing/webhook", content=b"{}", headers={"Stripe-Signature": "other"}
    )
    assert other.json()["result"] == "ignored"


@pytest.mark.asyncio
async def test_balance_sums_incomes_minus_expenses(
    client: AsyncClient,
    auth_headers: dict,
    gateway: FakeGateway,
    organization: dict,
    db_session: AsyncSession,
) -> None:
    movement = {"organization_id": organization["id"]}
    await db_session.execute(
        insert(balance_movements),
        [
            {**movement, "type": "ingreso", "concept": "recarga", "amount": Decimal("100")},
            {**movement, "type": "gasto", "concept": "whatsapp", "amount": Decimal("12.50")},
        ],
    )
    await db_session.commit()

    response = await client.get("/api/v1/billing/balance", headers=auth_headers)

    assert response.status_code == 200
    assert Decimal(response.json()["balance"]) == Decimal("87.50")
    assert len(response.json()["movements"]) == 2
