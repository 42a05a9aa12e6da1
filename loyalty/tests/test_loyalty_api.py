import pytest
from cart.tests.factories import UserFactory
from loyalty.services import adjust
from rest_framework.test import APIClient

pytestmark = pytest.mark.django_db


def _authed(user):
    client = APIClient()
    client.force_authenticate(user=user)
    return client


def test_wallet_for_new_customer_reads_as_zero():
    resp = _authed(UserFactory()).get("/api/v1/loyalty/")
    assert resp.status_code == 200
    assert resp.json()["balance"] == 0
    assert resp.json()["tier"] == "Bronze"
    assert resp.json()["next_tier"] == "Silver"


def test_wallet_snapshot_and_history():
    user = UserFactory()
    adjust(customer=user, delta=1500)
    adjust(customer=user, delta=-300)
    client = _authed(user)

    wallet = client.get("/api/v1/loyalty/").json()
    assert wallet["balance"] == 1200
    assert wallet["tier"] == "Silver"
    assert (wallet["lifetime_earned"], wallet["lifetime_redeemed"]) == (1500, 300)

    history = client.get("/api/v1/loyalty/transactions/").json()
    assert history["count"] == 2
    assert [row["points"] for row in history["results"]] == [-300, 1500]


def test_wallet_requires_authentication():
    assert APIClient().get("/api/v1/loyalty/").status_code in (401, 403)


def test_staff_adjustment():
    staff = UserFactory(is_staff=True)
    customer = UserFactory()

    resp = _authed(staff).post(
        "/api/v1/loyalty/adjust/", {"user_id": customer.id, "points": 250, "note": "Late delivery"}, format="json"
    )

    assert resp.status_code == 200
    assert resp.json()["balance"] == 250
    row = customer.loyalty_transactions.get()
    assert row.source == f"staff:{staff.pk}"
    assert row.note == "Late delivery"


def test_staff_debit_below_zero_is_409():
    staff = UserFactory(is_staff=True)
    customer = UserFactory()
    resp = _authed(staff).post("/api/v1/loyalty/adjust/", {"user_id": customer.id, "points": -10}, format="json")
    assert resp.status_code == 409
    assert resp.json()["code"] == "insufficient_balance"


def test_non_staff_cannot_adjust():
    user = UserFactory()
    resp = _authed(user).post("/api/v1/loyalty/adjust/", {"user_id": user.id, "points": 100}, format="json")
    assert resp.status_code == 403


def test_zero_point_adjustment_is_invalid():
    staff = UserFactory(is_staff=True)
    resp = _authed(staff).post("/api/v1/loyalty/adjust/", {"user_id": staff.id, "points": 0}, format="json")
    assert resp.status_code == 400
