import hashlib
import hmac
import json
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from main import app
from marketplace.core.dependencies import get_payment_gateway
from marketplace.core.exceptions import PaymentGatewayError
from marketplace.core.security import jwt_manager
from marketplace.models import CourseEnrollment, PromoCode, Transaction, TutorEarning
from marketplace.models.transaction import TX_COMPLETED, TX_FAILED

SECRET = "sk_test_secret"


@pytest.fixture
def client(db, gateway):
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def courses(make_course, tutor_a, tutor_b):
    return [make_course(tutor_a, 10000), make_course(tutor_b, 15000)]


def auth(user):
    return {"Authorization": f"Bearer {jwt_manager.create_access_token(user)}"}


def signed(payload):
    body = json.dumps(payload).encode()
    signature = hmac.new(SECRET.encode(), body, hashlib.sha512).hexdigest()
    return body, {"x-paystack-signature": signature, "Content-Type": "application/json"}


def checkout(client, buyer, courses):
    response = client.post(
        "/checkout/", json={"course_ids": [c.id for c in courses]}, headers=auth(buyer)
    )
    assert response.status_code == 200, response.text
    return response.json()


class TestCheckout:
    def test_creates_pending_transaction_and_starts_payment(
        self, client, db, gateway, buyer, courses
    ):
        body = checkout(client, buyer, courses)

        assert body["reference"].startswith("ps_")
        assert body["authorization_url"].endswith(body["reference"])
        assert Decimal(body["totals"]["total_amount"]) == Decimal("26875")
        assert gateway.initialize_calls[0]["amount_kobo"] == 26875
        assert gateway.initialize_calls[0]["metadata"]["courseIds"] == [c.id for c in courses]

        tx = db.query(Transaction).filter_by(reference=body["reference"]).one()
        assert tx.status == "PENDING"
        assert tx.course_ids == [c.id for c in courses]
        assert len(tx.line_items) == 2
        assert tx.vat_amount == Decimal("1875")

    def test_requires_authentication(self, client, courses):
        response = client.post("/checkout/", json={"course_ids": [courses[0].id]})
        assert response.status_code == 401

    def test_rejects_owned_course(self, client, db, buyer, courses):
        db.add(CourseEnrollment(user_id=buyer.id, course_id=courses[0].id))
        db.commit()

        response = client.post(
            "/checkout/", json={"course_ids": [courses[0].id]}, headers=auth(buyer)
        )

        assert response.status_code == 409
        assert response.json()["reason"] == "already_enrolled"

    def test_unknown_course(self, client, buyer):
        response = client.post("/checkout/", json={"course_ids": [404]}, headers=auth(buyer))

        assert response.status_code == 404
        assert response.json()["reason"] == "course_not_found"

    def test_gateway_failure_fails_transaction(self, client, db, gateway, buyer, courses):
        gateway.initialize_error = PaymentGatewayError("Paystack error: HTTP 503")

        response = client.post(
            "/checkout/", json={"course_ids": [courses[0].id]}, headers=auth(buyer)
        )

        assert response.status_code == 502
        assert response.json()["reason"] == "gateway_error"
        assert db.query(Transaction).one().status == TX_FAILED

    def test_group_checkout(self, client, db, buyer, make_course, tutor_a):
        course = make_course(tutor_a, 20000, group_buying_enabled=True)
        payload = {"course_id": course.id, "member_limit": 4, "group_price": "60000"}

        response = client.post("/checkout/group", json=payload, headers=auth(buyer))

        assert response.status_code == 200, response.text
        body = response.json()
        assert body["invite_code"].startswith("GRP-")
        assert len(body["invite_code"]) == 12
        tx = db.query(Transaction).filter_by(reference=body["reference"]).one()
        assert tx.group_purchase_id == body["group_purchase_id"]

        again = client.post("/checkout/group", json=payload, headers=auth(buyer))
        assert again.status_code == 409
        assert again.json()["reason"] == "group_exists"

    def test_group_checkout_needs_group_buying(self, client, buyer, courses):
        payload = {"course_id": courses[0].id, "member_limit": 4, "group_price": "60000"}

        response = client.post("/checkout/group", json=payload, headers=auth(buyer))

        assert response.status_code == 400
        assert response.json()["reason"] == "group_not_enabled"


class TestPromoQuote:
    def test_quote_with_valid_code(self, client, db, buyer, courses):
        db.add(
            PromoCode(
                code="SAVE10",
                promo_type="PLATFORM",
                discount_type="PERCENTAGE",
                discount_value=Decimal("10"),
                is_global=True,
            )
        )
        db.commit()

        response = client.post(
            "/promos/validate",
            json={"code": "save10", "course_ids": [c.id for c in courses]},
            headers=auth(buyer),
        )

        assert response.status_code == 200, response.text
        body = response.json()
        assert body["ok"] is True
        assert body["promo"]["code"] == "SAVE10"
        assert Decimal(body["totals"]["vat_amount"]) == Decimal("1688")
        assert Decimal(body["totals"]["total_amount"]) == Decimal("24188")

    def test_quote_with_unknown_code(self, client, buyer, courses):
        response = client.post(
            "/promos/validate",
            json={"code": "NOPE", "course_ids": [courses[0].id]},
            headers=auth(buyer),
        )

        assert response.status_code == 400
        assert response.json() == {
            "ok": False,
            "reason": "inactive",
            "detail": "Promo code is not active",
        }


class TestFinalize:
    def test_missing_reference(self, client):
        response = client.post("/payments/paystack/finalize")

        assert response.status_code == 400
        assert response.json() == {"ok": False, "reason": "missing_reference"}

    def test_finalize_from_body_then_query(self, client, db, buyer, courses):
        reference = checkout(client, buyer, courses)["reference"]

        first = client.post("/payments/paystack/finalize", json={"reference": reference})
        second = client.post(f"/payments/paystack/finalize?reference={reference}")

        assert first.status_code == 200
        assert first.json() == {
            "ok": True,
            "reason": "none",
            "courseId": courses[0].id,
            "groupPurchaseId": None,
            "alreadyDone": False,
        }
        assert second.json()["alreadyDone"] is True
        assert db.query(TutorEarning).count() == 2

    def test_unknown_reference(self, client):
        response = client.post("/payments/paystack/finalize", json={"reference": "ps_nope"})

        assert response.status_code == 200
        assert response.json()["reason"] == "tx_not_found"

    def test_buyer_sees_notification(self, client, buyer, courses):
        reference = checkout(client, buyer, courses)["reference"]
        client.post("/payments/paystack/finalize", json={"reference": reference})

        response = client.get("/notifications/me", headers=auth(buyer))

        assert response.status_code == 200
        assert "Payment Successful" in [n["title"] for n in response.json()]


class TestWebhook:
    def test_charge_success_settles(self, client, db, gateway, buyer, courses):
        reference = checkout(client, buyer, courses)["reference"]
        body, headers = signed({"event": "charge.success", "data": {"reference": reference}})

        response = client.post("/payments/paystack/webhook", content=body, headers=headers)

        assert response.status_code == 200
        assert response.json() == {"ok": True}
        db.expire_all()
        assert db.query(Transaction).filter_by(reference=reference).one().status == TX_COMPLETED

    def test_bad_signature_rejected(self, client, gateway, buyer, courses):
        reference = checkout(client, buyer, courses)["reference"]
        body, _ = signed({"event": "charge.success", "data": {"reference": reference}})

        response = client.post(
            "/payments/paystack/webhook",
            content=body,
            headers={"x-paystack-signature": "0" * 128},
        )

        assert response.status_code == 401
        assert gateway.verify_calls == []

    def test_other_events_acknowledged(self, client, gateway):
        body, headers = signed({"event": "transfer.success", "data": {"reference": "tr_1"}})

        response = client.post("/payments/paystack/webhook", content=body, headers=headers)

        assert response.json() == {"ok": True}
        assert gateway.verify_calls == []


class TestWallet:
    def test_tutor_summary_after_sale(self, client, buyer, tutor_a, courses):
        reference = checkout(client, buyer, courses)["reference"]
        client.post("/payments/paystack/finalize", json={"reference": reference})

        response = client.get("/wallet/summary", headers=auth(tutor_a))

        assert response.status_code == 200
        body = response.json()
        assert Decimal(body["available_balance"]) == Decimal("2500")
        assert Decimal(body["total_earnings"]) == Decimal("2500")
        assert body["earnings_count"] == 1

    def test_buyers_have_no_wallet(self, client, buyer):
        response = client.get("/wallet/summary", headers=auth(buyer))
        assert response.status_code == 403


def test_duplicate_reference_is_a_conflict(client, db, buyer, courses, monkeypatch):
    from marketplace.services import checkout as checkout_module

    monkeypatch.setattr(checkout_module, "new_reference", lambda: "ps_fixed")
    first = client.post("/checkout/", json={"course_ids": [courses[0].id]}, headers=auth(buyer))
    second = client.post("/checkout/", json={"course_ids": [courses[1].id]}, headers=auth(buyer))

    assert first.status_code == 200
    assert second.status_code == 409
    assert second.json()["reason"] == "conflict"
    assert db.query(Transaction).count() == 1
