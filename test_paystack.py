import hashlib
import hmac
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
import requests

from marketplace.core.exceptions import PaymentGatewayError
from marketplace.utils.paystack import PaystackClient, verify_webhook_signature


def gateway_response(body, status_code=200):
    response = MagicMock()
    response.status_code = status_code
    response.ok = 200 <= status_code < 300
    response.json.return_value = body
    return response


@pytest.fixture
def session():
    return MagicMock(spec=requests.Session)


@pytest.fixture
def client(session):
    return PaystackClient(
        secret_key="sk_test_secret",
        base_url="https://api.paystack.test/",
        timeout=5,
        session=session,
    )


def test_verify_maps_gateway_fields(client, session):
    session.request.return_value = gateway_response(
        {
            "status": True,
            "message": "Verification successful",
            "data": {
                "status": "success",
                "reference": "ps_abc",
                "amount": 26875,
                "currency": "NGN",
                "paid_at": "2026-10-18T09:30:00.000Z",
                "channel": "card",
                "metadata": {"courseIds": [1, 2]},
            },
        }
    )

    verification = client.verify("ps_abc")

    session.request.assert_called_once()
    method, url = session.request.call_args.args
    assert method == "GET"
    assert url == "https://api.paystack.test/transaction/verify/ps_abc"
    headers = session.request.call_args.kwargs["headers"]
    assert headers["Authorization"] == "Bearer sk_test_secret"

    assert verification.is_success
    assert verification.amount == Decimal("26875")
    assert verification.paid_at.year == 2026
    assert verification.metadata == {"courseIds": [1, 2]}
    assert verification.raw["channel"] == "card"


def test_verify_tolerates_missing_metadata(client, session):
    session.request.return_value = gateway_response(
        {"status": True, "data": {"status": "abandoned", "reference": "ps_abc", "metadata": ""}}
    )

    verification = client.verify("ps_abc")

    assert verification.status == "abandoned"
    assert not verification.is_success
    assert not verification.is_pending
    assert verification.metadata == {}


def test_rejected_request_raises_gateway_error(client, session):
    session.request.return_value = gateway_response(
        {"status": False, "message": "Transaction reference not found"}, status_code=400
    )

    with pytest.raises(PaymentGatewayError) as exc_info:
        client.verify("ps_missing")

    assert exc_info.value.status_code == 400
    assert "reference not found" in exc_info.value.message


def test_network_error_raises_gateway_error(client, session):
    session.request.side_effect = requests.ConnectionError("connection reset")

    with pytest.raises(PaymentGatewayError):
        client.verify("ps_abc")


def test_initialize_sends_minor_units(client, session):
    session.request.return_value = gateway_response(
        {
            "status": True,
            "data": {
                "authorization_url": "https://checkout.paystack.com/xyz",
                "access_code": "xyz",
                "reference": "ps_abc",
            },
        }
    )

    init = client.initialize(
        email="ada@example.com",
        amount_kobo=26875,
        reference="ps_abc",
        callback_url="https://shop.test/verify",
        metadata={"courseIds": [1]},
    )

    method, url = session.request.call_args.args
    assert (method, url) == ("POST", "https://api.paystack.test/transaction/initialize")
    body = session.request.call_args.kwargs["json"]
    assert body["amount"] == 26875
    assert body["callback_url"] == "https://shop.test/verify"
    assert init.authorization_url == "https://checkout.paystack.com/xyz"


def test_webhook_signature():
    body = b'{"event":"charge.success","data":{"reference":"ps_abc"}}'
    signature = hmac.new(b"sk_test_secret", body, hashlib.sha512).hexdigest()

    assert verify_webhook_signature(body, signature, "sk_test_secret")
    assert not verify_webhook_signature(body, signature, "sk_other")
    assert not verify_webhook_signature(body + b" ", signature, "sk_test_secret")
    assert not verify_webhook_signature(body, None, "sk_test_secret")
