# marketplace/utils/paystack.py
import hashlib
import hmac
import logging
from typing import Any, Dict, Optional

import requests

from marketplace.core.config import settings
from marketplace.core.exceptions import PaymentGatewayError
from marketplace.schemas.payment import PaymentInitialization, PaymentVerification

logger = logging.getLogger(__name__)


class PaystackClient:
    """Thin client for the Paystack transaction API"""

    def __init__(
        self,
        secret_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[int] = None,
        session: Optional[requests.Session] = None,
    ):
        self.secret_key = secret_key if secret_key is not None else settings.paystack_secret_key
        self.base_url = (base_url or settings.paystack_base_url).rstrip("/")
        self.timeout = timeout or settings.paystack_timeout_seconds
        self.session = session or requests.Session()

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.secret_key}",
            "Content-Type": "application/json",
        }

    def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(
                method, url, headers=self._headers(), timeout=self.timeout, **kwargs
            )
        except requests.RequestException as e:
            logger.warning(f"Paystack {method} {path} failed: {e}")
            raise PaymentGatewayError(f"Paystack request failed: {e}") from e

        try:
            body = response.json()
        except ValueError:
            body = {}

        if not response.ok or not body.get("status"):
            message = body.get("message") or f"HTTP {response.status_code}"
            logger.warning(f"Paystack {method} {path} rejected: {message}")
            raise PaymentGatewayError(
                f"Paystack error: {message}",
                status_code=response.status_code,
                body=body,
            )

        return body.get("data") or {}

    def initialize(
        self,
        email: str,
        amount_kobo: int,
        reference: str,
        callback_url: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> PaymentInitialization:
        """Start a hosted checkout and return where to send the buyer."""
        data = self._request(
            "POST",
            "/transaction/initialize",
            json={
                "email": email,
                "amount": amount_kobo,
                "reference": reference,
                "callback_url": callback_url or settings.payment_callback_url,
                "metadata": metadata or {},
            },
        )
        logger.info(f"Paystack transaction initialized: {reference}")
        return PaymentInitialization(
            authorization_url=data["authorization_url"],
            access_code=data.get("access_code"),
            reference=data.get("reference", reference),
        )

    def verify(self, reference: str) -> PaymentVerification:
        """Ask the gateway for the authoritative state of a charge."""
        data = self._request("GET", f"/transaction/verify/{reference}")
        metadata = data.get("metadata")
        return PaymentVerification(
            status=data.get("status") or "pending",
            reference=data.get("reference") or reference,
            amount=data.get("amount") or 0,
            currency=data.get("currency"),
            paid_at=data.get("paid_at") or None,
            channel=data.get("channel"),
            metadata=metadata if isinstance(metadata, dict) else {},
            raw=data,
        )


def verify_webhook_signature(
    raw_body: bytes, signature: Optional[str], secret_key: Optional[str] = None
) -> bool:
    """Paystack signs the raw body with HMAC-SHA512 of the secret key."""
    if not signature:
        return False
    key = secret_key if secret_key is not None else settings.paystack_secret_key
    calculated = hmac.new(key.encode(), raw_body, hashlib.sha512).hexdigest()
    return hmac.compare_digest(calculated, signature)
