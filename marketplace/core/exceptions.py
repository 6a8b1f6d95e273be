"""
Error taxonomy for checkout and settlement.

Settlement errors carry the ``reason`` reported back to the calling flow
(checkout redirect or webhook). None of them escape
``SettlementService.finalize_by_reference``.
"""

from typing import Any, Optional


class SettlementError(Exception):
    reason = "error"

    def __init__(self, message: str, reference: Optional[str] = None):
        self.message = message
        self.reference = reference
        super().__init__(message)


class TransactionNotFound(SettlementError):
    """No transaction is recorded for the reference. Retrying will not help."""

    reason = "tx_not_found"


class VerificationFailed(SettlementError):
    """The gateway declared the payment failed. Terminal for this reference."""

    reason = "failed"

    def __init__(
        self,
        message: str,
        reference: Optional[str] = None,
        payload: Optional[dict] = None,
    ):
        super().__init__(message, reference)
        self.payload = payload or {}


class VerificationIndeterminate(SettlementError):
    """Gateway timeout, error or a still-pending charge. Safe to retry later."""

    reason = "error"


class ApplyUnitFailure(SettlementError):
    """The atomic unit was rolled back in full. Transaction stays PENDING."""

    reason = "error"


class SideEffectFailure(SettlementError):
    """A post-commit side effect failed. Logged only, never surfaced."""

    def __init__(self, effect: str, cause: BaseException):
        super().__init__(f"Side effect '{effect}' failed: {cause}")
        self.effect = effect
        self.cause = cause


class PaymentGatewayError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None, body: Any = None):
        self.message = message
        self.status_code = status_code
        self.body = body
        super().__init__(message)


class CheckoutError(Exception):
    def __init__(self, reason: str, message: str, status_code: int = 400):
        self.reason = reason
        self.message = message
        self.status_code = status_code
        super().__init__(message)
