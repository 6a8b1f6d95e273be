# marketplace/schemas/payment.py
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# ==================== Gateway ====================


class PaymentVerification(BaseModel):
    """What the gateway says about a reference. Treated as authoritative."""

    status: str  # success, failed, abandoned, pending...
    reference: str
    amount: Decimal = Decimal("0")  # minor units
    currency: Optional[str] = None
    paid_at: Optional[datetime] = None
    channel: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    raw: Dict[str, Any] = Field(default_factory=dict)

    @property
    def is_success(self) -> bool:
        return self.status == "success"

    @property
    def is_pending(self) -> bool:
        return self.status in ("pending", "ongoing", "processing", "queued")


class PaymentInitialization(BaseModel):
    authorization_url: str
    access_code: Optional[str] = None
    reference: str


# ==================== Settlement ====================

REASON_NONE = "none"
REASON_TX_NOT_FOUND = "tx_not_found"
REASON_FAILED = "failed"
REASON_ERROR = "error"


class SettlementResult(BaseModel):
    """Serialized in camelCase for the checkout redirect page."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    ok: bool
    reason: str = REASON_NONE
    course_id: Optional[int] = None
    group_purchase_id: Optional[int] = None
    already_done: bool = False


class FinalizeRequest(BaseModel):
    reference: Optional[str] = None


class WalletSummaryResponse(BaseModel):
    available_balance: Decimal
    total_earnings: Decimal
    earnings_count: int
