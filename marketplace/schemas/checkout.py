# marketplace/schemas/checkout.py
from decimal import Decimal
from typing import Any, List, Literal, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from marketplace.schemas.pricing import CheckoutTotals, PromoDescriptor

# ==================== Checkout Intent ====================


class DirectCourses(BaseModel):
    """Settlement enrolls the buyer in these courses."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["direct"] = "direct"
    course_ids: List[int] = Field(default_factory=list)


class GroupPurchaseIntent(BaseModel):
    """Settlement activates this group purchase instead of enrolling."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["group"] = "group"
    group_purchase_id: int


CheckoutIntent = Union[DirectCourses, GroupPurchaseIntent]


def _int_list(values: Any) -> Optional[List[int]]:
    if not isinstance(values, (list, tuple)):
        return None
    return [int(v) for v in values]


def resolve_checkout_intent(
    transaction, gateway_metadata: Optional[Mapping[str, Any]] = None
) -> CheckoutIntent:
    """
    Decide what a paid transaction buys.

    The intent recorded on the transaction at checkout wins. Gateway or stored
    metadata (``groupPurchaseId`` / ``courseIds``) is only consulted for
    transactions created without one, and the single ``course_id`` column is
    the last resort.
    """
    if transaction.group_purchase_id:
        return GroupPurchaseIntent(group_purchase_id=transaction.group_purchase_id)

    course_ids = _int_list(transaction.course_ids)
    if course_ids:
        return DirectCourses(course_ids=course_ids)

    for metadata in (gateway_metadata, transaction.meta):
        if not isinstance(metadata, Mapping):
            continue
        group_purchase_id = metadata.get("groupPurchaseId")
        if group_purchase_id:
            return GroupPurchaseIntent(group_purchase_id=int(group_purchase_id))
        course_ids = _int_list(metadata.get("courseIds"))
        if course_ids:
            return DirectCourses(course_ids=course_ids)

    if transaction.course_id:
        return DirectCourses(course_ids=[transaction.course_id])
    return DirectCourses(course_ids=[])


# ==================== Requests / Responses ====================


class CheckoutRequest(BaseModel):
    course_ids: List[int] = Field(..., min_length=1, description="Courses in the cart")
    promo_code: Optional[str] = Field(None, description="Optional promo code")


class GroupCheckoutRequest(BaseModel):
    course_id: int = Field(..., description="Course bought as a group")
    member_limit: int = Field(..., ge=2, description="Group size")
    group_price: Decimal = Field(..., gt=0, description="Price paid by the starter")


class CheckoutResponse(BaseModel):
    reference: str
    authorization_url: str
    access_code: Optional[str] = None
    totals: Optional[CheckoutTotals] = None
    group_purchase_id: Optional[int] = None
    invite_code: Optional[str] = None


class PromoValidateRequest(BaseModel):
    code: str = Field(..., min_length=1)
    course_ids: List[int] = Field(..., min_length=1)


class PromoValidateResponse(BaseModel):
    ok: bool
    promo: PromoDescriptor
    totals: CheckoutTotals
