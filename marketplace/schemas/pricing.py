# marketplace/schemas/pricing.py
from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

PromoType = Literal["PLATFORM", "INSTRUCTOR"]
DiscountType = Literal["PERCENTAGE", "FIXED"]


class CourseOffering(BaseModel):
    """Price snapshot of a course taken at checkout time."""

    model_config = ConfigDict(frozen=True)

    id: int
    tutor_id: int
    base_price: Optional[Decimal] = None
    current_price: Optional[Decimal] = None
    price: Optional[Decimal] = None
    title: Optional[str] = None


class PromoDescriptor(BaseModel):
    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: int
    code: str
    promo_type: PromoType
    discount_type: DiscountType
    discount_value: Decimal
    is_global: bool = False
    course_id: Optional[int] = None
    creator_id: Optional[int] = None


class LineItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    course_id: int
    tutor_id: int
    base_price: Decimal
    discounted_price: Decimal
    discount_amount: Decimal
    vat_amount: Decimal
    total_amount: Decimal
    tutor_share_amount: Decimal
    platform_share_amount: Decimal
    split_percent: Decimal

    # Populated only when the promo applied to this item
    promo_code_id: Optional[int] = None
    promo_type: Optional[PromoType] = None
    promo_discount_type: Optional[DiscountType] = None
    promo_discount_value: Optional[Decimal] = None


class CheckoutTotals(BaseModel):
    model_config = ConfigDict(frozen=True)

    line_items: List[LineItem] = Field(default_factory=list)
    subtotal_amount: Decimal = Decimal("0")
    discount_amount: Decimal = Decimal("0")
    vat_amount: Decimal = Decimal("0")
    tutor_share_amount: Decimal = Decimal("0")
    platform_share_amount: Decimal = Decimal("0")
    total_amount: Decimal = Decimal("0")
