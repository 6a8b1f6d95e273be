# marketplace/services/pricing.py
"""
Checkout pricing.

Pure functions only: given course snapshots, at most one promo and a VAT rate,
compute the per-course breakdown and cart totals. No database access here so
the same inputs always produce the same output.
"""

from decimal import Decimal
from typing import List, Optional, Sequence

from marketplace.schemas.pricing import (
    CheckoutTotals,
    CourseOffering,
    LineItem,
    PromoDescriptor,
)
from marketplace.utils.money import (
    DEFAULT_QUANTUM,
    ZERO,
    round_currency,
    sum_currency,
    to_decimal,
)

DEFAULT_VAT_RATE = Decimal("0.075")

# Share of the discounted price credited to the tutor
SPLIT_RATES = {
    "normal": Decimal("0.25"),
    "platform_promo": Decimal("0.20"),
    "instructor_promo": Decimal("0.70"),
}


def resolve_base_price(course: CourseOffering) -> Decimal:
    """List price: base_price, then current_price, then price, then 0."""
    for value in (course.base_price, course.current_price, course.price):
        if value is not None:
            return to_decimal(value)
    return ZERO


def resolve_current_price(course: CourseOffering) -> Decimal:
    """Selling price before promo: current_price, then price, then the list price."""
    for value in (course.current_price, course.price):
        if value is not None:
            return to_decimal(value)
    return resolve_base_price(course)


def promo_applies_to_course(
    promo: Optional[PromoDescriptor], course: CourseOffering
) -> bool:
    if promo is None:
        return False
    if promo.course_id is not None and promo.course_id != course.id:
        return False
    # Instructor promos only ever discount their creator's own courses, global or not
    if promo.promo_type == "INSTRUCTOR" and promo.creator_id is not None:
        return promo.creator_id == course.tutor_id
    if promo.course_id is not None:
        return True
    return promo.is_global


def split_percent_for(promo: Optional[PromoDescriptor], applies: bool) -> Decimal:
    if promo is None or not applies:
        return SPLIT_RATES["normal"]
    if promo.promo_type == "PLATFORM":
        return SPLIT_RATES["platform_promo"]
    return SPLIT_RATES["instructor_promo"]


def promo_discount_for(
    promo: PromoDescriptor, current_price: Decimal, quantum: Decimal
) -> Decimal:
    value = to_decimal(promo.discount_value)
    if promo.discount_type == "PERCENTAGE":
        return round_currency(current_price * value / Decimal("100"), quantum)
    return round_currency(min(value, current_price), quantum)


def allocate_vat(
    prices: Sequence[Decimal],
    subtotal: Decimal,
    vat_amount: Decimal,
    quantum: Decimal = DEFAULT_QUANTUM,
) -> List[Decimal]:
    """
    Split ``vat_amount`` across ``prices`` in proportion to each price.

    Items are walked in order; every item except the last priced one gets its
    rounded proportional share, and the last priced one gets whatever is left,
    so the shares always add up to ``vat_amount`` exactly. A share is never
    allowed to exceed what is still unallocated, which keeps every share
    non-negative. Zero-priced items get nothing.
    """
    shares = [ZERO for _ in prices]
    if subtotal <= 0 or vat_amount <= 0:
        return shares

    priced = [i for i, price in enumerate(prices) if price > 0]
    if not priced:
        return shares

    last = priced[-1]
    allocated = ZERO
    for index in priced[:-1]:
        share = round_currency(prices[index] / subtotal * vat_amount, quantum)
        share = min(share, vat_amount - allocated)
        shares[index] = share
        allocated += share

    shares[last] = vat_amount - allocated
    return shares


def compute_checkout_totals(
    courses: Sequence[CourseOffering],
    promo: Optional[PromoDescriptor] = None,
    vat_rate: Decimal = DEFAULT_VAT_RATE,
    quantum: Decimal = DEFAULT_QUANTUM,
) -> CheckoutTotals:
    """
    Price a cart.

    Args:
        courses: Course snapshots in cart order
        promo: The one promo used for this checkout, if any
        vat_rate: VAT as a fraction (0.075 for 7.5%)
        quantum: Currency rounding unit

    Returns:
        CheckoutTotals whose aggregates are sums over its line items
    """
    vat_rate = to_decimal(vat_rate)

    preliminary = []
    for course in courses:
        base_price = round_currency(resolve_base_price(course), quantum)
        current_price = resolve_current_price(course)

        applies = promo_applies_to_course(promo, course)
        promo_discount = (
            promo_discount_for(promo, current_price, quantum) if applies else ZERO
        )

        discounted_price = max(ZERO, round_currency(current_price - promo_discount, quantum))
        # Counts any base-vs-current markdown as discount too
        discount_amount = max(ZERO, round_currency(base_price - discounted_price, quantum))

        split_percent = split_percent_for(promo, applies)
        tutor_share = round_currency(discounted_price * split_percent, quantum)
        platform_share = discounted_price - tutor_share

        preliminary.append(
            {
                "course": course,
                "applies": applies,
                "base_price": base_price,
                "discounted_price": discounted_price,
                "discount_amount": discount_amount,
                "split_percent": split_percent,
                "tutor_share_amount": tutor_share,
                "platform_share_amount": platform_share,
            }
        )

    subtotal = sum_currency((item["discounted_price"] for item in preliminary), quantum)
    vat_amount = round_currency(subtotal * vat_rate, quantum)
    vat_shares = allocate_vat(
        [item["discounted_price"] for item in preliminary], subtotal, vat_amount, quantum
    )

    line_items: List[LineItem] = []
    for item, vat_share in zip(preliminary, vat_shares):
        course = item["course"]
        applies = item["applies"]
        line_items.append(
            LineItem(
                course_id=course.id,
                tutor_id=course.tutor_id,
                base_price=item["base_price"],
                discounted_price=item["discounted_price"],
                discount_amount=item["discount_amount"],
                vat_amount=vat_share,
                total_amount=item["discounted_price"] + vat_share,
                tutor_share_amount=item["tutor_share_amount"],
                platform_share_amount=item["platform_share_amount"],
                split_percent=item["split_percent"],
                promo_code_id=promo.id if applies else None,
                promo_type=promo.promo_type if applies else None,
                promo_discount_type=promo.discount_type if applies else None,
                promo_discount_value=promo.discount_value if applies else None,
            )
        )

    return CheckoutTotals(
        line_items=line_items,
        subtotal_amount=subtotal,
        discount_amount=sum_currency((li.discount_amount for li in line_items), quantum),
        vat_amount=vat_amount,
        tutor_share_amount=sum_currency((li.tutor_share_amount for li in line_items), quantum),
        platform_share_amount=sum_currency(
            (li.platform_share_amount for li in line_items), quantum
        ),
        total_amount=sum_currency((li.total_amount for li in line_items), quantum),
    )
