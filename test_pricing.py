from decimal import Decimal

import pytest

from marketplace.schemas.pricing import CourseOffering, PromoDescriptor
from marketplace.services.pricing import (
    allocate_vat,
    compute_checkout_totals,
    promo_applies_to_course,
    resolve_base_price,
    resolve_current_price,
)
from marketplace.utils.money import round_currency, sum_currency, to_minor_units

D = Decimal


def offering(course_id, tutor_id, price, base_price=None, current_price=None):
    return CourseOffering(
        id=course_id,
        tutor_id=tutor_id,
        base_price=base_price,
        current_price=current_price if current_price is not None else price,
        price=price,
    )


def promo(**overrides):
    values = {
        "id": 7,
        "code": "SAVE10",
        "promo_type": "PLATFORM",
        "discount_type": "PERCENTAGE",
        "discount_value": D("10"),
        "is_global": True,
    }
    values.update(overrides)
    return PromoDescriptor(**values)


def assert_consistent(totals):
    items = totals.line_items
    assert totals.subtotal_amount == sum((li.discounted_price for li in items), D("0"))
    assert totals.vat_amount == sum((li.vat_amount for li in items), D("0"))
    assert totals.discount_amount == sum((li.discount_amount for li in items), D("0"))
    assert totals.tutor_share_amount == sum((li.tutor_share_amount for li in items), D("0"))
    assert totals.platform_share_amount == sum(
        (li.platform_share_amount for li in items), D("0")
    )
    assert totals.total_amount == totals.subtotal_amount + totals.vat_amount
    for li in items:
        assert li.tutor_share_amount + li.platform_share_amount == li.discounted_price
        assert li.total_amount == li.discounted_price + li.vat_amount
        assert li.vat_amount >= 0
        assert li.discounted_price >= 0


class TestRoundCurrency:
    def test_half_up_to_minor_unit(self):
        assert round_currency(D("1687.5")) == D("1688")
        assert round_currency(D("675.2")) == D("675")

    def test_half_up_to_cents(self):
        assert round_currency(D("33.335"), D("0.01")) == D("33.34")

    def test_sum_is_exact_and_quantized(self):
        total = sum_currency([D("0.10"), "0.20", 0.3], D("0.01"))
        assert total == D("0.60")
        assert total.as_tuple().exponent == -2
        assert sum_currency([]) == D("0")

    def test_minor_units_scale_only_for_major_unit_quantum(self):
        assert to_minor_units(D("26875"), D("1")) == 26875
        assert to_minor_units(D("268.75"), D("0.01")) == 26875


class TestPriceResolution:
    def test_base_price_falls_back_in_order(self):
        assert resolve_base_price(offering(1, 1, D("100"), base_price=D("120"))) == D("120")
        assert resolve_base_price(
            CourseOffering(id=1, tutor_id=1, current_price=D("90"), price=D("100"))
        ) == D("90")
        assert resolve_base_price(CourseOffering(id=1, tutor_id=1, price=D("100"))) == D("100")
        assert resolve_base_price(CourseOffering(id=1, tutor_id=1)) == D("0")

    def test_current_price_prefers_current_then_price(self):
        assert resolve_current_price(
            CourseOffering(id=1, tutor_id=1, base_price=D("120"), current_price=D("90"))
        ) == D("90")
        assert resolve_current_price(
            CourseOffering(id=1, tutor_id=1, base_price=D("120"), price=D("100"))
        ) == D("100")
        assert resolve_current_price(CourseOffering(id=1, tutor_id=1, base_price=D("120"))) == D(
            "120"
        )


class TestComputeCheckoutTotals:
    def test_two_courses_without_promo(self):
        totals = compute_checkout_totals(
            [offering(1, 10, D("10000")), offering(2, 20, D("15000"))]
        )

        first, second = totals.line_items
        assert totals.subtotal_amount == D("25000")
        assert totals.vat_amount == D("1875")
        assert (first.vat_amount, second.vat_amount) == (D("750"), D("1125"))
        assert (first.tutor_share_amount, first.platform_share_amount) == (D("2500"), D("7500"))
        assert (second.tutor_share_amount, second.platform_share_amount) == (
            D("3750"),
            D("11250"),
        )
        assert first.split_percent == D("0.25")
        assert first.promo_code_id is None
        assert totals.total_amount == D("26875")
        assert_consistent(totals)

    def test_global_platform_percentage_promo(self):
        totals = compute_checkout_totals(
            [offering(1, 10, D("10000")), offering(2, 20, D("15000"))], promo()
        )

        first, second = totals.line_items
        assert (first.discounted_price, second.discounted_price) == (D("9000"), D("13500"))
        assert totals.discount_amount == D("2500")
        assert totals.subtotal_amount == D("22500")
        assert totals.vat_amount == D("1688")
        assert (first.vat_amount, second.vat_amount) == (D("675"), D("1013"))
        assert first.split_percent == D("0.20")
        assert (first.tutor_share_amount, first.platform_share_amount) == (D("1800"), D("7200"))
        assert (second.tutor_share_amount, second.platform_share_amount) == (
            D("2700"),
            D("10800"),
        )
        assert first.promo_code_id == 7
        assert first.promo_type == "PLATFORM"
        assert first.promo_discount_type == "PERCENTAGE"
        assert totals.total_amount == D("24188")
        assert_consistent(totals)

    def test_instructor_promo_only_discounts_creator_courses(self):
        instructor_promo = promo(
            promo_type="INSTRUCTOR", discount_value=D("20"), is_global=False, creator_id=10
        )
        totals = compute_checkout_totals(
            [offering(1, 10, D("10000")), offering(2, 20, D("15000"))], instructor_promo
        )

        own, other = totals.line_items
        assert own.discounted_price == D("8000")
        assert own.split_percent == D("0.70")
        assert (own.tutor_share_amount, own.platform_share_amount) == (D("5600"), D("2400"))
        assert own.promo_type == "INSTRUCTOR"

        assert other.discounted_price == D("15000")
        assert other.split_percent == D("0.25")
        assert other.promo_code_id is None
        assert other.promo_type is None
        assert other.promo_discount_value is None

        assert totals.vat_amount == D("1725")
        assert (own.vat_amount, other.vat_amount) == (D("600"), D("1125"))
        assert_consistent(totals)

    def test_global_instructor_promo_still_limited_to_creator(self):
        instructor_promo = promo(promo_type="INSTRUCTOR", is_global=True, creator_id=10)
        course = offering(2, 20, D("15000"))
        assert promo_applies_to_course(instructor_promo, course) is False

    def test_unscoped_promo_needs_global_flag(self):
        local = promo(is_global=False)
        assert promo_applies_to_course(local, offering(1, 10, D("10000"))) is False

    def test_course_scoped_promo_applies_to_that_course_only(self):
        scoped = promo(is_global=False, course_id=2)
        totals = compute_checkout_totals(
            [offering(1, 10, D("10000")), offering(2, 20, D("15000"))], scoped
        )

        first, second = totals.line_items
        assert first.discounted_price == D("10000")
        assert first.promo_code_id is None
        assert second.discounted_price == D("13500")
        assert second.promo_code_id == 7
        assert_consistent(totals)

    def test_fixed_discount_is_clamped_to_price(self):
        fixed = promo(discount_type="FIXED", discount_value=D("5000"))
        totals = compute_checkout_totals([offering(1, 10, D("3000"))], fixed)

        (item,) = totals.line_items
        assert item.discounted_price == D("0")
        assert item.discount_amount == D("3000")
        assert item.vat_amount == D("0")
        assert totals.total_amount == D("0")
        assert_consistent(totals)

    def test_markdown_counts_as_discount(self):
        totals = compute_checkout_totals(
            [offering(1, 10, D("10000"), base_price=D("12000"))]
        )

        (item,) = totals.line_items
        assert item.base_price == D("12000")
        assert item.discounted_price == D("10000")
        assert item.discount_amount == D("2000")

    def test_empty_cart(self):
        totals = compute_checkout_totals([])

        assert totals.line_items == []
        assert totals.subtotal_amount == D("0")
        assert totals.vat_amount == D("0")
        assert totals.total_amount == D("0")

    @pytest.mark.parametrize(
        "prices, expected",
        [
            ([D("0"), D("1000")], [D("0"), D("75")]),
            ([D("1000"), D("0")], [D("75"), D("0")]),
        ],
    )
    def test_zero_priced_items_get_no_vat(self, prices, expected):
        courses = [offering(i + 1, 10, price) for i, price in enumerate(prices)]
        totals = compute_checkout_totals(courses)

        assert [li.vat_amount for li in totals.line_items] == expected
        assert_consistent(totals)

    def test_cent_quantum_gives_remainder_to_last_item(self):
        courses = [offering(i + 1, 10, D("100.00")) for i in range(3)]
        totals = compute_checkout_totals(
            courses, vat_rate=D("0.3333333333"), quantum=D("0.01")
        )

        assert totals.vat_amount == D("100.00")
        assert [li.vat_amount for li in totals.line_items] == [
            D("33.33"),
            D("33.33"),
            D("33.34"),
        ]
        assert_consistent(totals)

    def test_same_inputs_same_outputs(self):
        courses = [offering(1, 10, D("9999")), offering(2, 20, D("3333")), offering(3, 10, D("1"))]
        assert compute_checkout_totals(courses, promo()) == compute_checkout_totals(
            courses, promo()
        )


class TestAllocateVat:
    def test_shares_sum_exactly(self):
        prices = [D("3333"), D("3333"), D("3334")]
        shares = allocate_vat(prices, sum(prices), D("750"))
        assert sum(shares) == D("750")

    def test_rounding_never_pushes_last_share_negative(self):
        # 0.5 rounds up, leaving nothing for the last priced item
        shares = allocate_vat([D("1"), D("1"), D("0")], D("2"), D("1"))
        assert shares == [D("1"), D("0"), D("0")]

        shares = allocate_vat([D("1"), D("1"), D("1")], D("3"), D("2"))
        assert sum(shares) == D("2")
        assert all(share >= 0 for share in shares)

    def test_nothing_to_allocate(self):
        assert allocate_vat([D("100")], D("100"), D("0")) == [D("0")]
        assert allocate_vat([D("0")], D("0"), D("0")) == [D("0")]
