# Overview: Pytest coverage for pure discount rule evaluation.

from datetime import datetime, time

import pytest

from posledger.services.discount_engine import (
    CartLine,
    DiscountRuleSpec,
    evaluate,
    estimate_order_discount,
    percent_of,
    round_half_up,
    _spread,
)


# Wednesday 2026-10-14 12:00 (Sunday-based weekday 3)
NOON_WED = datetime(2026, 10, 14, 12, 0)


def line(n, product_id, qty, price, category_id=None):
    return CartLine(line_number=n, product_id=product_id, quantity=qty, unit_price_cents=price, category_id=category_id)


class TestArithmetic:

    def test_round_half_up(self):
        assert round_half_up(5, 10) == 1
        assert round_half_up(4, 10) == 0
        assert round_half_up(15, 10) == 2

    def test_percent_of_basis_points(self):
        assert percent_of(8000, 1000) == 800
        assert percent_of(999, 1250) == 125  # 124.875 rounds up
        assert percent_of(1, 5000) == 1  # 0.5 rounds up

    def test_spread_sums_exactly(self):
        alloc = _spread(100, {1: 333, 2: 333, 3: 334})
        assert sum(alloc.values()) == 100
        assert all(c <= base for c, base in zip(alloc.values(), (333, 333, 334)))


class TestPercentageAndFixed:

    def test_percentage_on_order(self):
        rule = DiscountRuleSpec(id=1, discount_type="percentage", discount_value=1000, min_purchase_cents=5000)
        applied = evaluate([line(1, 10, 2, 4000)], [rule], NOON_WED)

        assert len(applied) == 1
        assert applied[0].amount_cents == 800

    def test_max_discount_cap(self):
        rule = DiscountRuleSpec(id=1, discount_type="percentage", discount_value=1000,
                                min_purchase_cents=5000, max_discount_cents=500)
        applied = evaluate([line(1, 10, 2, 4000)], [rule], NOON_WED)
        assert applied[0].amount_cents == 500

    def test_below_minimum_purchase(self):
        rule = DiscountRuleSpec(id=1, discount_type="percentage", discount_value=1000, min_purchase_cents=5000)
        assert evaluate([line(1, 10, 1, 4999)], [rule], NOON_WED) == []

    def test_fixed_amount_never_exceeds_line(self):
        rule = DiscountRuleSpec(id=1, discount_type="fixed_amount", discount_value=5000)
        applied = evaluate([line(1, 10, 1, 1200)], [rule], NOON_WED)
        assert applied[0].amount_cents == 1200

    def test_allocations_cover_amount(self):
        rule = DiscountRuleSpec(id=1, discount_type="fixed_amount", discount_value=1000)
        applied = evaluate([line(1, 10, 1, 3000), line(2, 11, 1, 1000)], [rule], NOON_WED)
        assert applied[0].amount_cents == 1000
        assert dict(applied[0].allocations) == {1: 750, 2: 250}
        assert applied[0].line_numbers == [1, 2]


class TestScope:

    def test_specific_products(self):
        rule = DiscountRuleSpec(id=1, discount_type="percentage", discount_value=5000,
                                applies_to="specific_products", product_ids=(11,))
        applied = evaluate([line(1, 10, 1, 1000), line(2, 11, 1, 600)], [rule], NOON_WED)
        assert applied[0].amount_cents == 300
        assert applied[0].line_numbers == [2]

    def test_category(self):
        rule = DiscountRuleSpec(id=1, discount_type="percentage", discount_value=1000,
                                applies_to="category", category_ids=(5,))
        cart = [line(1, 10, 1, 1000, category_id=5), line(2, 11, 1, 1000, category_id=6)]
        applied = evaluate(cart, [rule], NOON_WED)
        assert applied[0].line_numbers == [1]
        assert applied[0].amount_cents == 100

    def test_no_matching_lines(self):
        rule = DiscountRuleSpec(id=1, discount_type="percentage", discount_value=1000,
                                applies_to="specific_products", product_ids=(99,))
        assert evaluate([line(1, 10, 1, 1000)], [rule], NOON_WED) == []


class TestQuantityRules:

    def test_buy_two_get_one_free(self):
        rule = DiscountRuleSpec(id=1, discount_type="buy_x_get_y", discount_value=0,
                                buy_quantity=2, get_quantity=1)
        applied = evaluate([line(1, 10, 3, 500)], [rule], NOON_WED)
        assert applied[0].amount_cents == 500

    def test_buy_x_get_y_cheapest_units_free(self):
        rule = DiscountRuleSpec(id=1, discount_type="buy_x_get_y", discount_value=0,
                                buy_quantity=1, get_quantity=1)
        applied = evaluate([line(1, 10, 1, 900), line(2, 11, 1, 300)], [rule], NOON_WED)
        assert applied[0].amount_cents == 300
        assert applied[0].line_numbers == [2]

    def test_buy_x_get_y_half_off(self):
        rule = DiscountRuleSpec(id=1, discount_type="buy_x_get_y", discount_value=5000,
                                buy_quantity=1, get_quantity=1)
        applied = evaluate([line(1, 10, 2, 800)], [rule], NOON_WED)
        assert applied[0].amount_cents == 400

    def test_buy_x_get_y_not_enough_units(self):
        rule = DiscountRuleSpec(id=1, discount_type="buy_x_get_y", discount_value=0,
                                buy_quantity=2, get_quantity=1)
        assert evaluate([line(1, 10, 2, 500)], [rule], NOON_WED) == []

    def test_buy_x_get_discount(self):
        rule = DiscountRuleSpec(id=1, discount_type="buy_x_get_discount", discount_value=2000, buy_quantity=3)
        assert evaluate([line(1, 10, 2, 1000)], [rule], NOON_WED) == []
        applied = evaluate([line(1, 10, 3, 1000)], [rule], NOON_WED)
        assert applied[0].amount_cents == 600

    def test_bundle_per_complete_set(self):
        rule = DiscountRuleSpec(id=1, discount_type="bundle", discount_value=200,
                                applies_to="specific_products", product_ids=(10, 11))
        cart = [line(1, 10, 2, 500), line(2, 11, 3, 400), line(3, 12, 1, 900)]
        applied = evaluate(cart, [rule], NOON_WED)
        assert applied[0].amount_cents == 400
        assert set(applied[0].line_numbers) <= {1, 2}

    def test_bundle_incomplete(self):
        rule = DiscountRuleSpec(id=1, discount_type="bundle", discount_value=200,
                                applies_to="specific_products", product_ids=(10, 11))
        assert evaluate([line(1, 10, 2, 500)], [rule], NOON_WED) == []


class TestWindows:

    def test_validity_window(self):
        rule = DiscountRuleSpec(id=1, discount_type="percentage", discount_value=1000,
                                valid_from=datetime(2026, 11, 1))
        assert evaluate([line(1, 10, 1, 1000)], [rule], NOON_WED) == []

    def test_expired(self):
        rule = DiscountRuleSpec(id=1, discount_type="percentage", discount_value=1000,
                                valid_to=datetime(2026, 10, 1))
        assert evaluate([line(1, 10, 1, 1000)], [rule], NOON_WED) == []

    @pytest.mark.parametrize("weekdays, applies", [((3,), True), ((0, 6), False)])
    def test_weekday_sunday_based(self, weekdays, applies):
        rule = DiscountRuleSpec(id=1, discount_type="percentage", discount_value=1000, weekdays=weekdays)
        assert bool(evaluate([line(1, 10, 1, 1000)], [rule], NOON_WED)) is applies

    def test_time_of_day(self):
        rule = DiscountRuleSpec(id=1, discount_type="percentage", discount_value=1000,
                                time_from=time(15, 0), time_to=time(18, 0))
        assert evaluate([line(1, 10, 1, 1000)], [rule], NOON_WED) == []
        assert evaluate([line(1, 10, 1, 1000)], [rule], datetime(2026, 10, 14, 16, 30))

    def test_time_window_across_midnight(self):
        rule = DiscountRuleSpec(id=1, discount_type="percentage", discount_value=1000,
                                time_from=time(22, 0), time_to=time(2, 0))
        assert evaluate([line(1, 10, 1, 1000)], [rule], datetime(2026, 10, 14, 23, 30))
        assert evaluate([line(1, 10, 1, 1000)], [rule], datetime(2026, 10, 15, 1, 0))
        assert evaluate([line(1, 10, 1, 1000)], [rule], NOON_WED) == []

    def test_usage_limit_reached(self):
        rule = DiscountRuleSpec(id=1, discount_type="percentage", discount_value=1000,
                                usage_limit=5, usage_count=5)
        assert evaluate([line(1, 10, 1, 1000)], [rule], NOON_WED) == []

    def test_inactive(self):
        rule = DiscountRuleSpec(id=1, discount_type="percentage", discount_value=1000, is_active=False)
        assert evaluate([line(1, 10, 1, 1000)], [rule], NOON_WED) == []


class TestStacking:

    def test_non_combinable_claims_lines(self):
        high = DiscountRuleSpec(id=1, discount_type="percentage", discount_value=1000, priority=10)
        low = DiscountRuleSpec(id=2, discount_type="percentage", discount_value=2000, priority=1)
        applied = evaluate([line(1, 10, 1, 1000)], [low, high], NOON_WED)
        assert [a.rule_id for a in applied] == [1]

    def test_combinable_rules_stack(self):
        a = DiscountRuleSpec(id=1, discount_type="percentage", discount_value=1000, is_combinable=True, priority=5)
        b = DiscountRuleSpec(id=2, discount_type="fixed_amount", discount_value=100, is_combinable=True)
        applied = evaluate([line(1, 10, 1, 1000)], [b, a], NOON_WED)
        assert [x.rule_id for x in applied] == [1, 2]
        assert sum(x.amount_cents for x in applied) == 200

    def test_allow_stacking_overrides_flags(self):
        a = DiscountRuleSpec(id=1, discount_type="percentage", discount_value=1000, priority=5)
        b = DiscountRuleSpec(id=2, discount_type="percentage", discount_value=1000)
        applied = evaluate([line(1, 10, 1, 1000)], [a, b], NOON_WED, allow_stacking=True)
        # second rule applies to what is left of the line
        assert [x.amount_cents for x in applied] == [100, 90]

    def test_equal_priority_ordered_by_id(self):
        a = DiscountRuleSpec(id=7, discount_type="fixed_amount", discount_value=100)
        b = DiscountRuleSpec(id=3, discount_type="fixed_amount", discount_value=200)
        applied = evaluate([line(1, 10, 1, 1000)], [a, b], NOON_WED)
        assert [x.rule_id for x in applied] == [3]

    def test_non_combinable_order_total_only_alone(self):
        item_rule = DiscountRuleSpec(id=1, discount_type="fixed_amount", discount_value=100,
                                     applies_to="specific_products", product_ids=(10,), priority=5)
        order_rule = DiscountRuleSpec(id=2, discount_type="percentage", discount_value=1000,
                                      applies_to="order_total")
        applied = evaluate([line(1, 10, 1, 1000), line(2, 11, 1, 1000)], [item_rule, order_rule], NOON_WED)
        assert [x.rule_id for x in applied] == [1]

    def test_never_below_zero(self):
        rules = [
            DiscountRuleSpec(id=i, discount_type="fixed_amount", discount_value=700, is_combinable=True)
            for i in (1, 2, 3)
        ]
        applied = evaluate([line(1, 10, 1, 1000)], rules, NOON_WED)
        assert sum(x.amount_cents for x in applied) == 1000


class TestEstimate:

    def test_percentage_estimate_capped(self):
        rule = DiscountRuleSpec(id=1, discount_type="percentage", discount_value=1000, max_discount_cents=500)
        assert estimate_order_discount(rule, 8000) == 500

    def test_fixed_estimate_not_above_amount(self):
        rule = DiscountRuleSpec(id=1, discount_type="fixed_amount", discount_value=2500)
        assert estimate_order_discount(rule, 1000) == 1000

    def test_quantity_rules_estimate_zero(self):
        rule = DiscountRuleSpec(id=1, discount_type="buy_x_get_y", discount_value=0, buy_quantity=1, get_quantity=1)
        assert estimate_order_discount(rule, 1000) == 0
