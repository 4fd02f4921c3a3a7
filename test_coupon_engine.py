"""
test_coupon_engine.py
=====================
Coupon rules and discount maths, without a database.
"""

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from coupon_engine import (
    CouponRejected,
    RejectionReason,
    calculate_discount,
    ensure_redeemable,
    evaluate,
    find_rejection,
    rejection_message,
    round2,
)

NOW = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)


def coupon(**overrides):
    fields = {
        "code": "WELCOME10",
        "discount_type": "percentage",
        "discount_value": 10,
        "minimum_order_amount": 500,
        "maximum_discount_amount": 200,
        "usage_limit": 100,
        "used_count": 0,
        "user_usage_limit": 1,
        "valid_from": NOW - timedelta(days=1),
        "valid_until": NOW + timedelta(days=30),
        "is_active": True,
        "applicable_categories": [],
        "excluded_categories": [],
        "usages": [],
    }
    fields.update(overrides)
    return SimpleNamespace(**fields)


def flat100(**overrides):
    return coupon(code="FLAT100", discount_type="fixed", discount_value=100,
                  minimum_order_amount=300, maximum_discount_amount=None, **overrides)


def used_by(*user_ids):
    return [SimpleNamespace(user_id=uid) for uid in user_ids]


# ══════════════════════════════════════════════
#  Discount
# ══════════════════════════════════════════════

class TestCalculateDiscount:

    def test_welcome10_on_1000(self):
        result = evaluate(coupon(), NOW, order_amount=1000)
        assert result.valid is True
        assert result.discount_amount == 100
        assert round2(1000 - result.discount_amount) == 900

    def test_percentage_is_capped(self):
        assert calculate_discount(coupon(), 5000) == 200

    def test_percentage_without_cap(self):
        assert calculate_discount(coupon(maximum_discount_amount=None), 5000) == 500

    def test_fixed_clamps_to_order_amount(self):
        assert calculate_discount(flat100(), 50) == 50

    def test_fixed_below_order_amount(self):
        assert calculate_discount(flat100(), 750) == 100

    def test_non_positive_amount_gives_zero(self):
        assert calculate_discount(coupon(), 0) == 0
        assert calculate_discount(flat100(), -20) == 0

    def test_rounds_half_up(self):
        assert calculate_discount(coupon(maximum_discount_amount=None), 0.05) == 0.01

    def test_rounds_the_float_product(self):
        assert round2(1.005) == 1.0
        assert round2(2.675) == 2.67
        assert round2(0.125) == 0.13

    def test_cap_applies_after_rounding(self):
        assert calculate_discount(coupon(maximum_discount_amount=12.345), 123.456) == 12.345
        assert calculate_discount(coupon(maximum_discount_amount=12.35), 123.456) == 12.35

    def test_reading_does_not_mutate(self):
        c = coupon(used_count=3)
        first = calculate_discount(c, 1234.5)
        second = calculate_discount(c, 1234.5)
        assert first == second == 123.45
        assert c.used_count == 3
        assert c.usages == []

    @pytest.mark.parametrize("amount", [1, 99.99, 300, 1000, 25000])
    def test_fixed_never_exceeds_amount(self, amount):
        assert calculate_discount(flat100(), amount) <= amount


# ══════════════════════════════════════════════
#  Validity window
# ══════════════════════════════════════════════

class TestValidityWindow:

    def test_now_equal_to_valid_from_is_valid(self):
        c = coupon(valid_from=NOW)
        assert find_rejection(c, NOW, order_amount=1000) is None

    def test_now_equal_to_valid_until_is_valid(self):
        c = coupon(valid_until=NOW)
        assert find_rejection(c, NOW, order_amount=1000) is None

    def test_expired(self):
        c = coupon(valid_until=NOW - timedelta(seconds=1))
        assert find_rejection(c, NOW, order_amount=1000) == RejectionReason.inactive_or_expired

    def test_not_started(self):
        c = coupon(valid_from=NOW + timedelta(hours=1))
        assert find_rejection(c, NOW, order_amount=1000) == RejectionReason.inactive_or_expired

    def test_inactive(self):
        c = coupon(is_active=False)
        assert find_rejection(c, NOW, order_amount=1000) == RejectionReason.inactive_or_expired

    def test_naive_database_timestamps_are_utc(self):
        c = coupon(valid_from=datetime(2026, 3, 15, 12, 0), valid_until=datetime(2026, 3, 15, 12, 0))
        assert find_rejection(c, NOW, order_amount=1000) is None

    def test_window_checked_before_minimum(self):
        c = coupon(is_active=False)
        assert find_rejection(c, NOW, order_amount=10) == RejectionReason.inactive_or_expired


# ══════════════════════════════════════════════
#  Usage limits
# ══════════════════════════════════════════════

class TestUsageLimits:

    def test_global_limit_reached(self):
        c = coupon(usage_limit=5, used_count=5)
        assert find_rejection(c, NOW, order_amount=1000) == RejectionReason.usage_limit_reached

    def test_no_global_limit(self):
        c = coupon(usage_limit=None, used_count=10_000)
        assert find_rejection(c, NOW, order_amount=1000) is None

    def test_newuser_second_redemption_rejected(self):
        c = coupon(code="NEWUSER", discount_value=15, minimum_order_amount=400,
                   maximum_discount_amount=300, usages=used_by(7), used_count=1)
        result = evaluate(c, NOW, user_id=7, order_amount=1000)
        assert result.valid is False
        assert result.reason == RejectionReason.user_limit_reached
        assert result.discount_amount == 0

    def test_other_user_unaffected(self):
        c = coupon(usages=used_by(7), used_count=1)
        assert find_rejection(c, NOW, user_id=8, order_amount=1000) is None

    def test_anonymous_skips_per_user_check(self):
        c = coupon(usages=used_by(7), used_count=1)
        assert find_rejection(c, NOW, user_id=None, order_amount=1000) is None

    def test_per_user_limit_counts_redemptions(self):
        c = coupon(user_usage_limit=3, usages=used_by(7, 7), used_count=2)
        assert find_rejection(c, NOW, user_id=7, order_amount=1000) is None
        c.usages.append(SimpleNamespace(user_id=7))
        assert find_rejection(c, NOW, user_id=7, order_amount=1000) == RejectionReason.user_limit_reached


# ══════════════════════════════════════════════
#  Minimum order amount
# ══════════════════════════════════════════════

class TestMinimumOrder:

    def test_amount_equal_to_minimum_passes(self):
        assert find_rejection(coupon(), NOW, order_amount=500) is None

    def test_flat100_below_minimum(self):
        c = flat100()
        assert find_rejection(c, NOW, order_amount=50) == RejectionReason.below_minimum_order
        assert rejection_message(RejectionReason.below_minimum_order, c) == (
            "Minimum order amount of ₹300 required for this coupon"
        )


# ══════════════════════════════════════════════
#  Categories
# ══════════════════════════════════════════════

class TestCategories:

    def test_excluded_category_in_cart(self):
        c = coupon(excluded_categories=["western"])
        reason = find_rejection(c, NOW, order_amount=1000, cart_categories=["sarees", "western"])
        assert reason == RejectionReason.category_excluded

    def test_applicable_category_missing(self):
        c = coupon(applicable_categories=["sarees", "kurtis", "ethnic"])
        reason = find_rejection(c, NOW, order_amount=1000, cart_categories=["western"])
        assert reason == RejectionReason.category_not_applicable

    def test_applicable_category_matches_case_insensitively(self):
        c = coupon(applicable_categories=["Sarees"])
        assert find_rejection(c, NOW, order_amount=1000, cart_categories=["sarees"]) is None

    def test_no_cart_categories_skips_check(self):
        c = coupon(applicable_categories=["sarees"], excluded_categories=["western"])
        assert find_rejection(c, NOW, order_amount=1000) is None
        assert find_rejection(c, NOW, order_amount=1000, cart_categories=[]) is None

    def test_empty_lists_mean_no_restriction(self):
        assert find_rejection(coupon(), NOW, order_amount=1000, cart_categories=["accessories"]) is None


# ══════════════════════════════════════════════
#  ensure_redeemable
# ══════════════════════════════════════════════

class TestEnsureRedeemable:

    def test_returns_discount(self):
        assert ensure_redeemable(coupon(), NOW, user_id=1, order_amount=1000) == 100

    def test_raises_with_reason_and_message(self):
        with pytest.raises(CouponRejected) as exc_info:
            ensure_redeemable(coupon(usage_limit=1, used_count=1), NOW, order_amount=1000)
        assert exc_info.value.reason == RejectionReason.usage_limit_reached
        assert exc_info.value.message == "This coupon has reached its usage limit"

    def test_every_reason_has_distinct_message(self):
        messages = {rejection_message(reason, coupon()) for reason in RejectionReason}
        assert len(messages) == len(RejectionReason)
