"""
coupon_engine.py
================
Core business logic for evaluating coupons and computing discounts.

Rules are checked in a fixed order and the first failure wins:
------------------
1. validity window:
   - Coupon must be active and ``valid_from <= now <= valid_until``
     (both bounds inclusive).

2. global usage cap:
   - When ``usage_limit`` is set, ``used_count`` must still be below it.

3. per-user cap:
   - Redemptions recorded for the user must be below ``user_usage_limit``.
   - Skipped for anonymous evaluations.

4. minimum order amount:
   - ``order_amount >= minimum_order_amount`` (inclusive).

5. category policy (only when cart categories are known):
   - Any excluded category in the cart rejects the coupon.
   - Otherwise, a non-empty applicable list needs at least one match.
   - Category names are compared case-insensitively.

Discount:
---------
- percentage: order_amount * value / 100 rounded to the cent, then capped at
  maximum_discount_amount.
- fixed: the coupon value, never more than the order amount, rounded to the cent.

Nothing here touches the database or mutates the coupon; the redemption
bookkeeping lives in ``coupon_redemption.py``.
"""

from datetime import datetime, timezone
from enum import Enum
from math import floor
from typing import Iterable, NamedTuple, Optional


class DiscountType(str, Enum):
    percentage = "percentage"
    fixed = "fixed"


class RejectionReason(str, Enum):
    inactive_or_expired = "inactive-or-expired"
    usage_limit_reached = "usage-limit-reached"
    user_limit_reached = "user-limit-reached"
    below_minimum_order = "below-minimum-order"
    category_excluded = "category-excluded"
    category_not_applicable = "category-not-applicable"


_MESSAGES = {
    RejectionReason.inactive_or_expired: "Coupon is not valid or has expired",
    RejectionReason.usage_limit_reached: "This coupon has reached its usage limit",
    RejectionReason.user_limit_reached: "You have already used this coupon the maximum number of times",
    RejectionReason.below_minimum_order: "Minimum order amount of ₹{minimum:g} required for this coupon",
    RejectionReason.category_excluded: "This coupon cannot be applied to items in your cart",
    RejectionReason.category_not_applicable: "This coupon is not applicable to items in your cart",
}


def rejection_message(reason: RejectionReason, coupon) -> str:
    return _MESSAGES[reason].format(minimum=coupon.minimum_order_amount or 0)


class CouponRejected(Exception):
    """Raised when a coupon fails one of the evaluation rules."""

    def __init__(self, reason: RejectionReason, message: str):
        super().__init__(message)
        self.reason = reason
        self.message = message


class Evaluation(NamedTuple):
    valid: bool
    reason: Optional[RejectionReason]
    discount_amount: float


# ─────────────────────────── Helpers ───────────────────────────

def round2(value: float) -> float:
    """Nearest cent, halves rounding up. Works on the float product, so 1.005 gives 1.0."""
    return floor(value * 100 + 0.5) / 100


def as_utc(moment: datetime) -> datetime:
    """Naive datetimes coming back from the database are UTC."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def _normalize(categories: Optional[Iterable[str]]) -> set:
    return {c.strip().lower() for c in (categories or []) if c and c.strip()}


# ─────────────────────────── Individual rules ───────────────────────────

def is_within_validity_window(coupon, now: datetime) -> bool:
    if not coupon.is_active:
        return False
    now = as_utc(now)
    return as_utc(coupon.valid_from) <= now <= as_utc(coupon.valid_until)


def has_global_capacity(coupon) -> bool:
    if coupon.usage_limit is None:
        return True
    return (coupon.used_count or 0) < coupon.usage_limit


def user_redemption_count(coupon, user_id) -> int:
    return sum(1 for usage in coupon.usages if usage.user_id == user_id)


def can_user_redeem(coupon, user_id) -> bool:
    if user_id is None:
        return True
    return user_redemption_count(coupon, user_id) < coupon.user_usage_limit


def category_rejection(coupon, cart_categories) -> Optional[RejectionReason]:
    cart = _normalize(cart_categories)
    if not cart:
        return None

    excluded = _normalize(coupon.excluded_categories)
    if excluded and cart & excluded:
        return RejectionReason.category_excluded

    applicable = _normalize(coupon.applicable_categories)
    if applicable and not cart & applicable:
        return RejectionReason.category_not_applicable

    return None


# ─────────────────────────── Discount ───────────────────────────

def calculate_discount(coupon, order_amount: float) -> float:
    """Discount for ``order_amount``; never negative and never above the order amount."""
    if order_amount <= 0:
        return 0.0

    if coupon.discount_type == DiscountType.percentage.value:
        discount = round2(order_amount * coupon.discount_value / 100)
        cap = coupon.maximum_discount_amount
        if cap is not None and discount > cap:
            discount = cap
    elif coupon.discount_type == DiscountType.fixed.value:
        discount = round2(min(coupon.discount_value, order_amount))
    else:
        return 0.0

    return max(discount, 0.0)


# ─────────────────────────── Evaluation ───────────────────────────

def find_rejection(
    coupon,
    now: datetime,
    user_id=None,
    order_amount: float = 0.0,
    cart_categories: Optional[Iterable[str]] = None,
) -> Optional[RejectionReason]:
    if not is_within_validity_window(coupon, now):
        return RejectionReason.inactive_or_expired
    if not has_global_capacity(coupon):
        return RejectionReason.usage_limit_reached
    if not can_user_redeem(coupon, user_id):
        return RejectionReason.user_limit_reached
    if order_amount < (coupon.minimum_order_amount or 0):
        return RejectionReason.below_minimum_order
    return category_rejection(coupon, cart_categories)


def evaluate(
    coupon,
    now: datetime,
    user_id=None,
    order_amount: float = 0.0,
    cart_categories: Optional[Iterable[str]] = None,
) -> Evaluation:
    reason = find_rejection(coupon, now, user_id, order_amount, cart_categories)
    if reason is not None:
        return Evaluation(valid=False, reason=reason, discount_amount=0.0)
    return Evaluation(valid=True, reason=None, discount_amount=calculate_discount(coupon, order_amount))


def ensure_redeemable(
    coupon,
    now: datetime,
    user_id=None,
    order_amount: float = 0.0,
    cart_categories: Optional[Iterable[str]] = None,
) -> float:
    """Like ``evaluate`` but raises ``CouponRejected``; returns the discount."""
    result = evaluate(coupon, now, user_id, order_amount, cart_categories)
    if not result.valid:
        raise CouponRejected(result.reason, rejection_message(result.reason, coupon))
    return result.discount_amount
