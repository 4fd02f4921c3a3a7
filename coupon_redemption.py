"""
coupon_redemption.py
====================
Recording coupon usage against the database.

The global usage cap is enforced by a conditional UPDATE
(``used_count < usage_limit`` is part of the WHERE clause), so two
concurrent redemptions can never both take the last slot. The usage row is
written in the same transaction as the increment, keeping
``used_count == len(usages)``.
"""

import logging
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

import coupon_engine
import models
from coupon_engine import CouponRejected, RejectionReason

logger = logging.getLogger(__name__)


def find_coupon_by_code(db: Session, code: str) -> Optional[models.Coupon]:
    return db.query(models.Coupon).filter(models.Coupon.code == code.strip().upper()).first()


def _claim_slot(db: Session, coupon_id: int) -> bool:
    claimed = (
        db.query(models.Coupon)
        .filter(models.Coupon.id == coupon_id)
        .filter(
            or_(
                models.Coupon.usage_limit.is_(None),
                models.Coupon.used_count < models.Coupon.usage_limit,
            )
        )
        .update(
            {models.Coupon.used_count: models.Coupon.used_count + 1},
            synchronize_session=False,
        )
    )
    return claimed == 1


def redeem_coupon(
    db: Session,
    coupon: models.Coupon,
    user_id: Optional[int],
    order_amount: float,
    now: Optional[datetime] = None,
    cart_categories: Optional[Iterable[str]] = None,
    commit: bool = True,
) -> models.CouponUsage:
    """
    Re-validate ``coupon`` and record one redemption.

    Raises ``CouponRejected`` when a rule fails, including when another
    request took the last global slot between validation and the update.
    With ``commit=False`` the caller owns the transaction (order creation).
    """
    now = now or models.utcnow()
    discount = coupon_engine.ensure_redeemable(coupon, now, user_id, order_amount, cart_categories)

    if not _claim_slot(db, coupon.id):
        reason = RejectionReason.usage_limit_reached
        raise CouponRejected(reason, coupon_engine.rejection_message(reason, coupon))

    usage = models.CouponUsage(
        coupon_id=coupon.id,
        user_id=user_id,
        used_at=now,
        order_amount=order_amount,
        discount_amount=discount,
    )
    db.add(usage)

    if commit:
        db.commit()
        db.refresh(usage)
    else:
        db.flush()

    logger.info(
        "Coupon %s redeemed by user=%s order_amount=%.2f discount=%.2f",
        coupon.code, user_id, order_amount, discount,
    )
    # used_count was bumped in SQL; drop the stale in-memory copy
    db.expire(coupon)
    return usage
