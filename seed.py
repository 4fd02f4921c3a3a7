"""
seed.py
=======
Sample coupons for a fresh store. ``python seed.py`` seeds the configured
database; the admin ``POST /coupons/seed`` endpoint calls the same code.
"""

import logging
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy.orm import Session

import models

logger = logging.getLogger(__name__)

SAMPLE_COUPONS = [
    {
        "code": "WELCOME10",
        "description": "Get 10% off on your first order",
        "discount_type": "percentage",
        "discount_value": 10,
        "minimum_order_amount": 500,
        "maximum_discount_amount": 200,
        "usage_limit": 100,
        "user_usage_limit": 1,
    },
    {
        "code": "SAVE20",
        "description": "Save 20% on orders above ₹1000",
        "discount_type": "percentage",
        "discount_value": 20,
        "minimum_order_amount": 1000,
        "maximum_discount_amount": 500,
        "usage_limit": 50,
        "user_usage_limit": 2,
    },
    {
        "code": "FLAT100",
        "description": "Flat ₹100 off on minimum order of ₹300",
        "discount_type": "fixed",
        "discount_value": 100,
        "minimum_order_amount": 300,
        "usage_limit": 200,
        "user_usage_limit": 3,
    },
    {
        "code": "FESTIVE50",
        "description": "Festive offer - 50% off on selected categories",
        "discount_type": "percentage",
        "discount_value": 50,
        "minimum_order_amount": 800,
        "maximum_discount_amount": 1000,
        "usage_limit": 75,
        "user_usage_limit": 1,
        "applicable_categories": ["sarees", "kurtis", "ethnic"],
    },
    {
        "code": "NEWUSER",
        "description": "Special offer for new users - 15% off",
        "discount_type": "percentage",
        "discount_value": 15,
        "minimum_order_amount": 400,
        "maximum_discount_amount": 300,
        "usage_limit": 150,
        "user_usage_limit": 1,
    },
]


def seed_coupons(
    db: Session, created_by: Optional[int] = None, now: Optional[datetime] = None
) -> List[models.Coupon]:
    """
    Load the sample set, valid from yesterday for 30 days.

    Unredeemed coupons are cleared first. Redeemed coupons are kept along
    with their usage history, and a sample whose code is still taken by
    one of them is skipped. Returns the coupons that were created.
    """
    now = now or models.utcnow()
    valid_from = now - timedelta(days=1)
    valid_until = now + timedelta(days=30)

    cleared = (
        db.query(models.Coupon)
        .filter(models.Coupon.used_count == 0)
        .delete(synchronize_session=False)
    )
    kept = {code for (code,) in db.query(models.Coupon.code).all()}
    logger.info("Cleared %d unused coupons, kept %d redeemed", cleared, len(kept))

    coupons = []
    for data in SAMPLE_COUPONS:
        if data["code"] in kept:
            logger.info("Skipping sample coupon %s; a redeemed coupon uses that code", data["code"])
            continue
        coupon = models.Coupon(
            valid_from=valid_from,
            valid_until=valid_until,
            is_active=True,
            used_count=0,
            applicable_categories=data.get("applicable_categories", []),
            excluded_categories=[],
            created_by=created_by,
            **{k: v for k, v in data.items() if k != "applicable_categories"},
        )
        db.add(coupon)
        coupons.append(coupon)

    db.commit()
    for coupon in coupons:
        db.refresh(coupon)
    logger.info("Seeded %d coupons", len(coupons))
    return coupons


if __name__ == "__main__":
    from database import Base, SessionLocal, engine

    logging.basicConfig(level=logging.INFO)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        seed_coupons(session)
    finally:
        session.close()
