"""
order_workflow.py
=================
Checkout, payment confirmation and status changes for orders.

Order items and shipping info are copied onto the order when it is placed,
so later catalog or profile edits never rewrite order history.

Status changes are not guarded: an admin may move an order to any status.
Entering ``confirmed`` sends the confirmation notifications and entering
``shipped`` sets an estimated delivery date.
"""

import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

import config
import coupon_engine
import coupon_redemption
import models
import schemas
from notifications import NotificationService

logger = logging.getLogger(__name__)

REQUIRED_SHIPPING_FIELDS = (
    "full_name", "email", "phone", "door_number", "street",
    "village", "city", "state", "pincode",
)
ADDRESS_FIELDS = ("street", "city", "state", "pincode")
AMOUNT_TOLERANCE = 1


class OrderValidationError(ValueError):
    pass


class OrderNotFound(LookupError):
    pass


# ─────────────────────────── Lookups ───────────────────────────

def get_order(db: Session, order_id: int) -> models.Order:
    order = db.query(models.Order).filter(models.Order.id == order_id).first()
    if not order:
        raise OrderNotFound("Order not found")
    return order


def get_user_order(db: Session, order_id: int, user_id: int) -> models.Order:
    order = (
        db.query(models.Order)
        .filter(models.Order.id == order_id, models.Order.user_id == user_id)
        .first()
    )
    if not order:
        raise OrderNotFound("Order not found")
    return order


# ─────────────────────────── Checkout ───────────────────────────

def snapshot_items(
    db: Session, items: List[schemas.OrderItemRequest]
) -> Tuple[List[dict], float, List[str]]:
    """Returns (item snapshots, subtotal, categories in the cart)."""
    snapshots = []
    subtotal = 0.0
    categories = []

    for item in items:
        product = db.query(models.Product).filter(models.Product.id == item.product_id).first()
        if not product:
            raise OrderValidationError(f"Product {item.product_id} not found")

        subtotal += product.price * item.quantity
        categories.append(product.category)
        snapshots.append(schemas.OrderItemSnapshot(
            product_id=product.id,
            name=product.name,
            price=product.price,
            quantity=item.quantity,
            size=item.size,
            image=product.images[0] if product.images else "",
        ).model_dump())

    return snapshots, coupon_engine.round2(subtotal), categories


def is_shipping_complete(shipping: Optional[schemas.ShippingInfo]) -> bool:
    if shipping is None:
        return False
    return all((getattr(shipping, field) or "").strip() for field in REQUIRED_SHIPPING_FIELDS)


def sync_user_address(user: models.User, shipping: schemas.ShippingInfo) -> bool:
    """Fill the profile address from checkout when the stored one is incomplete."""
    current = user.address or {}
    if all(current.get(field) for field in ADDRESS_FIELDS):
        return False

    user.phone = shipping.phone or user.phone
    user.address = {
        "door_number": shipping.door_number,
        "street": shipping.street,
        "village": shipping.village,
        "city": shipping.city,
        "state": shipping.state,
        "pincode": shipping.pincode,
        "country": "India",
    }
    return True


def create_order(
    db: Session,
    user: models.User,
    payload: schemas.OrderCreate,
    now: Optional[datetime] = None,
) -> models.Order:
    now = now or models.utcnow()

    if not payload.items:
        raise OrderValidationError("Items are required")

    items, subtotal, categories = snapshot_items(db, payload.items)

    if not is_shipping_complete(payload.shipping_info):
        raise OrderValidationError("Complete shipping information is required")

    discount = 0.0
    coupon_code = None
    if payload.coupon_code:
        coupon = coupon_redemption.find_coupon_by_code(db, payload.coupon_code)
        if not coupon:
            raise OrderValidationError("Invalid coupon code")
        usage = coupon_redemption.redeem_coupon(
            db, coupon, user.id, subtotal, now=now, cart_categories=categories, commit=False,
        )
        discount = usage.discount_amount
        coupon_code = coupon.code

    shipping_cost = config.SHIPPING_COST
    total = coupon_engine.round2(subtotal - discount + shipping_cost)

    if payload.total_amount is not None and abs(total - payload.total_amount) > AMOUNT_TOLERANCE:
        db.rollback()
        raise OrderValidationError(
            f"Amount mismatch: calculated {total:g}, provided {payload.total_amount:g}"
        )

    if sync_user_address(user, payload.shipping_info):
        logger.info("Updated profile address for user %s from shipping info", user.id)

    order = models.Order(
        user_id=user.id,
        items=items,
        shipping_info=payload.shipping_info.model_dump(),
        payment_method=payload.payment_method,
        coupon_code=coupon_code,
        discount_amount=discount,
        total_amount=total,
        shipping_cost=shipping_cost,
        status=schemas.OrderStatus.pending.value,
        payment_status=schemas.PaymentStatus.pending.value,
        created_at=now,
    )
    if payload.payment_method == "stripe":
        order.payment_intent_id = payload.payment_intent_id
    elif payload.transaction_number and payload.transaction_number.strip():
        order.transaction_number = payload.transaction_number.strip()

    db.add(order)
    db.commit()
    db.refresh(order)

    logger.info(
        "Order %s created for user %s: %d item(s), total=%.2f, coupon=%s",
        order.id, user.id, len(items), total, coupon_code,
    )
    return order


# ─────────────────────────── Payment ───────────────────────────

def require_transaction_number(transaction_number: Optional[str]) -> str:
    transaction_number = (transaction_number or "").strip()
    if not transaction_number:
        raise OrderValidationError("Transaction number is required")
    return transaction_number


def confirm_payment(db: Session, order: models.Order, transaction_number: Optional[str]) -> models.Order:
    """Attach a manual-payment transaction number. Order status is left untouched."""
    transaction_number = require_transaction_number(transaction_number)

    order.transaction_number = transaction_number
    order.payment_status = schemas.PaymentStatus.completed.value
    db.commit()
    db.refresh(order)

    logger.info("Payment confirmed for order %s", order.id)
    return order


def mark_payment_complete(db: Session, order: models.Order, now: Optional[datetime] = None) -> models.Order:
    if order.status != schemas.OrderStatus.pending.value:
        raise OrderValidationError("Order is not in pending status")

    order.status = schemas.OrderStatus.confirmed.value
    order.payment_status = schemas.PaymentStatus.completed.value
    order.payment_completed_at = now or models.utcnow()
    db.commit()
    db.refresh(order)
    return order


# ─────────────────────────── Status ───────────────────────────

def update_order_status(
    db: Session,
    order: models.Order,
    update: schemas.OrderStatusUpdate,
    notifier: NotificationService,
    now: Optional[datetime] = None,
) -> Tuple[models.Order, Optional[Dict[str, bool]]]:
    """Set the order status; returns the order and the notification summary (if any were sent)."""
    now = now or models.utcnow()
    previous = order.status

    order.status = update.status.value
    if update.tracking_number:
        order.tracking_number = update.tracking_number
    if update.notes:
        order.notes = update.notes
    if update.status == schemas.OrderStatus.shipped:
        order.estimated_delivery = now + timedelta(days=config.ESTIMATED_DELIVERY_DAYS)

    db.commit()
    db.refresh(order)
    logger.info("Order %s status %s -> %s", order.id, previous, order.status)

    notifications = None
    if update.status == schemas.OrderStatus.confirmed and order.user:
        try:
            notifications = notifier.send_order_confirmation(order, order.user)
        except Exception:
            logger.exception("Error sending notifications for order %s", order.id)

    return order, notifications
