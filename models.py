from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, Float, JSON, DateTime, Boolean, Text, ForeignKey
from sqlalchemy.orm import relationship
from database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    """
    Storefront customer or admin.

    address: JSON snapshot copied from checkout shipping info.
        { "door_number", "street", "village", "city", "state", "pincode", "country" }
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    phone = Column(String(20), nullable=True)
    address = Column(JSON, nullable=True)
    is_admin = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class Product(Base):
    """
    Catalog entry.

    category: 'sarees' | 'kurtis' | 'western' | 'ethnic' | 'accessories'
    color_variations: [{ "color", "color_code", "images": [...], "is_main_color" }]
    stock is informational only; checkout never decrements it.
    """
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=False)
    price = Column(Float, nullable=False)
    original_price = Column(Float, nullable=True)
    category = Column(String(20), nullable=False, index=True)
    sizes = Column(JSON, default=list, nullable=False)
    colors = Column(JSON, default=list, nullable=False)
    images = Column(JSON, default=list, nullable=False)
    color_variations = Column(JSON, default=list, nullable=False)
    main_image = Column(String, nullable=True)
    stock = Column(Integer, default=0, nullable=False)
    rating = Column(Float, default=0, nullable=False)
    num_reviews = Column(Integer, default=0, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    tags = Column(JSON, default=list, nullable=False)
    material = Column(String, nullable=True)
    care_instructions = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class Coupon(Base):
    """
    Discount coupon.

    discount_type: 'percentage' | 'fixed'
    maximum_discount_amount only caps percentage coupons.
    usage_limit = None means no global cap.
    used_count always equals len(usages); both change in the same transaction.
    """
    __tablename__ = "coupons"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    code = Column(String(20), unique=True, nullable=False, index=True)
    description = Column(String, nullable=False)
    discount_type = Column(String(10), nullable=False, default="percentage")
    discount_value = Column(Float, nullable=False)
    minimum_order_amount = Column(Float, default=0, nullable=False)
    maximum_discount_amount = Column(Float, nullable=True)
    usage_limit = Column(Integer, nullable=True)
    used_count = Column(Integer, default=0, nullable=False)
    user_usage_limit = Column(Integer, default=1, nullable=False)
    valid_from = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    valid_until = Column(DateTime(timezone=True), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    applicable_categories = Column(JSON, default=list, nullable=False)
    excluded_categories = Column(JSON, default=list, nullable=False)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    usages = relationship(
        "CouponUsage",
        back_populates="coupon",
        cascade="all, delete-orphan",
        order_by="CouponUsage.id",
    )

    @property
    def used_by(self):
        return self.usages


class CouponUsage(Base):
    """One redemption of a coupon. Rows are only ever appended."""
    __tablename__ = "coupon_usages"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    coupon_id = Column(Integer, ForeignKey("coupons.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    used_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    order_amount = Column(Float, nullable=False)
    discount_amount = Column(Float, nullable=False)

    coupon = relationship("Coupon", back_populates="usages")


class Order(Base):
    """
    Customer order.

    items: snapshot taken at checkout, never a live product reference.
        [{ "product_id", "name", "price", "quantity", "size", "image" }]
    shipping_info: address snapshot.
        { "full_name", "email", "phone", "door_number", "street", "village",
          "city", "state", "pincode", "address" }
    status: 'pending' | 'confirmed' | 'shipped' | 'delivered' | 'cancelled'
    payment_status: 'pending' | 'completed' | 'failed'
    """
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    items = Column(JSON, nullable=False)
    shipping_info = Column(JSON, nullable=False)
    payment_method = Column(String(20), nullable=False)
    payment_intent_id = Column(String, nullable=True)
    transaction_number = Column(String, nullable=True)
    coupon_code = Column(String(20), nullable=True)
    discount_amount = Column(Float, default=0, nullable=False)
    total_amount = Column(Float, nullable=False)
    shipping_cost = Column(Float, default=99, nullable=False)
    status = Column(String(20), default="pending", nullable=False, index=True)
    payment_status = Column(String(20), default="pending", nullable=False)
    payment_completed_at = Column(DateTime(timezone=True), nullable=True)
    tracking_number = Column(String, nullable=True)
    notes = Column(Text, nullable=True)
    estimated_delivery = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    user = relationship("User")


class Newsletter(Base):
    """Newsletter subscription. source: 'website' | 'admin' | 'api'"""
    __tablename__ = "newsletter_subscriptions"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    is_active = Column(Boolean, default=True, nullable=False, index=True)
    subscribed_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    last_email_sent = Column(DateTime(timezone=True), nullable=True)
    source = Column(String(10), default="website", nullable=False)
    user_agent = Column(String, nullable=True)
    ip_address = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


DEFAULT_PAYMENT_INSTRUCTIONS = (
    "Please make payment to the provided UPI ID or bank account. "
    "Share the payment screenshot for order confirmation."
)


class PaymentSettings(Base):
    """Bank / UPI details shown to buyers paying manually. At most one row is active."""
    __tablename__ = "payment_settings"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    bank_name = Column(String, nullable=False)
    account_number = Column(String, nullable=False)
    account_holder_name = Column(String, nullable=False)
    ifsc_code = Column(String(11), nullable=False)
    branch_name = Column(String, default="", nullable=False)
    upi_id = Column(String, nullable=False)
    upi_name = Column(String, default="", nullable=False)
    qr_code_image = Column(String, default="", nullable=False)
    gpay_number = Column(String, default="", nullable=False)
    phonepe_number = Column(String, default="", nullable=False)
    paytm_number = Column(String, default="", nullable=False)
    is_active = Column(Boolean, default=True, nullable=False, index=True)
    payment_instructions = Column(String, default=DEFAULT_PAYMENT_INSTRUCTIONS, nullable=False)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
