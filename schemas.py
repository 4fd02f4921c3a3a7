import re
from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel
from typing import Optional, List, Literal
from datetime import datetime, timezone
from enum import Enum

from coupon_engine import DiscountType, as_utc


class CamelModel(BaseModel):
    """JSON in and out is camelCase; Python code uses snake_case."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class MessageResponse(CamelModel):
    message: str


# ─────────────── Enums ───────────────

class ProductCategory(str, Enum):
    sarees = "sarees"
    kurtis = "kurtis"
    western = "western"
    ethnic = "ethnic"
    accessories = "accessories"


class OrderStatus(str, Enum):
    pending = "pending"
    confirmed = "confirmed"
    shipped = "shipped"
    delivered = "delivered"
    cancelled = "cancelled"


class PaymentStatus(str, Enum):
    pending = "pending"
    completed = "completed"
    failed = "failed"


PaymentMethod = Literal["stripe", "bank_transfer", "upi"]


def _to_utc(value: Optional[datetime]) -> Optional[datetime]:
    return as_utc(value) if value is not None else None


def _clean_categories(values: Optional[List[str]]) -> Optional[List[str]]:
    if values is None:
        return None
    return [v.strip() for v in values if v and v.strip()]


# ─────────────── Coupons ───────────────

class CouponCreate(CamelModel):
    code: str = Field(..., min_length=3, max_length=20)
    description: str = Field(..., min_length=1)
    discount_type: DiscountType = DiscountType.percentage
    discount_value: float
    minimum_order_amount: float = Field(0, ge=0)
    maximum_discount_amount: Optional[float] = Field(None, ge=0)
    usage_limit: Optional[int] = Field(None, ge=1)
    user_usage_limit: int = Field(1, ge=1)
    valid_from: Optional[datetime] = None
    valid_until: datetime
    applicable_categories: List[str] = Field(default_factory=list)
    excluded_categories: List[str] = Field(default_factory=list)

    @field_validator("code")
    @classmethod
    def normalize_code(cls, v: str) -> str:
        return v.strip().upper()

    @field_validator("valid_from", "valid_until")
    @classmethod
    def utc_instants(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _to_utc(v)

    @field_validator("applicable_categories", "excluded_categories")
    @classmethod
    def strip_categories(cls, v: List[str]) -> List[str]:
        return _clean_categories(v)

    @model_validator(mode="after")
    def validate_discount(self) -> "CouponCreate":
        check_discount_value(self.discount_type, self.discount_value)
        if self.valid_until <= datetime.now(timezone.utc):
            raise ValueError("Valid until date must be in the future")
        if self.valid_from is not None and self.valid_from > self.valid_until:
            raise ValueError("Valid from date must be before valid until date")
        return self


def check_discount_value(discount_type, discount_value: float) -> None:
    if discount_type == DiscountType.percentage and not 0 < discount_value <= 100:
        raise ValueError("Percentage discount must be between 1 and 100")
    if discount_type == DiscountType.fixed and discount_value <= 0:
        raise ValueError("Fixed discount must be greater than 0")


class CouponUpdate(CamelModel):
    description: Optional[str] = None
    discount_type: Optional[DiscountType] = None
    discount_value: Optional[float] = None
    minimum_order_amount: Optional[float] = Field(None, ge=0)
    maximum_discount_amount: Optional[float] = Field(None, ge=0)
    usage_limit: Optional[int] = Field(None, ge=1)
    user_usage_limit: Optional[int] = Field(None, ge=1)
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    is_active: Optional[bool] = None
    applicable_categories: Optional[List[str]] = None
    excluded_categories: Optional[List[str]] = None

    @field_validator("valid_from", "valid_until")
    @classmethod
    def utc_instants(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _to_utc(v)

    @field_validator("applicable_categories", "excluded_categories")
    @classmethod
    def strip_categories(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        return _clean_categories(v)


class CouponUsageResponse(CamelModel):
    user_id: Optional[int] = None
    used_at: datetime
    order_amount: float
    discount_amount: float


class CouponResponse(CamelModel):
    id: int
    code: str
    description: str
    discount_type: DiscountType
    discount_value: float
    minimum_order_amount: float
    maximum_discount_amount: Optional[float] = None
    usage_limit: Optional[int] = None
    used_count: int
    user_usage_limit: int
    valid_from: datetime
    valid_until: datetime
    is_active: bool
    applicable_categories: List[str] = []
    excluded_categories: List[str] = []
    created_by: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class CouponDetailResponse(CouponResponse):
    used_by: List[CouponUsageResponse] = []


class CouponSummary(CamelModel):
    id: int
    code: str
    description: str
    discount_type: DiscountType
    discount_value: float


class CartCategoryItem(CamelModel):
    """Only the category matters for coupon checks; other cart fields are ignored."""
    model_config = ConfigDict(extra="ignore")

    product_id: Optional[int] = None
    category: Optional[str] = None


class ValidateCouponRequest(CamelModel):
    code: str = Field(..., min_length=1)
    order_amount: float = Field(..., gt=0)
    user_id: Optional[int] = None
    cart_items: Optional[List[CartCategoryItem]] = None


class ValidateCouponResponse(CamelModel):
    valid: bool
    coupon: CouponSummary
    discount_amount: float
    final_amount: float


class ApplyCouponRequest(CamelModel):
    coupon_id: int
    user_id: Optional[int] = None
    order_amount: float = Field(..., gt=0)


class ApplyCouponResponse(CamelModel):
    success: bool
    discount_amount: float
    final_amount: float


class SeededCoupon(CamelModel):
    code: str
    description: str
    discount_type: DiscountType
    discount_value: float
    minimum_order_amount: float


class SeedCouponsResponse(CamelModel):
    success: bool
    message: str
    coupons: List[SeededCoupon]


# ─────────────── Products ───────────────

class ColorVariation(CamelModel):
    color: str = Field(..., min_length=1)
    color_code: Optional[str] = None
    images: List[str] = Field(default_factory=list)
    is_main_color: bool = False


class ProductBase(CamelModel):
    @field_validator("category", mode="before", check_fields=False)
    @classmethod
    def lowercase_category(cls, v):
        return v.strip().lower() if isinstance(v, str) else v


class ProductCreate(ProductBase):
    name: str = Field(..., min_length=2, max_length=200)
    description: str = Field(..., min_length=10, max_length=1000)
    price: float = Field(..., ge=0)
    original_price: Optional[float] = Field(None, ge=0)
    category: ProductCategory
    sizes: List[str] = Field(default_factory=list)
    colors: List[str] = Field(default_factory=list)
    images: List[str] = Field(..., min_length=1)
    color_variations: List[ColorVariation] = Field(default_factory=list)
    main_image: Optional[str] = None
    stock: int = Field(0, ge=0)
    rating: float = Field(0, ge=0, le=5)
    is_active: bool = True
    tags: List[str] = Field(default_factory=list)
    material: Optional[str] = None
    care_instructions: Optional[str] = None


class ProductUpdate(ProductBase):
    name: Optional[str] = Field(None, min_length=2, max_length=200)
    description: Optional[str] = Field(None, min_length=10, max_length=1000)
    price: Optional[float] = Field(None, ge=0)
    original_price: Optional[float] = Field(None, ge=0)
    category: Optional[ProductCategory] = None
    sizes: Optional[List[str]] = None
    colors: Optional[List[str]] = None
    images: Optional[List[str]] = None
    color_variations: Optional[List[ColorVariation]] = None
    main_image: Optional[str] = None
    stock: Optional[int] = Field(None, ge=0)
    rating: Optional[float] = Field(None, ge=0, le=5)
    is_active: Optional[bool] = None
    tags: Optional[List[str]] = None
    material: Optional[str] = None
    care_instructions: Optional[str] = None


class ProductResponse(CamelModel):
    id: int
    name: str
    description: str
    price: float
    original_price: Optional[float] = None
    category: str
    sizes: List[str] = []
    colors: List[str] = []
    images: List[str] = []
    color_variations: List[ColorVariation] = []
    main_image: Optional[str] = None
    stock: int
    rating: float
    num_reviews: int
    is_active: bool
    tags: List[str] = []
    material: Optional[str] = None
    care_instructions: Optional[str] = None
    created_at: Optional[datetime] = None


class ProductPagination(CamelModel):
    current_page: int
    total_pages: int
    total_products: int
    has_next_page: bool
    has_prev_page: bool


class ProductListResponse(CamelModel):
    products: List[ProductResponse]
    pagination: ProductPagination


class CategoryProductListResponse(ProductListResponse):
    category: str


class ProductMessageResponse(CamelModel):
    message: str
    product: ProductResponse


# ─────────────── Users ───────────────

class Address(CamelModel):
    door_number: Optional[str] = None
    street: Optional[str] = None
    village: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    pincode: Optional[str] = None
    country: Optional[str] = None


class UserResponse(CamelModel):
    id: int
    name: str
    email: str
    phone: Optional[str] = None
    address: Optional[Address] = None
    is_admin: bool
    created_at: Optional[datetime] = None


class AdminUserResponse(UserResponse):
    formatted_address: str
    address_complete: bool


class UserStats(CamelModel):
    total_orders: int
    total_spent: float
    member_since: str


class UserPagination(CamelModel):
    current_page: int
    total_pages: int
    total_users: int
    has_next: bool
    has_prev: bool


class AdminUserListResponse(CamelModel):
    users: List[AdminUserResponse]
    pagination: UserPagination


# ─────────────── Orders ───────────────

class ShippingInfo(CamelModel):
    """Completeness is checked by the order workflow so the error message stays specific."""
    full_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    door_number: Optional[str] = None
    street: Optional[str] = None
    village: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    pincode: Optional[str] = None
    address: Optional[str] = None


class OrderItemRequest(CamelModel):
    product_id: int
    quantity: int = Field(..., ge=1)
    size: str = ""


class OrderCreate(CamelModel):
    items: List[OrderItemRequest] = Field(default_factory=list)
    shipping_info: Optional[ShippingInfo] = None
    payment_method: PaymentMethod
    payment_intent_id: Optional[str] = None
    transaction_number: Optional[str] = None
    coupon_code: Optional[str] = None
    total_amount: Optional[float] = Field(None, ge=0)


class OrderItemSnapshot(CamelModel):
    product_id: Optional[int] = None
    name: str
    price: float
    quantity: int
    size: str = ""
    image: str = ""


class OrderResponse(CamelModel):
    id: int
    user_id: int
    items: List[OrderItemSnapshot]
    shipping_info: ShippingInfo
    payment_method: str
    payment_intent_id: Optional[str] = None
    transaction_number: Optional[str] = None
    coupon_code: Optional[str] = None
    discount_amount: float = 0
    total_amount: float
    shipping_cost: float
    status: OrderStatus
    payment_status: PaymentStatus
    payment_completed_at: Optional[datetime] = None
    tracking_number: Optional[str] = None
    notes: Optional[str] = None
    estimated_delivery: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class OrderMessageResponse(CamelModel):
    message: str
    order: OrderResponse


class ConfirmPaymentRequest(CamelModel):
    transaction_number: Optional[str] = None


class OrderStatusUpdate(CamelModel):
    status: OrderStatus
    tracking_number: Optional[str] = None
    notes: Optional[str] = None


class NotificationResults(CamelModel):
    email: bool = False
    sms: bool = False
    whatsapp: bool = False


class OrderStatusUpdateResponse(CamelModel):
    message: str
    order: OrderResponse
    notifications: Optional[NotificationResults] = None


class OrderPagination(CamelModel):
    current_page: int
    total_pages: int
    total_orders: int
    has_next_page: bool
    has_prev_page: bool


class AdminOrderListResponse(CamelModel):
    orders: List[OrderResponse]
    pagination: OrderPagination


# ─────────────── Newsletter ───────────────

class NewsletterRequest(CamelModel):
    email: EmailStr

    @field_validator("email")
    @classmethod
    def lowercase_email(cls, v: str) -> str:
        return v.strip().lower()


class NewsletterResponse(CamelModel):
    id: int
    email: str
    is_active: bool
    subscribed_at: datetime
    last_email_sent: Optional[datetime] = None
    source: str
    created_at: Optional[datetime] = None


class NewsletterMessageResponse(CamelModel):
    message: str
    subscription: NewsletterResponse


class NewsletterPagination(CamelModel):
    page: int
    limit: int
    total: int
    pages: int


class NewsletterListResponse(CamelModel):
    subscriptions: List[NewsletterResponse]
    pagination: NewsletterPagination


class DailyCount(CamelModel):
    date: str
    count: int


class NewsletterStats(CamelModel):
    total_subscribers: int
    total_unsubscribed: int
    total_emails: int
    recent_subscriptions: List[NewsletterResponse]
    monthly_stats: List[DailyCount]


# ─────────────── Payment settings ───────────────

IFSC_PATTERN = re.compile(r"^[A-Z]{4}0[A-Z0-9]{6}$")
UPI_PATTERN = re.compile(r"^[a-zA-Z0-9._-]+@[a-zA-Z0-9.-]+$")


def _check_ifsc(v: str) -> str:
    v = v.strip().upper()
    if not IFSC_PATTERN.match(v):
        raise ValueError("Invalid IFSC code format. Please enter a valid IFSC code.")
    return v


def _check_upi(v: str) -> str:
    v = v.strip()
    if not UPI_PATTERN.match(v):
        raise ValueError("Invalid UPI ID format. Please enter a valid UPI ID (e.g., user@paytm).")
    return v


class PaymentSettingsCreate(CamelModel):
    bank_name: str = Field(..., min_length=1)
    account_number: str = Field(..., min_length=1)
    account_holder_name: str = Field(..., min_length=1)
    ifsc_code: str
    branch_name: str = ""
    upi_id: str
    upi_name: str = ""
    qr_code_image: str = ""
    gpay_number: str = ""
    phonepe_number: str = ""
    paytm_number: str = ""
    payment_instructions: Optional[str] = None

    @field_validator(
        "bank_name", "account_number", "account_holder_name", "branch_name",
        "upi_name", "qr_code_image", "gpay_number", "phonepe_number", "paytm_number",
    )
    @classmethod
    def strip_text(cls, v: str) -> str:
        return v.strip()

    @field_validator("ifsc_code")
    @classmethod
    def validate_ifsc(cls, v: str) -> str:
        return _check_ifsc(v)

    @field_validator("upi_id")
    @classmethod
    def validate_upi(cls, v: str) -> str:
        return _check_upi(v)


class PaymentSettingsUpdate(CamelModel):
    bank_name: Optional[str] = None
    account_number: Optional[str] = None
    account_holder_name: Optional[str] = None
    ifsc_code: Optional[str] = None
    branch_name: Optional[str] = None
    upi_id: Optional[str] = None
    upi_name: Optional[str] = None
    qr_code_image: Optional[str] = None
    gpay_number: Optional[str] = None
    phonepe_number: Optional[str] = None
    paytm_number: Optional[str] = None
    payment_instructions: Optional[str] = None
    is_active: Optional[bool] = None

    @field_validator("ifsc_code")
    @classmethod
    def validate_ifsc(cls, v: Optional[str]) -> Optional[str]:
        return _check_ifsc(v) if v is not None else v

    @field_validator("upi_id")
    @classmethod
    def validate_upi(cls, v: Optional[str]) -> Optional[str]:
        return _check_upi(v) if v is not None else v


class PublicPaymentSettings(CamelModel):
    bank_name: str
    account_number: str
    account_holder_name: str
    ifsc_code: str
    upi_id: str
    upi_name: str = ""
    qr_code_image: str = ""
    gpay_number: str = ""
    phonepe_number: str = ""
    paytm_number: str = ""
    payment_instructions: str


class PaymentSettingsResponse(PublicPaymentSettings):
    id: int
    branch_name: str = ""
    is_active: bool
    created_by: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class PaymentSettingsMessageResponse(CamelModel):
    message: str
    payment_settings: PaymentSettingsResponse


# ─────────────── Admin analytics ───────────────

class DashboardStats(CamelModel):
    total_products: int
    total_orders: int
    total_users: int
    total_revenue: float
    recent_orders: List[OrderResponse]


class MonthlyRevenue(CamelModel):
    month: str
    revenue: float


class TopProduct(CamelModel):
    product_id: Optional[int] = None
    name: Optional[str] = None
    sales: int
    revenue: float


class AnalyticsResponse(CamelModel):
    total_revenue: float
    total_orders: int
    total_users: int
    total_products: int
    monthly_revenue: List[MonthlyRevenue]
    top_products: List[TopProduct]
    orders_by_status: dict


class SalesReportRow(CamelModel):
    date: str
    orders: int
    revenue: float
    customers: int


class InventoryReportRow(CamelModel):
    product: str
    stock: int
    sold: int
    revenue: float


class CustomerSegment(CamelModel):
    segment: str
    count: int
    percentage: int


class FinancialSummary(CamelModel):
    total_revenue: float
    total_expenses: float
    net_profit: float
    profit_margin: int


class ReportsResponse(CamelModel):
    sales_report: List[SalesReportRow]
    inventory_report: List[InventoryReportRow]
    customer_report: List[CustomerSegment]
    financial_summary: FinancialSummary
