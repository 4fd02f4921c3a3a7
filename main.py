"""
main.py
=======
FastAPI application entry point for the Janu Collections storefront.

Endpoints:
  GET    /auth/me                           - Current user's profile
  GET    /products                          - Browse the catalog
  GET    /auth/stats                        - Current user's order totals
  GET    /products/category/{category}      - Browse one category
  GET    /products/featured/products        - Best-rated products
  GET    /products/{id}                     - Product details
  GET    /coupons                           - List coupons (admin)
  GET    /coupons/{id}                      - Coupon with redemptions (admin)
  POST   /coupons                           - Create a coupon (admin)
  PUT    /coupons/{id}                      - Update a coupon (admin)
  DELETE /coupons/{id}                      - Delete an unused coupon (admin)
  POST   /coupons/seed                      - Load the sample coupons, keeping redeemed ones (admin)
  POST   /coupons/validate                  - Check a coupon against a cart
  POST   /coupons/apply                     - Redeem a coupon
  POST   /orders                            - Place an order
  GET    /orders                            - Current user's orders
  GET    /orders/{id}                       - One of the current user's orders
  PUT    /orders/{id}/confirm-payment       - Attach a manual-payment transaction number
  PATCH  /orders/{id}/payment-complete      - Confirm a pending order as paid
  GET    /payment-settings                  - Active bank / UPI details
  ...    /payment-settings/*                - Payment settings management (admin)
  POST   /newsletter/subscribe              - Subscribe
  POST   /newsletter/unsubscribe            - Unsubscribe
  ...    /newsletter/admin/*                - Subscription management (admin)
  ...    /admin/*                           - Back-office, see admin.py
"""

import logging
from math import ceil

from fastapi import FastAPI, HTTPException, Depends, Query, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import or_
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException
from typing import List, Optional

import admin
import config
import coupon_engine
import coupon_redemption
import models
import order_workflow
import schemas
import seed
from auth import authenticate_token, require_admin
from coupon_engine import CouponRejected
from database import engine, get_db

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Create DB tables on startup
models.Base.metadata.create_all(bind=engine)

app = FastAPI(
    title="Janu Collections API",
    description="Storefront, checkout, coupons and back-office API for Janu Collections.",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(admin.router)


# ═══════════════════════════════════════════════════
#  ERROR HANDLING
# ═══════════════════════════════════════════════════

def _first_error_message(errors: list) -> str:
    if not errors:
        return "Validation failed"
    error = errors[0]
    message = error.get("msg", "Invalid value")
    if message.startswith("Value error, "):
        return message[len("Value error, "):]
    field = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
    return f"{field}: {message}" if field else message


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "error": _first_error_message(errors),
            "errors": [
                {
                    "field": ".".join(str(part) for part in e.get("loc", ()) if part != "body"),
                    "message": e.get("msg"),
                }
                for e in errors
            ],
        },
    )


@app.exception_handler(CouponRejected)
async def coupon_rejected_handler(request: Request, exc: CouponRejected):
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": exc.message, "reason": exc.reason.value},
    )


@app.exception_handler(order_workflow.OrderValidationError)
async def order_validation_handler(request: Request, exc: order_workflow.OrderValidationError):
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": str(exc)})


@app.exception_handler(order_workflow.OrderNotFound)
async def order_not_found_handler(request: Request, exc: order_workflow.OrderNotFound):
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"error": str(exc)})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    message = str(exc) if config.is_development() else "Server error. Please try again later."
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"error": message})


# ═══════════════════════════════════════════════════
#  AUTH
# ═══════════════════════════════════════════════════

@app.get(
    "/auth/me",
    response_model=schemas.UserResponse,
    tags=["Auth"],
    summary="Get the current user's profile",
)
def get_me(user: models.User = Depends(authenticate_token)):
    return user


@app.get(
    "/auth/stats",
    response_model=schemas.UserStats,
    tags=["Auth"],
    summary="Get the current user's order statistics",
)
def get_user_stats(db: Session = Depends(get_db), user: models.User = Depends(authenticate_token)):
    """Every order counts towards the totals, whatever its status."""
    orders = db.query(models.Order.total_amount).filter(models.Order.user_id == user.id).all()
    member_since = coupon_engine.as_utc(user.created_at).strftime("%b %Y") if user.created_at else "Unknown"
    return schemas.UserStats(
        total_orders=len(orders),
        total_spent=coupon_engine.round2(sum(total for (total,) in orders)),
        member_since=member_since,
    )


# ═══════════════════════════════════════════════════
#  PRODUCTS
# ═══════════════════════════════════════════════════

PRODUCT_SORTS = {
    "price-low": (models.Product.price.asc(),),
    "price-high": (models.Product.price.desc(),),
    "name": (models.Product.name.asc(),),
    "rating": (models.Product.rating.desc(),),
    "newest": (models.Product.created_at.desc(), models.Product.id.desc()),
}


@app.get(
    "/products",
    response_model=schemas.ProductListResponse,
    tags=["Products"],
    summary="Browse active products",
)
def list_products(
    category: Optional[str] = None,
    min_price: Optional[float] = Query(None, alias="minPrice", ge=0),
    max_price: Optional[float] = Query(None, alias="maxPrice", ge=0),
    search: Optional[str] = None,
    sort: str = "newest",
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
):
    """
    Filter by category and price range, search name/description, and sort by
    `newest`, `price-low`, `price-high`, `name` or `rating`.
    """
    query = db.query(models.Product).filter(models.Product.is_active.is_(True))
    if category:
        query = query.filter(models.Product.category == category.lower())
    if min_price is not None:
        query = query.filter(models.Product.price >= min_price)
    if max_price is not None:
        query = query.filter(models.Product.price <= max_price)
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(models.Product.name.ilike(pattern), models.Product.description.ilike(pattern)))

    products, pagination = _paginate_products(query, sort, page, limit)
    return schemas.ProductListResponse(products=products, pagination=pagination)


def _paginate_products(query, sort: str, page: int, limit: int):
    total = query.count()
    products = (
        query.order_by(*PRODUCT_SORTS.get(sort, PRODUCT_SORTS["newest"]))
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    total_pages = ceil(total / limit)
    pagination = schemas.ProductPagination(
        current_page=page,
        total_pages=total_pages,
        total_products=total,
        has_next_page=page < total_pages,
        has_prev_page=page > 1,
    )
    return products, pagination


@app.get(
    "/products/category/{category}",
    response_model=schemas.CategoryProductListResponse,
    tags=["Products"],
    summary="Browse one category",
)
def list_category_products(
    category: str,
    sort: str = "newest",
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
):
    query = db.query(models.Product).filter(
        models.Product.is_active.is_(True),
        models.Product.category == category.lower(),
    )
    products, pagination = _paginate_products(query, sort, page, limit)
    return schemas.CategoryProductListResponse(products=products, category=category, pagination=pagination)


FEATURED_MIN_RATING = 4
FEATURED_LIMIT = 8


@app.get(
    "/products/featured/products",
    response_model=List[schemas.ProductResponse],
    tags=["Products"],
    summary="Best-rated products",
)
def list_featured_products(db: Session = Depends(get_db)):
    """Active products rated 4 or higher, best rated first, ties broken by review count."""
    return (
        db.query(models.Product)
        .filter(models.Product.is_active.is_(True), models.Product.rating >= FEATURED_MIN_RATING)
        .order_by(models.Product.rating.desc(), models.Product.num_reviews.desc())
        .limit(FEATURED_LIMIT)
        .all()
    )


@app.get(
    "/products/{product_id}",
    response_model=schemas.ProductResponse,
    tags=["Products"],
    summary="Get a product by ID",
)
def get_product(product_id: int, db: Session = Depends(get_db)):
    product = db.query(models.Product).filter(models.Product.id == product_id).first()
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return product


# ═══════════════════════════════════════════════════
#  COUPON CRUD
# ═══════════════════════════════════════════════════

def _get_coupon_or_404(db: Session, coupon_id: int) -> models.Coupon:
    coupon = db.query(models.Coupon).filter(models.Coupon.id == coupon_id).first()
    if not coupon:
        raise HTTPException(status_code=404, detail="Coupon not found")
    return coupon


@app.get(
    "/coupons",
    response_model=List[schemas.CouponResponse],
    tags=["Coupons"],
    summary="List coupons",
)
def get_all_coupons(
    search: Optional[str] = None,
    coupon_status: str = Query("all", alias="status"),
    db: Session = Depends(get_db),
    _: models.User = Depends(require_admin),
):
    """Search by code or description; `status` is one of all, active, expired, inactive."""
    query = db.query(models.Coupon)
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(models.Coupon.code.ilike(pattern), models.Coupon.description.ilike(pattern)))

    now = models.utcnow()
    if coupon_status == "active":
        query = query.filter(
            models.Coupon.is_active.is_(True),
            models.Coupon.valid_from <= now,
            models.Coupon.valid_until >= now,
        )
    elif coupon_status == "expired":
        query = query.filter(models.Coupon.valid_until < now)
    elif coupon_status == "inactive":
        query = query.filter(models.Coupon.is_active.is_(False))

    return query.order_by(models.Coupon.created_at.desc(), models.Coupon.id.desc()).all()


@app.get(
    "/coupons/{coupon_id}",
    response_model=schemas.CouponDetailResponse,
    tags=["Coupons"],
    summary="Get a coupon by ID",
)
def get_coupon(coupon_id: int, db: Session = Depends(get_db), _: models.User = Depends(require_admin)):
    """Includes every recorded redemption."""
    return _get_coupon_or_404(db, coupon_id)


@app.post(
    "/coupons",
    response_model=schemas.CouponResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Coupons"],
    summary="Create a new coupon",
)
def create_coupon(
    coupon: schemas.CouponCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(require_admin),
):
    """
    Create a new coupon. Codes are stored uppercase and must be unique.
    - **percentage**: 1-100 percent off, optionally capped by `maximumDiscountAmount`.
    - **fixed**: flat amount off, never more than the order amount.
    """
    if coupon_redemption.find_coupon_by_code(db, coupon.code):
        raise HTTPException(status_code=400, detail="Coupon code already exists")

    db_coupon = models.Coupon(
        code=coupon.code,
        description=coupon.description,
        discount_type=coupon.discount_type.value,
        discount_value=coupon.discount_value,
        minimum_order_amount=coupon.minimum_order_amount,
        maximum_discount_amount=coupon.maximum_discount_amount,
        usage_limit=coupon.usage_limit,
        used_count=0,
        user_usage_limit=coupon.user_usage_limit,
        valid_from=coupon.valid_from or models.utcnow(),
        valid_until=coupon.valid_until,
        is_active=True,
        applicable_categories=coupon.applicable_categories,
        excluded_categories=coupon.excluded_categories,
        created_by=user.id,
    )
    db.add(db_coupon)
    db.commit()
    db.refresh(db_coupon)
    logger.info("Coupon %s created by user %s", db_coupon.code, user.id)
    return db_coupon


NULLABLE_COUPON_FIELDS = {"maximum_discount_amount", "usage_limit"}


@app.put(
    "/coupons/{coupon_id}",
    response_model=schemas.CouponResponse,
    tags=["Coupons"],
    summary="Update a coupon",
)
def update_coupon(
    coupon_id: int,
    update_data: schemas.CouponUpdate,
    db: Session = Depends(get_db),
    _: models.User = Depends(require_admin),
):
    """
    Partial update; only provided fields change. Setting `usageLimit` or
    `maximumDiscountAmount` to null removes that limit.
    """
    coupon = _get_coupon_or_404(db, coupon_id)
    changes = update_data.model_dump(exclude_unset=True)

    discount_type = changes.get("discount_type") or coupon.discount_type
    discount_value = changes.get("discount_value")
    if discount_value is None:
        discount_value = coupon.discount_value
    try:
        schemas.check_discount_value(coupon_engine.DiscountType(discount_type), discount_value)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    for field, value in changes.items():
        if value is None and field not in NULLABLE_COUPON_FIELDS:
            continue
        if field == "discount_type":
            value = value.value
        setattr(coupon, field, value)

    if coupon_engine.as_utc(coupon.valid_from) > coupon_engine.as_utc(coupon.valid_until):
        db.rollback()
        raise HTTPException(status_code=400, detail="Valid from date must be before valid until date")

    db.commit()
    db.refresh(coupon)
    return coupon


@app.delete(
    "/coupons/{coupon_id}",
    response_model=schemas.MessageResponse,
    tags=["Coupons"],
    summary="Delete a coupon",
)
def delete_coupon(coupon_id: int, db: Session = Depends(get_db), _: models.User = Depends(require_admin)):
    """Only coupons that were never redeemed can be deleted; deactivate the rest."""
    coupon = _get_coupon_or_404(db, coupon_id)
    if coupon.used_count > 0:
        raise HTTPException(
            status_code=400,
            detail="Cannot delete coupon that has been used. You can deactivate it instead.",
        )
    db.delete(coupon)
    db.commit()
    return {"message": "Coupon deleted successfully"}


@app.post(
    "/coupons/seed",
    response_model=schemas.SeedCouponsResponse,
    tags=["Coupons"],
    summary="Load the sample coupons",
)
def seed_coupons(db: Session = Depends(get_db), user: models.User = Depends(require_admin)):
    """Unused coupons are replaced; redeemed coupons and their usage history stay."""
    coupons = seed.seed_coupons(db, created_by=user.id)
    return schemas.SeedCouponsResponse(
        success=True,
        message=f"{len(coupons)} test coupons created successfully",
        coupons=coupons,
    )


# ═══════════════════════════════════════════════════
#  VALIDATE / APPLY COUPON
# ═══════════════════════════════════════════════════

def _cart_categories(db: Session, items: Optional[List[schemas.CartCategoryItem]]) -> List[str]:
    categories = []
    missing_ids = []
    for item in items or []:
        if item.category:
            categories.append(item.category)
        elif item.product_id is not None:
            missing_ids.append(item.product_id)
    if missing_ids:
        rows = db.query(models.Product.category).filter(models.Product.id.in_(missing_ids)).all()
        categories.extend(category for (category,) in rows)
    return categories


@app.post(
    "/coupons/validate",
    response_model=schemas.ValidateCouponResponse,
    tags=["Apply Coupons"],
    summary="Check whether a coupon can be used for a cart",
)
def validate_coupon(request: schemas.ValidateCouponRequest, db: Session = Depends(get_db)):
    """
    Runs every coupon rule without recording a redemption and returns the
    discount the cart would get. Cart items may carry `category` directly or
    just a `productId` to look it up.
    """
    coupon = coupon_redemption.find_coupon_by_code(db, request.code)
    if not coupon:
        raise HTTPException(status_code=404, detail="Invalid coupon code")

    result = coupon_engine.evaluate(
        coupon,
        models.utcnow(),
        user_id=request.user_id,
        order_amount=request.order_amount,
        cart_categories=_cart_categories(db, request.cart_items),
    )
    if not result.valid:
        raise CouponRejected(result.reason, coupon_engine.rejection_message(result.reason, coupon))

    return schemas.ValidateCouponResponse(
        valid=True,
        coupon=coupon,
        discount_amount=result.discount_amount,
        final_amount=coupon_engine.round2(request.order_amount - result.discount_amount),
    )


@app.post(
    "/coupons/apply",
    response_model=schemas.ApplyCouponResponse,
    tags=["Apply Coupons"],
    summary="Redeem a coupon",
)
def apply_coupon(request: schemas.ApplyCouponRequest, db: Session = Depends(get_db)):
    """
    Re-validates the coupon and records one redemption, incrementing its
    usage count.
    """
    coupon = _get_coupon_or_404(db, request.coupon_id)
    usage = coupon_redemption.redeem_coupon(db, coupon, request.user_id, request.order_amount)
    return schemas.ApplyCouponResponse(
        success=True,
        discount_amount=usage.discount_amount,
        final_amount=coupon_engine.round2(request.order_amount - usage.discount_amount),
    )


# ═══════════════════════════════════════════════════
#  ORDERS
# ═══════════════════════════════════════════════════

@app.post(
    "/orders",
    response_model=schemas.OrderMessageResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Orders"],
    summary="Place an order",
)
def create_order(
    payload: schemas.OrderCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(authenticate_token),
):
    """
    Prices come from the catalog at order time and are stored on the order.
    A flat shipping cost is added; `couponCode` (optional) is redeemed
    against the item subtotal.
    """
    order = order_workflow.create_order(db, user, payload)
    return {"message": "Order created successfully", "order": order}


@app.get(
    "/orders",
    response_model=List[schemas.OrderResponse],
    tags=["Orders"],
    summary="List the current user's orders",
)
def list_orders(db: Session = Depends(get_db), user: models.User = Depends(authenticate_token)):
    return (
        db.query(models.Order)
        .filter(models.Order.user_id == user.id)
        .order_by(models.Order.created_at.desc(), models.Order.id.desc())
        .all()
    )


@app.get(
    "/orders/{order_id}",
    response_model=schemas.OrderResponse,
    tags=["Orders"],
    summary="Get one of the current user's orders",
)
def get_order(order_id: int, db: Session = Depends(get_db), user: models.User = Depends(authenticate_token)):
    return order_workflow.get_user_order(db, order_id, user.id)


@app.put(
    "/orders/{order_id}/confirm-payment",
    response_model=schemas.OrderMessageResponse,
    tags=["Orders"],
    summary="Confirm a manual payment with its transaction number",
)
def confirm_payment(
    order_id: int,
    payload: schemas.ConfirmPaymentRequest,
    db: Session = Depends(get_db),
    user: models.User = Depends(authenticate_token),
):
    """Marks the payment completed; the order itself stays `pending` until an admin confirms it."""
    transaction_number = order_workflow.require_transaction_number(payload.transaction_number)
    order = order_workflow.get_user_order(db, order_id, user.id)
    order = order_workflow.confirm_payment(db, order, transaction_number)
    return {"message": "Payment confirmed successfully", "order": order}


@app.patch(
    "/orders/{order_id}/payment-complete",
    response_model=schemas.OrderMessageResponse,
    tags=["Orders"],
    summary="Mark a pending order as paid and confirmed",
)
def payment_complete(order_id: int, db: Session = Depends(get_db), user: models.User = Depends(authenticate_token)):
    order = order_workflow.get_user_order(db, order_id, user.id)
    order = order_workflow.mark_payment_complete(db, order)
    return {"message": "Payment marked as complete", "order": order}


# ═══════════════════════════════════════════════════
#  PAYMENT SETTINGS
# ═══════════════════════════════════════════════════

def _get_payment_settings_or_404(db: Session, settings_id: int) -> models.PaymentSettings:
    settings = db.query(models.PaymentSettings).filter(models.PaymentSettings.id == settings_id).first()
    if not settings:
        raise HTTPException(status_code=404, detail="Payment settings not found")
    return settings


def _deactivate_other_payment_settings(db: Session, keep_id: Optional[int] = None) -> None:
    query = db.query(models.PaymentSettings)
    if keep_id is not None:
        query = query.filter(models.PaymentSettings.id != keep_id)
    query.update({models.PaymentSettings.is_active: False}, synchronize_session=False)


@app.get(
    "/payment-settings",
    response_model=schemas.PublicPaymentSettings,
    tags=["Payment Settings"],
    summary="Get the active payment details",
)
def get_payment_settings(db: Session = Depends(get_db)):
    settings = (
        db.query(models.PaymentSettings)
        .filter(models.PaymentSettings.is_active.is_(True))
        .order_by(models.PaymentSettings.id.desc())
        .first()
    )
    if not settings:
        raise HTTPException(status_code=404, detail="Payment settings not found")
    return settings


@app.get(
    "/payment-settings/admin",
    response_model=List[schemas.PaymentSettingsResponse],
    tags=["Payment Settings"],
    summary="List all payment settings",
)
def list_payment_settings(db: Session = Depends(get_db), _: models.User = Depends(require_admin)):
    return db.query(models.PaymentSettings).order_by(models.PaymentSettings.id.desc()).all()


@app.post(
    "/payment-settings",
    response_model=schemas.PaymentSettingsMessageResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Payment Settings"],
    summary="Create payment settings and make them active",
)
def create_payment_settings(
    payload: schemas.PaymentSettingsCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(require_admin),
):
    _deactivate_other_payment_settings(db)

    data = payload.model_dump()
    instructions = (data.pop("payment_instructions") or "").strip()
    settings = models.PaymentSettings(
        **data,
        payment_instructions=instructions or models.DEFAULT_PAYMENT_INSTRUCTIONS,
        is_active=True,
        created_by=user.id,
    )
    db.add(settings)
    db.commit()
    db.refresh(settings)
    return {"message": "Payment settings created successfully", "payment_settings": settings}


@app.put(
    "/payment-settings/{settings_id}",
    response_model=schemas.PaymentSettingsMessageResponse,
    tags=["Payment Settings"],
    summary="Update payment settings",
)
def update_payment_settings(
    settings_id: int,
    payload: schemas.PaymentSettingsUpdate,
    db: Session = Depends(get_db),
    _: models.User = Depends(require_admin),
):
    settings = _get_payment_settings_or_404(db, settings_id)
    changes = payload.model_dump(exclude_none=True)
    if changes.get("is_active"):
        _deactivate_other_payment_settings(db, keep_id=settings.id)
    for field, value in changes.items():
        setattr(settings, field, value.strip() if isinstance(value, str) else value)
    db.commit()
    db.refresh(settings)
    return {"message": "Payment settings updated successfully", "payment_settings": settings}


@app.delete(
    "/payment-settings/{settings_id}",
    response_model=schemas.MessageResponse,
    tags=["Payment Settings"],
    summary="Delete payment settings",
)
def delete_payment_settings(settings_id: int, db: Session = Depends(get_db), _: models.User = Depends(require_admin)):
    settings = _get_payment_settings_or_404(db, settings_id)
    db.delete(settings)
    db.commit()
    return {"message": "Payment settings deleted successfully"}


@app.patch(
    "/payment-settings/{settings_id}/toggle",
    response_model=schemas.PaymentSettingsMessageResponse,
    tags=["Payment Settings"],
    summary="Toggle payment settings on or off",
)
def toggle_payment_settings(settings_id: int, db: Session = Depends(get_db), _: models.User = Depends(require_admin)):
    """Activating one row deactivates every other row."""
    settings = _get_payment_settings_or_404(db, settings_id)
    if not settings.is_active:
        _deactivate_other_payment_settings(db, keep_id=settings.id)
    settings.is_active = not settings.is_active
    db.commit()
    db.refresh(settings)
    state = "activated" if settings.is_active else "deactivated"
    return {"message": f"Payment settings {state} successfully", "payment_settings": settings}


# ═══════════════════════════════════════════════════
#  NEWSLETTER
# ═══════════════════════════════════════════════════

def _get_subscription_or_404(db: Session, subscription_id: int) -> models.Newsletter:
    subscription = db.query(models.Newsletter).filter(models.Newsletter.id == subscription_id).first()
    if not subscription:
        raise HTTPException(status_code=404, detail="Newsletter subscription not found")
    return subscription


@app.post(
    "/newsletter/subscribe",
    response_model=schemas.NewsletterMessageResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Newsletter"],
    summary="Subscribe to the newsletter",
)
def subscribe(payload: schemas.NewsletterRequest, request: Request, db: Session = Depends(get_db)):
    user_agent = request.headers.get("user-agent")
    ip_address = request.client.host if request.client else None

    subscription = db.query(models.Newsletter).filter(models.Newsletter.email == payload.email).first()
    if subscription:
        if subscription.is_active:
            raise HTTPException(status_code=400, detail="This email is already subscribed to our newsletter")
        subscription.is_active = True
        subscription.subscribed_at = models.utcnow()
        subscription.user_agent = user_agent
        subscription.ip_address = ip_address
        db.commit()
        db.refresh(subscription)
        body = schemas.NewsletterMessageResponse(
            message="Welcome back! You have been resubscribed to our newsletter",
            subscription=subscription,
        )
        return JSONResponse(status_code=status.HTTP_200_OK, content=body.model_dump(mode="json", by_alias=True))

    subscription = models.Newsletter(
        email=payload.email,
        user_agent=user_agent,
        ip_address=ip_address,
        source="website",
    )
    db.add(subscription)
    db.commit()
    db.refresh(subscription)
    return {"message": "Successfully subscribed to our newsletter!", "subscription": subscription}


@app.post(
    "/newsletter/unsubscribe",
    response_model=schemas.NewsletterMessageResponse,
    tags=["Newsletter"],
    summary="Unsubscribe from the newsletter",
)
def unsubscribe(payload: schemas.NewsletterRequest, db: Session = Depends(get_db)):
    subscription = db.query(models.Newsletter).filter(models.Newsletter.email == payload.email).first()
    if not subscription:
        raise HTTPException(status_code=404, detail="Email not found in our newsletter subscriptions")
    if not subscription.is_active:
        raise HTTPException(status_code=400, detail="This email is already unsubscribed from our newsletter")
    subscription.is_active = False
    db.commit()
    db.refresh(subscription)
    return {"message": "Successfully unsubscribed from our newsletter", "subscription": subscription}


@app.get(
    "/newsletter/admin",
    response_model=schemas.NewsletterListResponse,
    tags=["Newsletter"],
    summary="List newsletter subscriptions",
)
def list_subscriptions(
    search: Optional[str] = None,
    subscription_status: Optional[str] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    _: models.User = Depends(require_admin),
):
    query = db.query(models.Newsletter)
    if search:
        query = query.filter(models.Newsletter.email.ilike(f"%{search}%"))
    if subscription_status == "active":
        query = query.filter(models.Newsletter.is_active.is_(True))
    elif subscription_status == "inactive":
        query = query.filter(models.Newsletter.is_active.is_(False))

    total = query.count()
    subscriptions = (
        query.order_by(models.Newsletter.subscribed_at.desc(), models.Newsletter.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return schemas.NewsletterListResponse(
        subscriptions=subscriptions,
        pagination=schemas.NewsletterPagination(page=page, limit=limit, total=total, pages=ceil(total / limit)),
    )


@app.get(
    "/newsletter/admin/stats",
    response_model=schemas.NewsletterStats,
    tags=["Newsletter"],
    summary="Newsletter statistics",
)
def subscription_stats(db: Session = Depends(get_db), _: models.User = Depends(require_admin)):
    """Daily sign-up counts cover the current calendar month."""
    active = db.query(models.Newsletter).filter(models.Newsletter.is_active.is_(True))
    now = models.utcnow()
    month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)

    daily = {}
    for subscription in db.query(models.Newsletter).all():
        subscribed = coupon_engine.as_utc(subscription.subscribed_at)
        if subscribed >= month_start:
            day = subscribed.strftime("%Y-%m-%d")
            daily[day] = daily.get(day, 0) + 1

    return schemas.NewsletterStats(
        total_subscribers=active.count(),
        total_unsubscribed=db.query(models.Newsletter).filter(models.Newsletter.is_active.is_(False)).count(),
        total_emails=db.query(models.Newsletter).count(),
        recent_subscriptions=active.order_by(models.Newsletter.subscribed_at.desc()).limit(5).all(),
        monthly_stats=[schemas.DailyCount(date=day, count=count) for day, count in sorted(daily.items())],
    )


@app.delete(
    "/newsletter/admin/{subscription_id}",
    response_model=schemas.MessageResponse,
    tags=["Newsletter"],
    summary="Delete a newsletter subscription",
)
def delete_subscription(subscription_id: int, db: Session = Depends(get_db), _: models.User = Depends(require_admin)):
    subscription = _get_subscription_or_404(db, subscription_id)
    db.delete(subscription)
    db.commit()
    return {"message": "Newsletter subscription deleted successfully"}


@app.patch(
    "/newsletter/admin/{subscription_id}/toggle",
    response_model=schemas.NewsletterMessageResponse,
    tags=["Newsletter"],
    summary="Toggle a newsletter subscription",
)
def toggle_subscription(subscription_id: int, db: Session = Depends(get_db), _: models.User = Depends(require_admin)):
    subscription = _get_subscription_or_404(db, subscription_id)
    subscription.is_active = not subscription.is_active
    db.commit()
    db.refresh(subscription)
    state = "activated" if subscription.is_active else "deactivated"
    return {"message": f"Newsletter subscription {state} successfully", "subscription": subscription}


# ═══════════════════════════════════════════════════
#  HEALTH CHECK
# ═══════════════════════════════════════════════════

@app.get("/", tags=["Health"], summary="Health check")
def root():
    return {"status": "ok", "message": "Janu Collections API is running"}


if __name__ == "__main__":
    import os
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", 8000)))
