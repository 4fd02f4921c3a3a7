"""
admin.py
========
Back-office routes, all mounted under ``/admin`` and restricted to admins.

  GET    /admin/users               - Customers with formatted addresses
  GET    /admin/dashboard-stats     - Headline counters and recent orders
  GET    /admin/analytics           - Revenue trend, top products, status mix
  GET    /admin/reports             - Sales / inventory / customer / financial reports
  GET    /admin/products            - Every product, active or not
  POST   /admin/products            - Add a product
  PUT    /admin/products/{id}       - Update a product
  DELETE /admin/products/{id}       - Remove a product
  GET    /admin/orders              - Every order, optionally by status
  GET    /admin/orders/{id}         - Any order
  PUT    /admin/orders/{id}         - Change status; confirming notifies the buyer
"""

from math import ceil
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import or_
from sqlalchemy.orm import Session

import analytics
import models
import order_workflow
import schemas
from auth import require_admin
from database import get_db
from notifications import NotificationService, get_notification_service

router = APIRouter(prefix="/admin", tags=["Admin"], dependencies=[Depends(require_admin)])

REPORT_PERIODS = ("daily", "weekly", "monthly", "yearly")


# ─────────────────────────── Users ───────────────────────────

def format_address(address: Optional[dict]) -> str:
    if not address:
        return "No address provided"
    parts = [
        address.get("door_number"),
        address.get("street"),
        address.get("village"),
        address.get("city"),
        address.get("state"),
        address.get("pincode"),
        address.get("country"),
    ]
    formatted = ", ".join(part for part in parts if part)
    return formatted or "No address provided"


def is_address_complete(address: Optional[dict]) -> bool:
    return bool(address) and all(address.get(field) for field in order_workflow.ADDRESS_FIELDS)


@router.get("/users", response_model=schemas.AdminUserListResponse, summary="List customers")
def list_users(
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
):
    query = db.query(models.User).filter(models.User.is_admin.is_(False))
    if search:
        pattern = f"%{search}%"
        query = query.filter(
            or_(
                models.User.name.ilike(pattern),
                models.User.email.ilike(pattern),
                models.User.phone.ilike(pattern),
            )
        )

    total = query.count()
    users = (
        query.order_by(models.User.created_at.desc(), models.User.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    total_pages = ceil(total / limit)
    return schemas.AdminUserListResponse(
        users=[
            schemas.AdminUserResponse(
                **schemas.UserResponse.model_validate(user).model_dump(),
                formatted_address=format_address(user.address),
                address_complete=is_address_complete(user.address),
            )
            for user in users
        ],
        pagination=schemas.UserPagination(
            current_page=page,
            total_pages=total_pages,
            total_users=total,
            has_next=page < total_pages,
            has_prev=page > 1,
        ),
    )


# ─────────────────────────── Dashboard & reports ───────────────────────────

@router.get("/dashboard-stats", response_model=schemas.DashboardStats, summary="Dashboard counters")
def dashboard_stats(db: Session = Depends(get_db)):
    return analytics.dashboard_stats(db)


@router.get("/analytics", response_model=schemas.AnalyticsResponse, summary="Sales analytics")
def get_analytics(db: Session = Depends(get_db)):
    return analytics.analytics(db, models.utcnow())


@router.get("/reports", response_model=schemas.ReportsResponse, summary="Business reports")
def get_reports(period: str = "monthly", db: Session = Depends(get_db)):
    """`period` limits the sales report window: daily, weekly, monthly or yearly."""
    if period not in REPORT_PERIODS:
        raise HTTPException(status_code=400, detail=f"Invalid period. Use one of: {', '.join(REPORT_PERIODS)}")
    return analytics.reports(db, period, models.utcnow())


# ─────────────────────────── Products ───────────────────────────

def _get_product_or_404(db: Session, product_id: int) -> models.Product:
    product = db.query(models.Product).filter(models.Product.id == product_id).first()
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return product


@router.get("/products", response_model=List[schemas.ProductResponse], summary="List all products")
def list_products(db: Session = Depends(get_db)):
    return db.query(models.Product).order_by(models.Product.created_at.desc(), models.Product.id.desc()).all()


@router.post(
    "/products",
    response_model=schemas.ProductMessageResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add a product",
)
def create_product(payload: schemas.ProductCreate, db: Session = Depends(get_db)):
    data = payload.model_dump(mode="json")
    if not data.get("main_image"):
        data["main_image"] = data["images"][0]
    product = models.Product(**data)
    db.add(product)
    db.commit()
    db.refresh(product)
    return {"message": "Product created successfully", "product": product}


@router.put("/products/{product_id}", response_model=schemas.ProductMessageResponse, summary="Update a product")
def update_product(product_id: int, payload: schemas.ProductUpdate, db: Session = Depends(get_db)):
    product = _get_product_or_404(db, product_id)
    for field, value in payload.model_dump(mode="json", exclude_unset=True).items():
        if value is None and field not in ("original_price", "main_image", "material", "care_instructions"):
            continue
        setattr(product, field, value)
    db.commit()
    db.refresh(product)
    return {"message": "Product updated successfully", "product": product}


@router.delete("/products/{product_id}", response_model=schemas.MessageResponse, summary="Delete a product")
def delete_product(product_id: int, db: Session = Depends(get_db)):
    product = _get_product_or_404(db, product_id)
    db.delete(product)
    db.commit()
    return {"message": "Product deleted successfully"}


# ─────────────────────────── Orders ───────────────────────────

@router.get("/orders", response_model=schemas.AdminOrderListResponse, summary="List all orders")
def list_orders(
    order_status: Optional[schemas.OrderStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
):
    query = db.query(models.Order)
    if order_status is not None:
        query = query.filter(models.Order.status == order_status.value)

    total = query.count()
    orders = (
        query.order_by(models.Order.created_at.desc(), models.Order.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    total_pages = ceil(total / limit)
    return schemas.AdminOrderListResponse(
        orders=orders,
        pagination=schemas.OrderPagination(
            current_page=page,
            total_pages=total_pages,
            total_orders=total,
            has_next_page=page < total_pages,
            has_prev_page=page > 1,
        ),
    )


@router.get("/orders/{order_id}", response_model=schemas.OrderResponse, summary="Get any order")
def get_order(order_id: int, db: Session = Depends(get_db)):
    return order_workflow.get_order(db, order_id)


@router.put("/orders/{order_id}", response_model=schemas.OrderStatusUpdateResponse, summary="Update order status")
def update_order_status(
    order_id: int,
    update: schemas.OrderStatusUpdate,
    db: Session = Depends(get_db),
    notifier: NotificationService = Depends(get_notification_service),
):
    """
    Any status may be set. `confirmed` sends email / SMS / WhatsApp to the
    buyer (failures are reported, never raised); `shipped` sets the
    estimated delivery date.
    """
    order = order_workflow.get_order(db, order_id)
    order, notifications = order_workflow.update_order_status(db, order, update, notifier)
    return {
        "message": "Order status updated successfully",
        "order": order,
        "notifications": notifications,
    }
