"""
analytics.py
============
Read-only aggregates for the admin dashboard, analytics and reports pages.

Cancelled orders never count towards revenue or sales. Per-product sales
come from the item snapshots stored on each order.
"""

from collections import defaultdict
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

import models
from coupon_engine import as_utc, round2

MONTH_NAMES = ["Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]
CANCELLED = "cancelled"

# Estimated split used by the financial summary
EXPENSE_RATIO = 0.6
PROFIT_RATIO = 0.4


def months_ago(now: datetime, months: int) -> datetime:
    year, month = now.year, now.month - months
    while month <= 0:
        month += 12
        year -= 1
    day = min(now.day, 28)
    return now.replace(year=year, month=month, day=day)


def period_start(period: str, now: datetime) -> Optional[datetime]:
    if period == "daily":
        return now - timedelta(days=30)
    if period == "weekly":
        return now - timedelta(weeks=12)
    if period == "monthly":
        return months_ago(now, 12)
    if period == "yearly":
        return months_ago(now, 60)
    return None


def _live_orders(db: Session) -> List[models.Order]:
    return db.query(models.Order).filter(models.Order.status != CANCELLED).all()


# ─────────────────────────── Counters ───────────────────────────

def count_active_products(db: Session) -> int:
    return db.query(models.Product).filter(models.Product.is_active.is_(True)).count()


def count_customers(db: Session) -> int:
    return db.query(models.User).filter(models.User.is_admin.is_(False)).count()


def total_revenue(db: Session) -> float:
    total = (
        db.query(func.coalesce(func.sum(models.Order.total_amount), 0))
        .filter(models.Order.status != CANCELLED)
        .scalar()
    )
    return round2(total or 0)


def orders_by_status(db: Session) -> Dict[str, int]:
    rows = db.query(models.Order.status, func.count(models.Order.id)).group_by(models.Order.status).all()
    return {status: count for status, count in rows}


def dashboard_stats(db: Session) -> dict:
    recent = db.query(models.Order).order_by(models.Order.created_at.desc(), models.Order.id.desc()).limit(10).all()
    return {
        "total_products": count_active_products(db),
        "total_orders": db.query(models.Order).count(),
        "total_users": count_customers(db),
        "total_revenue": total_revenue(db),
        "recent_orders": recent,
    }


# ─────────────────────────── Sales ───────────────────────────

def monthly_revenue(db: Session, now: datetime, months: int = 6) -> List[dict]:
    since = months_ago(as_utc(now), months)
    buckets = defaultdict(float)
    for order in _live_orders(db):
        created = as_utc(order.created_at)
        if created >= since:
            buckets[(created.year, created.month)] += order.total_amount
    return [
        {"month": MONTH_NAMES[month - 1], "revenue": round2(revenue)}
        for (year, month), revenue in sorted(buckets.items())
    ]


def product_sales(db: Session) -> Dict[Optional[int], dict]:
    """Units sold and revenue per product id across non-cancelled orders."""
    sales = {}
    for order in _live_orders(db):
        for item in order.items:
            entry = sales.setdefault(
                item.get("product_id"), {"name": item.get("name"), "sales": 0, "revenue": 0.0}
            )
            entry["sales"] += item["quantity"]
            entry["revenue"] += item["quantity"] * item["price"]
    return sales


def top_products(db: Session, limit: int = 5) -> List[dict]:
    sales = product_sales(db)
    ranked = sorted(sales.items(), key=lambda kv: kv[1]["sales"], reverse=True)[:limit]

    names = {}
    ids = [pid for pid, _ in ranked if pid is not None]
    if ids:
        names = dict(db.query(models.Product.id, models.Product.name).filter(models.Product.id.in_(ids)).all())

    return [
        {
            "product_id": pid,
            "name": names.get(pid, entry["name"]),
            "sales": entry["sales"],
            "revenue": round2(entry["revenue"]),
        }
        for pid, entry in ranked
    ]


def analytics(db: Session, now: datetime) -> dict:
    return {
        "total_revenue": total_revenue(db),
        "total_orders": db.query(models.Order).count(),
        "total_users": count_customers(db),
        "total_products": count_active_products(db),
        "monthly_revenue": monthly_revenue(db, now),
        "top_products": top_products(db),
        "orders_by_status": orders_by_status(db),
    }


# ─────────────────────────── Reports ───────────────────────────

def sales_report(db: Session, since: Optional[datetime], limit: int = 30) -> List[dict]:
    days = {}
    for order in _live_orders(db):
        created = as_utc(order.created_at)
        if since is not None and created < since:
            continue
        day = days.setdefault(created.strftime("%Y-%m-%d"), {"orders": 0, "revenue": 0.0, "customers": set()})
        day["orders"] += 1
        day["revenue"] += order.total_amount
        day["customers"].add(order.user_id)

    rows = [
        {"date": date, "orders": d["orders"], "revenue": round2(d["revenue"]), "customers": len(d["customers"])}
        for date, d in days.items()
    ]
    rows.sort(key=lambda row: row["date"], reverse=True)
    return rows[:limit]


def inventory_report(db: Session, limit: int = 20) -> List[dict]:
    sales = product_sales(db)
    products = db.query(models.Product).filter(models.Product.is_active.is_(True)).all()
    rows = [
        {
            "product": product.name,
            "stock": product.stock,
            "sold": sales.get(product.id, {}).get("sales", 0),
            "revenue": round2(sales.get(product.id, {}).get("revenue", 0.0)),
        }
        for product in products
    ]
    rows.sort(key=lambda row: row["sold"], reverse=True)
    return rows[:limit]


def _percentage(count: int, total: int) -> int:
    return round(count / total * 100) if total else 0


def customer_report(db: Session, now: datetime) -> List[dict]:
    now = as_utc(now)
    total = count_customers(db)
    month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    new_customers = sum(
        1
        for user in db.query(models.User).filter(models.User.is_admin.is_(False)).all()
        if user.created_at is not None and as_utc(user.created_at) >= month_start
    )
    returning = (
        db.query(models.Order.user_id)
        .group_by(models.Order.user_id)
        .having(func.count(models.Order.id) > 1)
        .count()
    )
    return [
        {"segment": "New Customers", "count": new_customers, "percentage": _percentage(new_customers, total)},
        {"segment": "Returning Customers", "count": returning, "percentage": _percentage(returning, total)},
        {"segment": "Total Active Customers", "count": total, "percentage": 100},
    ]


def financial_summary(db: Session) -> dict:
    revenue = total_revenue(db)
    return {
        "total_revenue": revenue,
        "total_expenses": round(revenue * EXPENSE_RATIO),
        "net_profit": round(revenue * PROFIT_RATIO),
        "profit_margin": int(PROFIT_RATIO * 100),
    }


def reports(db: Session, period: str, now: datetime) -> dict:
    since = period_start(period, as_utc(now))
    return {
        "sales_report": sales_report(db, since),
        "inventory_report": inventory_report(db),
        "customer_report": customer_report(db, now),
        "financial_summary": financial_summary(db),
    }
