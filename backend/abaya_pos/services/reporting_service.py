# Overview: Service-layer operations for sales, inventory and refund reports.

from __future__ import annotations

import csv
import io
from datetime import datetime, timedelta

from ..extensions import db
from ..models import Category, Product, Refund, Sale, SaleItem
from ..time_utils import parse_iso_datetime, to_utc_z
from . import refund_service
from .inventory_service import get_low_stock_products


class ReportError(Exception):
    """Raised when report generation fails."""
    pass


CSV_COLUMNS = ["Date", "Sale Number", "Customer", "Items", "Total", "Payment Method"]
TOP_PRODUCTS_LIMIT = 10


def _parse_range(start: str | None, end: str | None) -> tuple[datetime | None, datetime | None]:
    try:
        start_dt = parse_iso_datetime(start) if start else None
        end_dt = parse_iso_datetime(end) if end else None
    except ValueError:
        raise ReportError("start and end must be ISO-8601 dates")
    # A bare date as end covers that whole day
    if end_dt and len(end.strip()) == 10:
        end_dt = end_dt + timedelta(days=1) - timedelta(microseconds=1)
    if start_dt and end_dt and end_dt < start_dt:
        raise ReportError("end must not be before start")
    return start_dt, end_dt


def _sales_in_range(
    branch_id: int | None,
    start_dt: datetime | None,
    end_dt: datetime | None,
    *,
    include_cancelled: bool = False,
) -> list[Sale]:
    query = db.session.query(Sale)
    if not include_cancelled:
        query = query.filter(Sale.status != "cancelled")
    if branch_id:
        query = query.filter(Sale.branch_id == branch_id)
    if start_dt:
        query = query.filter(Sale.created_at >= start_dt)
    if end_dt:
        query = query.filter(Sale.created_at <= end_dt)
    return query.order_by(Sale.created_at.asc(), Sale.id.asc()).all()


def format_cents(cents: int) -> str:
    sign = "-" if cents < 0 else ""
    cents = abs(cents)
    return f"{sign}{cents // 100}.{cents % 100:02d}"


def sales_summary(
    *,
    branch_id: int | None = None,
    start: str | None = None,
    end: str | None = None,
) -> dict:
    """
    Sales dashboard for a date range.

    Cancelled (fully refunded) sales are excluded. On partially refunded
    sales, completed refunds are netted out of items sold, product, category,
    payment method and daily figures. total_revenue_cents and the average
    order value stay gross; refunded_cents and net_revenue_cents carry the
    difference.
    """
    start_dt, end_dt = _parse_range(start, end)
    sales = _sales_in_range(branch_id, start_dt, end_dt)
    sale_ids = [s.id for s in sales]

    revenue = sum(s.total_cents for s in sales)
    transactions = len(sales)

    refunded_by_sale: dict[int, int] = {}
    returned_by_item: dict[int, int] = {}
    if sale_ids:
        completed = db.session.query(Refund).filter(
            Refund.sale_id.in_(sale_ids),
            Refund.status == refund_service.STATUS_COMPLETED,
        )
        for refund in completed:
            refunded_by_sale[refund.sale_id] = refunded_by_sale.get(refund.sale_id, 0) + refund.refund_amount_cents
            for ri in refund.items:
                returned_by_item[ri.sale_item_id] = returned_by_item.get(ri.sale_item_id, 0) + ri.quantity
    refunded = sum(refunded_by_sale.values())

    payment_methods: dict[str, dict] = {}
    daily: dict[str, dict] = {}
    for sale in sales:
        method = payment_methods.setdefault(sale.payment_method, {"count": 0, "amount_cents": 0})
        method["count"] += 1
        net_cents = sale.total_cents - refunded_by_sale.get(sale.id, 0)
        method["amount_cents"] += net_cents

        day = sale.created_at.strftime("%Y-%m-%d")
        bucket = daily.setdefault(day, {"date": day, "transactions": 0, "revenue_cents": 0})
        bucket["transactions"] += 1
        bucket["revenue_cents"] += net_cents

    rows = []
    if sale_ids:
        rows = (
            db.session.query(SaleItem, Product, Category)
            .join(Product, Product.id == SaleItem.product_id)
            .outerjoin(Category, Category.id == Product.category_id)
            .filter(SaleItem.sale_id.in_(sale_ids))
            .all()
        )

    items_sold = 0
    products: dict[int, dict] = {}
    categories: dict[str, dict] = {}
    for item, product, category in rows:
        quantity = item.quantity - returned_by_item.get(item.id, 0)
        if quantity <= 0:
            continue
        line_cents = item.unit_price_cents * quantity
        items_sold += quantity

        entry = products.setdefault(item.product_id, {
            "product_id": item.product_id,
            "product_name": item.product_name,
            "quantity_sold": 0,
            "revenue_cents": 0,
            "profit_cents": 0,
        })
        entry["quantity_sold"] += quantity
        entry["revenue_cents"] += line_cents
        entry["profit_cents"] += (item.unit_price_cents - (product.cost_price_cents or 0)) * quantity

        category_name = category.name if category else "Uncategorized"
        cat = categories.setdefault(category_name, {
            "category": category_name,
            "quantity_sold": 0,
            "revenue_cents": 0,
        })
        cat["quantity_sold"] += quantity
        cat["revenue_cents"] += line_cents

    top_products = sorted(products.values(), key=lambda p: (-p["revenue_cents"], p["product_name"]))

    return {
        "branch_id": branch_id,
        "start": to_utc_z(start_dt) if start_dt else None,
        "end": to_utc_z(end_dt) if end_dt else None,
        "total_revenue_cents": revenue,
        "refunded_cents": refunded,
        "net_revenue_cents": revenue - refunded,
        "total_transactions": transactions,
        "items_sold": items_sold,
        "average_order_value_cents": revenue // transactions if transactions else 0,
        "top_products": top_products[:TOP_PRODUCTS_LIMIT],
        "payment_methods": payment_methods,
        "daily_trend": [daily[key] for key in sorted(daily)],
        "category_performance": sorted(categories.values(), key=lambda c: -c["revenue_cents"]),
    }


def sales_csv(
    *,
    branch_id: int | None = None,
    start: str | None = None,
    end: str | None = None,
) -> str:
    """Every sale in the range (cancelled included) as CSV text."""
    start_dt, end_dt = _parse_range(start, end)
    sales = _sales_in_range(branch_id, start_dt, end_dt, include_cancelled=True)

    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(CSV_COLUMNS)
    for sale in sales:
        writer.writerow([
            sale.created_at.strftime("%Y-%m-%d %H:%M"),
            sale.sale_number,
            sale.customer_name or "Walk-in Customer",
            sum(item.quantity for item in sale.items),
            format_cents(sale.total_cents),
            sale.payment_method,
        ])
    return buffer.getvalue()


def inventory_metrics() -> dict:
    products = db.session.query(Product).filter(Product.is_active.is_(True)).all()
    low_stock = get_low_stock_products()

    return {
        "total_products": len(products),
        "total_units": sum(max(p.current_stock, 0) for p in products),
        "low_stock_count": len(low_stock),
        "out_of_stock_count": sum(1 for p in products if p.current_stock <= 0),
        "inventory_value_cents": sum(max(p.current_stock, 0) * (p.cost_price_cents or 0) for p in products),
        "retail_value_cents": sum(max(p.current_stock, 0) * p.selling_price_cents for p in products),
        "low_stock_products": [p.to_dict() for p in low_stock],
    }


def refund_statistics(
    *,
    branch_id: int | None = None,
    start: str | None = None,
    end: str | None = None,
) -> dict:
    start_dt, end_dt = _parse_range(start, end)
    return refund_service.get_refund_statistics(branch_id=branch_id, start=start_dt, end=end_dt)
