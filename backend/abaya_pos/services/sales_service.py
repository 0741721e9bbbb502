"""
Sales Service - counter sales at a branch

WHY: A sale is recorded in one unit of work: priced lines, optional
discount, branch tax, stock deduction with movements, and loyalty points
for a known customer. Anything failing leaves nothing behind.

STATUS after creation is always "completed"; refund completion later moves
it to partially_refunded or cancelled.
"""

from __future__ import annotations

from datetime import datetime

from ..extensions import db
from ..models import Branch, Customer, Product, Sale, SaleItem, User
from ..time_utils import utcnow
from ..validation import ValidationError, coerce_int, optional_int, optional_str, require_str
from .concurrency import lock_for_update, run_with_retry
from .discount_service import (
    DiscountError,
    calculate_discount,
    check_validity,
    get_discount_by_code,
    lock_discount,
    record_usage,
)
from .document_service import SALE_PREFIX, next_document_number
from .inventory_service import InventoryError, apply_stock_out
from .loyalty_service import apply_purchase_points


class SaleError(Exception):
    """Raised for sale operation errors."""
    pass


SALE_STATUSES = {"completed", "partially_refunded", "cancelled"}


def compute_tax(taxable_cents: int, tax_rate_bps: int) -> int:
    """Tax in cents, rounded half up."""
    if taxable_cents <= 0 or not tax_rate_bps:
        return 0
    return (taxable_cents * tax_rate_bps + 5000) // 10000


def _parse_items(items) -> list[tuple[int, int]]:
    if not isinstance(items, list) or not items:
        raise SaleError("Sale must contain at least one item")
    parsed = []
    for item in items:
        if not isinstance(item, dict):
            raise SaleError("Each item must be an object")
        try:
            product_id = coerce_int(item.get("product_id"), "product_id", minimum=1)
            quantity = coerce_int(item.get("quantity"), "quantity", minimum=1)
        except ValidationError as e:
            raise SaleError(str(e)) from e
        parsed.append((product_id, quantity))
    return parsed


def create_sale(
    *,
    branch_id: int,
    user_id: int | None,
    items: list[dict],
    payment_method: str,
    paid_amount_cents: int | None = None,
    customer_id: int | None = None,
    discount_id: int | None = None,
    coupon_code: str | None = None,
    notes: str | None = None,
) -> Sale:
    """
    Record a completed sale.

    Args:
        items: [{"product_id": int, "quantity": int}]; priced at the
            product's current selling price
        paid_amount_cents: tendered amount; defaults to the total
        discount_id / coupon_code: at most one discount per sale

    Raises:
        SaleError: bad input, unknown branch/product/customer, discount not
            usable, insufficient stock or underpayment
    """
    parsed_items = _parse_items(items)
    try:
        payment_method = require_str(payment_method, "payment_method", max_length=32)
        notes = optional_str(notes, "notes")
        paid_amount_cents = optional_int(paid_amount_cents, "paid_amount_cents", minimum=0)
    except ValidationError as e:
        raise SaleError(str(e)) from e

    def _op() -> Sale:
        branch = db.session.query(Branch).get(branch_id)
        if branch is None or not branch.is_active:
            raise SaleError("Branch not found or inactive")

        user = db.session.query(User).get(user_id) if user_id else None

        lines = []
        for product_id, quantity in parsed_items:
            product = db.session.query(Product).get(product_id)
            if product is None:
                raise SaleError(f"Product {product_id} not found")
            if not product.is_active:
                raise SaleError(f"Product {product.name} is inactive")
            lines.append({
                "product": product,
                "product_id": product.id,
                "category_id": product.category_id,
                "quantity": quantity,
                "unit_price_cents": product.selling_price_cents,
                "total_price_cents": product.selling_price_cents * quantity,
            })

        subtotal = sum(line["total_price_cents"] for line in lines)

        discount = None
        discount_cents = 0
        if coupon_code:
            found = get_discount_by_code(coupon_code)
            if found is None:
                raise SaleError(f"Coupon {coupon_code} not found")
            discount = lock_discount(found.id)
        elif discount_id:
            discount = lock_discount(discount_id)
            if discount is None:
                raise SaleError("Discount not found")

        if discount is not None:
            try:
                check_validity(discount, branch_id=branch.id, subtotal_cents=subtotal)
            except DiscountError as e:
                raise SaleError(str(e)) from e
            discount_cents = calculate_discount(discount, lines)
            record_usage(discount)

        tax_cents = compute_tax(subtotal - discount_cents, branch.tax_rate_bps)
        total = subtotal - discount_cents + tax_cents

        paid = total if paid_amount_cents is None else paid_amount_cents
        if paid < total:
            raise SaleError(f"Paid amount {paid} is less than total {total}")

        customer = None
        if customer_id:
            customer = lock_for_update(db.session.query(Customer).filter_by(id=customer_id)).first()
            if customer is None:
                raise SaleError("Customer not found")

        now = utcnow()
        sale = Sale(
            sale_number=next_document_number(branch_id=branch.id, document_type="SALE", prefix=SALE_PREFIX),
            branch_id=branch.id,
            branch_name=branch.name,
            customer_id=customer.id if customer else None,
            customer_name=customer.name if customer else None,
            cashier_id=user.id if user else None,
            cashier_name=user.display_name if user else None,
            subtotal_cents=subtotal,
            discount_cents=discount_cents,
            tax_cents=tax_cents,
            total_cents=total,
            paid_amount_cents=paid,
            change_due_cents=paid - total,
            payment_method=payment_method,
            discount_id=discount.id if discount else None,
            status="completed",
            notes=notes,
            created_at=now,
        )
        db.session.add(sale)
        db.session.flush()

        for line in lines:
            product = line["product"]
            db.session.add(SaleItem(
                sale_id=sale.id,
                product_id=product.id,
                product_name=product.name,
                size=product.size,
                quantity=line["quantity"],
                unit_price_cents=line["unit_price_cents"],
                total_price_cents=line["total_price_cents"],
            ))
            try:
                apply_stock_out(
                    product_id=product.id,
                    branch=branch,
                    quantity=line["quantity"],
                    reason="Sale",
                    reference=sale.sale_number,
                    user=user,
                )
            except InventoryError as e:
                raise SaleError(str(e)) from e

        if customer is not None:
            customer.total_spent_cents = (customer.total_spent_cents or 0) + total
            customer.total_orders = (customer.total_orders or 0) + 1
            customer.last_purchase_at = now
            db.session.flush()
            sale.points_earned = apply_purchase_points(customer=customer, sale=sale, user=user)

        db.session.commit()
        return sale

    try:
        return run_with_retry(_op)
    except SaleError:
        db.session.rollback()
        raise


def get_sale(sale_id: int) -> Sale | None:
    return db.session.query(Sale).get(sale_id)


def list_sales(
    *,
    branch_id: int | None = None,
    status: str | None = None,
    customer_id: int | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int = 100,
) -> list[Sale]:
    """Newest first."""
    query = db.session.query(Sale)
    if branch_id:
        query = query.filter(Sale.branch_id == branch_id)
    if status:
        if status not in SALE_STATUSES:
            raise SaleError(f"Invalid status: {status}")
        query = query.filter(Sale.status == status)
    if customer_id:
        query = query.filter(Sale.customer_id == customer_id)
    if start:
        query = query.filter(Sale.created_at >= start)
    if end:
        query = query.filter(Sale.created_at <= end)
    return query.order_by(Sale.created_at.desc(), Sale.id.desc()).limit(max(1, min(limit, 500))).all()
