# Overview: Service-layer operations for discounts and coupon codes; encapsulates business logic and database work.

"""
Discounts and Coupons

VALUE SEMANTICS:
- percentage: value in basis points (1500 = 15%)
- fixed_amount: value in cents

SCOPE:
- all_products: every line is eligible
- category: lines whose product category is in category_ids
- specific_products: lines whose product is in product_ids

A discount is usable when it is active, inside its date range, offered
at the branch (empty branch_ids means every branch), under its usage
limit, and the subtotal meets min_purchase_cents.
"""

from __future__ import annotations

from datetime import datetime

from ..extensions import db
from ..models import Discount, Product
from ..time_utils import utcnow
from ..validation import (
    ValidationError,
    coerce_bool,
    coerce_int,
    optional_datetime,
    optional_int,
    optional_int_list,
    optional_str,
    require_str,
)
from .concurrency import lock_for_update


class DiscountError(Exception):
    """Raised when discount operations fail."""
    pass


DISCOUNT_TYPES = {"percentage", "fixed_amount"}
DISCOUNT_SCOPES = {"all_products", "category", "specific_products"}


def _normalize_payload(data: dict, *, partial: bool) -> dict:
    """Coerce and check a create/update payload. Only supplied keys are returned on update."""
    out: dict = {}

    if not partial or "name" in data:
        out["name"] = require_str(data.get("name"), "name", max_length=255)
    if "description" in data:
        out["description"] = optional_str(data.get("description"), "description")
    if "code" in data:
        code = optional_str(data.get("code"), "code", max_length=32)
        out["code"] = code.upper() if code else None

    if not partial or "discount_type" in data:
        discount_type = data.get("discount_type")
        if discount_type not in DISCOUNT_TYPES:
            raise ValidationError("discount_type must be 'percentage' or 'fixed_amount'")
        out["discount_type"] = discount_type
    if not partial or "value" in data:
        out["value"] = coerce_int(data.get("value"), "value", minimum=1)

    if not partial or "scope" in data:
        scope = data.get("scope") or "all_products"
        if scope not in DISCOUNT_SCOPES:
            raise ValidationError("scope must be all_products, category or specific_products")
        out["scope"] = scope

    for key in ("category_ids", "product_ids", "branch_ids"):
        if key in data:
            out[key] = optional_int_list(data.get(key), key) or []

    for key in ("start_date", "end_date"):
        if key in data:
            out[key] = optional_datetime(data.get(key), key)

    for key in ("usage_limit", "min_purchase_cents", "max_discount_cents"):
        if key in data:
            out[key] = optional_int(data.get(key), key, minimum=0)

    if "is_active" in data:
        out["is_active"] = coerce_bool(data.get("is_active"), "is_active")

    return out


def _check_consistency(discount: Discount) -> None:
    if discount.discount_type == "percentage" and discount.value > 10000:
        raise DiscountError("Percentage discount cannot exceed 100%")
    if discount.start_date and discount.end_date and discount.end_date < discount.start_date:
        raise DiscountError("end_date must be after start_date")
    if discount.scope == "category" and not discount.category_ids:
        raise DiscountError("category scope requires category_ids")
    if discount.scope == "specific_products" and not discount.product_ids:
        raise DiscountError("specific_products scope requires product_ids")
    if discount.code:
        query = db.session.query(Discount).filter(Discount.code == discount.code)
        if discount.id:
            query = query.filter(Discount.id != discount.id)
        clash = query.first()
        if clash:
            raise DiscountError(f"Coupon code {discount.code} already exists")


# =============================================================================
# CRUD
# =============================================================================

def create_discount(data: dict, user_id: int | None = None) -> Discount:
    fields = _normalize_payload(data, partial=False)
    discount = Discount(created_by_user_id=user_id, **fields)
    _check_consistency(discount)
    db.session.add(discount)
    db.session.commit()
    return discount


def update_discount(discount_id: int, data: dict) -> Discount:
    discount = get_discount(discount_id)
    if discount is None:
        raise DiscountError("Discount not found")

    fields = _normalize_payload(data, partial=True)
    for key, value in fields.items():
        setattr(discount, key, value)
    try:
        _check_consistency(discount)
    except DiscountError:
        db.session.rollback()
        raise
    db.session.commit()
    return discount


def remove_discount(discount_id: int) -> Discount:
    """Soft delete: sales keep pointing at the row."""
    discount = get_discount(discount_id)
    if discount is None:
        raise DiscountError("Discount not found")
    discount.is_active = False
    db.session.commit()
    return discount


def get_discount(discount_id: int) -> Discount | None:
    return db.session.query(Discount).get(discount_id)


def get_discount_by_code(code: str) -> Discount | None:
    if not code:
        return None
    return db.session.query(Discount).filter_by(code=code.strip().upper()).first()


def list_discounts(*, active_only: bool = False, branch_id: int | None = None) -> list[Discount]:
    query = db.session.query(Discount)
    if active_only:
        query = query.filter(Discount.is_active.is_(True))
    discounts = query.order_by(Discount.created_at.desc(), Discount.id.desc()).all()
    if branch_id:
        discounts = [d for d in discounts if not d.branch_ids or branch_id in d.branch_ids]
    return discounts


# =============================================================================
# VALIDITY AND CALCULATION
# =============================================================================

def check_validity(
    discount: Discount,
    *,
    branch_id: int | None,
    subtotal_cents: int,
    now: datetime | None = None,
) -> None:
    """Raise DiscountError naming the first rule the discount fails."""
    now = now or utcnow()

    if not discount.is_active:
        raise DiscountError(f"Discount {discount.name} is not active")
    if discount.start_date and now < discount.start_date:
        raise DiscountError(f"Discount {discount.name} has not started yet")
    if discount.end_date and now > discount.end_date:
        raise DiscountError(f"Discount {discount.name} has expired")
    if discount.branch_ids and branch_id not in discount.branch_ids:
        raise DiscountError(f"Discount {discount.name} is not available at this branch")
    if discount.usage_limit is not None and discount.usage_count >= discount.usage_limit:
        raise DiscountError(f"Discount {discount.name} has reached its usage limit")
    if discount.min_purchase_cents and subtotal_cents < discount.min_purchase_cents:
        raise DiscountError(
            f"Minimum purchase of {discount.min_purchase_cents} cents required for {discount.name}"
        )


def _eligible_total(discount: Discount, lines: list[dict]) -> int:
    """
    lines: [{"product_id", "category_id", "total_price_cents"}]
    """
    if discount.scope == "all_products":
        return sum(line["total_price_cents"] for line in lines)
    if discount.scope == "category":
        allowed = set(discount.category_ids or [])
        return sum(line["total_price_cents"] for line in lines if line.get("category_id") in allowed)
    allowed = set(discount.product_ids or [])
    return sum(line["total_price_cents"] for line in lines if line["product_id"] in allowed)


def calculate_discount(discount: Discount, lines: list[dict]) -> int:
    """Discount in cents over the eligible lines, capped by max_discount_cents."""
    eligible = _eligible_total(discount, lines)
    if eligible <= 0:
        return 0

    if discount.discount_type == "percentage":
        amount = eligible * discount.value // 10000
    else:
        amount = min(discount.value, eligible)

    if discount.max_discount_cents is not None:
        amount = min(amount, discount.max_discount_cents)
    return max(0, amount)


def lines_for_items(items: list[dict]) -> list[dict]:
    """
    Price request items [{"product_id", "quantity"}] at current selling
    prices, for previewing a discount before the sale exists.
    """
    lines = []
    for item in items:
        product_id = coerce_int(item.get("product_id"), "product_id", minimum=1)
        quantity = coerce_int(item.get("quantity"), "quantity", minimum=1)
        product = db.session.query(Product).get(product_id)
        if product is None:
            raise DiscountError(f"Product {product_id} not found")
        lines.append({
            "product_id": product.id,
            "category_id": product.category_id,
            "total_price_cents": product.selling_price_cents * quantity,
        })
    return lines


def preview_discount(
    *,
    branch_id: int | None,
    items: list[dict],
    code: str | None = None,
    discount_id: int | None = None,
) -> dict:
    """Validate a code or discount id against a prospective basket."""
    discount = get_discount_by_code(code) if code else (get_discount(discount_id) if discount_id else None)
    if discount is None:
        raise DiscountError("Discount not found")

    lines = lines_for_items(items)
    subtotal = sum(line["total_price_cents"] for line in lines)
    check_validity(discount, branch_id=branch_id, subtotal_cents=subtotal)

    return {
        "valid": True,
        "discount": discount.to_dict(),
        "subtotal_cents": subtotal,
        "discount_cents": calculate_discount(discount, lines),
    }


def lock_discount(discount_id: int) -> Discount | None:
    return lock_for_update(db.session.query(Discount).filter_by(id=discount_id)).first()


def record_usage(discount: Discount) -> None:
    """Count one use. Caller holds the row lock and commits."""
    discount.usage_count = (discount.usage_count or 0) + 1
