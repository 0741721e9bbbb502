# Overview: Service-layer operations for customer loyalty points; encapsulates business logic and database work.

"""
Loyalty Points

Customers earn one point per LOYALTY_CENTS_PER_POINT spent on a completed
sale. Completed refunds take back the points that sale earned, in
proportion to the share of the sale refunded.

INVARIANTS:
- loyalty_points never goes below zero; reversals that exceed the balance
  floor it at zero
- Every balance change writes a PointsTransaction
- A sale's points are never reversed more than once in total: reversals
  are computed against the cumulative refunded amount
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Branch, Customer, PointsTransaction, Sale, User
from ..time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry


class LoyaltyError(Exception):
    """Raised when loyalty operations fail."""
    pass


# (name, minimum lifetime points), highest first
TIERS = [
    ("Platinum", 10000),
    ("Gold", 5000),
    ("Silver", 1000),
    ("Bronze", 0),
]


def get_tier(lifetime_points: int) -> str:
    for name, minimum in TIERS:
        if lifetime_points >= minimum:
            return name
    return "Bronze"


def next_tier(lifetime_points: int) -> tuple[str | None, int]:
    """Return (next tier name, points still needed), or (None, 0) at the top."""
    upcoming = None
    for name, minimum in TIERS:
        if lifetime_points < minimum:
            upcoming = (name, minimum - lifetime_points)
    return upcoming or (None, 0)


def points_for_amount(amount_cents: int) -> int:
    per_point = current_app.config.get("LOYALTY_CENTS_PER_POINT", 10000)
    if amount_cents <= 0 or per_point <= 0:
        return 0
    return amount_cents // per_point


def _lock_customer(customer_id: int) -> Customer:
    customer = lock_for_update(db.session.query(Customer).filter_by(id=customer_id)).first()
    if customer is None:
        raise LoyaltyError("Customer not found")
    return customer


def _add_transaction(
    *,
    customer: Customer,
    transaction_type: str,
    points: int,
    description: str,
    sale_id: int | None = None,
    branch: Branch | None = None,
    user: User | None = None,
    notes: str | None = None,
) -> PointsTransaction:
    txn = PointsTransaction(
        customer_id=customer.id,
        customer_name=customer.name,
        transaction_type=transaction_type,
        points=points,
        description=description,
        notes=notes,
        sale_id=sale_id,
        branch_id=branch.id if branch else None,
        branch_name=branch.name if branch else None,
        created_by_user_id=user.id if user else None,
        created_at=utcnow(),
    )
    db.session.add(txn)
    return txn


# =============================================================================
# EARN / REVERSE (inside the caller's unit of work)
# =============================================================================

def apply_purchase_points(*, customer: Customer, sale: Sale, user: User | None = None) -> int:
    """
    Credit points for a completed sale. Returns points earned.

    Caller holds the customer row lock and commits.
    """
    points = points_for_amount(sale.total_cents)
    if points <= 0:
        return 0

    customer.loyalty_points = (customer.loyalty_points or 0) + points
    customer.lifetime_points = (customer.lifetime_points or 0) + points
    _add_transaction(
        customer=customer,
        transaction_type="purchase",
        points=points,
        description=f"Points earned on sale {sale.sale_number}",
        sale_id=sale.id,
        branch=sale.branch,
        user=user,
    )
    return points


def points_earned_for_sale(sale_id: int) -> int:
    total = (
        db.session.query(func.coalesce(func.sum(PointsTransaction.points), 0))
        .filter_by(sale_id=sale_id, transaction_type="purchase")
        .scalar()
    )
    return int(total or 0)


def points_reversed_for_sale(sale_id: int) -> int:
    """Positive count of points already taken back for a sale."""
    total = (
        db.session.query(func.coalesce(func.sum(PointsTransaction.points), 0))
        .filter_by(sale_id=sale_id, transaction_type="refund")
        .scalar()
    )
    return -int(total or 0)


def reverse_points_for_refund(
    *,
    customer: Customer,
    sale: Sale,
    refunded_cents_total: int,
    refund_number: str,
    branch: Branch | None = None,
    user: User | None = None,
) -> int:
    """
    Take back the share of the sale's points matching refunded_cents_total.

    refunded_cents_total is the cumulative amount refunded on the sale,
    including the refund being completed. A full refund reverses every
    point the sale earned. Returns the points reversed by this call.
    """
    earned = points_earned_for_sale(sale.id)
    if earned <= 0:
        return 0

    if sale.total_cents <= 0 or refunded_cents_total >= sale.total_cents:
        target = earned
    else:
        target = earned * refunded_cents_total // sale.total_cents

    to_reverse = target - points_reversed_for_sale(sale.id)
    if to_reverse <= 0:
        return 0

    customer.loyalty_points = max(0, (customer.loyalty_points or 0) - to_reverse)
    customer.lifetime_points = max(0, (customer.lifetime_points or 0) - to_reverse)
    _add_transaction(
        customer=customer,
        transaction_type="refund",
        points=-to_reverse,
        description=f"Points reversed for refund {refund_number} on sale {sale.sale_number}",
        sale_id=sale.id,
        branch=branch,
        user=user,
    )
    return to_reverse


# =============================================================================
# MANUAL OPERATIONS (commit)
# =============================================================================

def adjust_points(
    *,
    customer_id: int,
    points: int,
    reason: str,
    user_id: int | None = None,
) -> PointsTransaction:
    """
    Manual adjustment by a manager. Positive adds, negative removes.

    Raises LoyaltyError when points is zero, reason is empty or the
    balance would go negative.
    """
    if points == 0:
        raise LoyaltyError("points must be non-zero")
    if not reason or not reason.strip():
        raise LoyaltyError("reason is required")

    def _op() -> PointsTransaction:
        customer = _lock_customer(customer_id)
        new_balance = (customer.loyalty_points or 0) + points
        if new_balance < 0:
            raise LoyaltyError(
                f"Insufficient points: balance {customer.loyalty_points}, adjustment {points}"
            )
        customer.loyalty_points = new_balance
        if points > 0:
            customer.lifetime_points = (customer.lifetime_points or 0) + points

        user = db.session.query(User).get(user_id) if user_id else None
        txn = _add_transaction(
            customer=customer,
            transaction_type="adjust",
            points=points,
            description="Manual adjustment",
            notes=reason.strip(),
            user=user,
        )
        db.session.commit()
        return txn

    return run_with_retry(_op)


def redeem_points(
    *,
    customer_id: int,
    points: int,
    user_id: int | None = None,
    description: str = "Points redeemed",
) -> PointsTransaction:
    """Spend points. Lifetime points (and therefore tier) are unaffected."""
    if points <= 0:
        raise LoyaltyError("points must be positive")

    def _op() -> PointsTransaction:
        customer = _lock_customer(customer_id)
        if (customer.loyalty_points or 0) < points:
            raise LoyaltyError(
                f"Insufficient points: balance {customer.loyalty_points}, requested {points}"
            )
        customer.loyalty_points -= points

        user = db.session.query(User).get(user_id) if user_id else None
        txn = _add_transaction(
            customer=customer,
            transaction_type="redeem",
            points=-points,
            description=description,
            user=user,
        )
        db.session.commit()
        return txn

    return run_with_retry(_op)


# =============================================================================
# QUERIES
# =============================================================================

def get_points_history(customer_id: int, *, limit: int = 100) -> list[PointsTransaction]:
    """Newest first."""
    return (
        db.session.query(PointsTransaction)
        .filter_by(customer_id=customer_id)
        .order_by(PointsTransaction.created_at.desc(), PointsTransaction.id.desc())
        .limit(limit)
        .all()
    )


def get_customer_loyalty(customer_id: int) -> dict:
    customer = db.session.query(Customer).get(customer_id)
    if customer is None:
        raise LoyaltyError("Customer not found")

    lifetime = customer.lifetime_points or 0
    upcoming, needed = next_tier(lifetime)
    return {
        "customer": customer.to_dict(),
        "tier": get_tier(lifetime),
        "next_tier": upcoming,
        "points_to_next_tier": needed,
        "loyalty_points": customer.loyalty_points or 0,
        "lifetime_points": lifetime,
    }
