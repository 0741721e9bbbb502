"""
Refund Service - refund requests and undoing sales

WHY: A refund is the only way money and goods flow back from a completed
sale. It needs manager control (approval), a paper trail (audit entries
for every transition) and must put stock and loyalty points back exactly
as the sale took them.

DESIGN PRINCIPLES:
- Refunds reference the original sale and copy its sale, branch and
  customer names
- Amounts are derived from the sale lines; a client-supplied amount may
  only lower them
- Branch RefundPolicy decides window, reasons, approval and limits
- Completion is one unit of work: sale status, restock, points reversal
  and audit entries commit together or not at all
- Nothing is deleted; rejected refunds stay on record

LIFECYCLE:
1. create   -> status=pending, approval_status=pending_approval (or approved by policy)
2. approve  -> approval_status=approved        | reject -> status=rejected
3. process  -> status=processed (payment sent back to the customer)
4. complete -> status=completed (goods back on the shelf, sale undone)
"""

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import (
    Branch,
    Customer,
    Refund,
    RefundAuditEntry,
    RefundItem,
    RefundPolicy,
    Sale,
    SaleItem,
    User,
)
from ..time_utils import utcnow
from ..validation import NotFoundError, ValidationError, coerce_bool, coerce_int, optional_int
from .concurrency import lock_for_update, run_with_retry
from .document_service import REFUND_PREFIX, next_document_number
from .inventory_service import InventoryError, apply_stock_in
from .loyalty_service import reverse_points_for_refund


class RefundError(Exception):
    """Raised for refund operation errors."""
    pass


# =============================================================================
# STATUS CONSTANTS
# =============================================================================

STATUS_PENDING = "pending"
STATUS_PROCESSED = "processed"
STATUS_COMPLETED = "completed"
STATUS_REJECTED = "rejected"

APPROVAL_PENDING = "pending_approval"
APPROVAL_APPROVED = "approved"
APPROVAL_REJECTED = "rejected"

REFUND_STATUSES = {STATUS_PENDING, STATUS_PROCESSED, STATUS_COMPLETED, STATUS_REJECTED}

ITEM_CONDITIONS = {"new", "opened", "damaged", "defective"}
REFUND_DETAIL_KEYS = {"transaction_id", "phone_number", "reference", "status", "remark"}

DEFAULT_ALLOWED_REASONS = ["defective", "wrong_item", "customer_request", "other"]

# Values for a branch policy created without explicit settings
POLICY_DEFAULTS = {
    "allow_refunds": True,
    "refund_window_days": 30,
    "require_approval": True,
    "max_refund_percentage": 100,
    "require_returned_goods": True,
    "allow_partial_refund": True,
    "allowed_reasons": DEFAULT_ALLOWED_REASONS,
    "require_photo_evidence": False,
    "require_manager_approval_above_cents": 500000,
    "auto_approve_below_cents": 100000,
    "auto_complete_after_days": 7,
    "auto_restock_refunded_items": True,
    "restock_penalty_cents": None,
    "notify_manager_on_refund": True,
    "notify_customer_on_approval": True,
    "notify_customer_on_completion": True,
}

_POLICY_BOOL_FIELDS = {
    "allow_refunds",
    "require_approval",
    "require_returned_goods",
    "allow_partial_refund",
    "require_photo_evidence",
    "auto_restock_refunded_items",
    "notify_manager_on_refund",
    "notify_customer_on_approval",
    "notify_customer_on_completion",
}
_POLICY_AMOUNT_FIELDS = {
    "require_manager_approval_above_cents",
    "auto_approve_below_cents",
    "restock_penalty_cents",
}


# =============================================================================
# HELPERS
# =============================================================================

def _actor(user_id: int | None) -> tuple[User | None, str]:
    user = db.session.query(User).get(user_id) if user_id else None
    return user, (user.display_name if user else "Unknown")


def _add_audit(
    refund: Refund,
    *,
    action_type: str,
    new_status: str,
    previous_status: str | None,
    user: User | None,
    user_name: str,
    notes: str | None = None,
    timestamp: datetime | None = None,
) -> RefundAuditEntry:
    entry = RefundAuditEntry(
        refund_id=refund.id,
        refund_number=refund.refund_number,
        action_type=action_type,
        previous_status=previous_status,
        new_status=new_status,
        performed_by_user_id=user.id if user else None,
        performed_by_name=user_name,
        timestamp=timestamp or utcnow(),
        notes=notes,
    )
    db.session.add(entry)
    return entry


def _lock_refund(refund_id: int) -> Refund:
    refund = lock_for_update(db.session.query(Refund).filter_by(id=refund_id)).first()
    if refund is None:
        raise NotFoundError("Refund not found")
    return refund


def _lock_sale(sale_id: int) -> Sale:
    sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
    if sale is None:
        raise NotFoundError("Sale not found")
    return sale


def _run(op):
    """Run a unit of work; domain errors roll the session back before propagating."""
    try:
        return run_with_retry(op)
    except (RefundError, NotFoundError, ValidationError):
        db.session.rollback()
        raise


def _requested_quantities(sale_id: int, *, statuses: set[str] | None = None) -> dict[int, int]:
    """
    Units per sale item already claimed by refunds on the sale.

    Default counts every refund that is not rejected.
    """
    query = (
        db.session.query(RefundItem.sale_item_id, func.coalesce(func.sum(RefundItem.quantity), 0))
        .join(Refund, Refund.id == RefundItem.refund_id)
        .filter(Refund.sale_id == sale_id)
    )
    if statuses is None:
        query = query.filter(Refund.status != STATUS_REJECTED)
    else:
        query = query.filter(Refund.status.in_(statuses))
    return {sale_item_id: int(qty) for sale_item_id, qty in query.group_by(RefundItem.sale_item_id).all()}


def _refunded_amount(sale_id: int, *, statuses: set[str] | None = None) -> int:
    query = db.session.query(func.coalesce(func.sum(Refund.refund_amount_cents), 0)).filter(
        Refund.sale_id == sale_id
    )
    if statuses is None:
        query = query.filter(Refund.status != STATUS_REJECTED)
    else:
        query = query.filter(Refund.status.in_(statuses))
    return int(query.scalar() or 0)


def _claimed_shares(sale_id: int) -> tuple[int, int, int]:
    """(subtotal, discount, tax) cents already taken by non-rejected refunds on the sale."""
    row = (
        db.session.query(
            func.coalesce(func.sum(Refund.subtotal_cents), 0),
            func.coalesce(func.sum(Refund.discount_cents), 0),
            func.coalesce(func.sum(Refund.tax_cents), 0),
        )
        .filter(Refund.sale_id == sale_id, Refund.status != STATUS_REJECTED)
        .one()
    )
    return int(row[0]), int(row[1]), int(row[2])


def _notify(flag: bool, message: str, *args) -> None:
    if flag:
        current_app.logger.info(message, *args)


def _should_auto_approve(policy: RefundPolicy | None, amount_cents: int) -> bool:
    """
    No policy: always wait for approval.
    Policy: approve on create when approval is not required, or the amount
    is at or under auto_approve_below and not above the manager threshold.
    """
    if policy is None:
        return False
    if not policy.require_approval:
        return True
    if policy.auto_approve_below_cents is None or amount_cents > policy.auto_approve_below_cents:
        return False
    if (
        policy.require_manager_approval_above_cents is not None
        and amount_cents > policy.require_manager_approval_above_cents
    ):
        return False
    return True


def _parse_items(sale: Sale, items, default_reason: str) -> list[dict]:
    """
    Resolve requested items against the sale lines.

    Each item names a sale_item_id (or a product_id sold once on the sale)
    and a quantity; reason defaults to the refund reason, condition to "new".
    """
    if not isinstance(items, list) or not items:
        raise RefundError("At least one item is required")

    sale_items = {si.id: si for si in sale.items}
    by_product: dict[int, list[SaleItem]] = {}
    for si in sale.items:
        by_product.setdefault(si.product_id, []).append(si)

    already = _requested_quantities(sale.id)
    parsed = []
    seen: set[int] = set()

    for raw in items:
        if not isinstance(raw, dict):
            raise RefundError("Each item must be an object")

        try:
            sale_item_id = optional_int(raw.get("sale_item_id"), "sale_item_id", minimum=1)
            product_id = optional_int(raw.get("product_id"), "product_id", minimum=1)
            quantity = coerce_int(raw.get("quantity"), "quantity", minimum=1)
        except ValidationError as e:
            raise RefundError(str(e)) from e

        if sale_item_id is not None:
            sale_item = sale_items.get(sale_item_id)
            if sale_item is None:
                raise RefundError(f"Sale item {sale_item_id} is not part of sale {sale.sale_number}")
        elif product_id is not None:
            matches = by_product.get(product_id, [])
            if not matches:
                raise RefundError(f"Product {product_id} was not sold on sale {sale.sale_number}")
            if len(matches) > 1:
                raise RefundError(f"Product {product_id} appears on several lines; pass sale_item_id")
            sale_item = matches[0]
        else:
            raise RefundError("sale_item_id or product_id is required for each item")

        if sale_item.id in seen:
            raise RefundError(f"Sale item {sale_item.id} listed more than once")
        seen.add(sale_item.id)

        remaining = sale_item.quantity - already.get(sale_item.id, 0)
        if quantity > remaining:
            raise RefundError(
                f"Cannot refund {quantity} x {sale_item.product_name}: only {remaining} refundable"
            )

        condition = raw.get("condition") or "new"
        if condition not in ITEM_CONDITIONS:
            raise RefundError(f"Invalid item condition: {condition}")

        parsed.append({
            "sale_item": sale_item,
            "quantity": quantity,
            "reason": raw.get("reason") or default_reason,
            "condition": condition,
            "notes": raw.get("notes"),
        })

    return parsed


# =============================================================================
# REFUND CREATION
# =============================================================================

def create_refund(
    *,
    sale_id: int,
    user_id: int | None,
    items: list[dict],
    refund_method: str,
    refund_reason: str,
    refund_notes: str | None = None,
    refund_amount_cents: int | None = None,
    restock_required: bool | None = None,
    photo_evidence: list[str] | None = None,
    now: datetime | None = None,
) -> Refund:
    """
    Create a refund request against a completed sale.

    WHY: The customer brings items back. The request is checked against the
    branch policy up front so staff never approve something the store
    would not honor.

    Args:
        sale_id: Sale being refunded
        user_id: Employee taking the request
        items: [{"sale_item_id" | "product_id", "quantity", "reason"?, "condition"?, "notes"?}]
        refund_method: How the money goes back (cash, card, bkash, ...)
        refund_reason: One of the policy's allowed reasons
        refund_amount_cents: Optional lower amount; defaults to the computed maximum
        restock_required: Defaults to the policy's auto_restock_refunded_items
        photo_evidence: Image references; required when the policy says so

    Returns:
        Refund with status=pending; approval_status set by policy

    Raises:
        NotFoundError: sale missing
        RefundError: any policy or limit violation
    """
    if not refund_method or not str(refund_method).strip():
        raise RefundError("refund_method is required")
    if not refund_reason or not str(refund_reason).strip():
        raise RefundError("refund_reason is required")
    refund_method = str(refund_method).strip()
    refund_reason = str(refund_reason).strip()

    if photo_evidence is not None and (
        not isinstance(photo_evidence, list) or not all(isinstance(p, str) for p in photo_evidence)
    ):
        raise RefundError("photo_evidence must be a list of strings")

    def _op() -> Refund:
        now_ = now or utcnow()
        sale = _lock_sale(sale_id)

        if sale.status == "cancelled":
            raise RefundError(f"Sale {sale.sale_number} has already been fully refunded")

        policy = get_policy(sale.branch_id)

        if policy is not None:
            if not policy.allow_refunds:
                raise RefundError("Refunds are not allowed at this branch")

            days_since_sale = (now_ - sale.created_at).total_seconds() / 86400
            if days_since_sale > policy.refund_window_days:
                raise RefundError(f"Refund window of {policy.refund_window_days} days has passed")

            if policy.allowed_reasons and refund_reason not in policy.allowed_reasons:
                raise RefundError(f"Refund reason '{refund_reason}' is not allowed at this branch")

            if policy.require_photo_evidence and not photo_evidence:
                raise RefundError("Photo evidence is required for refunds at this branch")

        lines = _parse_items(sale, items, refund_reason)
        subtotal = sum(line["sale_item"].unit_price_cents * line["quantity"] for line in lines)

        # Discount and tax follow the items back in proportion to the cumulative
        # share of the sale claimed so far, so the last refund takes the remainder
        is_whole_sale = subtotal == sale.subtotal_cents
        prior_subtotal, prior_discount, prior_tax = _claimed_shares(sale.id)
        claimed = prior_subtotal + subtotal
        if claimed >= sale.subtotal_cents or sale.subtotal_cents <= 0:
            discount_share = sale.discount_cents - prior_discount
            tax_share = sale.tax_cents - prior_tax
        else:
            discount_share = sale.discount_cents * claimed // sale.subtotal_cents - prior_discount
            tax_share = sale.tax_cents * claimed // sale.subtotal_cents - prior_tax
        discount_share = max(0, discount_share)
        tax_share = max(0, tax_share)

        if policy is not None and not policy.allow_partial_refund and not is_whole_sale:
            raise RefundError("Partial refunds are not allowed at this branch")

        restock = restock_required
        if restock is None:
            restock = policy.auto_restock_refunded_items if policy is not None else True

        penalty = 0
        if restock and policy is not None and policy.restock_penalty_cents:
            penalty = policy.restock_penalty_cents

        maximum = max(0, subtotal - discount_share + tax_share - penalty)
        if refund_amount_cents is None:
            amount = maximum
        else:
            amount = refund_amount_cents
            if amount > maximum:
                raise RefundError(f"Refund amount {amount} exceeds the maximum refundable {maximum}")
        if amount <= 0:
            raise RefundError("Refund amount must be greater than zero")

        remaining = sale.total_cents - _refunded_amount(sale.id)
        if amount > remaining:
            raise RefundError(
                f"Refund amount {amount} exceeds the refundable sale total (remaining {remaining})"
            )

        if policy is not None:
            already = sale.total_cents - remaining
            if (already + amount) * 100 > sale.total_cents * policy.max_refund_percentage:
                raise RefundError(
                    f"Refund amount exceeds {policy.max_refund_percentage}% of the sale total"
                )

        auto_approved = _should_auto_approve(policy, amount)
        user, user_name = _actor(user_id)

        customer_phone = None
        if sale.customer_id:
            customer = db.session.query(Customer).get(sale.customer_id)
            customer_phone = customer.phone if customer else None

        refund = Refund(
            refund_number=next_document_number(
                branch_id=sale.branch_id, document_type="REFUND", prefix=REFUND_PREFIX
            ),
            sale_id=sale.id,
            sale_number=sale.sale_number,
            branch_id=sale.branch_id,
            branch_name=sale.branch_name,
            customer_id=sale.customer_id,
            customer_name=sale.customer_name,
            customer_phone=customer_phone,
            subtotal_cents=subtotal,
            tax_cents=tax_share,
            discount_cents=discount_share,
            restock_penalty_cents=penalty,
            refund_amount_cents=amount,
            refund_method=refund_method,
            original_payment_method=sale.payment_method,
            status=STATUS_PENDING,
            approval_status=APPROVAL_APPROVED if auto_approved else APPROVAL_PENDING,
            refund_reason=refund_reason,
            refund_notes=refund_notes,
            photo_evidence=list(photo_evidence or []),
            request_date=now_,
            requested_by_user_id=user.id if user else None,
            approval_date=now_ if auto_approved else None,
            approved_by_name="Refund policy" if auto_approved else None,
            is_returned=False,
            restock_required=bool(restock),
        )
        db.session.add(refund)
        db.session.flush()

        for line in lines:
            sale_item = line["sale_item"]
            db.session.add(RefundItem(
                refund_id=refund.id,
                sale_item_id=sale_item.id,
                product_id=sale_item.product_id,
                product_name=sale_item.product_name,
                size=sale_item.size,
                quantity=line["quantity"],
                unit_price_cents=sale_item.unit_price_cents,
                total_price_cents=sale_item.unit_price_cents * line["quantity"],
                reason=line["reason"],
                condition=line["condition"],
                notes=line["notes"],
            ))

        notes = f"Refund request created by {user_name}"
        if auto_approved:
            notes += "; auto-approved by branch refund policy"
        _add_audit(
            refund,
            action_type="created",
            previous_status=None,
            new_status=STATUS_PENDING,
            user=user,
            user_name=user_name,
            notes=notes,
            timestamp=now_,
        )

        db.session.commit()

        current_app.logger.info(
            "Refund %s created for sale %s (%s cents, %s)",
            refund.refund_number, sale.sale_number, amount, refund.approval_status,
        )
        _notify(
            policy is not None and policy.notify_manager_on_refund,
            "Notify manager of %s: refund %s requested",
            refund.branch_name, refund.refund_number,
        )
        return refund

    return _run(_op)


# =============================================================================
# APPROVAL / REJECTION
# =============================================================================

def approve_refund(refund_id: int, user_id: int | None, notes: str | None = None) -> Refund:
    """
    Approve a refund awaiting approval.

    Raises:
        RefundError: "Cannot approve refund with status: X" unless pending_approval
    """
    def _op() -> Refund:
        refund = _lock_refund(refund_id)
        if refund.approval_status != APPROVAL_PENDING:
            raise RefundError(f"Cannot approve refund with status: {refund.approval_status}")

        user, user_name = _actor(user_id)
        previous = refund.approval_status
        refund.approval_status = APPROVAL_APPROVED
        refund.approval_date = utcnow()
        refund.approved_by_user_id = user.id if user else None
        refund.approved_by_name = user_name

        _add_audit(
            refund,
            action_type="approved",
            previous_status=previous,
            new_status=APPROVAL_APPROVED,
            user=user,
            user_name=user_name,
            notes=notes,
        )
        db.session.commit()

        current_app.logger.info("Refund %s approved by %s", refund.refund_number, user_name)
        policy = get_policy(refund.branch_id)
        _notify(
            policy is not None and policy.notify_customer_on_approval and bool(refund.customer_id),
            "Notify customer %s: refund %s approved",
            refund.customer_name, refund.refund_number,
        )
        return refund

    return _run(_op)


def reject_refund(refund_id: int, user_id: int | None, reason: str) -> Refund:
    """
    Reject a refund that has not been processed yet.

    WHY: Once money went back (processed) or goods were restocked
    (completed) a rejection would leave the books inconsistent.
    """
    if not reason or not str(reason).strip():
        raise RefundError("Rejection reason is required")

    def _op() -> Refund:
        refund = _lock_refund(refund_id)
        if refund.status != STATUS_PENDING:
            raise RefundError(f"Cannot reject refund with status: {refund.status}")

        user, user_name = _actor(user_id)
        previous = refund.approval_status
        refund.status = STATUS_REJECTED
        refund.approval_status = APPROVAL_REJECTED
        refund.processed_by_user_id = user.id if user else None
        refund.processed_by_name = user_name
        refund.processed_date = utcnow()
        refund.internal_notes = str(reason).strip()

        _add_audit(
            refund,
            action_type="rejected",
            previous_status=previous,
            new_status=STATUS_REJECTED,
            user=user,
            user_name=user_name,
            notes=refund.internal_notes,
        )
        db.session.commit()

        current_app.logger.info("Refund %s rejected by %s", refund.refund_number, user_name)
        return refund

    return _run(_op)


# =============================================================================
# PROCESSING (payment back to the customer)
# =============================================================================

def _clean_refund_details(details) -> dict | None:
    if details is None:
        return None
    if not isinstance(details, dict):
        raise RefundError("refund_details must be an object")
    unknown = set(details) - REFUND_DETAIL_KEYS
    if unknown:
        raise RefundError(f"Unknown refund_details fields: {', '.join(sorted(unknown))}")
    cleaned = {}
    for key, value in details.items():
        if value is None:
            continue
        if not isinstance(value, str):
            raise RefundError(f"refund_details.{key} must be a string")
        cleaned[key] = value
    return cleaned


def process_refund(refund_id: int, user_id: int | None, refund_details: dict | None = None) -> Refund:
    """
    Record that the money went back to the customer.

    Raises:
        RefundError: "Cannot process unapproved refund" unless approved;
            refund must still be pending
    """
    details = _clean_refund_details(refund_details)

    def _op() -> Refund:
        refund = _lock_refund(refund_id)
        if refund.approval_status != APPROVAL_APPROVED:
            raise RefundError("Cannot process unapproved refund")
        if refund.status != STATUS_PENDING:
            raise RefundError(f"Cannot process refund with status: {refund.status}")

        user, user_name = _actor(user_id)
        previous = refund.status
        refund.status = STATUS_PROCESSED
        refund.processed_by_user_id = user.id if user else None
        refund.processed_by_name = user_name
        refund.processed_date = utcnow()
        refund.refund_details = details

        _add_audit(
            refund,
            action_type="processed",
            previous_status=previous,
            new_status=STATUS_PROCESSED,
            user=user,
            user_name=user_name,
            notes=f"Refund processed with method: {refund.refund_method}",
        )
        db.session.commit()

        current_app.logger.info("Refund %s processed via %s", refund.refund_number, refund.refund_method)
        return refund

    return _run(_op)


# =============================================================================
# COMPLETION (undo sale)
# =============================================================================

def complete_refund(
    refund_id: int,
    user_id: int | None,
    return_condition: str | None = None,
    inspection_notes: str | None = None,
) -> dict:
    """
    Complete an approved refund and undo the sale it came from.

    ORDER:
    1. Refund marked completed and returned
    2. Sale -> cancelled when every unit is back, else partially_refunded
    3. Refunded quantities restocked (product + branch, one movement each)
    4. Sale's loyalty points reversed in proportion, floored at zero
    5-6. discount_reversal / tax_reversal audit entries when applicable
    7. completed audit entry

    Returns:
        {"success", "refund_id", "message", "sale_status", "points_reversed", "items_restocked"}
    """
    def _op() -> dict:
        refund = _lock_refund(refund_id)
        if refund.approval_status != APPROVAL_APPROVED:
            raise RefundError("Cannot complete unapproved refund")
        if refund.status not in (STATUS_PENDING, STATUS_PROCESSED):
            raise RefundError(f"Cannot complete refund with status: {refund.status}")

        policy = get_policy(refund.branch_id)
        if policy is not None and policy.require_returned_goods and not return_condition:
            raise RefundError("Return condition is required to complete this refund")

        sale = _lock_sale(refund.sale_id)
        branch = db.session.query(Branch).get(refund.branch_id)
        user, user_name = _actor(user_id)
        now = utcnow()
        previous_status = refund.status

        # 1. refund
        refund.status = STATUS_COMPLETED
        refund.completed_date = now
        refund.completed_by_user_id = user.id if user else None
        refund.is_returned = True
        refund.return_date = now
        refund.return_condition = return_condition
        refund.inspection_notes = inspection_notes
        db.session.flush()

        # 2. sale
        returned = _requested_quantities(sale.id, statuses={STATUS_COMPLETED})
        fully_returned = all(returned.get(si.id, 0) >= si.quantity for si in sale.items)
        if fully_returned:
            sale.status = "cancelled"
            sale.cancelled_at = now
        else:
            sale.status = "partially_refunded"

        # 3. restock
        items_restocked = 0
        if refund.restock_required:
            for item in refund.items:
                try:
                    apply_stock_in(
                        product_id=item.product_id,
                        branch=branch,
                        quantity=item.quantity,
                        reason="Undo Sale Return",
                        reference=refund.refund_number,
                        user=user,
                        notes=f"Sale undo: restocking from sale #{sale.sale_number} - refund #{refund.refund_number}",
                        reactivate=True,
                    )
                except InventoryError as e:
                    raise RefundError(str(e)) from e
                items_restocked += item.quantity

        # 4. loyalty points
        points_reversed = 0
        if sale.customer_id:
            customer = lock_for_update(db.session.query(Customer).filter_by(id=sale.customer_id)).first()
            if customer is not None:
                if fully_returned:
                    refunded_total = sale.total_cents
                else:
                    refunded_total = _refunded_amount(sale.id, statuses={STATUS_COMPLETED})
                points_reversed = reverse_points_for_refund(
                    customer=customer,
                    sale=sale,
                    refunded_cents_total=refunded_total,
                    refund_number=refund.refund_number,
                    branch=branch,
                    user=user,
                )

        # 5. discount
        if sale.discount_cents > 0:
            _add_audit(
                refund,
                action_type="discount_reversal",
                previous_status=previous_status,
                new_status=STATUS_COMPLETED,
                user=user,
                user_name=user_name,
                notes=(
                    f"Discount reversal: {refund.discount_cents} of sale discount {sale.discount_cents} "
                    f"(included in refund of {refund.refund_amount_cents})"
                ),
                timestamp=now,
            )

        # 6. tax
        if sale.tax_cents > 0:
            _add_audit(
                refund,
                action_type="tax_reversal",
                previous_status=previous_status,
                new_status=STATUS_COMPLETED,
                user=user,
                user_name=user_name,
                notes=(
                    f"Tax reversal: {refund.tax_cents} of sale tax {sale.tax_cents} "
                    f"(included in refund of {refund.refund_amount_cents})"
                ),
                timestamp=now,
            )

        # 7. summary
        item_count = sum(item.quantity for item in refund.items)
        _add_audit(
            refund,
            action_type="completed",
            previous_status=previous_status,
            new_status=STATUS_COMPLETED,
            user=user,
            user_name=user_name,
            notes=(
                f"Sale #{sale.sale_number} {'cancelled' if fully_returned else 'partially refunded'}. "
                f"Paid amount {sale.paid_amount_cents}, refunded {refund.refund_amount_cents}. "
                f"Items returned: {item_count}{'' if refund.restock_required else ' (not restocked)'}. "
                f"Loyalty points reversed: {points_reversed}. "
                f"Return condition: {return_condition or 'Not specified'}"
            ),
            timestamp=now,
        )

        db.session.commit()

        current_app.logger.info(
            "Refund %s completed; sale %s is now %s", refund.refund_number, sale.sale_number, sale.status
        )
        _notify(
            policy is not None and policy.notify_customer_on_completion and bool(refund.customer_id),
            "Notify customer %s: refund %s completed",
            refund.customer_name, refund.refund_number,
        )

        if fully_returned:
            message = "Sale completely undone. Inventory restored and loyalty points adjusted."
        else:
            message = "Refund completed. Sale partially refunded, inventory and loyalty points adjusted."
        return {
            "success": True,
            "refund_id": refund.id,
            "message": message,
            "sale_status": sale.status,
            "points_reversed": points_reversed,
            "items_restocked": items_restocked,
        }

    return _run(_op)


# =============================================================================
# POLICY
# =============================================================================

def get_policy(branch_id: int) -> RefundPolicy | None:
    return db.session.query(RefundPolicy).filter_by(branch_id=branch_id).first()


def _clean_policy_fields(fields: dict) -> dict:
    unknown = set(fields) - set(POLICY_DEFAULTS)
    if unknown:
        raise RefundError(f"Unknown policy fields: {', '.join(sorted(unknown))}")

    cleaned = {}
    try:
        for key, value in fields.items():
            if key in _POLICY_BOOL_FIELDS:
                cleaned[key] = coerce_bool(value, key)
            elif key == "refund_window_days":
                cleaned[key] = coerce_int(value, key, minimum=0)
            elif key == "max_refund_percentage":
                cleaned[key] = coerce_int(value, key, minimum=0, maximum=100)
            elif key == "auto_complete_after_days":
                cleaned[key] = optional_int(value, key, minimum=0)
            elif key in _POLICY_AMOUNT_FIELDS:
                cleaned[key] = optional_int(value, key, minimum=0)
            elif key == "allowed_reasons":
                if not isinstance(value, list) or not all(isinstance(r, str) and r.strip() for r in value):
                    raise ValidationError("allowed_reasons must be a list of non-empty strings")
                cleaned[key] = [r.strip() for r in value]
    except ValidationError as e:
        raise RefundError(str(e)) from e
    return cleaned


def update_policy(branch_id: int, user_id: int | None, **fields) -> RefundPolicy:
    """
    Create or update a branch refund policy.

    Only the supplied fields change on an existing policy; a new policy
    starts from POLICY_DEFAULTS.
    """
    cleaned = _clean_policy_fields(fields)

    def _op() -> RefundPolicy:
        branch = db.session.query(Branch).get(branch_id)
        if branch is None:
            raise NotFoundError("Branch not found")

        user, user_name = _actor(user_id)
        policy = get_policy(branch_id)
        if policy is None:
            values = dict(POLICY_DEFAULTS)
            values["allowed_reasons"] = list(DEFAULT_ALLOWED_REASONS)
            values.update(cleaned)
            policy = RefundPolicy(branch_id=branch.id, branch_name=branch.name, **values)
            db.session.add(policy)
        else:
            for key, value in cleaned.items():
                setattr(policy, key, value)

        policy.updated_by_user_id = user.id if user else None
        policy.updated_by_name = user_name
        policy.last_updated = utcnow()
        db.session.commit()

        current_app.logger.info("Refund policy for branch %s updated by %s", branch.name, user_name)
        return policy

    return _run(_op)


# =============================================================================
# QUERIES
# =============================================================================

def get_refund(refund_id: int) -> Refund | None:
    return db.session.query(Refund).get(refund_id)


def list_refunds(
    *,
    branch_id: int | None = None,
    status: str | None = None,
    limit: int = 100,
) -> list[Refund]:
    """Newest first."""
    query = db.session.query(Refund)
    if branch_id:
        query = query.filter(Refund.branch_id == branch_id)
    if status:
        if status not in REFUND_STATUSES:
            raise RefundError(f"Invalid status: {status}")
        query = query.filter(Refund.status == status)
    return (
        query.order_by(Refund.request_date.desc(), Refund.id.desc())
        .limit(max(1, min(limit, 500)))
        .all()
    )


def get_refunds_by_sale(sale_id: int) -> list[Refund]:
    return (
        db.session.query(Refund)
        .filter_by(sale_id=sale_id)
        .order_by(Refund.request_date.desc(), Refund.id.desc())
        .all()
    )


def get_refunds_by_customer(customer_id: int) -> list[Refund]:
    return (
        db.session.query(Refund)
        .filter_by(customer_id=customer_id)
        .order_by(Refund.request_date.desc(), Refund.id.desc())
        .all()
    )


def get_pending_approval(branch_id: int | None = None) -> list[Refund]:
    query = db.session.query(Refund).filter(
        Refund.approval_status == APPROVAL_PENDING,
        Refund.status == STATUS_PENDING,
    )
    if branch_id:
        query = query.filter(Refund.branch_id == branch_id)
    return query.order_by(Refund.request_date.desc(), Refund.id.desc()).all()


def get_audit_trail(refund_id: int) -> list[RefundAuditEntry]:
    """Newest first."""
    return (
        db.session.query(RefundAuditEntry)
        .filter_by(refund_id=refund_id)
        .order_by(RefundAuditEntry.timestamp.desc(), RefundAuditEntry.id.desc())
        .all()
    )


def get_refund_statistics(
    *,
    branch_id: int | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
) -> dict:
    """Counts and totals over refunds requested in the window (inclusive)."""
    query = db.session.query(Refund)
    if branch_id:
        query = query.filter(Refund.branch_id == branch_id)
    if start:
        query = query.filter(Refund.request_date >= start)
    if end:
        query = query.filter(Refund.request_date <= end)
    refunds = query.all()

    total_amount = sum(r.refund_amount_cents for r in refunds)
    by_reason: dict[str, int] = {}
    by_method: dict[str, int] = {}
    for r in refunds:
        by_reason[r.refund_reason] = by_reason.get(r.refund_reason, 0) + 1
        by_method[r.refund_method] = by_method.get(r.refund_method, 0) + 1

    return {
        "total_refunds": len(refunds),
        "total_refund_amount_cents": total_amount,
        "by_status": {
            "pending": sum(1 for r in refunds if r.status == STATUS_PENDING),
            "approved": sum(1 for r in refunds if r.approval_status == APPROVAL_APPROVED),
            "processed": sum(1 for r in refunds if r.status == STATUS_PROCESSED),
            "completed": sum(1 for r in refunds if r.status == STATUS_COMPLETED),
            "rejected": sum(1 for r in refunds if r.status == STATUS_REJECTED),
        },
        "by_reason": by_reason,
        "by_method": by_method,
        "pending_approval": sum(1 for r in refunds if r.approval_status == APPROVAL_PENDING),
        "average_refund_amount_cents": total_amount // len(refunds) if refunds else 0,
    }
