from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Refund(db.Model):
    """
    Customer refund request against a prior sale.

    LIFECYCLE (two status fields):
    - approval_status: pending_approval -> approved | rejected
    - status: pending -> processed -> completed, or pending -> rejected

    DESIGN PRINCIPLES:
    - Sale, branch and customer names are copied at request time
    - Money is copied from the original sale lines, never re-priced
    - Every transition appends a RefundAuditEntry
    - Never deleted; rejected refunds stay for the audit trail
    """
    __tablename__ = "refunds"
    __table_args__ = (
        db.UniqueConstraint("branch_id", "refund_number", name="uq_refunds_branch_number"),
        db.Index("ix_refunds_branch_status_requested", "branch_id", "status", "request_date"),
        db.Index("ix_refunds_approval_status", "approval_status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable number (e.g., "REF-0007")
    refund_number = db.Column(db.String(64), nullable=False, index=True)

    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    sale_number = db.Column(db.String(64), nullable=False)

    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    branch_name = db.Column(db.String(120), nullable=False)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    customer_name = db.Column(db.String(128), nullable=True)
    customer_phone = db.Column(db.String(32), nullable=True)

    # Amounts in cents
    subtotal_cents = db.Column(db.Integer, nullable=False)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    restock_penalty_cents = db.Column(db.Integer, nullable=False, default=0)
    refund_amount_cents = db.Column(db.Integer, nullable=False)

    refund_method = db.Column(db.String(32), nullable=False)  # cash, card, bkash, store_credit, ...
    original_payment_method = db.Column(db.String(32), nullable=True)

    status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    approval_status = db.Column(db.String(24), nullable=False, default="pending_approval")

    refund_reason = db.Column(db.String(64), nullable=False)
    refund_notes = db.Column(db.Text, nullable=True)
    photo_evidence = db.Column(db.JSON, nullable=False, default=list)

    request_date = db.Column(db.DateTime(timezone=True), nullable=False)
    requested_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    approval_date = db.Column(db.DateTime(timezone=True), nullable=True)
    approved_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    approved_by_name = db.Column(db.String(128), nullable=True)

    processed_date = db.Column(db.DateTime(timezone=True), nullable=True)
    processed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    processed_by_name = db.Column(db.String(128), nullable=True)
    # Payment-side details (transaction id, wallet number, reference, remark)
    refund_details = db.Column(db.JSON, nullable=True)

    completed_date = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    is_returned = db.Column(db.Boolean, nullable=False, default=False)
    return_date = db.Column(db.DateTime(timezone=True), nullable=True)
    return_condition = db.Column(db.String(64), nullable=True)
    inspection_notes = db.Column(db.Text, nullable=True)
    internal_notes = db.Column(db.Text, nullable=True)

    restock_required = db.Column(db.Boolean, nullable=False, default=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    sale = db.relationship("Sale", backref=db.backref("refunds", lazy=True))
    items = db.relationship("RefundItem", backref="refund", lazy=True, order_by="RefundItem.id")
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "refund_number": self.refund_number,
            "sale_id": self.sale_id,
            "sale_number": self.sale_number,
            "branch_id": self.branch_id,
            "branch_name": self.branch_name,
            "customer_id": self.customer_id,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "items": [item.to_dict() for item in self.items],
            "subtotal_cents": self.subtotal_cents,
            "tax_cents": self.tax_cents,
            "discount_cents": self.discount_cents,
            "restock_penalty_cents": self.restock_penalty_cents,
            "refund_amount_cents": self.refund_amount_cents,
            "refund_method": self.refund_method,
            "original_payment_method": self.original_payment_method,
            "status": self.status,
            "approval_status": self.approval_status,
            "refund_reason": self.refund_reason,
            "refund_notes": self.refund_notes,
            "photo_evidence": list(self.photo_evidence or []),
            "request_date": to_utc_z(self.request_date),
            "requested_by_user_id": self.requested_by_user_id,
            "approval_date": to_utc_z(self.approval_date) if self.approval_date else None,
            "approved_by_user_id": self.approved_by_user_id,
            "approved_by_name": self.approved_by_name,
            "processed_date": to_utc_z(self.processed_date) if self.processed_date else None,
            "processed_by_user_id": self.processed_by_user_id,
            "processed_by_name": self.processed_by_name,
            "refund_details": self.refund_details,
            "completed_date": to_utc_z(self.completed_date) if self.completed_date else None,
            "completed_by_user_id": self.completed_by_user_id,
            "is_returned": self.is_returned,
            "return_date": to_utc_z(self.return_date) if self.return_date else None,
            "return_condition": self.return_condition,
            "inspection_notes": self.inspection_notes,
            "internal_notes": self.internal_notes,
            "restock_required": self.restock_required,
            "version_id": self.version_id,
        }


class RefundItem(db.Model):
    """
    One returned line. Links back to the SaleItem it came from so
    already-refunded quantities can be tracked per line.
    """
    __tablename__ = "refund_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    refund_id = db.Column(db.Integer, db.ForeignKey("refunds.id"), nullable=False, index=True)
    sale_item_id = db.Column(db.Integer, db.ForeignKey("sale_items.id"), nullable=False, index=True)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    product_name = db.Column(db.String(255), nullable=False)
    size = db.Column(db.String(32), nullable=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    total_price_cents = db.Column(db.Integer, nullable=False)

    reason = db.Column(db.String(64), nullable=False)
    condition = db.Column(db.String(32), nullable=False)  # new, opened, damaged, defective
    notes = db.Column(db.Text, nullable=True)

    sale_item = db.relationship("SaleItem")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "refund_id": self.refund_id,
            "sale_item_id": self.sale_item_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "size": self.size,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "total_price_cents": self.total_price_cents,
            "reason": self.reason,
            "condition": self.condition,
            "notes": self.notes,
        }


class RefundPolicy(db.Model):
    """
    Per-branch refund rules. At most one row per branch.

    A branch with no policy accepts refund requests without window or
    reason checks, and every request waits for manager approval.
    """
    __tablename__ = "refund_policies"
    __table_args__ = (
        db.UniqueConstraint("branch_id", name="uq_refund_policies_branch"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    branch_name = db.Column(db.String(120), nullable=False)

    allow_refunds = db.Column(db.Boolean, nullable=False, default=True)
    refund_window_days = db.Column(db.Integer, nullable=False, default=30)
    require_approval = db.Column(db.Boolean, nullable=False, default=True)
    max_refund_percentage = db.Column(db.Integer, nullable=False, default=100)
    require_returned_goods = db.Column(db.Boolean, nullable=False, default=True)
    allow_partial_refund = db.Column(db.Boolean, nullable=False, default=True)
    allowed_reasons = db.Column(db.JSON, nullable=False, default=list)
    require_photo_evidence = db.Column(db.Boolean, nullable=False, default=False)

    require_manager_approval_above_cents = db.Column(db.Integer, nullable=True)
    auto_approve_below_cents = db.Column(db.Integer, nullable=True)
    auto_complete_after_days = db.Column(db.Integer, nullable=True)
    auto_restock_refunded_items = db.Column(db.Boolean, nullable=False, default=True)
    restock_penalty_cents = db.Column(db.Integer, nullable=True)

    notify_manager_on_refund = db.Column(db.Boolean, nullable=False, default=True)
    notify_customer_on_approval = db.Column(db.Boolean, nullable=False, default=True)
    notify_customer_on_completion = db.Column(db.Boolean, nullable=False, default=True)

    updated_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    updated_by_name = db.Column(db.String(128), nullable=True)
    last_updated = db.Column(db.DateTime(timezone=True), nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "branch_name": self.branch_name,
            "allow_refunds": self.allow_refunds,
            "refund_window_days": self.refund_window_days,
            "require_approval": self.require_approval,
            "max_refund_percentage": self.max_refund_percentage,
            "require_returned_goods": self.require_returned_goods,
            "allow_partial_refund": self.allow_partial_refund,
            "allowed_reasons": list(self.allowed_reasons or []),
            "require_photo_evidence": self.require_photo_evidence,
            "require_manager_approval_above_cents": self.require_manager_approval_above_cents,
            "auto_approve_below_cents": self.auto_approve_below_cents,
            "auto_complete_after_days": self.auto_complete_after_days,
            "auto_restock_refunded_items": self.auto_restock_refunded_items,
            "restock_penalty_cents": self.restock_penalty_cents,
            "notify_manager_on_refund": self.notify_manager_on_refund,
            "notify_customer_on_approval": self.notify_customer_on_approval,
            "notify_customer_on_completion": self.notify_customer_on_completion,
            "updated_by_user_id": self.updated_by_user_id,
            "updated_by_name": self.updated_by_name,
            "last_updated": to_utc_z(self.last_updated),
        }


class RefundAuditEntry(db.Model):
    """
    Append-only audit trail for refunds.

    ACTION TYPES: created, approved, rejected, processed, completed,
    discount_reversal, tax_reversal.
    """
    __tablename__ = "refund_audit_trail"
    __table_args__ = (
        db.Index("ix_refund_audit_refund_ts", "refund_id", "timestamp"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    refund_id = db.Column(db.Integer, db.ForeignKey("refunds.id"), nullable=False, index=True)
    refund_number = db.Column(db.String(64), nullable=False)

    action_type = db.Column(db.String(32), nullable=False, index=True)
    previous_status = db.Column(db.String(24), nullable=True)
    new_status = db.Column(db.String(24), nullable=False)

    performed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    performed_by_name = db.Column(db.String(128), nullable=False)

    timestamp = db.Column(db.DateTime(timezone=True), nullable=False)
    notes = db.Column(db.Text, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "refund_id": self.refund_id,
            "refund_number": self.refund_number,
            "action_type": self.action_type,
            "previous_status": self.previous_status,
            "new_status": self.new_status,
            "performed_by_user_id": self.performed_by_user_id,
            "performed_by_name": self.performed_by_name,
            "timestamp": to_utc_z(self.timestamp),
            "notes": self.notes,
        }
