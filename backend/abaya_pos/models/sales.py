from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Sale(db.Model):
    """
    Completed POS sale.

    STATUS:
    - completed: normal sale
    - partially_refunded: some units came back through completed refunds
    - cancelled: every unit came back (sale fully undone)
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.UniqueConstraint("branch_id", "sale_number", name="uq_sales_branch_number"),
        db.Index("ix_sales_branch_status_created", "branch_id", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable number (e.g., "S-0042")
    sale_number = db.Column(db.String(64), nullable=False, index=True)

    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    branch_name = db.Column(db.String(120), nullable=False)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    customer_name = db.Column(db.String(128), nullable=True)

    cashier_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    cashier_name = db.Column(db.String(128), nullable=True)

    # All amounts in cents
    subtotal_cents = db.Column(db.Integer, nullable=False)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False)
    paid_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    change_due_cents = db.Column(db.Integer, nullable=False, default=0)

    payment_method = db.Column(db.String(32), nullable=False)  # cash, card, bkash, nagad, ...
    discount_id = db.Column(db.Integer, db.ForeignKey("discounts.id"), nullable=True)
    points_earned = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(db.String(24), nullable=False, default="completed", index=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    branch = db.relationship("Branch")
    customer = db.relationship("Customer", backref=db.backref("sales", lazy=True))
    items = db.relationship("SaleItem", backref="sale", lazy=True, order_by="SaleItem.id")
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_number": self.sale_number,
            "branch_id": self.branch_id,
            "branch_name": self.branch_name,
            "customer_id": self.customer_id,
            "customer_name": self.customer_name,
            "cashier_id": self.cashier_id,
            "cashier_name": self.cashier_name,
            "items": [item.to_dict() for item in self.items],
            "subtotal_cents": self.subtotal_cents,
            "discount_cents": self.discount_cents,
            "tax_cents": self.tax_cents,
            "total_cents": self.total_cents,
            "paid_amount_cents": self.paid_amount_cents,
            "change_due_cents": self.change_due_cents,
            "payment_method": self.payment_method,
            "discount_id": self.discount_id,
            "points_earned": self.points_earned,
            "status": self.status,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "cancelled_at": to_utc_z(self.cancelled_at) if self.cancelled_at else None,
        }


class SaleItem(db.Model):
    """Individual line items on a sale."""
    __tablename__ = "sale_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    product_name = db.Column(db.String(255), nullable=False)
    size = db.Column(db.String(32), nullable=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    total_price_cents = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "size": self.size,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "total_price_cents": self.total_price_cents,
        }
