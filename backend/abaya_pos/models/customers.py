from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Customer(db.Model):
    """
    Customer master data for tracking purchases and loyalty.

    Denormalized aggregates (total_spent_cents, total_orders, loyalty_points)
    are updated by sales and refund completion.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.Index("ix_customers_phone", "phone"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(128), nullable=False)
    phone = db.Column(db.String(32), nullable=True)
    email = db.Column(db.String(255), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    # Spendable balance; never negative
    loyalty_points = db.Column(db.Integer, nullable=False, default=0)
    # Net points earned over the customer's life (drives tier)
    lifetime_points = db.Column(db.Integer, nullable=False, default=0)

    total_spent_cents = db.Column(db.Integer, nullable=False, default=0)
    total_orders = db.Column(db.Integer, nullable=False, default=0)
    last_purchase_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "email": self.email,
            "is_active": self.is_active,
            "loyalty_points": self.loyalty_points,
            "lifetime_points": self.lifetime_points,
            "total_spent_cents": self.total_spent_cents,
            "total_orders": self.total_orders,
            "last_purchase_at": to_utc_z(self.last_purchase_at) if self.last_purchase_at else None,
            "created_at": to_utc_z(self.created_at),
        }


class PointsTransaction(db.Model):
    """
    Append-only ledger of loyalty point events.

    TRANSACTION TYPES:
    - purchase: Points earned from a sale
    - refund: Points reversed when a sale is refunded (negative)
    - redeem: Points spent (negative)
    - adjust: Manual adjustment by a manager

    IMMUTABLE: Records are never updated or deleted.
    """
    __tablename__ = "points_transactions"
    __table_args__ = (
        db.Index("ix_points_txns_customer_created", "customer_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    customer_name = db.Column(db.String(128), nullable=False)

    transaction_type = db.Column(db.String(16), nullable=False, index=True)
    points = db.Column(db.Integer, nullable=False)  # Positive for earn, negative for reversal/redeem

    description = db.Column(db.String(255), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True)
    branch_name = db.Column(db.String(120), nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    customer = db.relationship("Customer", backref=db.backref("points_transactions", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "customer_name": self.customer_name,
            "transaction_type": self.transaction_type,
            "points": self.points,
            "description": self.description,
            "notes": self.notes,
            "sale_id": self.sale_id,
            "branch_id": self.branch_id,
            "branch_name": self.branch_name,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }
