from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Discount(db.Model):
    """
    Discounts and coupons.

    A discount with a `code` is a coupon: it only applies when the cashier
    enters the code. Branch-limited when branch_ids is non-empty.
    """
    __tablename__ = "discounts"
    __table_args__ = (
        db.UniqueConstraint("code", name="uq_discounts_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    code = db.Column(db.String(32), nullable=True, index=True)

    discount_type = db.Column(db.String(16), nullable=False)  # percentage, fixed_amount
    value = db.Column(db.Integer, nullable=False, default=0)  # basis points for percentage, cents for fixed_amount

    scope = db.Column(db.String(32), nullable=False, default="all_products")  # all_products, category, specific_products
    category_ids = db.Column(db.JSON, nullable=False, default=list)
    product_ids = db.Column(db.JSON, nullable=False, default=list)
    branch_ids = db.Column(db.JSON, nullable=False, default=list)

    start_date = db.Column(db.DateTime(timezone=True), nullable=True)
    end_date = db.Column(db.DateTime(timezone=True), nullable=True)

    usage_limit = db.Column(db.Integer, nullable=True)
    usage_count = db.Column(db.Integer, nullable=False, default=0)
    min_purchase_cents = db.Column(db.Integer, nullable=True)
    max_discount_cents = db.Column(db.Integer, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "code": self.code,
            "discount_type": self.discount_type,
            "value": self.value,
            "scope": self.scope,
            "category_ids": list(self.category_ids or []),
            "product_ids": list(self.product_ids or []),
            "branch_ids": list(self.branch_ids or []),
            "start_date": to_utc_z(self.start_date) if self.start_date else None,
            "end_date": to_utc_z(self.end_date) if self.end_date else None,
            "usage_limit": self.usage_limit,
            "usage_count": self.usage_count,
            "min_purchase_cents": self.min_purchase_cents,
            "max_discount_cents": self.max_discount_cents,
            "is_active": self.is_active,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
