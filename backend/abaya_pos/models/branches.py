from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Branch(db.Model):
    """
    Physical store branch.

    WHY: Sales, refunds, stock and refund policy are all tracked per branch.
    Name fields are copied onto sales and refunds so history survives renames.
    """
    __tablename__ = "branches"
    __table_args__ = (
        db.UniqueConstraint("code", name="uq_branches_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    code = db.Column(db.String(32), nullable=False, index=True)

    address = db.Column(db.String(255), nullable=True)
    city = db.Column(db.String(120), nullable=True)
    phone = db.Column(db.String(32), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    manager_name = db.Column(db.String(128), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    # Branch-level configuration
    tax_rate_bps = db.Column(db.Integer, nullable=False, default=0)  # Basis points (e.g., 500 = 5%)
    currency = db.Column(db.String(8), nullable=False, default="BDT")
    allow_negative_stock = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Branch id={self.id} code={self.code!r} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "address": self.address,
            "city": self.city,
            "phone": self.phone,
            "email": self.email,
            "manager_name": self.manager_name,
            "is_active": self.is_active,
            "tax_rate_bps": self.tax_rate_bps,
            "currency": self.currency,
            "allow_negative_stock": self.allow_negative_stock,
            "created_at": to_utc_z(self.created_at),
        }
