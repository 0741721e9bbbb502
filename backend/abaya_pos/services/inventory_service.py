# Overview: Service-layer operations for product stock; encapsulates business logic and database work.

"""
Stock Invariants

- Product.current_stock is the store-wide total; BranchStock holds the
  per-branch split. Both move together.
- Every change writes exactly one StockMovement with the real
  previous/new store-wide stock.
- Deductions fail when branch stock would go negative, unless the branch
  allows negative stock.
- Restocks only add.

apply_* helpers run inside the caller's unit of work (no commit); the
public restock_product commits on its own.
"""

from __future__ import annotations

from ..extensions import db
from ..models import Branch, BranchStock, Product, StockMovement, User
from ..time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry


class InventoryError(Exception):
    """Raised when stock operations fail."""
    pass


def get_product(product_id: int, *, lock: bool = False) -> Product | None:
    query = db.session.query(Product).filter_by(id=product_id)
    if lock:
        query = lock_for_update(query)
    return query.first()


def _get_branch_stock_row(product_id: int, branch_id: int, *, lock: bool = False) -> BranchStock | None:
    query = db.session.query(BranchStock).filter_by(product_id=product_id, branch_id=branch_id)
    if lock:
        query = lock_for_update(query)
    return query.first()


def get_branch_stock(product_id: int, branch_id: int) -> int:
    row = _get_branch_stock_row(product_id, branch_id)
    return row.current_stock if row else 0


def _record_movement(
    *,
    product: Product,
    branch: Branch | None,
    movement_type: str,
    quantity: int,
    previous_stock: int,
    reason: str,
    reference: str | None,
    user: User | None,
    notes: str | None,
) -> StockMovement:
    movement = StockMovement(
        product_id=product.id,
        product_name=product.name,
        branch_id=branch.id if branch else None,
        branch_name=branch.name if branch else None,
        type=movement_type,
        quantity=quantity,
        reason=reason,
        reference=reference,
        user_id=user.id if user else None,
        user_name=user.display_name if user else None,
        previous_stock=previous_stock,
        new_stock=product.current_stock,
        notes=notes,
        created_at=utcnow(),
    )
    db.session.add(movement)
    return movement


def apply_stock_in(
    *,
    product_id: int,
    branch: Branch,
    quantity: int,
    reason: str,
    reference: str | None = None,
    user: User | None = None,
    notes: str | None = None,
    reactivate: bool = False,
) -> StockMovement:
    """
    Add quantity to product and branch stock and record an "in" movement.

    Creates the BranchStock row on first restock of a product at a branch.
    """
    if quantity <= 0:
        raise InventoryError("quantity must be positive")

    product = get_product(product_id, lock=True)
    if product is None:
        raise InventoryError(f"Product {product_id} not found")

    previous_stock = product.current_stock
    product.current_stock = previous_stock + quantity
    if reactivate:
        product.is_active = True

    row = _get_branch_stock_row(product.id, branch.id, lock=True)
    if row is None:
        row = BranchStock(product_id=product.id, branch_id=branch.id, current_stock=0)
        db.session.add(row)
    row.current_stock = (row.current_stock or 0) + quantity

    return _record_movement(
        product=product,
        branch=branch,
        movement_type="in",
        quantity=quantity,
        previous_stock=previous_stock,
        reason=reason,
        reference=reference,
        user=user,
        notes=notes,
    )


def apply_stock_out(
    *,
    product_id: int,
    branch: Branch,
    quantity: int,
    reason: str,
    reference: str | None = None,
    user: User | None = None,
    notes: str | None = None,
) -> StockMovement:
    """
    Remove quantity from product and branch stock and record an "out" movement.

    Raises InventoryError when the branch does not hold enough stock and
    does not allow negative stock.
    """
    if quantity <= 0:
        raise InventoryError("quantity must be positive")

    product = get_product(product_id, lock=True)
    if product is None:
        raise InventoryError(f"Product {product_id} not found")
    if not product.is_active:
        raise InventoryError(f"Product {product.name} is inactive")

    row = _get_branch_stock_row(product.id, branch.id, lock=True)
    available = row.current_stock if row else 0
    if available < quantity and not branch.allow_negative_stock:
        raise InventoryError(
            f"Insufficient stock for {product.name}: {available} available at {branch.name}, {quantity} requested"
        )

    if row is None:
        row = BranchStock(product_id=product.id, branch_id=branch.id, current_stock=0)
        db.session.add(row)
    row.current_stock = available - quantity

    previous_stock = product.current_stock
    product.current_stock = previous_stock - quantity

    return _record_movement(
        product=product,
        branch=branch,
        movement_type="out",
        quantity=quantity,
        previous_stock=previous_stock,
        reason=reason,
        reference=reference,
        user=user,
        notes=notes,
    )


def restock_product(
    *,
    product_id: int,
    branch_id: int,
    quantity: int,
    user_id: int | None = None,
    reason: str = "Restock",
    reference: str | None = None,
    notes: str | None = None,
) -> StockMovement:
    """Receive stock into a branch and commit."""
    def _op() -> StockMovement:
        branch = db.session.query(Branch).get(branch_id)
        if branch is None:
            raise InventoryError("Branch not found")
        user = db.session.query(User).get(user_id) if user_id else None
        movement = apply_stock_in(
            product_id=product_id,
            branch=branch,
            quantity=quantity,
            reason=reason,
            reference=reference,
            user=user,
            notes=notes,
        )
        db.session.commit()
        return movement

    return run_with_retry(_op)


# =============================================================================
# QUERIES
# =============================================================================

def list_products(
    *,
    category_id: int | None = None,
    search: str | None = None,
    active_only: bool = True,
) -> list[Product]:
    query = db.session.query(Product)
    if active_only:
        query = query.filter(Product.is_active.is_(True))
    if category_id:
        query = query.filter(Product.category_id == category_id)
    if search:
        pattern = f"%{search}%"
        query = query.filter(db.or_(Product.name.ilike(pattern), Product.sku.ilike(pattern)))
    return query.order_by(Product.name.asc()).all()


def get_stock_movements(product_id: int, *, limit: int = 100) -> list[StockMovement]:
    """Movement history for a product, newest first."""
    return (
        db.session.query(StockMovement)
        .filter_by(product_id=product_id)
        .order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
        .limit(limit)
        .all()
    )


def get_low_stock_products() -> list[Product]:
    """Active products at or below their minimum level but not yet out of stock."""
    return (
        db.session.query(Product)
        .filter(
            Product.is_active.is_(True),
            Product.current_stock > 0,
            Product.current_stock <= Product.min_stock_level,
        )
        .order_by(Product.current_stock.asc(), Product.name.asc())
        .all()
    )


def get_out_of_stock_products() -> list[Product]:
    return (
        db.session.query(Product)
        .filter(Product.is_active.is_(True), Product.current_stock <= 0)
        .order_by(Product.name.asc())
        .all()
    )
