from .branches import Branch
from .auth import User, Role, UserRole, Permission, RolePermission, SessionToken, SecurityEvent
from .catalog import Category, Product, BranchStock, StockMovement
from .customers import Customer, PointsTransaction
from .discounts import Discount
from .sales import Sale, SaleItem
from .refunds import Refund, RefundItem, RefundPolicy, RefundAuditEntry
from .documents import DocumentSequence

__all__ = [
    'Branch',
    'User', 'Role', 'UserRole', 'Permission', 'RolePermission', 'SessionToken', 'SecurityEvent',
    'Category', 'Product', 'BranchStock', 'StockMovement',
    'Customer', 'PointsTransaction',
    'Discount',
    'Sale', 'SaleItem',
    'Refund', 'RefundItem', 'RefundPolicy', 'RefundAuditEntry',
    'DocumentSequence',
]
