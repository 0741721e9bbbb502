"""
Permission codes and default role mappings.

WHY: One place defines every permission code checked by the routes, so
bootstrap, decorators and tests agree on spelling.

DESIGN PRINCIPLES:
- One action per permission
- Categories group related permissions for display
- Cashiers get the minimum needed to sell and request refunds
- Approving, completing and configuring refunds is a manager action
"""

# =============================================================================
# PERMISSION CATEGORIES
# =============================================================================

class PermissionCategory:
    """Permission categories for organization."""
    SALES = "SALES"
    INVENTORY = "INVENTORY"
    CUSTOMERS = "CUSTOMERS"
    DISCOUNTS = "DISCOUNTS"
    REFUNDS = "REFUNDS"
    REPORTS = "REPORTS"


# =============================================================================
# PERMISSION DEFINITIONS
# =============================================================================

# Each permission is defined as: (code, name, description, category)
PERMISSION_DEFINITIONS = [
    ("CREATE_SALE", "Create Sale", "Ring up sales at the counter", PermissionCategory.SALES),
    ("VIEW_SALES", "View Sales", "View sales history and receipts", PermissionCategory.SALES),
    ("VIEW_INVENTORY", "View Inventory", "View products, stock levels and stock movements", PermissionCategory.INVENTORY),
    ("VIEW_CUSTOMERS", "View Customers", "View customer loyalty balances and history", PermissionCategory.CUSTOMERS),
    ("ADJUST_POINTS", "Adjust Points", "Manually add or remove loyalty points", PermissionCategory.CUSTOMERS),
    ("REDEEM_POINTS", "Redeem Points", "Spend a customer's loyalty points at the counter", PermissionCategory.CUSTOMERS),
    ("MANAGE_DISCOUNTS", "Manage Discounts", "Create, edit and deactivate discounts and coupons", PermissionCategory.DISCOUNTS),
    ("PROCESS_REFUND", "Request Refund", "Create refund requests and pay out approved refunds", PermissionCategory.REFUNDS),
    ("APPROVE_REFUND", "Approve Refund", "Approve or reject refund requests", PermissionCategory.REFUNDS),
    ("COMPLETE_REFUND", "Complete Refund", "Complete refunds: restock goods and reverse points", PermissionCategory.REFUNDS),
    ("MANAGE_REFUND_POLICY", "Manage Refund Policy", "Edit the branch refund policy", PermissionCategory.REFUNDS),
    ("VIEW_REPORTS", "View Reports", "View sales, inventory and refund reports", PermissionCategory.REPORTS),
]

ALL_PERMISSION_CODES = [code for code, _, _, _ in PERMISSION_DEFINITIONS]


# =============================================================================
# DEFAULT ROLE PERMISSIONS
# =============================================================================

DEFAULT_ROLE_PERMISSIONS = {
    "admin": list(ALL_PERMISSION_CODES),
    "manager": list(ALL_PERMISSION_CODES),
    "cashier": [
        "CREATE_SALE",
        "VIEW_SALES",
        "VIEW_INVENTORY",
        "VIEW_CUSTOMERS",
        "REDEEM_POINTS",
        "PROCESS_REFUND",
    ],
}

ROLE_DESCRIPTIONS = {
    "admin": "Full access to every branch and setting",
    "manager": "Branch manager: approves refunds and manages discounts",
    "cashier": "Counter staff: sales and refund requests",
}
