"""
Permission System Constants and Definitions

WHY: Centralized permission definitions keep route decorators, services
and role seeding consistent. All permission codes and default role
mappings are defined here.

DESIGN PRINCIPLES:
- Permissions are granular (one action per permission)
- Codes are dotted "<resource>.<action>" strings
- Categories group related permissions for UI display
- Default role mappings follow least privilege; Super Admin has everything
"""

# =============================================================================
# PERMISSION CATEGORIES
# =============================================================================

class PermissionCategory:
    """Permission categories for organization."""
    USERS = "USERS"
    PRODUCTS = "PRODUCTS"
    INVENTORY = "INVENTORY"
    SALES = "SALES"
    SHIFTS = "SHIFTS"
    PURCHASES = "PURCHASES"
    TRANSFERS = "TRANSFERS"
    EXPENSES = "EXPENSES"
    REPORTS = "REPORTS"
    SYSTEM = "SYSTEM"


# =============================================================================
# PERMISSION CODES
# =============================================================================

class Perm:
    USER_VIEW = "user.view"
    USER_CREATE = "user.create"
    USER_UPDATE = "user.update"
    USER_DELETE = "user.delete"
    ROLE_VIEW = "role.view"
    ROLE_CREATE = "role.create"
    ROLE_UPDATE = "role.update"
    ROLE_DELETE = "role.delete"

    PRODUCT_VIEW = "product.view"
    PRODUCT_CREATE = "product.create"
    PRODUCT_UPDATE = "product.update"
    PRODUCT_DELETE = "product.delete"
    PRODUCT_OPENING_STOCK = "product.opening_stock"
    PRODUCT_UNLOCK_OPENING_STOCK = "product.unlock_opening_stock"
    PRODUCT_MODIFY_LOCKED_STOCK = "product.modify_locked_stock"

    INVENTORY_CORRECTION_CREATE = "inventory.correction.create"
    INVENTORY_CORRECTION_APPROVE = "inventory.correction.approve"
    INVENTORY_LEDGER_VIEW = "inventory_ledger.view"
    INVENTORY_LEDGER_EXPORT = "inventory_ledger.export"

    SELL_VIEW = "sell.view"
    SELL_CREATE = "sell.create"
    SELL_VOID = "sell.void"
    SELL_RETURN = "sell.return"

    SHIFT_OPEN = "shift.open"
    SHIFT_CLOSE = "shift.close"
    SHIFT_VIEW = "shift.view"
    SHIFT_VIEW_ALL = "shift.view_all"
    CASH_IN_OUT = "cash.in_out"
    X_READING = "reading.x_reading"
    Z_READING = "reading.z_reading"

    PURCHASE_VIEW = "purchase.view"
    PURCHASE_CREATE = "purchase.create"
    PURCHASE_APPROVE = "purchase.approve"
    PURCHASE_RECEIPT_VIEW = "purchase.receipt.view"
    PURCHASE_RECEIPT_CREATE = "purchase.receipt.create"
    PURCHASE_RECEIPT_APPROVE = "purchase.receipt.approve"
    PURCHASE_RETURN_VIEW = "purchase.return.view"
    PURCHASE_RETURN_CREATE = "purchase.return.create"
    PURCHASE_RETURN_APPROVE = "purchase.return.approve"

    STOCK_TRANSFER_VIEW = "stock_transfer.view"
    STOCK_TRANSFER_CREATE = "stock_transfer.create"
    STOCK_TRANSFER_CHECK = "stock_transfer.check"
    STOCK_TRANSFER_SEND = "stock_transfer.send"
    STOCK_TRANSFER_RECEIVE = "stock_transfer.receive"
    STOCK_TRANSFER_VERIFY = "stock_transfer.verify"
    STOCK_TRANSFER_COMPLETE = "stock_transfer.complete"
    STOCK_TRANSFER_CANCEL = "stock_transfer.cancel"

    EXPENSE_VIEW = "expense.view"
    EXPENSE_CREATE = "expense.create"
    EXPENSE_UPDATE = "expense.update"
    EXPENSE_DELETE = "expense.delete"

    REPORT_VIEW = "report.view"

    SOD_SETTINGS_UPDATE = "settings.sod.update"
    ACCESS_ALL_LOCATIONS = "access_all_locations"
    AUDIT_LOG_VIEW = "audit_log.view"
    LOCATION_VIEW = "location.view"
    LOCATION_CREATE = "location.create"


# =============================================================================
# PERMISSION DEFINITIONS
# =============================================================================

# Each permission is defined as: (code, name, description, category)
PERMISSION_DEFINITIONS = [
    (Perm.USER_VIEW, "View Users", "View user accounts", PermissionCategory.USERS),
    (Perm.USER_CREATE, "Create User", "Create user accounts", PermissionCategory.USERS),
    (Perm.USER_UPDATE, "Update User", "Edit users and assign roles", PermissionCategory.USERS),
    (Perm.USER_DELETE, "Deactivate User", "Deactivate user accounts", PermissionCategory.USERS),
    (Perm.ROLE_VIEW, "View Roles", "View roles and their permissions", PermissionCategory.USERS),
    (Perm.ROLE_CREATE, "Create Role", "Create business roles", PermissionCategory.USERS),
    (Perm.ROLE_UPDATE, "Update Role", "Change role permissions and menus", PermissionCategory.USERS),
    (Perm.ROLE_DELETE, "Delete Role", "Delete unused roles", PermissionCategory.USERS),

    (Perm.PRODUCT_VIEW, "View Products", "View products and stock", PermissionCategory.PRODUCTS),
    (Perm.PRODUCT_CREATE, "Create Product", "Create products and variations", PermissionCategory.PRODUCTS),
    (Perm.PRODUCT_UPDATE, "Update Product", "Edit products and prices", PermissionCategory.PRODUCTS),
    (Perm.PRODUCT_DELETE, "Delete Product", "Deactivate products", PermissionCategory.PRODUCTS),
    (
        Perm.PRODUCT_OPENING_STOCK,
        "Set Opening Stock",
        "Post initial stock for a product at a location",
        PermissionCategory.PRODUCTS,
    ),
    (
        Perm.PRODUCT_UNLOCK_OPENING_STOCK,
        "Unlock Opening Stock",
        "Unlock opening stock after it has been posted",
        PermissionCategory.PRODUCTS,
    ),
    (
        Perm.PRODUCT_MODIFY_LOCKED_STOCK,
        "Modify Locked Stock",
        "Change opening stock while it is locked",
        PermissionCategory.PRODUCTS,
    ),

    (
        Perm.INVENTORY_CORRECTION_CREATE,
        "Create Inventory Correction",
        "Record physical count differences",
        PermissionCategory.INVENTORY,
    ),
    (
        Perm.INVENTORY_CORRECTION_APPROVE,
        "Approve Inventory Correction",
        "Post counted differences to the stock ledger",
        PermissionCategory.INVENTORY,
    ),
    (Perm.INVENTORY_LEDGER_VIEW, "View Inventory Ledger", "View per-product stock ledger", PermissionCategory.INVENTORY),
    (Perm.INVENTORY_LEDGER_EXPORT, "Export Inventory Ledger", "Export stock ledger reports", PermissionCategory.INVENTORY),

    (Perm.SELL_VIEW, "View Sales", "View sales invoices", PermissionCategory.SALES),
    (Perm.SELL_CREATE, "Create Sale", "Ring up sales (POS access)", PermissionCategory.SALES),
    (Perm.SELL_VOID, "Void Sale", "Void completed sales with manager approval", PermissionCategory.SALES),
    (
        Perm.SELL_RETURN,
        "Process Return",
        "Refund and restock items from a completed sale with manager approval",
        PermissionCategory.SALES,
    ),

    (Perm.SHIFT_OPEN, "Open Shift", "Open a cashier shift", PermissionCategory.SHIFTS),
    (Perm.SHIFT_CLOSE, "Close Shift", "Close and reconcile a cashier shift", PermissionCategory.SHIFTS),
    (Perm.SHIFT_VIEW, "View Shifts", "View own shifts", PermissionCategory.SHIFTS),
    (Perm.SHIFT_VIEW_ALL, "View All Shifts", "View and act on other users' shifts", PermissionCategory.SHIFTS),
    (Perm.CASH_IN_OUT, "Cash In/Out", "Record cash in and cash out", PermissionCategory.SHIFTS),
    (Perm.X_READING, "X Reading", "Generate X readings", PermissionCategory.SHIFTS),
    (Perm.Z_READING, "Z Reading", "View Z readings", PermissionCategory.SHIFTS),

    (Perm.PURCHASE_VIEW, "View Purchases", "View purchase orders", PermissionCategory.PURCHASES),
    (Perm.PURCHASE_CREATE, "Create Purchase", "Create purchase orders", PermissionCategory.PURCHASES),
    (Perm.PURCHASE_APPROVE, "Approve Purchase", "Approve purchase orders", PermissionCategory.PURCHASES),
    (Perm.PURCHASE_RECEIPT_VIEW, "View GRN", "View goods receipts", PermissionCategory.PURCHASES),
    (Perm.PURCHASE_RECEIPT_CREATE, "Create GRN", "Record goods receipts", PermissionCategory.PURCHASES),
    (
        Perm.PURCHASE_RECEIPT_APPROVE,
        "Approve GRN",
        "Approve goods receipts and post stock",
        PermissionCategory.PURCHASES,
    ),
    (Perm.PURCHASE_RETURN_VIEW, "View Supplier Returns", "View supplier returns", PermissionCategory.PURCHASES),
    (
        Perm.PURCHASE_RETURN_CREATE,
        "Create Supplier Return",
        "Record stock going back to a supplier",
        PermissionCategory.PURCHASES,
    ),
    (
        Perm.PURCHASE_RETURN_APPROVE,
        "Approve Supplier Return",
        "Approve supplier returns and deduct stock",
        PermissionCategory.PURCHASES,
    ),

    (Perm.STOCK_TRANSFER_VIEW, "View Transfers", "View stock transfers", PermissionCategory.TRANSFERS),
    (Perm.STOCK_TRANSFER_CREATE, "Create Transfer", "Create stock transfers", PermissionCategory.TRANSFERS),
    (Perm.STOCK_TRANSFER_CHECK, "Check Transfer", "Approve or reject transfers at origin", PermissionCategory.TRANSFERS),
    (Perm.STOCK_TRANSFER_SEND, "Send Transfer", "Dispatch transfers (deducts stock)", PermissionCategory.TRANSFERS),
    (Perm.STOCK_TRANSFER_RECEIVE, "Receive Transfer", "Mark transfers as arrived", PermissionCategory.TRANSFERS),
    (Perm.STOCK_TRANSFER_VERIFY, "Verify Transfer", "Verify received transfer items", PermissionCategory.TRANSFERS),
    (
        Perm.STOCK_TRANSFER_COMPLETE,
        "Complete Transfer",
        "Complete transfers (adds destination stock)",
        PermissionCategory.TRANSFERS,
    ),
    (Perm.STOCK_TRANSFER_CANCEL, "Cancel Transfer", "Cancel transfers", PermissionCategory.TRANSFERS),

    (Perm.EXPENSE_VIEW, "View Expenses", "View expenses", PermissionCategory.EXPENSES),
    (Perm.EXPENSE_CREATE, "Create Expense", "Record expenses", PermissionCategory.EXPENSES),
    (Perm.EXPENSE_UPDATE, "Update Expense", "Edit expenses", PermissionCategory.EXPENSES),
    (Perm.EXPENSE_DELETE, "Void Expense", "Void expenses", PermissionCategory.EXPENSES),

    (Perm.REPORT_VIEW, "View Reports", "View sales and stock reports", PermissionCategory.REPORTS),

    (Perm.SOD_SETTINGS_UPDATE, "Update SOD Settings", "Change separation-of-duties rules", PermissionCategory.SYSTEM),
    (
        Perm.ACCESS_ALL_LOCATIONS,
        "Access All Locations",
        "Act at any location of the business",
        PermissionCategory.SYSTEM,
    ),
    (Perm.AUDIT_LOG_VIEW, "View Audit Log", "View the business audit trail", PermissionCategory.SYSTEM),
    (Perm.LOCATION_VIEW, "View Locations", "View business locations", PermissionCategory.SYSTEM),
    (Perm.LOCATION_CREATE, "Create Location", "Create business locations", PermissionCategory.SYSTEM),
]


def get_all_permission_codes() -> list[str]:
    return [code for code, _, _, _ in PERMISSION_DEFINITIONS]


# =============================================================================
# DEFAULT ROLES
# =============================================================================

SUPER_ADMIN = "Super Admin"
BRANCH_MANAGER = "Branch Manager"
CASHIER = "Cashier"
INVENTORY_CLERK = "Inventory Clerk"

DEFAULT_ROLES = [
    (SUPER_ADMIN, "Full system access"),
    (BRANCH_MANAGER, "Branch operations, approvals and shift sign-off"),
    (CASHIER, "POS sales and own shift"),
    (INVENTORY_CLERK, "Stock transfers, receiving and counts"),
]

DEFAULT_ROLE_PERMISSIONS = {
    SUPER_ADMIN: get_all_permission_codes(),
    BRANCH_MANAGER: [
        Perm.USER_VIEW,
        Perm.ROLE_VIEW,
        Perm.PRODUCT_VIEW,
        Perm.PRODUCT_CREATE,
        Perm.PRODUCT_UPDATE,
        Perm.PRODUCT_OPENING_STOCK,
        Perm.INVENTORY_CORRECTION_CREATE,
        Perm.INVENTORY_CORRECTION_APPROVE,
        Perm.INVENTORY_LEDGER_VIEW,
        Perm.INVENTORY_LEDGER_EXPORT,
        Perm.SELL_VIEW,
        Perm.SELL_CREATE,
        Perm.SELL_VOID,
        Perm.SELL_RETURN,
        Perm.SHIFT_OPEN,
        Perm.SHIFT_CLOSE,
        Perm.SHIFT_VIEW,
        Perm.SHIFT_VIEW_ALL,
        Perm.CASH_IN_OUT,
        Perm.X_READING,
        Perm.Z_READING,
        Perm.PURCHASE_VIEW,
        Perm.PURCHASE_CREATE,
        Perm.PURCHASE_APPROVE,
        Perm.PURCHASE_RECEIPT_VIEW,
        Perm.PURCHASE_RECEIPT_CREATE,
        Perm.PURCHASE_RECEIPT_APPROVE,
        Perm.PURCHASE_RETURN_VIEW,
        Perm.PURCHASE_RETURN_CREATE,
        Perm.PURCHASE_RETURN_APPROVE,
        Perm.STOCK_TRANSFER_VIEW,
        Perm.STOCK_TRANSFER_CREATE,
        Perm.STOCK_TRANSFER_CHECK,
        Perm.STOCK_TRANSFER_SEND,
        Perm.STOCK_TRANSFER_RECEIVE,
        Perm.STOCK_TRANSFER_VERIFY,
        Perm.STOCK_TRANSFER_COMPLETE,
        Perm.STOCK_TRANSFER_CANCEL,
        Perm.EXPENSE_VIEW,
        Perm.EXPENSE_CREATE,
        Perm.EXPENSE_UPDATE,
        Perm.REPORT_VIEW,
        Perm.AUDIT_LOG_VIEW,
        Perm.LOCATION_VIEW,
    ],
    CASHIER: [
        Perm.PRODUCT_VIEW,
        Perm.SELL_VIEW,
        Perm.SELL_CREATE,
        Perm.SELL_RETURN,
        Perm.SHIFT_OPEN,
        Perm.SHIFT_CLOSE,
        Perm.SHIFT_VIEW,
        Perm.CASH_IN_OUT,
        Perm.X_READING,
    ],
    INVENTORY_CLERK: [
        Perm.PRODUCT_VIEW,
        Perm.INVENTORY_CORRECTION_CREATE,
        Perm.INVENTORY_LEDGER_VIEW,
        Perm.PURCHASE_VIEW,
        Perm.PURCHASE_RECEIPT_VIEW,
        Perm.PURCHASE_RECEIPT_CREATE,
        Perm.PURCHASE_RETURN_VIEW,
        Perm.PURCHASE_RETURN_CREATE,
        Perm.STOCK_TRANSFER_VIEW,
        Perm.STOCK_TRANSFER_CREATE,
        Perm.STOCK_TRANSFER_CHECK,
        Perm.STOCK_TRANSFER_SEND,
        Perm.STOCK_TRANSFER_RECEIVE,
        Perm.STOCK_TRANSFER_VERIFY,
        Perm.STOCK_TRANSFER_COMPLETE,
        Perm.LOCATION_VIEW,
    ],
}


# =============================================================================
# DASHBOARD MENUS
# =============================================================================

MENU_KEYS = (
    "dashboard",
    "pos",
    "products",
    "inventory",
    "purchases",
    "returns",
    "transfers",
    "shifts",
    "expenses",
    "reports",
    "users",
    "settings",
)

DEFAULT_ROLE_MENUS = {
    SUPER_ADMIN: list(MENU_KEYS),
    BRANCH_MANAGER: [
        "dashboard", "pos", "products", "inventory", "purchases", "returns",
        "transfers", "shifts", "expenses", "reports",
    ],
    CASHIER: ["pos", "returns", "shifts"],
    INVENTORY_CLERK: ["dashboard", "products", "inventory", "purchases", "returns", "transfers"],
}
