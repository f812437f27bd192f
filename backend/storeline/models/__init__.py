from .tenancy import Business, BusinessLocation
from .auth import User, UserLocation, Role, UserRole, Permission, RolePermission, MenuPermission, SessionToken
from .security import SecurityEvent, AuditLog
from .settings import SODSettings
from .documents import DocumentSequence
from .catalog import Product, ProductVariation, VariationLocationDetails
from .inventory import StockTransaction, ProductHistory, InventoryCorrection, STOCK_TRANSACTION_TYPES
from .purchasing import Supplier, Purchase, PurchaseItem, PurchaseReceipt, PurchaseReceiptItem
from .sales import Sale, SaleItem, Payment, VoidTransaction, PAYMENT_METHODS, DISCOUNT_TYPES
from .shifts import CashierShift, CashInOut, CashDenomination, ZReading, DENOMINATIONS_CENTS
from .transfers import StockTransfer, StockTransferItem, TRANSFER_STATUSES
from .expenses import ExpenseCategory, Expense
from .returns import (
    CustomerReturn,
    CustomerReturnItem,
    SupplierReturn,
    SupplierReturnItem,
    RETURN_CONDITIONS,
    SUPPLIER_RETURN_CONDITIONS,
)

__all__ = [
    'Business', 'BusinessLocation',
    'User', 'UserLocation', 'Role', 'UserRole', 'Permission', 'RolePermission',
    'MenuPermission', 'SessionToken',
    'SecurityEvent', 'AuditLog',
    'SODSettings', 'DocumentSequence',
    'Product', 'ProductVariation', 'VariationLocationDetails',
    'StockTransaction', 'ProductHistory', 'InventoryCorrection', 'STOCK_TRANSACTION_TYPES',
    'Supplier', 'Purchase', 'PurchaseItem', 'PurchaseReceipt', 'PurchaseReceiptItem',
    'Sale', 'SaleItem', 'Payment', 'VoidTransaction', 'PAYMENT_METHODS', 'DISCOUNT_TYPES',
    'CashierShift', 'CashInOut', 'CashDenomination', 'ZReading', 'DENOMINATIONS_CENTS',
    'StockTransfer', 'StockTransferItem', 'TRANSFER_STATUSES',
    'ExpenseCategory', 'Expense',
    'CustomerReturn', 'CustomerReturnItem', 'SupplierReturn', 'SupplierReturnItem',
    'RETURN_CONDITIONS', 'SUPPLIER_RETURN_CONDITIONS',
]
