from .tenancy import Tenant, Branch, User
from .catalog import Product, Customer
from .inventory import BranchInventory, StockMovement
from .cash import CashLedgerHead, CashLedgerEntry
from .shifts import Shift
from .orders import Order, OrderItem, Payment, RefundLog

__all__ = [
    'Tenant', 'Branch', 'User',
    'Product', 'Customer',
    'BranchInventory', 'StockMovement',
    'CashLedgerHead', 'CashLedgerEntry',
    'Shift',
    'Order', 'OrderItem', 'Payment', 'RefundLog',
]
