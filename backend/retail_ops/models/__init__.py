from .auth import User
from .inventory import Product, Wholesaler, StockAdjustment
from .sales import Sale
from .audit import AuditEntry

__all__ = [
    'User',
    'Product', 'Wholesaler', 'StockAdjustment',
    'Sale',
    'AuditEntry',
]
