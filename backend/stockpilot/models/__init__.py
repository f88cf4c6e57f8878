from .catalog import Category, Product, ProductBatch, ProductImage, PriceHistoryEntry
from .customers import CustomerCategory, Customer
from .orders import Order, OrderLine, OrderBatchUsage
from .inventory import InventoryMovement
from .auth import User, SessionToken

__all__ = [
    'Category', 'Product', 'ProductBatch', 'ProductImage', 'PriceHistoryEntry',
    'CustomerCategory', 'Customer',
    'Order', 'OrderLine', 'OrderBatchUsage',
    'InventoryMovement',
    'User', 'SessionToken',
]
