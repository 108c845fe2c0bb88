from .catalog import Product, PaymentMethod
from .inventory import StockRecord
from .sales import Sale, SaleItem
from .shifts import Shift, CashMovement

__all__ = [
    'Product', 'PaymentMethod',
    'StockRecord',
    'Sale', 'SaleItem',
    'Shift', 'CashMovement',
]
