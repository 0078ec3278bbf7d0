from .inventory import Product, StockMovement
from .customers import Customer, CreditEntry
from .sales import Bill, BillItem, BillPayment
from .purchases import Supplier, PurchaseOrder, PurchaseItem
from .documents import DocumentSequence

__all__ = [
    'Product', 'StockMovement',
    'Customer', 'CreditEntry',
    'Bill', 'BillItem', 'BillPayment',
    'Supplier', 'PurchaseOrder', 'PurchaseItem',
    'DocumentSequence',
]
