from .tenancy import Business
from .catalog import Category, SubCategory
from .inventory import Product, StockTransaction, Destination, TRANSACTION_TYPES
from .customers import Client
from .invoices import Invoice, INVOICE_STATUSES
from .documents import DocumentSequence

__all__ = [
    'Business',
    'Category', 'SubCategory',
    'Product', 'StockTransaction', 'Destination', 'TRANSACTION_TYPES',
    'Client',
    'Invoice', 'INVOICE_STATUSES',
    'DocumentSequence',
]
