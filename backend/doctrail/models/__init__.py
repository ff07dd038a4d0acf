from .tenancy import Store
from .parties import Vendor, Customer
from .inventory import Product, InventoryUnit
from .documents import Document, DocumentLine, DocumentSequence
from .billing import Invoice, InvoiceLine, Payment
from .activity import ActivityLog

__all__ = [
    'Store',
    'Vendor', 'Customer',
    'Product', 'InventoryUnit',
    'Document', 'DocumentLine', 'DocumentSequence',
    'Invoice', 'InvoiceLine', 'Payment',
    'ActivityLog',
]
