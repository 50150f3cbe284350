from .tenancy import Organization, Warehouse, Counterparty
from .catalog import Product
from .documents import DocumentTypePolicy, Document, DocumentLine, DocumentSequence
from .stock import StockMovement, ImmutableMovementError
from .valuation import ProductAnnualStat, ValuationLock
from .payments import PaymentCondition, Installment, Payment, PaymentAllocation

__all__ = [
    'Organization', 'Warehouse', 'Counterparty',
    'Product',
    'DocumentTypePolicy', 'Document', 'DocumentLine', 'DocumentSequence',
    'StockMovement', 'ImmutableMovementError',
    'ProductAnnualStat', 'ValuationLock',
    'PaymentCondition', 'Installment', 'Payment', 'PaymentAllocation',
]
