# backend/apps/finance/models/__init__.py

from .estimates import Estimate, EstimateOption, EstimateOptionItem
from .invoicing import Invoice, InvoiceLineItem
from .payments import Payment

__all__ = [
    'Estimate', 'EstimateOption', 'EstimateOptionItem',
    'Invoice', 'InvoiceLineItem',
    'Payment',
]
