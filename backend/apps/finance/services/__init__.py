from .estimate import EstimateService
from .invoice import InvoiceService
from .payment import PaymentService

__all__ = ['EstimateService', 'InvoiceService', 'PaymentService']
