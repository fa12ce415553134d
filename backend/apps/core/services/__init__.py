# apps/core/services/__init__.py
from .base import BaseService, ServiceContext, atomic_operation
from .sequences import SequenceAllocator, initialize_sequences
from .ledger import LineItemLedger, normalize_line_item, line_total

__all__ = [
    'BaseService', 'ServiceContext', 'atomic_operation',
    'SequenceAllocator', 'initialize_sequences',
    'LineItemLedger', 'normalize_line_item', 'line_total',
]
