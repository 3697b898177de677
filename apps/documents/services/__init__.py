# apps/documents/services/__init__.py
from .receipt_storage import ReceiptStorage, receipt_storage

__all__ = [
    'ReceiptStorage',
    'receipt_storage',
]
