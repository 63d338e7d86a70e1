from .invoice_store_base import InvoiceStoreBase
from .invoice_store import InvoiceStore
from .invoice_store_sqlite import SQLiteInvoiceStore

__all__ = ["InvoiceStoreBase", "InvoiceStore", "SQLiteInvoiceStore"]
