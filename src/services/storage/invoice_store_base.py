"""
Abstract base class for processed-invoice stores.

The store is the single source of truth for "already processed": an order
number present here is never merged into the ledger again.
"""

from abc import ABC, abstractmethod
from typing import Optional
from ...models.invoice import InvoiceRecord


class InvoiceStoreBase(ABC):
    """
    Abstract base class for processed-invoice bookkeeping.

    Implementations can use:
    - In-memory storage (for testing/demo)
    - SQLite (for single-instance deployments)
    - PostgreSQL (for production)
    """

    @abstractmethod
    def exists_by_order_number(self, order_number: str) -> bool:
        """
        Check whether an invoice with this service order number was processed.

        Args:
            order_number: Service order number (business key)

        Returns:
            True if a record exists
        """
        pass

    @abstractmethod
    def persist_invoice(self, record: InvoiceRecord, rows_added: int, source_id: str | None = None) -> int:
        """
        Write the invoice header and its surviving service lines.

        Args:
            record: Normalized invoice record
            rows_added: Number of ledger rows appended for this invoice
            source_id: Identifier of the uploaded image (filename)

        Returns:
            Invoice ID

        Raises:
            DuplicateOrderNumberError: If the order number is already stored
        """
        pass

    @abstractmethod
    def get_invoice(self, invoice_id: int) -> Optional[dict]:
        """
        Get a processed invoice by ID.

        Returns:
            Invoice dictionary with keys:
                - id, orden_servicio, patient_name, patient_id
                - processed_date: ISO timestamp
                - excel_row_count: ledger rows appended
                - image_path: source identifier
                - services: list of {code, description, value}
            Returns None if not found.
        """
        pass

    @abstractmethod
    def list_all(self) -> list:
        """
        List processed invoices, newest first (same format as get_invoice).
        """
        pass

    @abstractmethod
    def delete_invoice(self, invoice_id: int) -> bool:
        """
        Delete an invoice and its service lines (administrative path).

        Returns:
            True if deleted, False if not found
        """
        pass
