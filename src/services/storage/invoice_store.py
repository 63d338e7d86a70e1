"""
In-memory processed-invoice store (for demo and tests).
In production, use the SQLite store or a database.
"""
from datetime import datetime, UTC
from typing import Dict, Optional
from .invoice_store_base import InvoiceStoreBase
from ...core.errors import DuplicateOrderNumberError
from ...models.invoice import InvoiceRecord


class InvoiceStore(InvoiceStoreBase):
    def __init__(self):
        self._invoices: Dict[int, dict] = {}
        self._next_id = 1

    def exists_by_order_number(self, order_number: str) -> bool:
        return any(inv["orden_servicio"] == order_number for inv in self._invoices.values())

    def persist_invoice(self, record: InvoiceRecord, rows_added: int, source_id: str | None = None) -> int:
        """Store the invoice and return its ID"""
        if self.exists_by_order_number(record.order_number):
            raise DuplicateOrderNumberError(record.order_number)

        invoice_id = self._next_id
        self._next_id += 1
        self._invoices[invoice_id] = {
            "id": invoice_id,
            "orden_servicio": record.order_number,
            "patient_name": record.patient_name,
            "patient_id": record.patient_id,
            "processed_date": datetime.now(UTC).isoformat(),
            "excel_row_count": rows_added,
            "image_path": source_id,
            "services": [
                {"code": s.code, "description": s.description, "value": s.value}
                for s in record.services
            ]
        }
        return invoice_id

    def get_invoice(self, invoice_id: int) -> Optional[dict]:
        return self._invoices.get(invoice_id)

    def list_all(self) -> list:
        return sorted(self._invoices.values(), key=lambda inv: inv["id"], reverse=True)

    def delete_invoice(self, invoice_id: int) -> bool:
        return self._invoices.pop(invoice_id, None) is not None
