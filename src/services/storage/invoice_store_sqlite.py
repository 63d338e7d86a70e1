"""
SQLite-based processed-invoice store.

Provides persistent deduplication bookkeeping: one row per processed invoice
(unique service order number) plus its surviving service lines.
"""

import sqlite3
from datetime import datetime, UTC
from typing import Optional
from .invoice_store_base import InvoiceStoreBase
from ...core.errors import DuplicateOrderNumberError
from ...models.invoice import InvoiceRecord


class SQLiteInvoiceStore(InvoiceStoreBase):
    """
    SQLite-backed invoice store with persistent storage.

    Features:
    - Persistent storage across application restarts
    - UNIQUE constraint on the service order number
    - Service lines kept in their own table for reporting
    - A new connection per call, so it is safe from worker threads
    """

    def __init__(self, db_path: str = "invoices.db"):
        """
        Initialize store with database path.

        Args:
            db_path: Path to SQLite database file (default: invoices.db)
        """
        self.db_path = db_path
        self._init_database()

    def _init_database(self):
        """Create tables if they don't exist"""
        conn = sqlite3.connect(self.db_path)
        cursor = conn.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS processed_invoices (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                orden_servicio TEXT UNIQUE NOT NULL,
                patient_name TEXT,
                patient_id TEXT,
                processed_date TEXT NOT NULL,
                excel_row_count INTEGER DEFAULT 0,
                image_path TEXT
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS invoice_services (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                invoice_id INTEGER NOT NULL REFERENCES processed_invoices(id),
                service_code TEXT,
                service_description TEXT,
                service_value INTEGER
            )
        """)

        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_services_invoice_id
            ON invoice_services(invoice_id)
        """)

        conn.commit()
        conn.close()

    def _get_connection(self) -> sqlite3.Connection:
        """Get database connection with row factory"""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def exists_by_order_number(self, order_number: str) -> bool:
        conn = self._get_connection()
        cursor = conn.cursor()

        cursor.execute("""
            SELECT 1 FROM processed_invoices
            WHERE orden_servicio = ?
        """, (order_number,))

        row = cursor.fetchone()
        conn.close()

        return row is not None

    def persist_invoice(self, record: InvoiceRecord, rows_added: int, source_id: str | None = None) -> int:
        """
        Insert the invoice and its services in one transaction.

        Returns:
            Invoice ID (autoincrement)
        """
        conn = self._get_connection()
        cursor = conn.cursor()

        try:
            cursor.execute("""
                INSERT INTO processed_invoices
                    (orden_servicio, patient_name, patient_id, processed_date, excel_row_count, image_path)
                VALUES (?, ?, ?, ?, ?, ?)
            """, (
                record.order_number,
                record.patient_name,
                record.patient_id,
                datetime.now(UTC).isoformat(),
                rows_added,
                source_id
            ))
            invoice_id = cursor.lastrowid

            cursor.executemany("""
                INSERT INTO invoice_services (invoice_id, service_code, service_description, service_value)
                VALUES (?, ?, ?, ?)
            """, [
                (invoice_id, s.code, s.description, s.value)
                for s in record.services
            ])
            conn.commit()
        except sqlite3.IntegrityError as e:
            conn.rollback()
            raise DuplicateOrderNumberError(record.order_number) from e
        finally:
            conn.close()

        return invoice_id

    def _services_for(self, cursor: sqlite3.Cursor, invoice_id: int) -> list:
        cursor.execute("""
            SELECT service_code, service_description, service_value
            FROM invoice_services
            WHERE invoice_id = ?
            ORDER BY id
        """, (invoice_id,))
        return [
            {"code": row["service_code"], "description": row["service_description"], "value": row["service_value"]}
            for row in cursor.fetchall()
        ]

    def _to_dict(self, cursor: sqlite3.Cursor, row: sqlite3.Row) -> dict:
        return {
            "id": row["id"],
            "orden_servicio": row["orden_servicio"],
            "patient_name": row["patient_name"],
            "patient_id": row["patient_id"],
            "processed_date": row["processed_date"],
            "excel_row_count": row["excel_row_count"],
            "image_path": row["image_path"],
            "services": self._services_for(cursor, row["id"])
        }

    def get_invoice(self, invoice_id: int) -> Optional[dict]:
        conn = self._get_connection()
        cursor = conn.cursor()

        cursor.execute("""
            SELECT id, orden_servicio, patient_name, patient_id, processed_date, excel_row_count, image_path
            FROM processed_invoices
            WHERE id = ?
        """, (invoice_id,))

        row = cursor.fetchone()
        result = None if row is None else self._to_dict(cursor, row)
        conn.close()

        return result

    def list_all(self) -> list:
        """
        List all processed invoices (newest first).

        Returns:
            List of invoice dictionaries
        """
        conn = self._get_connection()
        cursor = conn.cursor()

        cursor.execute("""
            SELECT id, orden_servicio, patient_name, patient_id, processed_date, excel_row_count, image_path
            FROM processed_invoices
            ORDER BY id DESC
        """)

        rows = cursor.fetchall()
        result = [self._to_dict(cursor, row) for row in rows]
        conn.close()

        return result

    def delete_invoice(self, invoice_id: int) -> bool:
        """
        Delete an invoice; its services go first (foreign key).

        Returns:
            True if successful, False if invoice not found
        """
        conn = self._get_connection()
        cursor = conn.cursor()

        cursor.execute("DELETE FROM invoice_services WHERE invoice_id = ?", (invoice_id,))
        cursor.execute("DELETE FROM processed_invoices WHERE id = ?", (invoice_id,))

        rows_affected = cursor.rowcount
        conn.commit()
        conn.close()

        return rows_affected > 0
