"""
Append-only merge of normalized invoices into the shared ledger workbook.

Every merge is a read-modify-write of the whole snapshot, so merges must not
overlap: `exclusive()` serializes them for the whole process. Rows already in
the sheet are never rewritten or reordered.
"""

import asyncio
import zipfile
from contextlib import asynccontextmanager
from io import BytesIO
from loguru import logger
from openpyxl import Workbook, load_workbook
from openpyxl.utils.exceptions import InvalidFileException
from .snapshot_store import LedgerSnapshotStoreBase
from ...core.errors import LedgerPersistenceError
from ...models.invoice import InvoiceRecord, LedgerRow

LEDGER_SHEET_NAME = "Estudios Doppler"
LEDGER_HEADER = [
    "FECHA",
    "NOMBRE",
    "ID",
    "EPS",
    "ESTUDIOS REALIZADOS",
    "COSTO",
    "COSTO FINAL",
    "OBSERVACIONES",
]
DISCOUNT_FACTOR = 0.5


def build_ledger_rows(record: InvoiceRecord, discount_factor: float = DISCOUNT_FACTOR) -> list[LedgerRow]:
    """One row per surviving service, in service order."""
    rows = []
    for service in record.services:
        cost = int(service.value or 0)
        rows.append(LedgerRow(
            fecha=record.date,
            nombre=record.patient_name,
            id=record.patient_id,
            eps=record.entity or record.plan,
            estudio=service.description,
            costo=cost,
            costo_final=cost * discount_factor,
            observaciones="",
        ))
    return rows


def last_populated_row(worksheet) -> int:
    """Index of the last row holding any value (0 for an empty sheet)."""
    for row_index in range(worksheet.max_row, 0, -1):
        if any(cell.value not in (None, "") for cell in worksheet[row_index]):
            return row_index
    return 0


class LedgerMerge:
    """
    Usage:
        ledger = LedgerMerge(FileLedgerSnapshotStore("ledger.xlsx"))
        rows_added = await ledger.merge(normalized_record)
    """

    def __init__(
        self,
        store: LedgerSnapshotStoreBase,
        sheet_name: str = LEDGER_SHEET_NAME,
        discount_factor: float = DISCOUNT_FACTOR,
    ):
        self.store = store
        self.sheet_name = sheet_name
        self.discount_factor = discount_factor
        self._lock: asyncio.Lock | None = None
        self._lock_loop = None

    def _get_lock(self) -> asyncio.Lock:
        # asyncio locks belong to one event loop; the service runs a single loop
        loop = asyncio.get_running_loop()
        if self._lock is None or self._lock_loop is not loop:
            self._lock = asyncio.Lock()
            self._lock_loop = loop
        return self._lock

    @asynccontextmanager
    async def exclusive(self):
        """Hold the process-wide ledger lock for a fetch-modify-persist sequence."""
        async with self._get_lock():
            yield

    async def merge(self, record: InvoiceRecord) -> int:
        """Append the record's services under the ledger lock; returns rows written."""
        async with self.exclusive():
            return await self.append(record)

    async def append(self, record: InvoiceRecord) -> int:
        """
        Append without taking the lock. Callers must hold `exclusive()`.

        Raises:
            LedgerPersistenceError: If the snapshot cannot be read or saved
        """
        rows = build_ledger_rows(record, self.discount_factor)
        return await asyncio.to_thread(self._append_rows, rows)

    def _open_workbook(self, data: bytes | None) -> Workbook:
        if data is None:
            workbook = Workbook()
            workbook.active.title = self.sheet_name
            workbook.active.append(LEDGER_HEADER)
            return workbook

        try:
            workbook = load_workbook(BytesIO(data))
        except (zipfile.BadZipFile, InvalidFileException, KeyError, ValueError, OSError) as e:
            raise LedgerPersistenceError("fetch", f"snapshot is not a readable workbook: {e}") from e

        if self.sheet_name not in workbook.sheetnames:
            workbook.create_sheet(self.sheet_name).append(LEDGER_HEADER)
        return workbook

    def _append_rows(self, rows: list[LedgerRow]) -> int:
        workbook = self._open_workbook(self.store.load())
        worksheet = workbook[self.sheet_name]

        last_row = last_populated_row(worksheet)
        if last_row == 0:
            for column, value in enumerate(LEDGER_HEADER, start=1):
                worksheet.cell(row=1, column=column, value=value)
            last_row = 1

        next_row = last_row + 1
        for row in rows:
            for column, value in enumerate(row.as_cells(), start=1):
                worksheet.cell(row=next_row, column=column, value=value)
            next_row += 1

        buffer = BytesIO()
        workbook.save(buffer)
        location = self.store.save(buffer.getvalue())

        logger.info("Ledger merged", rows_added=len(rows), sheet=self.sheet_name, location=location)
        return len(rows)
