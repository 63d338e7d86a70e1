from .merge import LedgerMerge, build_ledger_rows, LEDGER_HEADER, LEDGER_SHEET_NAME, DISCOUNT_FACTOR
from .snapshot_store import (
    LedgerSnapshotStoreBase,
    S3LedgerSnapshotStore,
    FileLedgerSnapshotStore,
    create_snapshot_store,
)

__all__ = [
    "LedgerMerge",
    "build_ledger_rows",
    "LEDGER_HEADER",
    "LEDGER_SHEET_NAME",
    "DISCOUNT_FACTOR",
    "LedgerSnapshotStoreBase",
    "S3LedgerSnapshotStore",
    "FileLedgerSnapshotStore",
    "create_snapshot_store",
]
