from functools import lru_cache
from pydantic import BaseModel
from ..core.config import settings
from ..services.ledger import LedgerMerge, create_snapshot_store
from ..services.pipeline import InvoicePipeline
from ..services.recognizer import DocumentIntelligenceRecognizer
from ..services.storage import SQLiteInvoiceStore
from ..services.structured_extractor import OpenAIStructuredExtractor

class UploadResponse(BaseModel):
    success: bool
    message: str
    data: dict  # Normalized invoice, keyed as extracted (orden_servicio, fecha, eps, ...)
    rows_added: int
    invoice_id: int


@lru_cache
def get_pipeline() -> InvoicePipeline:
    """One pipeline (and so one ledger lock) per process."""
    return InvoicePipeline(
        recognizer=DocumentIntelligenceRecognizer(),
        extractor=OpenAIStructuredExtractor(),
        store=SQLiteInvoiceStore(settings.invoice_db_path),
        ledger=LedgerMerge(create_snapshot_store(settings)),
    )
