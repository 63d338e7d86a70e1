"""
Per-invoice and batch orchestration.

    RECEIVED -> RECOGNIZING -> EXTRACTING -> NORMALIZING -> DEDUP_CHECK -> MERGING -> PERSISTED
                        (any state) -> FAILED          DEDUP_CHECK -> REJECTED

Nothing is retried automatically. A resubmitted image is a brand-new run; it
is idempotent only because the dedup check keys on the extracted service
order number.
"""

import asyncio
from enum import Enum
from loguru import logger
from .cedula import extract_cedula_hint
from .invoice_types import RawRecognition
from .ledger.merge import LedgerMerge
from .normalizer import ELIGIBILITY_KEYWORD, normalize_invoice
from .recognizer import TextRecognizerBase
from .storage.invoice_store_base import InvoiceStoreBase
from .structured_extractor import StructuredExtractorBase, apply_cedula_hint
from ..core.errors import (
    DuplicateOrderNumberError,
    ExtractionError,
    InvoiceProcessingError,
    InvoiceStoreError,
    LedgerPersistenceError,
)
from ..models.invoice import BatchFailure, BatchResult, InvoiceRecord, ProcessResult

BATCH_CONCURRENCY = 4


class PipelineState(str, Enum):
    RECEIVED = "received"
    RECOGNIZING = "recognizing"
    EXTRACTING = "extracting"
    NORMALIZING = "normalizing"
    DEDUP_CHECK = "dedup_check"
    MERGING = "merging"
    PERSISTED = "persisted"
    FAILED = "failed"
    REJECTED = "rejected"


class InvoicePipeline:
    """
    Sequences recognition, extraction, normalization, dedup and ledger merge.

    Usage:
        pipeline = InvoicePipeline(recognizer, extractor, store, ledger)
        result = await pipeline.process_one(image_bytes, "factura-001.jpg")
        batch = await pipeline.process_batch([("a.jpg", a_bytes), ("b.jpg", b_bytes)])
    """

    def __init__(
        self,
        recognizer: TextRecognizerBase,
        extractor: StructuredExtractorBase,
        store: InvoiceStoreBase,
        ledger: LedgerMerge,
        keyword: str = ELIGIBILITY_KEYWORD,
        batch_concurrency: int = BATCH_CONCURRENCY,
    ):
        self.recognizer = recognizer
        self.extractor = extractor
        self.store = store
        self.ledger = ledger
        self.keyword = keyword
        self.batch_concurrency = batch_concurrency

    # ------------------------------------------------------------------
    # Extraction with fallback
    # ------------------------------------------------------------------

    async def _extract_text_assisted(self, image: bytes, recognition: RawRecognition) -> InvoiceRecord:
        hint = extract_cedula_hint(recognition.text)
        logger.info("Pre-extracted cedula", hint=hint, text_length=len(recognition.text))
        try:
            record = await self.extractor.extract_from_text(recognition.text, hint)
        except Exception as e:
            logger.warning(f"Text-assisted extraction failed, falling back to vision-only: {str(e)}")
            return await self._extract_vision_only(image, recognition)
        return apply_cedula_hint(record, hint)

    async def _extract_vision_only(self, image: bytes, recognition: RawRecognition) -> InvoiceRecord:
        try:
            return await self.extractor.extract_from_image(image)
        except Exception as e:
            raise ExtractionError(str(e)) from e

    async def recognize(self, image: bytes, source_id: str | None = None) -> RawRecognition:
        """Recognizer errors and timeouts count as "no text", never as a failed invoice."""
        try:
            return await self.recognizer.recognize(image)
        except Exception as e:
            logger.warning(f"Text recognition failed, continuing without text: {str(e)}", source_id=source_id)
            return RawRecognition(text="", success=False)

    async def extract(self, image: bytes, recognition: RawRecognition) -> InvoiceRecord:
        """Pick the extraction variant by whether recognized text is available."""
        if not recognition.has_text:
            logger.info("No recognized text, using vision-only extraction")

        strategies = {
            True: self._extract_text_assisted,
            False: self._extract_vision_only,
        }
        return await strategies[recognition.has_text](image, recognition)

    # ------------------------------------------------------------------
    # Single invoice
    # ------------------------------------------------------------------

    def _transition(self, source_id: str | None, state: PipelineState, **extra) -> PipelineState:
        logger.debug("Invoice state", source_id=source_id, state=state.value, **extra)
        return state

    async def _commit(self, record: InvoiceRecord, source_id: str | None) -> tuple[int, int]:
        """Dedup check, ledger merge and dedup record, all under the ledger lock."""
        async with self.ledger.exclusive():
            self._transition(source_id, PipelineState.DEDUP_CHECK, orden_servicio=record.order_number)
            try:
                exists = await asyncio.to_thread(self.store.exists_by_order_number, record.order_number)
            except Exception as e:
                raise InvoiceStoreError("lookup", str(e)) from e
            if exists:
                raise DuplicateOrderNumberError(record.order_number)

            self._transition(source_id, PipelineState.MERGING, services=len(record.services))
            try:
                rows_added = await self.ledger.append(record)
            except LedgerPersistenceError:
                raise
            except Exception as e:
                raise LedgerPersistenceError("merge", str(e)) from e

            # Ledger first: a failed merge must not leave the invoice marked as processed
            try:
                invoice_id = await asyncio.to_thread(self.store.persist_invoice, record, rows_added, source_id)
            except DuplicateOrderNumberError:
                raise
            except Exception as e:
                raise InvoiceStoreError("persist", str(e)) from e

        return rows_added, invoice_id

    async def process_one(self, image: bytes, source_id: str | None = None) -> ProcessResult:
        """
        Run one invoice to a terminal state.

        Returns:
            ProcessResult with the normalized record and the rows appended

        Raises:
            DuplicateOrderNumberError: The order number was already processed
            InvoiceProcessingError: Any other failure (message surfaced to the caller)
        """
        state = self._transition(source_id, PipelineState.RECEIVED, size=len(image))
        try:
            state = self._transition(source_id, PipelineState.RECOGNIZING)
            recognition = await self.recognize(image, source_id)

            state = self._transition(source_id, PipelineState.EXTRACTING, recognized=recognition.has_text)
            record = await self.extract(image, recognition)

            state = self._transition(source_id, PipelineState.NORMALIZING, orden_servicio=record.order_number)
            record = normalize_invoice(record, self.keyword)

            state = PipelineState.DEDUP_CHECK
            rows_added, invoice_id = await self._commit(record, source_id)
        except DuplicateOrderNumberError as e:
            self._transition(source_id, PipelineState.REJECTED, orden_servicio=e.order_number)
            logger.warning("Invoice already processed", source_id=source_id, orden_servicio=e.order_number)
            raise
        except InvoiceProcessingError as e:
            self._transition(source_id, PipelineState.FAILED, failed_at=state.value)
            logger.error(f"Invoice processing failed: {str(e)}", source_id=source_id)
            raise
        except Exception as e:
            self._transition(source_id, PipelineState.FAILED, failed_at=state.value)
            logger.exception("Unexpected error while processing invoice", source_id=source_id)
            raise InvoiceProcessingError(str(e), {"state": state.value}) from e

        self._transition(source_id, PipelineState.PERSISTED, invoice_id=invoice_id, rows_added=rows_added)
        logger.info(
            "Invoice processed",
            source_id=source_id,
            orden_servicio=record.order_number,
            rows_added=rows_added,
            invoice_id=invoice_id
        )
        return ProcessResult(source_id=source_id, record=record, rows_added=rows_added, invoice_id=invoice_id)

    # ------------------------------------------------------------------
    # Batch
    # ------------------------------------------------------------------

    async def process_batch(self, images: list[tuple[str, bytes]]) -> BatchResult:
        """
        Process (source_id, image) pairs with at most `batch_concurrency` in flight.

        One invoice's failure never aborts its siblings; the result order is
        not guaranteed to match the input order.
        """
        semaphore = asyncio.Semaphore(self.batch_concurrency)
        result = BatchResult()

        async def run(source_id: str, image: bytes) -> None:
            async with semaphore:
                try:
                    result.successful.append(await self.process_one(image, source_id))
                except DuplicateOrderNumberError as e:
                    result.failed.append(BatchFailure(source_id=source_id, error=e.message, duplicate=True))
                except InvoiceProcessingError as e:
                    result.failed.append(BatchFailure(source_id=source_id, error=str(e)))

        logger.info("Batch started", files=len(images), concurrency=self.batch_concurrency)
        await asyncio.gather(*(run(source_id, image) for source_id, image in images))
        logger.info(
            "Batch finished",
            successful=len(result.successful),
            failed=len(result.failed),
            rows_added=sum(r.rows_added for r in result.successful)
        )
        return result
