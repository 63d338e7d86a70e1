"""
Exceptions raised by the invoice processing pipeline.

Hierarchy:
    InvoicePipelineError
    ├── ExtractionParseError          (recovered: other extraction variant)
    ├── DuplicateOrderNumberError     (terminal, not a failure)
    └── InvoiceProcessingError        (terminal failure of one invoice)
        ├── ExtractionError
        ├── LedgerPersistenceError
        └── InvoiceStoreError
"""


class InvoicePipelineError(Exception):
    """
    Base exception for all pipeline errors.

    Attributes:
        message: Human-readable error message
        details: Optional dictionary with additional context
    """

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ExtractionParseError(InvoicePipelineError):
    """Raised when a model reply holds no parseable invoice record."""

    def __init__(self, variant: str, reason: str | None = None):
        message = f"Could not parse invoice record from {variant} extraction"
        super().__init__(message, {"variant": variant, "reason": reason})


class DuplicateOrderNumberError(InvoicePipelineError):
    """Raised when the service order number was already processed."""

    def __init__(self, order_number: str):
        self.order_number = order_number
        super().__init__(f"Invoice already processed: {order_number}", {"orden_servicio": order_number})


class InvoiceProcessingError(InvoicePipelineError):
    """Fatal failure of a single invoice's pipeline run."""
    pass


class ExtractionError(InvoiceProcessingError):
    """Raised when every extraction variant failed."""

    def __init__(self, reason: str | None = None):
        super().__init__("Invoice extraction failed", {"reason": reason})


class LedgerPersistenceError(InvoiceProcessingError):
    """Raised when the ledger snapshot cannot be fetched or saved."""

    def __init__(self, operation: str, reason: str | None = None):
        super().__init__(f"Ledger {operation} failed", {"operation": operation, "reason": reason})


class InvoiceStoreError(InvoiceProcessingError):
    """Raised when the processed-invoice store cannot be read or written."""

    def __init__(self, operation: str, reason: str | None = None):
        super().__init__(f"Invoice store {operation} failed", {"operation": operation, "reason": reason})
