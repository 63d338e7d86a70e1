"""
Pytest configuration and shared fixtures.

Registers the integration marker/option and provides in-process fakes for the
recognition and extraction capabilities so pipeline tests never reach a
real backend.
"""

import pytest
from src.core.errors import ExtractionParseError
from src.models.invoice import InvoiceRecord
from src.services.invoice_types import RawRecognition
from src.services.ledger import FileLedgerSnapshotStore, LedgerMerge
from src.services.pipeline import InvoicePipeline
from src.services.recognizer import TextRecognizerBase
from src.services.storage import InvoiceStore
from src.services.structured_extractor import StructuredExtractorBase


def pytest_addoption(parser):
    """Add custom command-line options"""
    parser.addoption(
        "--run-integration",
        action="store_true",
        default=False,
        help="Run integration tests against real Azure, OpenAI and S3 resources"
    )


def pytest_configure(config):
    """Register custom markers"""
    config.addinivalue_line(
        "markers",
        "integration: mark test as integration test requiring real cloud resources"
    )


def pytest_collection_modifyitems(config, items):
    """Skip integration tests unless --run-integration is specified"""
    if config.getoption("--run-integration"):
        return

    skip_integration = pytest.mark.skip(reason="need --run-integration option to run")
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_integration)


SAMPLE_INVOICE = {
    "orden_servicio": "OS-1001",
    "fecha": "2025-08-14",
    "hospital": "Clinica San Rafael",
    "patient_name": "FABIO PEREZ",
    "patient_id": "CC 21.906.101",
    "age": "64",
    "sex": "M",
    "eps": "Unknown",
    "plan": "NUEVA EPS SUBSIDIADO",
    "services": [
        {"code": "882308", "description": "DOPPLER DE VASOS VENOSOS MIEMBRO INFERIOR", "value": "187.350"},
        {"code": "890201", "description": "CONSULTA MEDICINA GENERAL", "value": "35.000"},
        {"code": "882309", "description": "Ecografia doppler arterial", "value": "1836000000"},
    ],
}


def make_invoice(**overrides) -> InvoiceRecord:
    data = {**SAMPLE_INVOICE, **overrides}
    return InvoiceRecord.model_validate(data)


class FakeRecognizer(TextRecognizerBase):
    def __init__(self, text: str = "", success: bool = True):
        self.result = RawRecognition(text=text, success=success)
        self.calls = 0

    async def recognize(self, image: bytes) -> RawRecognition:
        self.calls += 1
        return self.result


class FakeExtractor(StructuredExtractorBase):
    """
    Returns (or raises) a fixed outcome per variant.

    `by_image` maps image bytes to a record so batch tests can give each
    image its own order number.
    """

    def __init__(self, text_result=None, image_result=None, by_image: dict | None = None):
        self.text_result = text_result
        self.image_result = image_result
        self.by_image = by_image or {}
        self.text_calls = []
        self.image_calls = 0

    async def extract_from_text(self, text: str, hint: str | None = None) -> InvoiceRecord:
        self.text_calls.append((text, hint))
        if isinstance(self.text_result, Exception):
            raise self.text_result
        if self.text_result is None:
            raise ExtractionParseError("text-assisted", "no reply configured")
        return self.text_result

    async def extract_from_image(self, image: bytes) -> InvoiceRecord:
        self.image_calls += 1
        outcome = self.by_image.get(image, self.image_result)
        if isinstance(outcome, Exception):
            raise outcome
        if outcome is None:
            raise ExtractionParseError("vision-only", "no reply configured")
        return outcome


@pytest.fixture
def ledger_path(tmp_path):
    return tmp_path / "ledger.xlsx"


@pytest.fixture
def make_pipeline(ledger_path):
    """Factory for a pipeline wired to fakes, an in-memory store and a file ledger"""
    def _make(recognizer=None, extractor=None, store=None, ledger=None):
        return InvoicePipeline(
            recognizer=recognizer or FakeRecognizer(text="", success=False),
            extractor=extractor or FakeExtractor(image_result=make_invoice()),
            store=store or InvoiceStore(),
            ledger=ledger or LedgerMerge(FileLedgerSnapshotStore(ledger_path)),
        )
    return _make
