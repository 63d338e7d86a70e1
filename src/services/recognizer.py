"""
Text recognition over invoice photographs.

`TextRecognizerBase` is the capability contract; `DocumentIntelligenceRecognizer`
backs it with Azure Document Intelligence's prebuilt-read model. Recognition
never raises: any failure (not configured, SDK error, timeout) is reported as
an unsuccessful `RawRecognition` so the pipeline can fall back to vision-only
extraction.
"""

import asyncio
from abc import ABC, abstractmethod
from loguru import logger
from azure.ai.documentintelligence import DocumentIntelligenceClient
from azure.core.credentials import AzureKeyCredential
from .invoice_types import RawRecognition
from ..core.config import settings


class TextRecognizerBase(ABC):
    """Given image bytes, produce raw recognized text or signal failure."""

    @abstractmethod
    async def recognize(self, image: bytes) -> RawRecognition:
        pass


class DocumentIntelligenceRecognizer(TextRecognizerBase):

    MODEL_ID = "prebuilt-read"

    def __init__(
        self,
        endpoint: str | None = None,
        api_key: str | None = None,
        timeout_seconds: float | None = None,
    ):
        self.endpoint = endpoint if endpoint is not None else settings.az_di_endpoint
        self.api_key = api_key if api_key is not None else settings.az_di_api_key
        self.timeout_seconds = timeout_seconds or settings.recognizer_timeout_seconds
        self._client: DocumentIntelligenceClient | None = None

    @property
    def configured(self) -> bool:
        return bool(self.endpoint and self.api_key)

    def _get_client(self) -> DocumentIntelligenceClient:
        if self._client is None:
            self._client = DocumentIntelligenceClient(
                endpoint=self.endpoint,
                credential=AzureKeyCredential(self.api_key)
            )
        return self._client

    def _analyze(self, image: bytes) -> str:
        poller = self._get_client().begin_analyze_document(
            self.MODEL_ID,
            body=image,
            content_type="application/octet-stream"
        )
        result = poller.result()
        return result.content if getattr(result, "content", None) else ""

    async def recognize(self, image: bytes) -> RawRecognition:
        if not self.configured:
            logger.warning(
                "Azure Document Intelligence not configured - skipping text recognition. "
                "Set AZ_DI_ENDPOINT and AZ_DI_API_KEY to enable it."
            )
            return RawRecognition(text="", success=False)

        logger.info(f"Recognizing text in image of size {len(image)} bytes")
        try:
            text = await asyncio.wait_for(
                asyncio.to_thread(self._analyze, image),
                timeout=self.timeout_seconds
            )
        except asyncio.TimeoutError:
            logger.error("Text recognition timed out", timeout_seconds=self.timeout_seconds)
            return RawRecognition(text="", success=False)
        except Exception as e:
            logger.error(f"Text recognition failed: {str(e)}")
            return RawRecognition(text="", success=False)

        logger.info("Text recognition finished", text_length=len(text))
        return RawRecognition(text=text, success=bool(text))
