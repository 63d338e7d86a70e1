"""
Structured invoice extraction with a generative model.

Two variants share one contract and return an `InvoiceRecord`:
    - extract_from_text: recognized text (+ optional cedula hint) in the prompt
    - extract_from_image: the photograph itself embedded in the request

Replies are parsed leniently: the first balanced {...} region of the reply
is taken as the record, so preamble or trailing commentary is tolerated.
"""

import base64
import json
import re
from abc import ABC, abstractmethod
from loguru import logger
from openai import AsyncOpenAI
from pydantic import ValidationError
from .prompts import build_text_prompt, build_vision_prompt
from ..core.config import settings
from ..core.errors import ExtractionParseError
from ..models.invoice import InvoiceRecord

MIN_PATIENT_ID_DIGITS = 6


def extract_json_region(text: str | None) -> str | None:
    """
    Return the first balanced {...} region of `text`, or None.

    Braces inside JSON string literals are ignored.

    Example:
        >>> extract_json_region('Sure! {"a": {"b": "}"}} Hope it helps {x}')
        '{"a": {"b": "}"}}'
    """
    if not text:
        return None

    start = text.find("{")
    if start == -1:
        return None

    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue

        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start:index + 1]
    return None


def parse_invoice_record(reply: str | None, variant: str) -> InvoiceRecord:
    """Parse a model reply into an InvoiceRecord or raise ExtractionParseError."""
    region = extract_json_region(reply)
    if region is None:
        raise ExtractionParseError(variant, "no JSON object in model reply")

    try:
        data = json.loads(region)
    except json.JSONDecodeError as e:
        raise ExtractionParseError(variant, f"invalid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ExtractionParseError(variant, "JSON region is not an object")

    try:
        return InvoiceRecord.model_validate(data)
    except ValidationError as e:
        raise ExtractionParseError(variant, f"record failed validation: {e.errors()}") from e


def apply_cedula_hint(record: InvoiceRecord, hint: str | None) -> InvoiceRecord:
    """Replace a missing or too-short patient ID with the pre-extracted cedula."""
    if not hint:
        return record

    digits = re.sub(r"\D", "", record.patient_id or "")
    if len(digits) >= MIN_PATIENT_ID_DIGITS:
        return record

    logger.info(
        "Patient ID replaced by cedula hint",
        orden_servicio=record.order_number,
        model_patient_id=record.patient_id,
        hint=hint
    )
    return record.model_copy(update={"patient_id": hint})


def guess_image_mime(image: bytes) -> str:
    if image.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if image[:4] == b"RIFF" and image[8:12] == b"WEBP":
        return "image/webp"
    if image.startswith((b"GIF87a", b"GIF89a")):
        return "image/gif"
    return "image/jpeg"


class StructuredExtractorBase(ABC):
    """Capability contract for turning recognized text or an image into a record."""

    @abstractmethod
    async def extract_from_text(self, text: str, hint: str | None = None) -> InvoiceRecord:
        pass

    @abstractmethod
    async def extract_from_image(self, image: bytes) -> InvoiceRecord:
        pass


class OpenAIStructuredExtractor(StructuredExtractorBase):
    """
    Chat-completions backed extractor (OpenAI or any compatible endpoint).

    Usage:
        extractor = OpenAIStructuredExtractor(api_key="sk-...", model="gpt-4o")
        record = await extractor.extract_from_text(ocr_text, hint="21906101")
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        base_url: str | None = None,
        timeout_seconds: float | None = None,
        client: AsyncOpenAI | None = None,
    ):
        self.model = model or settings.llm_deployment
        self.api_key = api_key or settings.llm_api_key
        self.base_url = base_url or settings.llm_base_url
        self.timeout_seconds = timeout_seconds or settings.llm_timeout_seconds
        self._client = client

    @property
    def client(self) -> AsyncOpenAI:
        # Created on first use: AsyncOpenAI refuses to start without an API key
        if self._client is None:
            self._client = AsyncOpenAI(
                api_key=self.api_key,
                base_url=self.base_url,
                timeout=self.timeout_seconds,
                max_retries=0,
            )
        return self._client

    async def _complete(self, content, max_tokens: int) -> str:
        response = await self.client.chat.completions.create(
            model=self.model,
            messages=[{"role": "user", "content": content}],
            max_tokens=max_tokens,
            temperature=0,
        )
        return response.choices[0].message.content or ""

    async def extract_from_text(self, text: str, hint: str | None = None) -> InvoiceRecord:
        logger.info("Text-assisted extraction", text_length=len(text), hint=hint)
        reply = await self._complete(build_text_prompt(text, hint), settings.llm_text_max_tokens)
        return parse_invoice_record(reply, "text-assisted")

    async def extract_from_image(self, image: bytes) -> InvoiceRecord:
        logger.info(f"Vision-only extraction of image of size {len(image)} bytes")
        encoded = base64.b64encode(image).decode("ascii")
        content = [
            {"type": "text", "text": build_vision_prompt()},
            {"type": "image_url", "image_url": {"url": f"data:{guess_image_mime(image)};base64,{encoded}"}},
        ]
        reply = await self._complete(content, settings.llm_vision_max_tokens)
        return parse_invoice_record(reply, "vision-only")
