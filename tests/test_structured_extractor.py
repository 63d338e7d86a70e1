"""
Tests for structured extraction: lenient JSON-region parsing, the cedula
hint patch and the OpenAI-backed extractor (HTTP mocked with respx).
"""

import asyncio
import base64
import json
import httpx
import pytest
import respx
from conftest import SAMPLE_INVOICE, make_invoice
from src.core.errors import ExtractionParseError
from src.services.structured_extractor import (
    OpenAIStructuredExtractor,
    apply_cedula_hint,
    extract_json_region,
    guess_image_mime,
    parse_invoice_record,
)

LLM_BASE_URL = "https://llm.test/v1"
COMPLETIONS_URL = f"{LLM_BASE_URL}/chat/completions"


def chat_completion(content: str) -> httpx.Response:
    return httpx.Response(200, json={
        "id": "chatcmpl-test",
        "object": "chat.completion",
        "created": 1723600000,
        "model": "gpt-4o",
        "choices": [{
            "index": 0,
            "message": {"role": "assistant", "content": content},
            "finish_reason": "stop",
        }],
        "usage": {"prompt_tokens": 10, "completion_tokens": 10, "total_tokens": 20},
    })


def make_extractor() -> OpenAIStructuredExtractor:
    return OpenAIStructuredExtractor(api_key="test-key", model="gpt-4o", base_url=LLM_BASE_URL)


class TestExtractJsonRegion:
    def test_ignores_preamble_and_trailing_text(self):
        reply = 'Here is the data:\n{"orden_servicio": "OS-1"}\nLet me know if you need more {help}.'
        assert extract_json_region(reply) == '{"orden_servicio": "OS-1"}'

    def test_nested_objects(self):
        reply = '{"a": {"b": [{"c": 1}]}, "d": 2} extra }'
        assert extract_json_region(reply) == '{"a": {"b": [{"c": 1}]}, "d": 2}'

    def test_braces_inside_strings_are_not_counted(self):
        reply = '{"description": "DOPPLER } {", "note": "say \\"}\\""} tail'
        assert extract_json_region(reply) == '{"description": "DOPPLER } {", "note": "say \\"}\\""}'

    def test_no_region(self):
        assert extract_json_region("I could not read the invoice.") is None
        assert extract_json_region("") is None
        assert extract_json_region(None) is None

    def test_unbalanced_region(self):
        assert extract_json_region('{"orden_servicio": "OS-1"') is None


class TestParseInvoiceRecord:
    def test_valid_reply(self):
        reply = "```json\n" + json.dumps(SAMPLE_INVOICE) + "\n```"
        record = parse_invoice_record(reply, "text-assisted")

        assert record.order_number == "OS-1001"
        assert record.entity == "Unknown"
        assert len(record.services) == 3

    def test_numeric_order_number_becomes_text(self):
        record = parse_invoice_record('{"orden_servicio": 452211, "services": null}', "vision-only")
        assert record.order_number == "452211"
        assert record.services == []

    def test_no_json_raises(self):
        with pytest.raises(ExtractionParseError) as exc_info:
            parse_invoice_record("Sorry, the image is blurry.", "vision-only")
        assert exc_info.value.details["variant"] == "vision-only"

    def test_invalid_json_raises(self):
        with pytest.raises(ExtractionParseError):
            parse_invoice_record("{orden_servicio: OS-1}", "text-assisted")

    def test_missing_order_number_raises(self):
        with pytest.raises(ExtractionParseError):
            parse_invoice_record('{"patient_name": "FABIO PEREZ"}', "text-assisted")

    def test_blank_order_number_raises(self):
        with pytest.raises(ExtractionParseError):
            parse_invoice_record('{"orden_servicio": "   "}', "text-assisted")


class TestApplyCedulaHint:
    def test_short_id_is_replaced(self):
        record = make_invoice(patient_id="2190")
        assert apply_cedula_hint(record, "21906101").patient_id == "21906101"

    def test_missing_id_is_replaced(self):
        record = make_invoice(patient_id=None)
        assert apply_cedula_hint(record, "21906101").patient_id == "21906101"

    def test_plausible_id_is_kept(self):
        record = make_invoice(patient_id="CC 21.906.101")
        assert apply_cedula_hint(record, "99999999").patient_id == "CC 21.906.101"

    def test_no_hint_is_a_no_op(self):
        record = make_invoice(patient_id="12")
        assert apply_cedula_hint(record, None) is record


def test_guess_image_mime():
    assert guess_image_mime(b"\x89PNG\r\n\x1a\n....") == "image/png"
    assert guess_image_mime(b"\xff\xd8\xff\xe0JFIF") == "image/jpeg"
    assert guess_image_mime(b"RIFF\x00\x00\x00\x00WEBPVP8 ") == "image/webp"


class TestOpenAIStructuredExtractor:
    @respx.mock
    def test_extract_from_text_sends_text_and_hint(self):
        route = respx.post(COMPLETIONS_URL).mock(
            return_value=chat_completion(json.dumps({**SAMPLE_INVOICE, "patient_id": "219"}))
        )
        extractor = make_extractor()

        record = asyncio.run(extractor.extract_from_text("Paciente: 21906101 FABIO PEREZ", "21906101"))

        assert route.called
        body = json.loads(route.calls.last.request.content)
        assert body["model"] == "gpt-4o"
        assert body["max_tokens"] == 1500
        prompt = body["messages"][0]["content"]
        assert "Paciente: 21906101 FABIO PEREZ" in prompt
        assert "Pre-extracted cedula from the recognized text: 21906101" in prompt
        # The hint only goes into the prompt; patching the ID is the caller's job
        assert record.patient_id == "219"
        assert record.order_number == "OS-1001"

    @respx.mock
    def test_extract_from_text_without_hint(self):
        route = respx.post(COMPLETIONS_URL).mock(return_value=chat_completion(json.dumps(SAMPLE_INVOICE)))
        extractor = make_extractor()

        record = asyncio.run(extractor.extract_from_text("ORDEN DE SERVICIO OS-1001"))

        prompt = json.loads(route.calls.last.request.content)["messages"][0]["content"]
        assert "Pre-extracted cedula" not in prompt
        assert record.patient_id == "CC 21.906.101"

    @respx.mock
    def test_extract_from_image_embeds_data_url(self):
        route = respx.post(COMPLETIONS_URL).mock(return_value=chat_completion(json.dumps(SAMPLE_INVOICE)))
        extractor = make_extractor()
        image = b"\x89PNG\r\n\x1a\nfake-image"

        record = asyncio.run(extractor.extract_from_image(image))

        body = json.loads(route.calls.last.request.content)
        assert body["max_tokens"] == 1000
        content = body["messages"][0]["content"]
        assert content[0]["type"] == "text"
        expected_url = "data:image/png;base64," + base64.b64encode(image).decode("ascii")
        assert content[1]["image_url"]["url"] == expected_url
        assert record.order_number == "OS-1001"

    @respx.mock
    def test_unparseable_reply_raises_parse_error(self):
        respx.post(COMPLETIONS_URL).mock(return_value=chat_completion("I cannot read this invoice."))
        extractor = make_extractor()

        with pytest.raises(ExtractionParseError):
            asyncio.run(extractor.extract_from_image(b"\xff\xd8\xff"))

    @respx.mock
    def test_http_error_propagates(self):
        respx.post(COMPLETIONS_URL).mock(return_value=httpx.Response(500, json={"error": {"message": "boom"}}))
        extractor = make_extractor()

        with pytest.raises(Exception):
            asyncio.run(extractor.extract_from_text("some text"))
