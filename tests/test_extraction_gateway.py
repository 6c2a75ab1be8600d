from __future__ import annotations

import json
from datetime import date

import httpx
import pytest
from sqlalchemy import select

from site_receipts.core.config import settings
from site_receipts.core.db import SessionLocal
from site_receipts.core.errors import ConfigurationError, GatewayError
from site_receipts.modules.ai_calls.models import AICall, AICallStatus, InputType
from site_receipts.modules.extraction import ai
from site_receipts.modules.extraction.schemas import PLACEHOLDER_VENDOR, ReceiptPayload
from site_receipts.modules.extraction.service import extract_or_placeholder, extract_receipt

MODEL_JSON = json.dumps(
    {
        "vendor": "Acme Fuel Co",
        "amount": 125.5,
        "date": "2025-03-01",
        "tax": 10.25,
        "confidence": 92,
        "category": "Fuel",
    }
)

IMAGE = ReceiptPayload(
    data_url="data:image/jpeg;base64,/9j/4AAQ", mime_type="image/jpeg", filename="camera-capture.jpg"
)
PDF = ReceiptPayload(
    data_url="data:application/pdf;base64,JVBERi0x", mime_type="application/pdf", filename="inv.pdf"
)


def _calls() -> list[AICall]:
    with SessionLocal() as session:
        return list(session.scalars(select(AICall).order_by(AICall.id)))


def test_success_returns_result_and_logs_one_row(stub_model) -> None:
    stub_model(MODEL_JSON)
    with SessionLocal() as session:
        result = extract_receipt(session, payload=IMAGE)

    assert result.vendor == "Acme Fuel Co"
    assert result.amount == 125.5
    assert result.category.value == "Fuel"

    calls = _calls()
    assert len(calls) == 1
    assert calls[0].status == AICallStatus.SUCCESS
    assert calls[0].input_type == InputType.IMAGE
    assert calls[0].model == settings.openai_model
    assert calls[0].filename == "camera-capture.jpg"
    assert calls[0].error is None
    assert calls[0].duration_ms >= 0


def test_provider_failure_logs_error_row(stub_model) -> None:
    stub_model(RuntimeError("upstream timeout"))
    with SessionLocal() as session, pytest.raises(GatewayError):
        extract_receipt(session, payload=PDF)

    calls = _calls()
    assert len(calls) == 1
    assert calls[0].status == AICallStatus.ERROR
    assert calls[0].input_type == InputType.PDF
    assert calls[0].error == "upstream timeout"


def test_empty_response_logs_error_row(stub_model) -> None:
    stub_model(None)
    with SessionLocal() as session, pytest.raises(GatewayError) as exc:
        extract_receipt(session, payload=IMAGE)

    assert exc.value.message == "Empty model response"
    calls = _calls()
    assert len(calls) == 1
    assert calls[0].error == "Empty model response"


def test_unparseable_response_logs_error_row(stub_model) -> None:
    stub_model("not json")
    with SessionLocal() as session, pytest.raises(GatewayError):
        extract_receipt(session, payload=IMAGE)

    calls = _calls()
    assert [c.status for c in calls] == [AICallStatus.ERROR]


def test_missing_api_key_writes_no_row(monkeypatch, stub_model) -> None:
    calls = stub_model(MODEL_JSON)
    monkeypatch.setattr(settings, "openai_api_key", None)
    with SessionLocal() as session, pytest.raises(ConfigurationError):
        extract_receipt(session, payload=IMAGE)

    assert calls == []
    assert _calls() == []


def test_placeholder_on_failure(stub_model) -> None:
    stub_model(RuntimeError("boom"))
    with SessionLocal() as session:
        result = extract_or_placeholder(session, payload=IMAGE, today=date(2025, 3, 2))

    assert result.vendor == PLACEHOLDER_VENDOR
    assert result.date == "2025-03-02"
    assert result.amount == 0
    assert result.confidence == 0
    assert result.category.value == "Other"
    assert len(_calls()) == 1


def test_request_body_for_image_and_pdf() -> None:
    image_body = ai.build_extraction_request(IMAGE, model="gpt-4o-mini")
    content = image_body["input"][0]["content"]
    assert content[0] == {"type": "input_text", "text": ai.EXTRACTION_INSTRUCTIONS}
    assert content[1] == {"type": "input_image", "image_url": IMAGE.data_url, "detail": "auto"}
    assert image_body["text"]["format"]["name"] == "receipt_extraction"
    assert image_body["text"]["format"]["strict"] is True

    pdf_part = ai.build_extraction_request(PDF, model="gpt-4o-mini")["input"][0]["content"][1]
    assert pdf_part == {"type": "input_file", "filename": "inv.pdf", "file_data": PDF.data_url}


def test_request_posts_to_responses_endpoint(monkeypatch) -> None:
    seen: dict = {}

    def _post(url, **kwargs):
        seen["url"] = url
        seen["auth"] = kwargs["headers"]["Authorization"]
        request = httpx.Request("POST", url)
        return httpx.Response(
            200,
            request=request,
            json={
                "output": [
                    {
                        "type": "message",
                        "content": [{"type": "output_text", "text": MODEL_JSON}],
                    }
                ]
            },
        )

    monkeypatch.setattr(ai.httpx, "post", _post)
    text = ai.request_receipt_extraction(IMAGE, model="gpt-4o-mini")

    assert seen["url"].endswith("/responses")
    assert seen["auth"] == f"Bearer {settings.openai_api_key}"
    assert ai.parse_extraction(text).vendor == "Acme Fuel Co"


def test_refusal_is_an_error() -> None:
    raw = {"output": [{"type": "message", "content": [{"type": "refusal", "refusal": "no"}]}]}
    with pytest.raises(ai.ModelRefusal):
        ai.output_text(raw)
    assert ai.output_text({"output": []}) is None


def test_api_extract(client, stub_model) -> None:
    stub_model(MODEL_JSON)
    resp = client.post(
        "/api/extract",
        json={"dataUrl": IMAGE.data_url, "mimeType": "image/jpeg", "filename": "r.jpg"},
    )
    assert resp.status_code == 200
    assert resp.json()["vendor"] == "Acme Fuel Co"

    resp = client.post("/api/extract", json={"mimeType": "image/jpeg"})
    assert resp.status_code == 400
    assert resp.json() == {"error": "Missing dataUrl or mimeType"}
    assert len(_calls()) == 1


def test_api_extract_failure_is_502(client, stub_model) -> None:
    stub_model(RuntimeError("provider down"))
    resp = client.post("/api/extract", json={"dataUrl": PDF.data_url, "mimeType": PDF.mime_type})
    assert resp.status_code == 502
    assert resp.json() == {"error": "Extraction failed"}
    assert [c.status for c in _calls()] == [AICallStatus.ERROR]


def test_api_extract_without_key_is_500(client, monkeypatch) -> None:
    monkeypatch.setattr(settings, "openai_api_key", "")
    resp = client.post("/api/extract", json={"dataUrl": IMAGE.data_url, "mimeType": "image/jpeg"})
    assert resp.status_code == 500
    assert resp.json() == {"error": "Missing OPENAI_API_KEY"}
    assert _calls() == []
