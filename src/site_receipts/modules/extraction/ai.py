from __future__ import annotations

import json
from typing import Any

import httpx

from site_receipts.core.config import settings
from site_receipts.modules.ai_calls.models import InputType
from site_receipts.modules.extraction.schemas import AIResult, ReceiptPayload
from site_receipts.modules.receipts.models import ReceiptCategory

PDF_MIME_TYPE = "application/pdf"

EXTRACTION_INSTRUCTIONS = (
    "Extract data from this receipt/invoice. Return JSON with "
    "vendor (string), amount (number), date (YYYY-MM-DD), tax (number), "
    "confidence (0-100), category (Materials, Equipment, Labor, Fuel, Other). "
    "If tax is missing, use 0. If date is missing, leave empty string."
)

RECEIPT_EXTRACTION_FORMAT: dict[str, Any] = {
    "type": "json_schema",
    "name": "receipt_extraction",
    "strict": True,
    "schema": {
        "type": "object",
        "additionalProperties": False,
        "properties": {
            "vendor": {"type": "string"},
            "amount": {"type": "number"},
            "date": {"type": "string"},
            "tax": {"type": "number"},
            "confidence": {"type": "number"},
            "category": {
                "type": "string",
                "enum": [c.value for c in ReceiptCategory],
            },
        },
        "required": ["vendor", "amount", "date", "tax", "confidence", "category"],
    },
}


class ModelRefusal(RuntimeError):
    pass


def detect_input_type(*, mime_type: str, filename: str | None) -> InputType:
    if mime_type == PDF_MIME_TYPE:
        return InputType.PDF
    if filename and filename.lower().endswith(".pdf"):
        return InputType.PDF
    return InputType.IMAGE


def build_extraction_request(payload: ReceiptPayload, *, model: str) -> dict[str, Any]:
    input_type = detect_input_type(mime_type=payload.mime_type, filename=payload.filename)
    if input_type == InputType.PDF:
        file_part: dict[str, Any] = {
            "type": "input_file",
            "filename": payload.filename or "receipt.pdf",
            "file_data": payload.data_url,
        }
    else:
        file_part = {"type": "input_image", "image_url": payload.data_url, "detail": "auto"}

    return {
        "model": model,
        "input": [
            {
                "role": "user",
                "content": [{"type": "input_text", "text": EXTRACTION_INSTRUCTIONS}, file_part],
            }
        ],
        "text": {"format": RECEIPT_EXTRACTION_FORMAT},
    }


def request_receipt_extraction(payload: ReceiptPayload, *, model: str) -> str | None:
    """
    Send one extraction request to the Responses API and return the model's text output.

    Raises on transport errors, non-2xx responses and refusals. Returns None when the
    response carries no text at all.
    """
    headers = {
        "Authorization": f"Bearer {settings.openai_api_key}",
        "Content-Type": "application/json",
    }
    url = settings.openai_base_url.rstrip("/") + "/responses"
    resp = httpx.post(
        url,
        headers=headers,
        json=build_extraction_request(payload, model=model),
        timeout=float(settings.extract_timeout_seconds or 60.0),
        follow_redirects=True,
    )
    resp.raise_for_status()
    return output_text(resp.json())


def output_text(raw: dict[str, Any]) -> str | None:
    # The SDKs expose a convenience `output_text`; the raw payload nests it in `output`.
    direct = raw.get("output_text")
    if isinstance(direct, str) and direct.strip():
        return direct

    parts: list[str] = []
    for item in raw.get("output") or []:
        if not isinstance(item, dict) or item.get("type") != "message":
            continue
        for content in item.get("content") or []:
            if not isinstance(content, dict):
                continue
            if content.get("type") == "refusal":
                raise ModelRefusal(str(content.get("refusal") or "Model refused the request"))
            if content.get("type") == "output_text" and isinstance(content.get("text"), str):
                parts.append(content["text"])
    text = "".join(parts)
    return text if text.strip() else None


def parse_extraction(text: str) -> AIResult:
    obj = json.loads(text)
    if not isinstance(obj, dict):
        raise ValueError("Model response is not a JSON object")
    return AIResult.model_validate(obj)
