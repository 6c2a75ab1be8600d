from __future__ import annotations

import time
from datetime import date

from sqlalchemy.orm import Session

from site_receipts.core.config import settings
from site_receipts.core.errors import AppError, ConfigurationError, GatewayError, ValidationError
from site_receipts.core.logging import get_logger, log_event, monotonic_ms
from site_receipts.modules.ai_calls.models import AICallStatus, InputType
from site_receipts.modules.ai_calls.service import record_ai_call
from site_receipts.modules.extraction.ai import (
    detect_input_type,
    parse_extraction,
    request_receipt_extraction,
)
from site_receipts.modules.extraction.schemas import AIResult, ExtractIn, ReceiptPayload

logger = get_logger(__name__)

EMPTY_RESPONSE_ERROR = "Empty model response"


def require_api_key() -> None:
    if not settings.openai_api_key:
        raise ConfigurationError("Missing OPENAI_API_KEY")


def validate_extract_input(data: ExtractIn) -> ReceiptPayload:
    if not data.data_url or not data.mime_type:
        raise ValidationError("Missing dataUrl or mimeType")
    return ReceiptPayload(data_url=data.data_url, mime_type=data.mime_type, filename=data.filename)


def extract_receipt(session: Session, *, payload: ReceiptPayload) -> AIResult:
    """
    Run one extraction attempt against the vision model.

    Exactly one `ai_calls` row is written per attempt once the credential check has
    passed; there is no retry.
    """
    require_api_key()

    model = settings.openai_model
    input_type = detect_input_type(mime_type=payload.mime_type, filename=payload.filename)
    start = time.monotonic()
    log_event(
        logger,
        "extraction.call.start",
        model=model,
        input_type=input_type.value,
        mime_type=payload.mime_type,
        filename=payload.filename,
    )

    try:
        text = request_receipt_extraction(payload, model=model)
        result = parse_extraction(text) if text else None
    except Exception as e:  # noqa: BLE001
        _record_failure(
            session,
            payload=payload,
            model=model,
            input_type=input_type,
            error=str(e) or type(e).__name__,
            duration_ms=monotonic_ms(start),
        )
        raise GatewayError("Extraction failed") from e

    if result is None:
        _record_failure(
            session,
            payload=payload,
            model=model,
            input_type=input_type,
            error=EMPTY_RESPONSE_ERROR,
            duration_ms=monotonic_ms(start),
        )
        raise GatewayError(EMPTY_RESPONSE_ERROR)

    duration_ms = monotonic_ms(start)
    record_ai_call(
        session,
        model=model,
        input_type=input_type,
        mime_type=payload.mime_type,
        filename=payload.filename,
        status=AICallStatus.SUCCESS,
        error=None,
        duration_ms=duration_ms,
    )
    log_event(
        logger,
        "extraction.call.success",
        model=model,
        input_type=input_type.value,
        duration_ms=duration_ms,
        confidence=result.confidence,
        category=result.category.value,
    )
    return result


def extract_or_placeholder(
    session: Session, *, payload: ReceiptPayload, today: date | None = None
) -> AIResult:
    """Extraction that never fails: any error yields the manual-entry placeholder."""
    try:
        return extract_receipt(session, payload=payload)
    except AppError as e:
        log_event(
            logger,
            "extraction.placeholder.used",
            error_type=type(e).__name__,
            error=e.message,
        )
        return AIResult.placeholder(today)


def _record_failure(
    session: Session,
    *,
    payload: ReceiptPayload,
    model: str,
    input_type: InputType,
    error: str,
    duration_ms: int,
) -> None:
    record_ai_call(
        session,
        model=model,
        input_type=input_type,
        mime_type=payload.mime_type,
        filename=payload.filename,
        status=AICallStatus.ERROR,
        error=error,
        duration_ms=duration_ms,
    )
    log_event(
        logger,
        "extraction.call.error",
        model=model,
        input_type=input_type.value,
        duration_ms=duration_ms,
        error=error,
    )
