from __future__ import annotations

import enum
import math
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from site_receipts.core.config import settings
from site_receipts.core.errors import AppError, NotFoundError, StorageError, ValidationError
from site_receipts.core.logging import get_logger, log_event, log_exception
from site_receipts.modules.capture.service import (
    clear_capture,
    load_payload,
    load_result,
    save_result,
)
from site_receipts.modules.extraction.schemas import AIResult, ReceiptPayload
from site_receipts.modules.extraction.service import extract_or_placeholder
from site_receipts.modules.receipts.models import ReceiptStatus
from site_receipts.modules.receipts.schemas import ReceiptCreateIn
from site_receipts.modules.receipts.service import create_receipt, validate_receipt_input

logger = get_logger(__name__)

EDITABLE_FIELDS: tuple[str, ...] = ("vendor", "date", "amount", "tax", "category")


class VerificationState(str, enum.Enum):
    PROCESSING = "processing"
    READY = "ready"
    APPROVED = "approved"
    DISCARDED = "discarded"


@dataclass(frozen=True)
class VerificationView:
    capture_id: str
    state: VerificationState
    payload: ReceiptPayload
    result: AIResult | None = None

    @property
    def is_pdf(self) -> bool:
        return self.payload.mime_type == "application/pdf"


@dataclass(frozen=True)
class ApprovalOutcome:
    state: VerificationState
    receipt_id: int | None
    saved: bool


def load_verification(capture_id: str) -> VerificationView:
    """Current state of a capture without triggering extraction."""
    payload = _require_payload(capture_id)
    result = load_result(capture_id)
    state = VerificationState.READY if result else VerificationState.PROCESSING
    return VerificationView(capture_id=capture_id, state=state, payload=payload, result=result)


def open_verification(
    session: Session, *, capture_id: str, result: AIResult | None = None
) -> VerificationView:
    payload = _require_payload(capture_id)

    if result is not None:
        save_result(capture_id, result)
        return VerificationView(capture_id, VerificationState.READY, payload, result)

    stored = load_result(capture_id)
    if stored is not None:
        return VerificationView(capture_id, VerificationState.READY, payload, stored)

    log_event(logger, "verification.extract.start", capture_id=capture_id)
    extracted = extract_or_placeholder(session, payload=payload)
    save_result(capture_id, extracted)
    return VerificationView(capture_id, VerificationState.READY, payload, extracted)


def apply_edits(result: AIResult, form: Mapping[str, str | None]) -> AIResult:
    """Return a copy of ``result`` with the submitted field values applied."""
    changes: dict[str, object] = {}
    for name in EDITABLE_FIELDS:
        if name not in form or form[name] is None:
            continue
        value = str(form[name]).strip()
        if name in {"amount", "tax"}:
            if not value:
                value = "0"
            try:
                number = float(value)
            except ValueError as e:
                raise ValidationError(f"Invalid {name}: {value}") from e
            if not math.isfinite(number):
                raise ValidationError(f"Invalid {name}: {value}")
            changes[name] = number
        else:
            changes[name] = value
    try:
        return AIResult.model_validate({**result.model_dump(), **changes})
    except PydanticValidationError as e:
        raise ValidationError("Invalid receipt fields") from e


def build_verified_record(
    result: AIResult, *, location: str | None = None, now: datetime | None = None
) -> ReceiptCreateIn:
    now = now or datetime.now()
    return ReceiptCreateIn(
        vendor=result.vendor,
        amount=Decimal(str(result.amount)),
        date=result.date,
        tax=Decimal(str(result.tax)),
        status=ReceiptStatus.VERIFIED.value,
        category=result.category.value,
        location=location or settings.default_location,
        time=now.strftime("%H:%M"),
    )


def approve_capture(
    session: Session,
    *,
    capture_id: str,
    result: AIResult,
    now: datetime | None = None,
) -> ApprovalOutcome:
    """
    Persist the verified result and close the capture.

    A failed save is logged and reported through ``saved=False``; the capture is
    still closed and the flow still ends in the approved state.
    """
    receipt_id: int | None = None
    try:
        record = build_verified_record(result, now=now)
        receipt = create_receipt(session, data=validate_receipt_input(record))
        receipt_id = receipt.id
        log_event(logger, "verification.approve.saved", capture_id=capture_id, receipt_id=receipt_id)
    except (AppError, PydanticValidationError) as e:
        log_event(
            logger,
            "verification.approve.save_failed",
            capture_id=capture_id,
            error_type=type(e).__name__,
            error=e.message if isinstance(e, AppError) else str(e),
        )

    try:
        clear_capture(capture_id)
    except StorageError:
        # The receipt is already saved; a leftover capture expires on its own.
        log_exception(logger, "verification.approve.clear_failed", capture_id=capture_id)
    return ApprovalOutcome(
        state=VerificationState.APPROVED, receipt_id=receipt_id, saved=receipt_id is not None
    )


def discard_capture(capture_id: str) -> VerificationState:
    clear_capture(capture_id)
    log_event(logger, "verification.discarded", capture_id=capture_id)
    return VerificationState.DISCARDED


def _require_payload(capture_id: str) -> ReceiptPayload:
    payload = load_payload(capture_id)
    if payload is None:
        raise NotFoundError("No pending receipt")
    return payload
