"""
Capture sessions: a staged receipt payload and its extraction result, held between
the capture screen and the verification screen.

Each session lives in object storage under ``captures/<capture_id>/`` and is addressed
explicitly by its id, which travels in the verification URL.
"""

from __future__ import annotations

import base64
import json
import mimetypes
import re
import uuid
from datetime import datetime, timedelta, timezone

from pydantic import ValidationError as PydanticValidationError

from site_receipts.core.config import settings
from site_receipts.core.errors import NotFoundError, ValidationError
from site_receipts.core.logging import get_logger, log_event
from site_receipts.core.storage import ObjectNotFound, get_storage
from site_receipts.modules.extraction.ai import PDF_MIME_TYPE
from site_receipts.modules.extraction.schemas import AIResult, ReceiptPayload

logger = get_logger(__name__)

CAPTURE_PREFIX = "captures"
PAYLOAD_OBJECT = "payload.json"
RESULT_OBJECT = "result.json"
LEGACY_FILENAME = "receipt"
DEFAULT_IMAGE_MIME_TYPE = "image/jpeg"
ACCEPTED_IMAGE_MIME_TYPES = frozenset(
    {"image/jpeg", "image/png", "image/webp", "image/gif", "image/heic", "image/heif"}
)

_CAPTURE_ID_RE = re.compile(r"^[0-9a-f]{32}$")


def new_capture_id() -> str:
    return uuid.uuid4().hex


def is_accepted_mime_type(mime_type: str | None) -> bool:
    if not mime_type:
        return False
    return mime_type == PDF_MIME_TYPE or mime_type in ACCEPTED_IMAGE_MIME_TYPES


def mime_type_from_data_url(data_url: str) -> str:
    if data_url.startswith(f"data:{PDF_MIME_TYPE}"):
        return PDF_MIME_TYPE
    return DEFAULT_IMAGE_MIME_TYPE


def payload_from_upload(
    *, body: bytes, content_type: str | None, filename: str | None
) -> ReceiptPayload:
    if not body:
        raise ValidationError("Uploaded file is empty")
    if len(body) > settings.max_upload_bytes:
        raise ValidationError("Uploaded file is too large")

    mime_type = (content_type or "").split(";")[0].strip().lower()
    if not is_accepted_mime_type(mime_type) and filename:
        mime_type = mimetypes.guess_type(filename)[0] or ""
    if not is_accepted_mime_type(mime_type):
        raise ValidationError("Only images and PDF files are supported")

    encoded = base64.b64encode(body).decode("ascii")
    return ReceiptPayload(
        data_url=f"data:{mime_type};base64,{encoded}",
        mime_type=mime_type,
        filename=filename or None,
    )


def parse_stored_payload(raw: str) -> ReceiptPayload | None:
    """
    Decode a stored payload.

    Accepts the JSON object form and the older bare data-URL string, whose MIME
    type is inferred from its prefix.
    """
    try:
        obj = json.loads(raw)
    except ValueError:
        obj = None
    if isinstance(obj, dict) and obj.get("dataUrl") and obj.get("mimeType"):
        try:
            return ReceiptPayload.model_validate(obj)
        except PydanticValidationError:
            return None

    if raw.startswith("data:"):
        return ReceiptPayload(
            data_url=raw,
            mime_type=mime_type_from_data_url(raw),
            filename=LEGACY_FILENAME,
        )
    return None


def stage_payload(payload: ReceiptPayload, *, capture_id: str | None = None) -> str:
    capture_id = capture_id or new_capture_id()
    _check_capture_id(capture_id)
    body = payload.model_dump_json(by_alias=True).encode("utf-8")
    get_storage().put(key=_key(capture_id, PAYLOAD_OBJECT), body=body)
    log_event(
        logger,
        "capture.staged",
        capture_id=capture_id,
        mime_type=payload.mime_type,
        filename=payload.filename,
        byte_size=len(body),
    )
    return capture_id


def load_payload(capture_id: str) -> ReceiptPayload | None:
    _check_capture_id(capture_id)
    try:
        raw = get_storage().get(key=_key(capture_id, PAYLOAD_OBJECT))
    except ObjectNotFound:
        return None
    payload = parse_stored_payload(raw.decode("utf-8", errors="replace"))
    if payload is None:
        log_event(logger, "capture.payload.invalid", capture_id=capture_id)
    return payload


def save_result(capture_id: str, result: AIResult) -> None:
    _check_capture_id(capture_id)
    get_storage().put(
        key=_key(capture_id, RESULT_OBJECT),
        body=result.model_dump_json().encode("utf-8"),
    )


def load_result(capture_id: str) -> AIResult | None:
    _check_capture_id(capture_id)
    storage = get_storage()
    key = _key(capture_id, RESULT_OBJECT)
    try:
        raw = storage.get(key=key)
    except ObjectNotFound:
        return None
    try:
        return AIResult.model_validate_json(raw)
    except PydanticValidationError:
        # An unreadable result is dropped so that extraction runs again.
        storage.delete(key=key)
        log_event(logger, "capture.result.discarded", capture_id=capture_id)
        return None


def clear_capture(capture_id: str) -> None:
    _check_capture_id(capture_id)
    storage = get_storage()
    storage.delete(key=_key(capture_id, RESULT_OBJECT))
    storage.delete(key=_key(capture_id, PAYLOAD_OBJECT))
    log_event(logger, "capture.cleared", capture_id=capture_id)


def purge_stale_captures(*, now: datetime | None = None) -> int:
    """
    Drop capture sessions nobody returned to.

    A session is stale once its newest object is older than ``capture_ttl_hours``.
    Returns the number of sessions removed.
    """
    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(hours=settings.capture_ttl_hours)
    storage = get_storage()

    newest: dict[str, datetime] = {}
    for obj in storage.list(prefix=CAPTURE_PREFIX):
        parts = obj.key.split("/")
        if len(parts) != 3 or not _CAPTURE_ID_RE.match(parts[1]) or obj.modified_at is None:
            continue
        seen = newest.get(parts[1])
        if seen is None or obj.modified_at > seen:
            newest[parts[1]] = obj.modified_at

    purged = 0
    for capture_id, modified_at in newest.items():
        if modified_at < cutoff:
            clear_capture(capture_id)
            purged += 1
    if purged:
        log_event(logger, "capture.purged", count=purged, ttl_hours=settings.capture_ttl_hours)
    return purged


def _key(capture_id: str, name: str) -> str:
    return f"{CAPTURE_PREFIX}/{capture_id}/{name}"


def _check_capture_id(capture_id: str) -> None:
    if not _CAPTURE_ID_RE.match(capture_id or ""):
        raise NotFoundError("Capture not found")
