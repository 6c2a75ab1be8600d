from __future__ import annotations

import base64
import os
from datetime import datetime, timedelta, timezone

import pytest

from site_receipts.core.config import settings
from site_receipts.core.errors import NotFoundError, ValidationError
from site_receipts.core.storage import get_storage
from site_receipts.modules.capture.service import (
    LEGACY_FILENAME,
    clear_capture,
    load_payload,
    load_result,
    parse_stored_payload,
    payload_from_upload,
    purge_stale_captures,
    save_result,
    stage_payload,
)
from site_receipts.modules.extraction.schemas import AIResult, ReceiptPayload

JPEG_BYTES = b"\xff\xd8\xff\xe0fake-jpeg"


def test_upload_is_encoded_as_data_url() -> None:
    payload = payload_from_upload(
        body=JPEG_BYTES, content_type="image/jpeg", filename="camera-capture.jpg"
    )
    assert payload.mime_type == "image/jpeg"
    assert payload.data_url == "data:image/jpeg;base64," + base64.b64encode(JPEG_BYTES).decode()
    assert payload.filename == "camera-capture.jpg"


def test_upload_mime_type_falls_back_to_filename() -> None:
    payload = payload_from_upload(
        body=b"%PDF-1.4", content_type="application/octet-stream", filename="invoice.pdf"
    )
    assert payload.mime_type == "application/pdf"


@pytest.mark.parametrize(
    ("body", "content_type", "filename"),
    [
        (b"", "image/png", "empty.png"),
        (b"hello", "text/plain", "notes.txt"),
    ],
)
def test_upload_rejects_empty_and_unsupported_files(body, content_type, filename) -> None:
    with pytest.raises(ValidationError):
        payload_from_upload(body=body, content_type=content_type, filename=filename)


def test_upload_rejects_oversized_files(monkeypatch) -> None:
    monkeypatch.setattr(settings, "max_upload_bytes", 4)
    with pytest.raises(ValidationError):
        payload_from_upload(body=JPEG_BYTES, content_type="image/jpeg", filename="big.jpg")


def test_legacy_bare_data_url_infers_mime_type() -> None:
    pdf = parse_stored_payload("data:application/pdf;base64,JVBERi0x")
    image = parse_stored_payload("data:image/png;base64,iVBORw0K")

    assert pdf is not None and pdf.mime_type == "application/pdf"
    assert image is not None and image.mime_type == "image/jpeg"
    assert pdf.filename == LEGACY_FILENAME
    assert parse_stored_payload("garbage") is None


def test_stage_load_and_clear_roundtrip() -> None:
    payload = payload_from_upload(body=JPEG_BYTES, content_type="image/jpeg", filename="r.jpg")
    capture_id = stage_payload(payload)

    assert load_payload(capture_id) == payload
    assert load_result(capture_id) is None

    result = AIResult.placeholder()
    save_result(capture_id, result)
    assert load_result(capture_id) == result

    clear_capture(capture_id)
    assert load_payload(capture_id) is None
    assert load_result(capture_id) is None


def test_legacy_payload_stored_in_session_is_readable() -> None:
    capture_id = "a" * 32
    get_storage().put(
        key=f"captures/{capture_id}/payload.json", body=b"data:application/pdf;base64,JVBERi0x"
    )
    payload = load_payload(capture_id)
    assert payload is not None
    assert payload.mime_type == "application/pdf"


def test_corrupt_result_is_discarded() -> None:
    capture_id = "b" * 32
    get_storage().put(key=f"captures/{capture_id}/result.json", body=b"{not json")
    assert load_result(capture_id) is None
    assert not get_storage().exists(key=f"captures/{capture_id}/result.json")


def test_capture_ids_are_validated() -> None:
    with pytest.raises(NotFoundError):
        load_payload("../../etc/passwd")


def test_api_stages_upload(client) -> None:
    resp = client.post(
        "/api/captures", files={"upload": ("r.jpg", JPEG_BYTES, "image/jpeg")}
    )
    assert resp.status_code == 200
    capture_id = resp.json()["captureId"]
    assert load_payload(capture_id) is not None

    assert client.delete(f"/api/captures/{capture_id}").status_code == 204
    assert load_payload(capture_id) is None


def test_api_rejects_unsupported_upload(client) -> None:
    resp = client.post("/api/captures", files={"upload": ("a.txt", b"hi", "text/plain")})
    assert resp.status_code == 400
    assert resp.json() == {"error": "Only images and PDF files are supported"}


def test_svg_upload_is_rejected(client) -> None:
    svg = b'<svg xmlns="http://www.w3.org/2000/svg"><script>alert(1)</script></svg>'
    with pytest.raises(ValidationError):
        payload_from_upload(body=svg, content_type="image/svg+xml", filename="r.svg")
    with pytest.raises(ValidationError):
        payload_from_upload(body=svg, content_type="application/octet-stream", filename="r.svg")

    resp = client.post("/api/captures", files={"upload": ("r.svg", svg, "image/svg+xml")})
    assert resp.status_code == 400


def test_preview_refuses_unlisted_mime_type(client) -> None:
    encoded = base64.b64encode(b"<svg/>").decode()
    capture_id = stage_payload(
        ReceiptPayload(
            data_url=f"data:image/svg+xml;base64,{encoded}",
            mime_type="image/svg+xml",
            filename="r.svg",
        )
    )
    resp = client.get(f"/app/verify/{capture_id}/preview")
    assert resp.status_code == 404
    assert resp.json() == {"error": "No pending receipt"}


def test_purge_drops_only_stale_captures() -> None:
    old_id = stage_payload(payload_from_upload(body=JPEG_BYTES, content_type="image/jpeg", filename="a.jpg"))
    fresh_id = stage_payload(payload_from_upload(body=JPEG_BYTES, content_type="image/jpeg", filename="b.jpg"))

    stale = datetime.now(timezone.utc) - timedelta(hours=settings.capture_ttl_hours + 1)
    old_path = settings.local_storage_path / "captures" / old_id / "payload.json"
    os.utime(old_path, (stale.timestamp(), stale.timestamp()))

    assert purge_stale_captures() == 1
    assert load_payload(old_id) is None
    assert load_payload(fresh_id) is not None


def test_storage_lists_objects_under_prefix() -> None:
    capture_id = stage_payload(payload_from_upload(body=JPEG_BYTES, content_type="image/jpeg", filename="a.jpg"))
    objects = get_storage().list(prefix="captures")
    assert [o.key for o in objects] == [f"captures/{capture_id}/payload.json"]
    assert objects[0].byte_size > 0
    assert objects[0].modified_at is not None
