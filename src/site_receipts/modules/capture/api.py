from __future__ import annotations

from fastapi import APIRouter, File, Response, UploadFile
from pydantic import BaseModel, ConfigDict, Field

from site_receipts.core.logging import get_logger, log_event
from site_receipts.modules.capture.service import clear_capture, payload_from_upload, stage_payload

router = APIRouter(tags=["captures"])
logger = get_logger(__name__)


class CaptureOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    capture_id: str = Field(alias="captureId")


@router.post("/captures", response_model=CaptureOut)
async def create_capture(upload: UploadFile = File(...)) -> CaptureOut:
    body = await upload.read()
    log_event(
        logger,
        "upload.received",
        filename=upload.filename or "upload.bin",
        content_type=upload.content_type,
        byte_size=len(body),
    )
    payload = payload_from_upload(
        body=body, content_type=upload.content_type, filename=upload.filename
    )
    return CaptureOut(capture_id=stage_payload(payload))


@router.delete("/captures/{capture_id}")
def delete_capture(capture_id: str) -> Response:
    clear_capture(capture_id)
    return Response(status_code=204)
