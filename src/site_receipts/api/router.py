from __future__ import annotations

from fastapi import APIRouter

from site_receipts.modules.ai_calls.api import router as ai_calls_router
from site_receipts.modules.capture.api import router as capture_router
from site_receipts.modules.extraction.api import router as extraction_router
from site_receipts.modules.receipts.api import router as receipts_router

router = APIRouter()

router.include_router(extraction_router, prefix="/api")
router.include_router(receipts_router, prefix="/api")
router.include_router(ai_calls_router, prefix="/api")
router.include_router(capture_router, prefix="/api")


@router.get("/api/health")
def health() -> dict[str, bool]:
    return {"ok": True}
