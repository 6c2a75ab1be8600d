from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from site_receipts.core.db import db_session
from site_receipts.modules.extraction.schemas import AIResult, ExtractIn
from site_receipts.modules.extraction.service import (
    extract_receipt,
    require_api_key,
    validate_extract_input,
)

router = APIRouter(tags=["extraction"])


@router.post("/extract", response_model=AIResult)
def extract_endpoint(
    payload: ExtractIn,
    session: Session = Depends(db_session),
) -> AIResult:
    require_api_key()
    return extract_receipt(session, payload=validate_extract_input(payload))
