from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from site_receipts.core.db import db_session
from site_receipts.core.paging import clamp_paging
from site_receipts.modules.ai_calls.schemas import AICallListOut, AICallOut, AICallSummaryOut
from site_receipts.modules.ai_calls.service import (
    delete_ai_call,
    list_ai_calls,
    summarize_ai_calls,
)

router = APIRouter(tags=["ai-calls"])


@router.get("/ai-calls", response_model=AICallListOut)
def list_ai_calls_endpoint(
    page: int = 1,
    page_size: int = Query(25, alias="pageSize"),
    session: Session = Depends(db_session),
) -> AICallListOut:
    page, page_size = clamp_paging(page, page_size)
    items, total = list_ai_calls(session, page=page, page_size=page_size)
    summary = summarize_ai_calls(session)
    return AICallListOut(
        items=[AICallOut.model_validate(c, from_attributes=True) for c in items],
        total=total,
        page=page,
        page_size=page_size,
        summary=AICallSummaryOut(
            success_count=summary.success_count,
            error_count=summary.error_count,
            avg_duration=summary.avg_duration,
        ),
    )


@router.delete("/ai-calls/{call_id}")
def delete_ai_call_endpoint(
    call_id: int,
    session: Session = Depends(db_session),
) -> Response:
    delete_ai_call(session, call_id=call_id)
    return Response(status_code=204)
