from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from site_receipts.core.db import db_session
from site_receipts.core.paging import clamp_paging
from site_receipts.modules.receipts.schemas import (
    ReceiptCreatedOut,
    ReceiptCreateIn,
    ReceiptListOut,
    ReceiptOut,
)
from site_receipts.modules.receipts.service import (
    ReceiptFilters,
    create_receipt,
    delete_receipt,
    export_receipts_csv,
    list_receipts,
    validate_receipt_input,
)

router = APIRouter(tags=["receipts"])


def receipt_filters(
    search: str | None = None,
    status: str | None = None,
    category: str | None = None,
    date_from: str | None = Query(None, alias="dateFrom"),
    date_to: str | None = Query(None, alias="dateTo"),
    min_amount: str | None = Query(None, alias="minAmount"),
    max_amount: str | None = Query(None, alias="maxAmount"),
) -> ReceiptFilters:
    return ReceiptFilters.from_params(
        search=search,
        status=status,
        category=category,
        date_from=date_from,
        date_to=date_to,
        min_amount=min_amount,
        max_amount=max_amount,
    )


@router.get("/receipts", response_model=ReceiptListOut)
def list_receipts_endpoint(
    filters: ReceiptFilters = Depends(receipt_filters),
    page: int = 1,
    page_size: int = Query(25, alias="pageSize"),
    session: Session = Depends(db_session),
) -> ReceiptListOut:
    page, page_size = clamp_paging(page, page_size)
    items, total = list_receipts(session, filters=filters, page=page, page_size=page_size)
    return ReceiptListOut(
        items=[ReceiptOut.model_validate(r, from_attributes=True) for r in items],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.post("/receipts", response_model=ReceiptCreatedOut)
def create_receipt_endpoint(
    payload: ReceiptCreateIn,
    session: Session = Depends(db_session),
) -> ReceiptCreatedOut:
    receipt = create_receipt(session, data=validate_receipt_input(payload))
    return ReceiptCreatedOut(id=receipt.id)


@router.get("/receipts/export")
def export_receipts_endpoint(
    filters: ReceiptFilters = Depends(receipt_filters),
    session: Session = Depends(db_session),
) -> Response:
    body = export_receipts_csv(session, filters=filters)
    return Response(
        content=body,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": "attachment; filename=receipts.csv"},
    )


@router.delete("/receipts/{receipt_id}")
def delete_receipt_endpoint(
    receipt_id: int,
    session: Session = Depends(db_session),
) -> Response:
    delete_receipt(session, receipt_id=receipt_id)
    return Response(status_code=204)
