from __future__ import annotations

import base64
from decimal import Decimal
from pathlib import Path
from urllib.parse import unquote_to_bytes, urlencode

from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile
from fastapi.responses import HTMLResponse, RedirectResponse, Response
from fastapi.templating import Jinja2Templates
from sqlalchemy.orm import Session

from site_receipts.core.db import db_session
from site_receipts.core.errors import NotFoundError, StorageError, ValidationError
from site_receipts.core.logging import (
    get_logger,
    log_event,
    log_exception,
    reset_capture_context,
    set_capture_context,
)
from site_receipts.core.paging import DEFAULT_PAGE_SIZE, clamp_paging, total_pages
from site_receipts.modules.ai_calls.models import AICallStatus
from site_receipts.modules.ai_calls.service import (
    delete_ai_call,
    export_ai_calls_csv,
    filter_ai_calls,
    list_ai_calls,
    summarize_ai_calls,
)
from site_receipts.modules.capture.service import (
    clear_capture,
    is_accepted_mime_type,
    load_payload,
    payload_from_upload,
    purge_stale_captures,
    stage_payload,
)
from site_receipts.modules.receipts.models import ReceiptCategory, ReceiptStatus
from site_receipts.modules.receipts.service import (
    ReceiptFilters,
    delete_receipt,
    export_receipts_csv,
    list_receipts,
)
from site_receipts.modules.verification.service import (
    VerificationState,
    apply_edits,
    approve_capture,
    discard_capture,
    load_verification,
    open_verification,
)

WEB_DIR = Path(__file__).resolve().parent
templates = Jinja2Templates(directory=str(WEB_DIR / "templates"))

router = APIRouter(include_in_schema=False)
logger = get_logger(__name__)

# Static files path for mounting in main.py
STATIC_DIR = WEB_DIR / "static"

RECENT_ACTIVITY_LIMIT = 3
PENDING_CAPTURE_COOKIE = "pending_capture"
HISTORY_FILTER_PARAMS = (
    "search",
    "status",
    "category",
    "dateFrom",
    "dateTo",
    "minAmount",
    "maxAmount",
)


def _capture_page(
    request: Request,
    session: Session,
    *,
    error: str | None = None,
    status_code: int = 200,
) -> HTMLResponse:
    recent, _ = list_receipts(
        session, filters=ReceiptFilters(), page=1, page_size=RECENT_ACTIVITY_LIMIT
    )
    return templates.TemplateResponse(
        request,
        "capture.html",
        {"recent": recent, "error": error},
        status_code=status_code,
    )


def _verify_page(
    request: Request,
    view,
    *,
    error: str | None = None,
    status_code: int = 200,
) -> HTMLResponse:
    return templates.TemplateResponse(
        request,
        "verify.html",
        {
            "view": view,
            "result": view.result,
            "categories": [c.value for c in ReceiptCategory],
            "error": error,
        },
        status_code=status_code,
    )


def _history_query(request: Request, **overrides: object) -> str:
    params = {
        k: request.query_params.get(k)
        for k in HISTORY_FILTER_PARAMS
        if request.query_params.get(k)
    }
    for key, value in overrides.items():
        if value is None:
            params.pop(key, None)
        else:
            params[key] = str(value)
    return urlencode(params)


@router.get("/", response_class=RedirectResponse)
def root() -> RedirectResponse:
    return RedirectResponse(url="/app", status_code=302)


def _drop_capture(capture_id: str) -> None:
    try:
        clear_capture(capture_id)
    except NotFoundError:
        log_event(logger, "capture.discard.unknown", capture_id=capture_id)


@router.get("/app", response_class=HTMLResponse)
def capture_page(
    request: Request,
    discard: str | None = None,
    session: Session = Depends(db_session),
) -> HTMLResponse:
    # Landing here without approving drops whatever capture was pending.
    pending = {discard, request.cookies.get(PENDING_CAPTURE_COOKIE)} - {None, ""}
    for capture_id in sorted(pending):
        _drop_capture(capture_id)
    try:
        purge_stale_captures()
    except StorageError:
        log_exception(logger, "capture.purge.failed")

    response = _capture_page(request, session)
    if PENDING_CAPTURE_COOKIE in request.cookies:
        response.delete_cookie(PENDING_CAPTURE_COOKIE)
    return response


@router.post("/app/capture", response_class=RedirectResponse)
async def capture_submit(
    request: Request,
    upload: UploadFile = File(...),
    session: Session = Depends(db_session),
) -> Response:
    body = await upload.read()
    log_event(
        logger,
        "upload.received",
        filename=upload.filename or "upload.bin",
        content_type=upload.content_type,
        byte_size=len(body),
    )
    try:
        payload = payload_from_upload(
            body=body, content_type=upload.content_type, filename=upload.filename
        )
    except ValidationError as e:
        return _capture_page(request, session, error=e.message, status_code=400)

    capture_id = stage_payload(payload)
    response = RedirectResponse(url=f"/app/verify/{capture_id}", status_code=303)
    response.set_cookie(PENDING_CAPTURE_COOKIE, capture_id, httponly=True, samesite="lax")
    return response


@router.get("/app/verify/{capture_id}", response_class=HTMLResponse)
def verify_page(request: Request, capture_id: str) -> Response:
    try:
        view = load_verification(capture_id)
    except NotFoundError:
        return RedirectResponse(url="/app", status_code=303)

    if view.state == VerificationState.PROCESSING:
        return templates.TemplateResponse(request, "processing.html", {"view": view})
    return _verify_page(request, view)


@router.post("/app/verify/{capture_id}/extract", response_class=RedirectResponse)
def verify_extract(capture_id: str, session: Session = Depends(db_session)) -> RedirectResponse:
    token = set_capture_context(capture_id)
    try:
        open_verification(session, capture_id=capture_id)
    except NotFoundError:
        return RedirectResponse(url="/app", status_code=303)
    finally:
        reset_capture_context(token)
    return RedirectResponse(url=f"/app/verify/{capture_id}", status_code=303)


@router.post("/app/verify/{capture_id}", response_class=RedirectResponse)
def verify_submit(
    request: Request,
    capture_id: str,
    action: str = Form("approve"),
    vendor: str | None = Form(None),
    date: str | None = Form(None),
    amount: str | None = Form(None),
    tax: str | None = Form(None),
    category: str | None = Form(None),
    session: Session = Depends(db_session),
) -> Response:
    token = set_capture_context(capture_id)
    try:
        if action == "discard":
            try:
                discard_capture(capture_id)
            except NotFoundError:
                log_event(logger, "capture.discard.unknown", capture_id=capture_id)
            response = RedirectResponse(url="/app", status_code=303)
            response.delete_cookie(PENDING_CAPTURE_COOKIE)
            return response

        try:
            view = open_verification(session, capture_id=capture_id)
        except NotFoundError:
            return RedirectResponse(url="/app", status_code=303)

        form = {"vendor": vendor, "date": date, "amount": amount, "tax": tax, "category": category}
        try:
            edited = apply_edits(view.result, form)
        except ValidationError as e:
            return _verify_page(request, view, error=e.message, status_code=400)

        outcome = approve_capture(session, capture_id=capture_id, result=edited)
        saved = "1" if outcome.saved else "0"
        response = RedirectResponse(url=f"/app/history?saved={saved}", status_code=303)
        response.delete_cookie(PENDING_CAPTURE_COOKIE)
        return response
    finally:
        reset_capture_context(token)


def _history_filters(request: Request) -> ReceiptFilters:
    params = request.query_params
    return ReceiptFilters.from_params(
        search=params.get("search"),
        status=params.get("status"),
        category=params.get("category"),
        date_from=params.get("dateFrom"),
        date_to=params.get("dateTo"),
        min_amount=params.get("minAmount"),
        max_amount=params.get("maxAmount"),
    )


@router.get("/app/history", response_class=HTMLResponse)
def history_page(
    request: Request,
    page: int = 1,
    saved: str | None = None,
    session: Session = Depends(db_session),
) -> HTMLResponse:
    error: str | None = None
    try:
        filters = _history_filters(request)
    except ValidationError as e:
        error = e.message
        filters = ReceiptFilters()

    page, page_size = clamp_paging(page, DEFAULT_PAGE_SIZE)
    items, total = list_receipts(session, filters=filters, page=page, page_size=page_size)
    pages = total_pages(total, page_size)
    page_spend = sum((r.amount for r in items), Decimal("0"))
    flagged = sum(1 for r in items if r.status == ReceiptStatus.FLAGGED)
    return templates.TemplateResponse(
        request,
        "history.html",
        {
            "items": items,
            "total": total,
            "page": page,
            "total_pages": pages,
            "page_spend": page_spend,
            "flagged_count": flagged,
            "filters": filters,
            "statuses": [s.value for s in ReceiptStatus],
            "categories": [c.value for c in ReceiptCategory],
            "export_query": _history_query(request),
            "prev_query": _history_query(request, page=max(page - 1, 1)),
            "next_query": _history_query(request, page=min(page + 1, pages)),
            "save_failed": saved == "0",
            "error": error,
        },
        status_code=400 if error else 200,
    )


@router.get("/app/history/export")
def history_export(request: Request, session: Session = Depends(db_session)) -> Response:
    try:
        filters = _history_filters(request)
    except ValidationError:
        return RedirectResponse(url=f"/app/history?{_history_query(request)}", status_code=303)
    return Response(
        content=export_receipts_csv(session, filters=filters),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": "attachment; filename=receipt_history.csv"},
    )


@router.post("/app/history/{receipt_id}/delete", response_class=RedirectResponse)
def history_delete(
    receipt_id: int,
    next_query: str = Form("", alias="next"),
    session: Session = Depends(db_session),
) -> RedirectResponse:
    delete_receipt(session, receipt_id=receipt_id)
    url = "/app/history"
    if next_query:
        url = f"{url}?{next_query}"
    return RedirectResponse(url=url, status_code=303)


def _ai_calls_view(
    session: Session, *, page: int, page_size: int, search: str | None, status: str | None
):
    page, page_size = clamp_paging(page, page_size)
    items, total = list_ai_calls(session, page=page, page_size=page_size)
    visible = filter_ai_calls(items, search=search, status=status)
    return page, page_size, items, visible, total


@router.get("/app/ai-calls", response_class=HTMLResponse)
def ai_calls_page(
    request: Request,
    page: int = 1,
    page_size: int = Query(DEFAULT_PAGE_SIZE, alias="pageSize"),
    search: str | None = None,
    status: str | None = None,
    session: Session = Depends(db_session),
) -> HTMLResponse:
    page, page_size, _, visible, total = _ai_calls_view(
        session, page=page, page_size=page_size, search=search, status=status
    )
    summary = summarize_ai_calls(session)
    view_query = {k: v for k, v in {"search": search, "status": status}.items() if v}
    return templates.TemplateResponse(
        request,
        "ai_calls.html",
        {
            "calls": visible,
            "total": total,
            "page": page,
            "page_size": page_size,
            "total_pages": total_pages(total, page_size),
            "summary": summary,
            "search": search or "",
            "status": status or "all",
            "statuses": ["all"] + [s.value for s in AICallStatus],
            "view_query": urlencode(view_query),
            "export_query": urlencode({**view_query, "page": page, "pageSize": page_size}),
        },
    )


@router.get("/app/ai-calls/export")
def ai_calls_export(
    page: int = 1,
    page_size: int = Query(DEFAULT_PAGE_SIZE, alias="pageSize"),
    search: str | None = None,
    status: str | None = None,
    session: Session = Depends(db_session),
) -> Response:
    _, _, _, visible, _ = _ai_calls_view(
        session, page=page, page_size=page_size, search=search, status=status
    )
    log_event(logger, "ai_calls.exported", row_count=len(visible))
    return Response(
        content=export_ai_calls_csv(visible),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": "attachment; filename=openai_call_history.csv"},
    )


@router.post("/app/ai-calls/{call_id}/delete", response_class=RedirectResponse)
def ai_calls_delete(
    call_id: int,
    next_query: str = Form("", alias="next"),
    session: Session = Depends(db_session),
) -> RedirectResponse:
    delete_ai_call(session, call_id=call_id)
    url = "/app/ai-calls"
    if next_query:
        url = f"{url}?{next_query}"
    return RedirectResponse(url=url, status_code=303)


@router.get("/app/verify/{capture_id}/preview")
def verify_preview(capture_id: str) -> Response:
    """Serve the staged file itself so PDFs can be embedded without a data URL."""
    payload = load_payload(capture_id)
    if payload is None or not is_accepted_mime_type(payload.mime_type):
        raise NotFoundError("No pending receipt")
    header, _, encoded = payload.data_url.partition(",")
    if ";base64" in header:
        body = base64.b64decode(encoded)
    else:
        body = unquote_to_bytes(encoded)
    return Response(
        content=body,
        media_type=payload.mime_type,
        headers={"X-Content-Type-Options": "nosniff"},
    )
