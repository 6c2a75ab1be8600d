from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import case, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from site_receipts.core.csv_export import render_csv
from site_receipts.core.errors import NotFoundError, StorageError
from site_receipts.core.logging import get_logger, log_event, log_exception
from site_receipts.core.paging import clamp_paging
from site_receipts.modules.ai_calls.models import AICall, AICallStatus, InputType

logger = get_logger(__name__)

EXPORT_HEADER: tuple[str, ...] = (
    "id",
    "model",
    "input_type",
    "mime_type",
    "filename",
    "status",
    "duration_ms",
    "created_at",
    "error",
)


@dataclass(frozen=True)
class AICallSummary:
    success_count: int
    error_count: int
    avg_duration: int

    @property
    def error_rate(self) -> int:
        attempts = self.success_count + self.error_count
        if attempts == 0:
            return 0
        return round_half_up(Decimal(self.error_count * 100) / Decimal(attempts))


def round_half_up(value: Decimal | float | None) -> int:
    if value is None:
        return 0
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def record_ai_call(
    session: Session,
    *,
    model: str,
    input_type: InputType,
    mime_type: str,
    filename: str | None,
    status: AICallStatus,
    error: str | None,
    duration_ms: int,
) -> AICall:
    call = AICall(
        model=model,
        input_type=input_type,
        mime_type=mime_type,
        filename=filename or None,
        status=status,
        error=error if status == AICallStatus.ERROR else None,
        duration_ms=max(int(duration_ms), 0),
    )
    session.add(call)
    try:
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        log_exception(logger, "ai_calls.record.failure", model=model, status=status.value)
        raise StorageError("Failed to record AI call") from e
    session.refresh(call)
    return call


def list_ai_calls(
    session: Session, *, page: int | None = 1, page_size: int | None = 25
) -> tuple[list[AICall], int]:
    page, page_size = clamp_paging(page, page_size)
    items = list(
        session.scalars(
            select(AICall)
            .order_by(AICall.id.desc())
            .limit(page_size)
            .offset((page - 1) * page_size)
        )
    )
    total = int(session.scalar(select(func.count(AICall.id))) or 0)
    return items, total


def summarize_ai_calls(session: Session) -> AICallSummary:
    row = session.execute(
        select(
            func.sum(case((AICall.status == AICallStatus.SUCCESS, 1), else_=0)),
            func.sum(case((AICall.status == AICallStatus.ERROR, 1), else_=0)),
            func.avg(AICall.duration_ms),
        )
    ).one()
    success_count, error_count, avg_duration = row
    return AICallSummary(
        success_count=int(success_count or 0),
        error_count=int(error_count or 0),
        avg_duration=round_half_up(avg_duration),
    )


def delete_ai_call(session: Session, *, call_id: int) -> None:
    call = session.get(AICall, call_id)
    if not call:
        raise NotFoundError("AI call not found")
    session.delete(call)
    session.commit()
    log_event(logger, "ai_calls.deleted", ai_call_id=call_id)


def filter_ai_calls(
    calls: Iterable[AICall], *, search: str | None = None, status: str | None = None
) -> list[AICall]:
    """Narrow an already-loaded page of calls; this never touches the database."""
    term = (search or "").strip().lower()
    wanted = (status or "all").strip().lower()
    out: list[AICall] = []
    for call in calls:
        if wanted != "all" and call.status.value != wanted:
            continue
        haystack = " ".join(
            [
                call.model,
                call.input_type.value,
                call.mime_type,
                call.filename or "",
                call.status.value,
            ]
        ).lower()
        if term and term not in haystack:
            continue
        out.append(call)
    return out


def export_ai_calls_csv(calls: Iterable[AICall]) -> str:
    rows = [
        {
            "id": c.id,
            "model": c.model,
            "input_type": c.input_type.value,
            "mime_type": c.mime_type,
            "filename": c.filename or "",
            "status": c.status.value,
            "duration_ms": c.duration_ms,
            "created_at": c.created_at.isoformat() if c.created_at else "",
            "error": c.error or "",
        }
        for c in calls
    ]
    return render_csv(EXPORT_HEADER, rows)
