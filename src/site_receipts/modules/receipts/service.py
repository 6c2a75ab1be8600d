from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from sqlalchemy import String, cast, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.sql import Select

from site_receipts.core.csv_export import render_csv
from site_receipts.core.errors import NotFoundError, StorageError, ValidationError
from site_receipts.core.logging import get_logger, log_event, log_exception
from site_receipts.core.paging import DEFAULT_PAGE_SIZE, clamp_paging
from site_receipts.modules.receipts.models import Receipt, ReceiptCategory, ReceiptStatus
from site_receipts.modules.receipts.schemas import ReceiptCreate, ReceiptCreateIn

logger = get_logger(__name__)

EXPORT_HEADER: tuple[str, ...] = (
    "id",
    "vendor",
    "amount",
    "date",
    "tax",
    "status",
    "category",
    "location",
    "time",
    "created_at",
)


@dataclass(frozen=True)
class ReceiptFilters:
    search: str | None = None
    status: ReceiptStatus | None = None
    category: ReceiptCategory | None = None
    date_from: str | None = None
    date_to: str | None = None
    min_amount: Decimal | None = None
    max_amount: Decimal | None = None

    @classmethod
    def from_params(
        cls,
        *,
        search: str | None = None,
        status: str | None = None,
        category: str | None = None,
        date_from: str | None = None,
        date_to: str | None = None,
        min_amount: str | None = None,
        max_amount: str | None = None,
    ) -> ReceiptFilters:
        """Build filters from raw query-string values; blank values mean "no filter"."""
        return cls(
            search=_blank_to_none(search),
            status=_parse_enum(ReceiptStatus, status, "status"),
            category=_parse_enum(ReceiptCategory, category, "category"),
            date_from=_blank_to_none(date_from),
            date_to=_blank_to_none(date_to),
            min_amount=_parse_decimal(min_amount, "minAmount"),
            max_amount=_parse_decimal(max_amount, "maxAmount"),
        )


def list_receipts(
    session: Session,
    *,
    filters: ReceiptFilters,
    page: int | None = 1,
    page_size: int | None = DEFAULT_PAGE_SIZE,
) -> tuple[list[Receipt], int]:
    page, page_size = clamp_paging(page, page_size)
    stmt = _apply_filters(select(Receipt), filters)
    count_stmt = _apply_filters(select(func.count(Receipt.id)), filters)
    try:
        items = list(
            session.scalars(
                stmt.order_by(Receipt.id.desc()).limit(page_size).offset((page - 1) * page_size)
            )
        )
        total = int(session.scalar(count_stmt) or 0)
    except SQLAlchemyError as e:
        log_exception(logger, "receipts.list.failure")
        raise StorageError("Failed to load receipts") from e
    return items, total


def list_all_receipts(session: Session, *, filters: ReceiptFilters) -> list[Receipt]:
    stmt = _apply_filters(select(Receipt), filters).order_by(Receipt.id.desc())
    try:
        return list(session.scalars(stmt))
    except SQLAlchemyError as e:
        log_exception(logger, "receipts.export.failure")
        raise StorageError("Failed to export receipts") from e


def validate_receipt_input(data: ReceiptCreateIn) -> ReceiptCreate:
    missing = [
        name
        for name in ("vendor", "date", "status", "category", "location", "time")
        if not getattr(data, name)
    ]
    missing += [name for name in ("amount", "tax") if getattr(data, name) is None]
    if missing:
        log_event(logger, "receipts.create.rejected", missing=sorted(missing))
        raise ValidationError("Missing required receipt fields")
    return ReceiptCreate(
        vendor=data.vendor,
        amount=_coerce_decimal(data.amount, "amount"),
        date=data.date,
        tax=_coerce_decimal(data.tax, "tax"),
        status=_require_enum(ReceiptStatus, data.status, "status"),
        category=_require_enum(ReceiptCategory, data.category, "category"),
        location=data.location,
        time=data.time,
    )


def create_receipt(session: Session, *, data: ReceiptCreate) -> Receipt:
    receipt = Receipt(
        vendor=data.vendor,
        amount=data.amount,
        date=data.date,
        tax=data.tax,
        status=data.status,
        category=data.category,
        location=data.location,
        time=data.time,
    )
    session.add(receipt)
    try:
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        log_exception(logger, "receipts.create.failure", vendor=data.vendor)
        raise StorageError("Failed to save receipt") from e
    session.refresh(receipt)
    log_event(
        logger,
        "receipts.created",
        receipt_id=receipt.id,
        status=receipt.status.value,
        category=receipt.category.value,
    )
    return receipt


def delete_receipt(session: Session, *, receipt_id: int) -> None:
    receipt = session.get(Receipt, receipt_id)
    if not receipt:
        raise NotFoundError("Receipt not found")
    session.delete(receipt)
    session.commit()
    log_event(logger, "receipts.deleted", receipt_id=receipt_id)


def receipt_row(receipt: Receipt) -> dict[str, object]:
    return {
        "id": receipt.id,
        "vendor": receipt.vendor,
        "amount": _format_amount(receipt.amount),
        "date": receipt.date,
        "tax": _format_amount(receipt.tax),
        "status": receipt.status.value,
        "category": receipt.category.value,
        "location": receipt.location,
        "time": receipt.time,
        "created_at": receipt.created_at.isoformat() if receipt.created_at else "",
    }


def export_receipts_csv(session: Session, *, filters: ReceiptFilters) -> str:
    rows = [receipt_row(r) for r in list_all_receipts(session, filters=filters)]
    log_event(logger, "receipts.exported", row_count=len(rows))
    return render_csv(EXPORT_HEADER, rows)


def _apply_filters(stmt: Select, filters: ReceiptFilters) -> Select:
    if filters.search:
        term = f"%{filters.search}%"
        stmt = stmt.where(
            or_(
                Receipt.vendor.like(term),
                cast(Receipt.category, String).like(term),
                Receipt.location.like(term),
            )
        )
    if filters.status:
        stmt = stmt.where(Receipt.status == filters.status)
    if filters.category:
        stmt = stmt.where(Receipt.category == filters.category)
    if filters.date_from:
        stmt = stmt.where(Receipt.date >= filters.date_from)
    if filters.date_to:
        stmt = stmt.where(Receipt.date <= filters.date_to)
    if filters.min_amount is not None:
        stmt = stmt.where(Receipt.amount >= filters.min_amount)
    if filters.max_amount is not None:
        stmt = stmt.where(Receipt.amount <= filters.max_amount)
    return stmt


def _format_amount(value: Decimal | None) -> str:
    if value is None:
        return ""
    return str(Decimal(value).quantize(Decimal("0.01")))


def _blank_to_none(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _parse_enum(enum_cls, value: str | None, name: str):
    value = _blank_to_none(value)
    if value is None or value.lower() == "all":
        return None
    try:
        return enum_cls(value)
    except ValueError as e:
        raise ValidationError(f"Invalid {name}: {value}") from e


def _require_enum(enum_cls, value: str | None, name: str):
    try:
        return enum_cls(value)
    except ValueError as e:
        raise ValidationError(f"Invalid {name}: {value}") from e


def _parse_decimal(value: str | None, name: str) -> Decimal | None:
    value = _blank_to_none(value)
    if value is None:
        return None
    try:
        parsed = Decimal(value)
    except InvalidOperation as e:
        raise ValidationError(f"Invalid {name}: {value}") from e
    if not parsed.is_finite():
        raise ValidationError(f"Invalid {name}: {value}")
    return parsed


def _coerce_decimal(value: object, name: str) -> Decimal:
    if isinstance(value, bool) or not isinstance(value, (int, float, str, Decimal)):
        raise ValidationError(f"Invalid {name}: {value}")
    parsed = _parse_decimal(str(value), name)
    if parsed is None:
        raise ValidationError(f"Invalid {name}: {value}")
    return parsed
