from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from site_receipts.modules.receipts.models import ReceiptCategory, ReceiptStatus


class ReceiptCreateIn(BaseModel):
    """
    Create payload.

    Fields are loose here so that a missing or malformed value is a 400, not a 422;
    amount and tax accept numbers or numeric strings.
    """

    vendor: str | None = None
    amount: Any = None
    date: str | None = None
    tax: Any = None
    status: str | None = None
    category: str | None = None
    location: str | None = None
    time: str | None = None


class ReceiptCreate(BaseModel):
    vendor: str
    amount: Decimal
    date: str
    tax: Decimal = Decimal("0")
    status: ReceiptStatus
    category: ReceiptCategory
    location: str
    time: str


class ReceiptCreatedOut(BaseModel):
    id: int


class ReceiptOut(BaseModel):
    id: int
    vendor: str
    amount: float
    date: str
    tax: float
    status: ReceiptStatus
    category: ReceiptCategory
    location: str
    time: str
    created_at: datetime


class ReceiptListOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    items: list[ReceiptOut]
    total: int
    page: int
    page_size: int = Field(alias="pageSize")
