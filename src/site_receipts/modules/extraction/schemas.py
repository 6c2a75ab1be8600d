from __future__ import annotations

from datetime import date

from pydantic import BaseModel, ConfigDict, Field

from site_receipts.modules.receipts.models import ReceiptCategory

PLACEHOLDER_VENDOR = "Manual Entry Required"


class ReceiptPayload(BaseModel):
    """A captured file as a data URL, ready to send to the vision model."""

    model_config = ConfigDict(populate_by_name=True)

    data_url: str = Field(alias="dataUrl")
    mime_type: str = Field(alias="mimeType")
    filename: str | None = None


class ExtractIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    data_url: str | None = Field(None, alias="dataUrl")
    mime_type: str | None = Field(None, alias="mimeType")
    filename: str | None = None


class AIResult(BaseModel):
    model_config = ConfigDict(extra="forbid", allow_inf_nan=False)

    vendor: str
    date: str
    amount: float
    tax: float
    confidence: float
    category: ReceiptCategory

    @classmethod
    def placeholder(cls, today: date | None = None) -> AIResult:
        return cls(
            vendor=PLACEHOLDER_VENDOR,
            date=(today or date.today()).isoformat(),
            amount=0,
            tax=0,
            confidence=0,
            category=ReceiptCategory.OTHER,
        )
