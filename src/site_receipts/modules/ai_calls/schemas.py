from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from site_receipts.modules.ai_calls.models import AICallStatus, InputType


class AICallOut(BaseModel):
    id: int
    model: str
    input_type: InputType
    mime_type: str
    filename: str | None
    status: AICallStatus
    error: str | None
    duration_ms: int
    created_at: datetime


class AICallSummaryOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success_count: int = Field(alias="successCount")
    error_count: int = Field(alias="errorCount")
    avg_duration: int = Field(alias="avgDuration")


class AICallListOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    items: list[AICallOut]
    total: int
    page: int
    page_size: int = Field(alias="pageSize")
    summary: AICallSummaryOut
