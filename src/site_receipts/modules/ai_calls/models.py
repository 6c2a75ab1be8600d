from __future__ import annotations

import enum

from sqlalchemy import Enum, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from site_receipts.core.models import Base, CreatedAt, IntegerPrimaryKey


class InputType(str, enum.Enum):
    IMAGE = "image"
    PDF = "pdf"


class AICallStatus(str, enum.Enum):
    SUCCESS = "success"
    ERROR = "error"


class AICall(IntegerPrimaryKey, CreatedAt, Base):
    __tablename__ = "ai_calls"

    model: Mapped[str] = mapped_column(String(100))
    input_type: Mapped[InputType] = mapped_column(
        Enum(
            InputType,
            native_enum=False,
            values_callable=lambda e: [m.value for m in e],
            name="ai_call_input_type",
        )
    )
    mime_type: Mapped[str] = mapped_column(String(200))
    filename: Mapped[str | None] = mapped_column(String(512), nullable=True)
    status: Mapped[AICallStatus] = mapped_column(
        Enum(
            AICallStatus,
            native_enum=False,
            values_callable=lambda e: [m.value for m in e],
            name="ai_call_status",
        ),
        index=True,
    )
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    duration_ms: Mapped[int] = mapped_column(Integer)
