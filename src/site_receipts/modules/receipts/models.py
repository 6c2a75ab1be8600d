from __future__ import annotations

import enum
from decimal import Decimal

from sqlalchemy import Enum, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from site_receipts.core.models import Base, CreatedAt, IntegerPrimaryKey


class ReceiptStatus(str, enum.Enum):
    EXTRACTED = "Extracted"
    FLAGGED = "Flagged"
    VERIFIED = "Verified"
    PENDING = "Pending"
    REVIEWING = "Reviewing"


class ReceiptCategory(str, enum.Enum):
    MATERIALS = "Materials"
    EQUIPMENT = "Equipment"
    LABOR = "Labor"
    FUEL = "Fuel"
    OTHER = "Other"


class Receipt(IntegerPrimaryKey, CreatedAt, Base):
    __tablename__ = "receipts"

    vendor: Mapped[str] = mapped_column(String(255), index=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    date: Mapped[str] = mapped_column(String(10), index=True)
    tax: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))

    # Stored as the enum values ("Verified", "Materials", ...) with a CHECK constraint.
    status: Mapped[ReceiptStatus] = mapped_column(
        Enum(
            ReceiptStatus,
            native_enum=False,
            create_constraint=True,
            values_callable=lambda e: [m.value for m in e],
            name="receipt_status",
        ),
        index=True,
    )
    category: Mapped[ReceiptCategory] = mapped_column(
        Enum(
            ReceiptCategory,
            native_enum=False,
            create_constraint=True,
            values_callable=lambda e: [m.value for m in e],
            name="receipt_category",
        ),
        index=True,
    )

    location: Mapped[str] = mapped_column(String(255))
    time: Mapped[str] = mapped_column(String(32))
