"""create receipts and ai_calls

Revision ID: 3c1e7a90b5d2
Revises:
Create Date: 2026-10-18

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = "3c1e7a90b5d2"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

RECEIPT_STATUSES = ("Extracted", "Flagged", "Verified", "Pending", "Reviewing")
RECEIPT_CATEGORIES = ("Materials", "Equipment", "Labor", "Fuel", "Other")


def upgrade() -> None:
    op.create_table(
        "receipts",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("vendor", sa.String(length=255), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("date", sa.String(length=10), nullable=False),
        sa.Column("tax", sa.Numeric(12, 2), nullable=False),
        sa.Column(
            "status",
            sa.Enum(
                *RECEIPT_STATUSES,
                name="receipt_status",
                native_enum=False,
                create_constraint=True,
            ),
            nullable=False,
        ),
        sa.Column(
            "category",
            sa.Enum(
                *RECEIPT_CATEGORIES,
                name="receipt_category",
                native_enum=False,
                create_constraint=True,
            ),
            nullable=False,
        ),
        sa.Column("location", sa.String(length=255), nullable=False),
        sa.Column("time", sa.String(length=32), nullable=False),
    )
    op.create_index("ix_receipts_vendor", "receipts", ["vendor"])
    op.create_index("ix_receipts_date", "receipts", ["date"])
    op.create_index("ix_receipts_status", "receipts", ["status"])
    op.create_index("ix_receipts_category", "receipts", ["category"])

    op.create_table(
        "ai_calls",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("model", sa.String(length=100), nullable=False),
        sa.Column(
            "input_type",
            sa.Enum("image", "pdf", name="ai_call_input_type", native_enum=False),
            nullable=False,
        ),
        sa.Column("mime_type", sa.String(length=200), nullable=False),
        sa.Column("filename", sa.String(length=512), nullable=True),
        sa.Column(
            "status",
            sa.Enum("success", "error", name="ai_call_status", native_enum=False),
            nullable=False,
        ),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("duration_ms", sa.Integer(), nullable=False),
    )
    op.create_index("ix_ai_calls_status", "ai_calls", ["status"])


def downgrade() -> None:
    op.drop_index("ix_ai_calls_status", table_name="ai_calls")
    op.drop_table("ai_calls")
    op.drop_index("ix_receipts_category", table_name="receipts")
    op.drop_index("ix_receipts_status", table_name="receipts")
    op.drop_index("ix_receipts_date", table_name="receipts")
    op.drop_index("ix_receipts_vendor", table_name="receipts")
    op.drop_table("receipts")
