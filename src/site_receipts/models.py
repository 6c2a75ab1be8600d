"""
Alembic model import hook.

Importing this module ensures all SQLAlchemy models are registered on Base.metadata.
"""

from __future__ import annotations

from site_receipts.modules.ai_calls.models import AICall  # noqa: F401
from site_receipts.modules.receipts.models import Receipt  # noqa: F401
