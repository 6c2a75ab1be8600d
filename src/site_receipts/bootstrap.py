from __future__ import annotations

import site_receipts.models  # noqa: F401
from site_receipts.core.config import settings
from site_receipts.core.db import engine
from site_receipts.core.errors import StorageError
from site_receipts.core.logging import get_logger, log_event, log_exception
from site_receipts.core.models import Base
from site_receipts.modules.capture.service import purge_stale_captures

logger = get_logger(__name__)


def bootstrap() -> None:
    """Prepare local state before the first request is served."""
    if settings.environment in {"dev", "test"} and settings.database_url.startswith("sqlite"):
        Base.metadata.create_all(engine)
        log_event(logger, "bootstrap.schema.created", database_url=settings.database_url)

    if settings.storage_backend == "local":
        settings.local_storage_path.mkdir(parents=True, exist_ok=True)

    try:
        purge_stale_captures()
    except StorageError:
        log_exception(logger, "bootstrap.captures.purge_failed")

    if not settings.openai_api_key:
        log_event(logger, "bootstrap.openai.missing_key", model=settings.openai_model)
