from __future__ import annotations

import os
import shutil
from pathlib import Path

import pytest

# Set env before any site_receipts imports (settings/engine are created at import time).
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite:///./.site_receipts_test.db")
os.environ.setdefault("STORAGE_BACKEND", "local")
os.environ.setdefault("LOCAL_STORAGE_PATH", ".tmp_storage_test")
os.environ.setdefault("OPENAI_API_KEY", "test-key")


@pytest.fixture(autouse=True)
def _reset_db_and_storage() -> None:
    import site_receipts.core.storage as storage_mod
    import site_receipts.models  # noqa: F401
    from site_receipts.core.db import engine
    from site_receipts.core.models import Base

    storage_mod._storage = None

    storage_path = Path(os.environ["LOCAL_STORAGE_PATH"])
    if storage_path.exists():
        shutil.rmtree(storage_path)

    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)

    yield


@pytest.fixture()
def client():
    from fastapi.testclient import TestClient

    from site_receipts.main import create_app

    with TestClient(create_app()) as c:
        yield c


@pytest.fixture()
def stub_model(monkeypatch):
    """Replace the provider round trip with a canned response (or exception)."""
    from site_receipts.modules.extraction import service as extraction_service

    calls: list[str] = []

    def _install(response):
        def _stub(payload, *, model):
            calls.append(payload.mime_type)
            if isinstance(response, BaseException):
                raise response
            return response

        monkeypatch.setattr(extraction_service, "request_receipt_extraction", _stub)
        return calls

    return _install
