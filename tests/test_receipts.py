from __future__ import annotations

import csv
import io
from decimal import Decimal

import pytest

from site_receipts.core.db import SessionLocal
from site_receipts.core.errors import ValidationError
from site_receipts.modules.receipts.models import Receipt, ReceiptCategory, ReceiptStatus
from site_receipts.modules.receipts.schemas import ReceiptCreateIn
from site_receipts.modules.receipts.service import (
    ReceiptFilters,
    create_receipt,
    export_receipts_csv,
    list_receipts,
    validate_receipt_input,
)


def _add(session, **overrides) -> Receipt:
    data = {
        "vendor": "Acme Lumber",
        "amount": Decimal("100.00"),
        "date": "2025-03-01",
        "tax": Decimal("5.00"),
        "status": "Verified",
        "category": "Materials",
        "location": "Field Office A",
        "time": "09:30",
    }
    data.update(overrides)
    return create_receipt(session, data=validate_receipt_input(ReceiptCreateIn(**data)))


def _seed(session) -> None:
    _add(session, vendor="Acme Lumber", amount=Decimal("100.00"), date="2025-03-01")
    _add(
        session,
        vendor="Shell Station",
        amount=Decimal("55.20"),
        date="2025-03-05",
        category="Fuel",
        status="Flagged",
    )
    _add(
        session,
        vendor="Rent-All Equipment",
        amount=Decimal("420.00"),
        date="2025-03-10",
        category="Equipment",
        location="North Yard",
    )


def test_list_is_newest_first_with_total() -> None:
    with SessionLocal() as session:
        _seed(session)
        items, total = list_receipts(session, filters=ReceiptFilters())

    assert total == 3
    assert [r.vendor for r in items] == ["Rent-All Equipment", "Shell Station", "Acme Lumber"]


def test_search_matches_vendor_category_and_location() -> None:
    with SessionLocal() as session:
        _seed(session)
        by_vendor, _ = list_receipts(session, filters=ReceiptFilters(search="Shell"))
        by_category, _ = list_receipts(session, filters=ReceiptFilters(search="Equip"))
        by_location, _ = list_receipts(session, filters=ReceiptFilters(search="North"))

    assert [r.vendor for r in by_vendor] == ["Shell Station"]
    assert [r.vendor for r in by_category] == ["Rent-All Equipment"]
    assert [r.vendor for r in by_location] == ["Rent-All Equipment"]


def test_filters_are_combined_and_ranges_inclusive() -> None:
    filters = ReceiptFilters.from_params(
        date_from="2025-03-01",
        date_to="2025-03-05",
        min_amount="55.20",
        max_amount="100",
        status="all",
        category="",
    )
    with SessionLocal() as session:
        _seed(session)
        items, total = list_receipts(session, filters=filters)

    assert total == 2
    assert {r.vendor for r in items} == {"Acme Lumber", "Shell Station"}

    with SessionLocal() as session:
        fuel, _ = list_receipts(
            session, filters=ReceiptFilters.from_params(category="Fuel", status="Flagged")
        )
    assert [r.vendor for r in fuel] == ["Shell Station"]


def test_invalid_filter_values_are_rejected() -> None:
    with pytest.raises(ValidationError):
        ReceiptFilters.from_params(status="Archived")
    with pytest.raises(ValidationError):
        ReceiptFilters.from_params(min_amount="lots")
    with pytest.raises(ValidationError):
        ReceiptFilters.from_params(max_amount="NaN")


def test_page_past_the_end_returns_empty_items_and_true_total() -> None:
    with SessionLocal() as session:
        _seed(session)
        items, total = list_receipts(session, filters=ReceiptFilters(), page=5, page_size=2)

    assert items == []
    assert total == 3


def test_missing_required_field_is_rejected_without_insert() -> None:
    with pytest.raises(ValidationError) as exc:
        validate_receipt_input(ReceiptCreateIn(vendor="Acme", amount=Decimal("1")))
    assert exc.value.message == "Missing required receipt fields"

    with SessionLocal() as session:
        _, total = list_receipts(session, filters=ReceiptFilters())
    assert total == 0


def test_zero_amount_and_tax_are_accepted() -> None:
    with SessionLocal() as session:
        receipt = _add(session, amount=Decimal("0"), tax=Decimal("0"))
    assert receipt.amount == Decimal("0")
    assert receipt.status == ReceiptStatus.VERIFIED
    assert receipt.category == ReceiptCategory.MATERIALS


def test_export_matches_list_for_same_filters() -> None:
    filters = ReceiptFilters.from_params(search="e", min_amount="50")
    with SessionLocal() as session:
        _seed(session)
        items, total = list_receipts(session, filters=filters, page=1, page_size=100)
        text = export_receipts_csv(session, filters=filters)

    rows = list(csv.DictReader(io.StringIO(text)))
    assert len(rows) == total
    assert [int(r["id"]) for r in rows] == [r.id for r in items]
    assert rows[0]["amount"] == "420.00"


def test_api_list_create_export_delete(client) -> None:
    body = {
        "vendor": 'Bob\'s "Best" Lumber',
        "amount": 125.5,
        "date": "2025-03-01",
        "tax": 10.25,
        "status": "Verified",
        "category": "Materials",
        "location": "Field Office A",
        "time": "14:05",
    }
    resp = client.post("/api/receipts", json=body)
    assert resp.status_code == 200
    receipt_id = resp.json()["id"]

    resp = client.get("/api/receipts", params={"pageSize": 500, "page": 0})
    assert resp.status_code == 200
    data = resp.json()
    assert data["total"] == 1
    assert data["page"] == 1
    assert data["pageSize"] == 100
    assert data["items"][0]["vendor"] == 'Bob\'s "Best" Lumber'
    assert data["items"][0]["amount"] == 125.5

    resp = client.get("/api/receipts/export", params={"search": "Lumber"})
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/csv")
    assert resp.headers["content-disposition"] == "attachment; filename=receipts.csv"
    parsed = list(csv.reader(io.StringIO(resp.text)))
    assert parsed[0][:3] == ["id", "vendor", "amount"]
    assert parsed[1][1] == 'Bob\'s "Best" Lumber'

    assert client.delete(f"/api/receipts/{receipt_id}").status_code == 204
    resp = client.delete(f"/api/receipts/{receipt_id}")
    assert resp.status_code == 404
    assert resp.json() == {"error": "Receipt not found"}


def test_api_create_missing_fields_is_400(client) -> None:
    resp = client.post("/api/receipts", json={"vendor": "Acme", "amount": 10})
    assert resp.status_code == 400
    assert resp.json() == {"error": "Missing required receipt fields"}
    assert client.get("/api/receipts").json()["total"] == 0


def test_api_rejects_unknown_category(client) -> None:
    body = {
        "vendor": "Acme",
        "amount": 1,
        "date": "2025-03-01",
        "tax": 0,
        "status": "Verified",
        "category": "Snacks",
        "location": "Field Office A",
        "time": "10:00",
    }
    resp = client.post("/api/receipts", json=body)
    assert resp.status_code == 400
    assert "category" in resp.json()["error"]


def test_api_create_rejects_non_numeric_amount_with_400(client) -> None:
    body = {
        "vendor": "Acme",
        "amount": "abc",
        "date": "2025-03-01",
        "tax": 0,
        "status": "Verified",
        "category": "Materials",
        "location": "Field Office A",
        "time": "10:00",
    }
    resp = client.post("/api/receipts", json=body)
    assert resp.status_code == 400
    assert resp.json() == {"error": "Invalid amount: abc"}

    resp = client.post("/api/receipts", json={**body, "amount": True})
    assert resp.status_code == 400

    resp = client.post("/api/receipts", json={**body, "amount": "12.50"})
    assert resp.status_code == 200
    assert client.get("/api/receipts").json()["items"][0]["amount"] == 12.5
