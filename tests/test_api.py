import io

import pandas as pd
import pytest
from fastapi.testclient import TestClient
from pymongo.errors import ServerSelectionTimeoutError

import api
from db import mongo
from db.models import ENTRY_FIELDS, entry_doc
from utils.query_router import RuleBasedClassifier


@pytest.fixture
def client(db):
    api.app.dependency_overrides[api.get_classifier] = lambda: RuleBasedClassifier()
    with TestClient(api.app) as c:
        yield c
    api.app.dependency_overrides.clear()


def _seed(rows):
    mongo.insert_entries([entry_doc(i + 2, values) for i, values in enumerate(rows)])


def _workbook(rows):
    buf = io.BytesIO()
    pd.DataFrame(rows, columns=ENTRY_FIELDS).to_excel(buf, index=False, engine="openpyxl")
    return buf.getvalue()


XLSX = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def test_health(client):
    assert client.get("/").json()["status"] == "ok"


def test_paginate_second_page(client):
    _seed([{"JournalEntryVendorName": f"V{i}", "JournalEntryAmount": str(i)} for i in range(120)])
    res = client.post("/query/paginate", json={"page": 2, "limit": 50})
    assert res.status_code == 200
    body = res.json()
    assert len(body["data"]) == 50
    assert body["data"][0]["excelRowNumber"] == 52
    assert body["data"][-1]["excelRowNumber"] == 101
    assert body["pagination"] == {"total": 120, "page": 2, "limit": 50, "totalPages": 3}
    assert "_id" not in body["data"][0]
    assert "createdAt" not in body["data"][0]


def test_paginate_sort_descending(client):
    _seed([{"JournalEntryVendorName": v} for v in ["A", "B", "C"]])
    body = client.post("/query/paginate", json={"page": 1, "limit": 2, "sortOrder": "desc"}).json()
    assert [r["excelRowNumber"] for r in body["data"]] == [4, 3]


def test_paginate_rejects_bad_input(client):
    assert client.post("/query/paginate", json={"page": 1, "limit": 10, "sortBy": "password"}).status_code == 400
    assert client.post("/query/paginate", json={"page": 0, "limit": 10}).status_code == 422


def test_stats_scenario(client):
    _seed([
        {"JournalEntryVendorName": "A", "JournalEntryAmount": "100"},
        {"JournalEntryVendorName": "B", "JournalEntryAmount": "(50)"},
        {"JournalEntryVendorName": "A", "JournalEntryAmount": "bad"},
    ])
    body = client.get("/query/stats").json()
    assert body["totalEntries"] == 3
    assert body["uniqueCounts"] == {"vendors": 2}
    assert body["amountStats"]["totalAmount"] == 50.0
    assert body["amountStats"]["avgAmount"] == 25.0


def test_filter_search_is_literal(client):
    _seed([
        {"JournalEntryVendorName": "A+B (India)"},
        {"JournalEntryVendorName": "AB India"},
        {"JournalEntryVendorName": "AAB (India)"},
    ])
    body = client.post("/query/filter", json={"searchText": "a+b (", "page": 1, "limit": 50}).json()
    assert [r["JournalEntryVendorName"] for r in body["data"]] == ["A+B (India)"]
    assert body["pagination"]["total"] == 1


def test_filter_amount_and_status(client):
    _seed([
        {"JournalEntryAmount": "60,000", "InitiatorStatus": "Approved"},
        {"JournalEntryAmount": "10", "InitiatorStatus": "Approved"},
        {"JournalEntryAmount": "bad", "InitiatorStatus": "Approved"},
        {"JournalEntryAmount": "90000", "InitiatorStatus": "Rejected"},
    ])
    body = client.post(
        "/query/filter",
        json={"minAmount": 50000, "initiatorStatus": "approved", "page": 1, "limit": 50},
    ).json()
    assert [r["excelRowNumber"] for r in body["data"]] == [2]


def test_filter_date_range(client):
    _seed([
        {"DocumentDate": "2025-01-01"},
        {"DocumentDate": "2025-02-01"},
        {"DocumentDate": "nonsense"},
    ])
    body = client.post("/query/filter", json={"startDate": "2025-01-01", "endDate": "2025-01-31"}).json()
    assert [r["excelRowNumber"] for r in body["data"]] == [2]
    assert client.post("/query/filter", json={"startDate": "someday"}).status_code == 400


def test_ask_top_vendors(client):
    _seed([{"JournalEntryVendorName": v} for v in ["Acme", "Beta", "Acme"]])
    res = client.post("/ask", json={"question": "top 2 vendors"})
    assert res.status_code == 200
    body = res.json()
    assert body["data"] == [{"vendorName": "Acme", "count": 2}, {"vendorName": "Beta", "count": 1}]
    assert body["graph"]["x"] == ["Acme", "Beta"]
    assert body["presentType"] == "bar"


def test_ask_low_confidence_is_200(client):
    res = client.post("/ask", json={"question": "what's the weather like"})
    assert res.status_code == 200
    assert res.json()["status"] == "low_confidence"
    assert res.json()["data"] == []


def test_upload_then_progress(client):
    rows = [["" for _ in ENTRY_FIELDS] for _ in range(3)]
    for i, row in enumerate(rows):
        row[ENTRY_FIELDS.index("JournalEntryVendorName")] = f"Vendor {i}"
        row[ENTRY_FIELDS.index("JournalEntryAmount")] = "1,000"
    res = client.post(
        "/upload",
        params={"uploadId": "upload-1"},
        files={"file": ("ledger.xlsx", _workbook(rows), XLSX)},
    )
    assert res.status_code == 200
    body = res.json()
    assert body["rows"] == 3
    assert body["totalRows"] == 3
    assert body["uploadId"] == "upload-1"
    assert mongo.count_entries() == 3

    progress = client.get("/upload/progress/upload-1")
    assert progress.headers["content-type"].startswith("text/event-stream")
    assert 'data: {"percent": 100}' in progress.text
    assert api.uploads.get("upload-1") is None


def test_upload_wrong_type_writes_nothing(client):
    res = client.post("/upload", files={"file": ("ledger.csv", b"a,b\n1,2\n", "text/csv")})
    assert res.status_code == 400
    assert mongo.count_entries() == 0


def test_progress_for_unknown_upload(client):
    assert client.get("/upload/progress/nope").status_code == 404


def test_paginate_ties_broken_by_row_number(client):
    _seed([{"JournalEntryVendorName": v} for v in ["B", "A", "B", "A", "B", "A"]])
    seen = []
    for page in (1, 2, 3):
        body = client.post(
            "/query/paginate",
            json={"page": page, "limit": 2, "sortBy": "JournalEntryVendorName"},
        ).json()
        seen += [r["excelRowNumber"] for r in body["data"]]
    assert seen == [3, 5, 7, 2, 4, 6]


def test_upload_database_error_ends_progress(client, monkeypatch):
    def unreachable():
        raise ServerSelectionTimeoutError("no servers")

    monkeypatch.setattr(mongo, "ensure_indexes", unreachable)
    rows = [["" for _ in ENTRY_FIELDS]]
    rows[0][ENTRY_FIELDS.index("JournalEntryVendorName")] = "Vendor"
    res = client.post(
        "/upload",
        params={"uploadId": "upload-db-down"},
        files={"file": ("ledger.xlsx", _workbook(rows), XLSX)},
    )
    assert res.status_code == 503
    channel = api.uploads.get("upload-db-down")
    assert channel.snapshot() == {"percent": 0, "done": True, "cancelled": True}

    progress = client.get("/upload/progress/upload-db-down")
    assert 'data: {"percent": 0}' in progress.text
    assert api.uploads.get("upload-db-down") is None
