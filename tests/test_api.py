from decimal import Decimal

from fastapi.testclient import TestClient
import pytest

from receipt_snap.api import create_app
from receipt_snap.config import Settings
from receipt_snap.db import connect_sqlite
from receipt_snap.pipeline import StaticOCRProvider


@pytest.fixture
def client(tmp_path):
    settings = Settings(database_path=":memory:", snapshot_dir=tmp_path, log_level="WARNING")
    conn = connect_sqlite(check_same_thread=False)
    provider = StaticOCRProvider("STARBUCKS\n03 Jan 2024\nTOTAL $12.50")
    return TestClient(create_app(settings=settings, conn=conn, ocr_provider=provider))


def manual_receipt(client, amount="10.00", currency="USD", merchant="Shop"):
    response = client.post("/receipts/manual", json={"merchant": merchant, "amount": amount, "currency": currency})
    assert response.status_code == 201
    return response.json()


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_extract_endpoint(client):
    response = client.post("/extract", json={"raw_text": "STARBUCKS\n03 Jan 2024\nTOTAL $12.50"})

    assert response.status_code == 200
    body = response.json()
    assert body["merchant"] == "STARBUCKS"
    assert body["spent_on"] == "2024-01-03"
    assert Decimal(body["amount"]) == Decimal("12.50")
    assert body["currency"] == "USD"
    assert body["confidence"] == 1.0


def test_scan_then_confirm(client):
    scanned = client.post("/receipts", json={"image_ref": "img/1.jpg"}).json()
    assert scanned["status"] == "needs_confirmation"
    assert scanned["merchant"] == "STARBUCKS"

    confirmed = client.post(f"/receipts/{scanned['receipt_id']}/confirm", json={"note": "team coffee"})
    assert confirmed.status_code == 200
    assert confirmed.json()["status"] == "confirmed"
    assert confirmed.json()["note"] == "team coffee"

    available = client.get("/receipts", params={"available": True}).json()
    assert [r["receipt_id"] for r in available] == [scanned["receipt_id"]]


def test_report_lifecycle_over_http(client, tmp_path):
    eur = manual_receipt(client, "20.00", "EUR")
    usd = manual_receipt(client, "5.00", "USD")
    report = client.post("/reports", json={"title": "Lisbon", "currency": "EUR"}).json()
    report_id = report["report_id"]

    totals = client.put(f"/reports/{report_id}/receipts/{eur['receipt_id']}").json()
    assert totals["totals"] == {"EUR": "20.00"}
    assert totals["display_total"] == "€20.00"

    totals = client.put(f"/reports/{report_id}/receipts/{usd['receipt_id']}").json()
    assert {k: Decimal(v) for k, v in totals["totals"].items()} == {"EUR": Decimal("20"), "USD": Decimal("5")}
    assert totals["single_total"] is None
    assert totals["display_total"] == "€20.00 +"

    unlinked = client.delete(f"/receipts/{usd['receipt_id']}/report").json()
    assert unlinked["totals"]["totals"] == {"EUR": "20.00"}

    summary = client.get(f"/reports/{report_id}/summary")
    assert "Lisbon" in summary.text

    submitted = client.post(f"/reports/{report_id}/submit")
    assert submitted.status_code == 200
    assert submitted.json()["report"]["status"] == "submitted"
    assert list((tmp_path / "exports" / report_id).glob("*.json"))

    again = client.post(f"/reports/{report_id}/submit")
    assert again.status_code == 409

    unlink = client.delete(f"/receipts/{eur['receipt_id']}/report")
    assert unlink.status_code == 409
    assert client.get(f"/receipts/{eur['receipt_id']}").json()["report_id"] == report_id

    export = client.get(f"/reports/{report_id}/export.xlsx")
    assert export.status_code == 200
    assert export.headers["content-type"].startswith("application/vnd.openxmlformats")


def test_error_mapping(client):
    assert client.get("/receipts/missing").status_code == 404
    assert client.get("/reports/missing/totals").status_code == 404

    empty = client.post("/reports", json={"title": "Empty"}).json()
    assert client.post(f"/reports/{empty['report_id']}/submit").status_code == 422

    assert client.post("/reports", json={"title": "  "}).status_code == 422
    assert client.post("/receipts/manual", json={"amount": "-3"}).status_code == 422
    assert client.post("/receipts/manual", json={"amount": "3", "category": "Groceries"}).status_code == 422
    receipt_id = manual_receipt(client)["receipt_id"]
    assert client.patch(f"/receipts/{receipt_id}", json={"category": "Snacks"}).status_code == 422

    first = client.post("/reports", json={"title": "A"}).json()
    second = client.post("/reports", json={"title": "B"}).json()
    receipt = manual_receipt(client)
    client.put(f"/reports/{first['report_id']}/receipts/{receipt['receipt_id']}")
    conflict = client.put(f"/reports/{second['report_id']}/receipts/{receipt['receipt_id']}")
    assert conflict.status_code == 409


def test_delete_report_returns_unlinked_count(client):
    receipt = manual_receipt(client)
    report = client.post("/reports", json={"title": "Temp", "receipt_ids": [receipt["receipt_id"]]}).json()

    response = client.delete(f"/reports/{report['report_id']}")

    assert response.json() == {"report_id": report["report_id"], "unlinked": 1}
    assert client.get(f"/reports/{report['report_id']}").status_code == 404
    assert client.get(f"/receipts/{receipt['receipt_id']}").json()["report_id"] is None
