from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
import json
import logging
from pathlib import Path
import re
from typing import Any, Iterable
from uuid import uuid4

from .models import Receipt, ReportTotals, ReportView

logger = logging.getLogger(__name__)

ISO_TS = "%Y-%m-%dT%H:%M:%S.%fZ"
FILE_TS = "%Y%m%dT%H%M%S%fZ"


def totals_by_currency(receipts: Iterable[Receipt]) -> dict[str, Decimal]:
    """Sum positive amounts per currency.

    Receipts without an amount or currency are left out of the sums.
    """
    totals: dict[str, Decimal] = {}
    for receipt in receipts:
        if receipt.amount is None or receipt.amount <= 0 or not receipt.currency:
            continue
        totals[receipt.currency] = totals.get(receipt.currency, Decimal("0")) + receipt.amount
    return totals


def compute_report_totals(report_id: str, receipts: list[Receipt]) -> ReportTotals:
    return ReportTotals(
        report_id=report_id,
        totals=totals_by_currency(receipts),
        receipt_count=len(receipts),
    )


def build_export_payload(view: ReportView) -> dict[str, Any]:
    """Data handed to export collaborators; totals come from the engine, never re-derived."""
    report = view.report
    return {
        "report_id": report.report_id,
        "title": report.title,
        "status": report.status.value,
        "currency": report.currency,
        "start_date": report.start_date.isoformat() if report.start_date else None,
        "end_date": report.end_date.isoformat() if report.end_date else None,
        "approver_email": report.approver_email,
        "created_at": report.created_at,
        "submitted_at": report.submitted_at,
        "generated_at": utc_now(),
        "receipt_count": view.totals.receipt_count,
        "totals": {code: str(amount) for code, amount in view.totals.totals.items()},
        "receipts": [
            {
                "receipt_id": r.receipt_id,
                "merchant": r.merchant,
                "spent_on": r.spent_on.isoformat() if r.spent_on else None,
                "amount": str(r.amount) if r.amount is not None else None,
                "currency": r.currency,
                "category": r.category,
                "note": r.note,
                "status": r.status.value,
            }
            for r in view.receipts
        ],
    }


@dataclass(frozen=True)
class SubmissionSnapshot:
    report_id: str
    path: Path
    payload: dict[str, Any]


@dataclass
class SubmissionSnapshotStore:
    base_dir: Path

    def save_snapshot(self, view: ReportView) -> SubmissionSnapshot:
        payload = build_export_payload(view)
        report_dir = self.base_dir / "exports" / sanitize_identifier(view.report.report_id)
        report_dir.mkdir(parents=True, exist_ok=True)
        file_path = report_dir / f"{datetime.now(timezone.utc).strftime(FILE_TS)}.json"
        # Immutable write: fail if the exact snapshot file already exists.
        with file_path.open("x", encoding="utf-8") as f:
            json.dump(payload, f, indent=2, ensure_ascii=False)
        logger.info("Wrote submission snapshot for report %s to %s", view.report.report_id, file_path)
        return SubmissionSnapshot(report_id=view.report.report_id, path=file_path, payload=payload)


def utc_now() -> str:
    return datetime.now(timezone.utc).strftime(ISO_TS)


def new_id() -> str:
    return str(uuid4())


def sanitize_identifier(value: str) -> str:
    safe = re.sub(r"[^A-Za-z0-9_-]", "_", value)
    return safe.strip("_") or "report"
