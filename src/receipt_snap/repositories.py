from __future__ import annotations

import sqlite3
from datetime import date
from decimal import Decimal
from typing import Any, Optional

from receipt_snap.core import utc_now
from receipt_snap.models import ExtractionStatus, Receipt, Report, ReportStatus


def _normalize_value(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, (ExtractionStatus, ReportStatus)):
        return value.value
    return value


def _parse_date(value: Optional[str]) -> Optional[date]:
    return date.fromisoformat(value) if value else None


def _receipt_from_row(row: sqlite3.Row) -> Receipt:
    return Receipt(
        receipt_id=row["id"],
        created_at=row["created_at"],
        image_ref=row["image_ref"],
        merchant=row["merchant"],
        spent_on=_parse_date(row["spent_on"]),
        amount=Decimal(row["amount"]) if row["amount"] is not None else None,
        currency=row["currency"],
        category=row["category"],
        note=row["note"],
        status=ExtractionStatus(row["status"]),
        report_id=row["report_id"],
        confidence=row["confidence"],
        raw_text=row["raw_text"],
    )


def _report_from_row(row: sqlite3.Row) -> Report:
    return Report(
        report_id=row["id"],
        title=row["title"],
        currency=row["currency"],
        created_at=row["created_at"],
        status=ReportStatus(row["status"]),
        start_date=_parse_date(row["start_date"]),
        end_date=_parse_date(row["end_date"]),
        approver_email=row["approver_email"],
        comment=row["comment"],
        submitted_at=row["submitted_at"],
    )


class ReceiptRepository:
    UPDATABLE_FIELDS = {
        "image_ref",
        "merchant",
        "spent_on",
        "amount",
        "currency",
        "category",
        "note",
        "status",
        "report_id",
        "confidence",
        "raw_text",
    }

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def create(self, receipt: Receipt) -> None:
        self.conn.execute(
            """
            INSERT INTO receipt(
                id, image_ref, merchant, spent_on, amount, currency, category, note,
                status, report_id, confidence, raw_text, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                receipt.receipt_id,
                receipt.image_ref,
                receipt.merchant,
                _normalize_value(receipt.spent_on),
                _normalize_value(receipt.amount),
                receipt.currency,
                receipt.category,
                receipt.note,
                receipt.status.value,
                receipt.report_id,
                receipt.confidence,
                receipt.raw_text,
                receipt.created_at,
            ),
        )

    def update_fields(self, receipt_id: str, fields: dict[str, Any]) -> None:
        if not fields:
            return
        invalid = set(fields) - self.UPDATABLE_FIELDS
        if invalid:
            raise ValueError(f"Invalid receipt fields: {sorted(invalid)}")

        assignments = ", ".join(f"{field} = ?" for field in fields)
        values = [_normalize_value(fields[field]) for field in fields]
        values.extend([utc_now(), receipt_id])
        self.conn.execute(f"UPDATE receipt SET {assignments}, updated_at = ? WHERE id = ?", values)

    def get_by_id(self, receipt_id: str) -> Optional[Receipt]:
        row = self.conn.execute("SELECT * FROM receipt WHERE id = ?", (receipt_id,)).fetchone()
        return _receipt_from_row(row) if row else None

    def find(
        self,
        status: Optional[ExtractionStatus] = None,
        report_id: Optional[str] = None,
        unlinked: bool = False,
        search: Optional[str] = None,
    ) -> list[Receipt]:
        clauses: list[str] = []
        params: list[Any] = []
        if status is not None:
            clauses.append("status = ?")
            params.append(_normalize_value(status))
        if report_id is not None:
            clauses.append("report_id = ?")
            params.append(report_id)
        if unlinked:
            clauses.append("report_id IS NULL")
        if search:
            pattern = f"%{search}%"
            clauses.append("(merchant LIKE ? OR category LIKE ? OR note LIKE ?)")
            params.extend([pattern, pattern, pattern])
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        rows = self.conn.execute(f"SELECT * FROM receipt {where} ORDER BY created_at, rowid", params).fetchall()
        return [_receipt_from_row(row) for row in rows]

    def list_by_report(self, report_id: str) -> list[Receipt]:
        return self.find(report_id=report_id)

    def unlink_all(self, report_id: str) -> int:
        cursor = self.conn.execute(
            "UPDATE receipt SET report_id = NULL, updated_at = ? WHERE report_id = ?",
            (utc_now(), report_id),
        )
        return cursor.rowcount

    def delete(self, receipt_id: str) -> None:
        self.conn.execute("DELETE FROM receipt WHERE id = ?", (receipt_id,))


class ReportRepository:
    UPDATABLE_FIELDS = {
        "title",
        "status",
        "currency",
        "start_date",
        "end_date",
        "approver_email",
        "comment",
        "submitted_at",
    }

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def create(self, report: Report) -> None:
        self.conn.execute(
            """
            INSERT INTO report(
                id, title, status, currency, start_date, end_date,
                approver_email, comment, created_at, submitted_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                report.report_id,
                report.title,
                report.status.value,
                report.currency,
                _normalize_value(report.start_date),
                _normalize_value(report.end_date),
                report.approver_email,
                report.comment,
                report.created_at,
                report.submitted_at,
            ),
        )

    def update_fields(self, report_id: str, fields: dict[str, Any]) -> None:
        if not fields:
            return
        invalid = set(fields) - self.UPDATABLE_FIELDS
        if invalid:
            raise ValueError(f"Invalid report fields: {sorted(invalid)}")

        assignments = ", ".join(f"{field} = ?" for field in fields)
        values = [_normalize_value(fields[field]) for field in fields]
        values.append(report_id)
        self.conn.execute(f"UPDATE report SET {assignments} WHERE id = ?", values)

    def get_by_id(self, report_id: str) -> Optional[Report]:
        row = self.conn.execute("SELECT * FROM report WHERE id = ?", (report_id,)).fetchone()
        return _report_from_row(row) if row else None

    def find(self, status: Optional[ReportStatus] = None) -> list[Report]:
        if status is None:
            rows = self.conn.execute("SELECT * FROM report ORDER BY created_at DESC, rowid DESC").fetchall()
        else:
            rows = self.conn.execute(
                "SELECT * FROM report WHERE status = ? ORDER BY created_at DESC, rowid DESC",
                (_normalize_value(status),),
            ).fetchall()
        return [_report_from_row(row) for row in rows]

    def delete(self, report_id: str) -> None:
        self.conn.execute("DELETE FROM report WHERE id = ?", (report_id,))
