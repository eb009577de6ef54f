from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Any

from openpyxl import Workbook, load_workbook
from openpyxl.styles import Font
from openpyxl.worksheet.worksheet import Worksheet

from .core import build_export_payload
from .models import ReportView

RECEIPT_COLUMNS = ("Merchant", "Date", "Amount", "Currency", "Category", "Note")


@dataclass
class ReportWorkbookExporter:
    """Write a report, its receipts and its per-currency totals to an .xlsx workbook."""

    sheet_name: str = "Expense Report"

    def generate_export(self, view: ReportView, output_path: Path | str) -> Path:
        payload = build_export_payload(view)
        workbook = Workbook()
        worksheet = workbook.active
        worksheet.title = self.sheet_name

        self._write_summary(worksheet, payload)
        worksheet.append([])
        self._write_receipts(worksheet, payload["receipts"])
        worksheet.append([])
        self._write_totals(worksheet, payload["totals"])

        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        workbook.save(output_path)
        return output_path

    def _write_summary(self, sheet: Worksheet, payload: dict[str, Any]) -> None:
        sheet.append(["Expense Report"])
        sheet["A1"].font = Font(bold=True, size=14)
        rows = [
            ("Report ID", payload["report_id"]),
            ("Title", payload["title"]),
            ("Status", payload["status"]),
            ("Currency", payload["currency"]),
            ("Start", payload["start_date"]),
            ("End", payload["end_date"]),
            ("Approver", payload["approver_email"]),
            ("Receipt count", payload["receipt_count"]),
        ]
        for label, value in rows:
            sheet.append([label, value])

    def _write_receipts(self, sheet: Worksheet, receipts: list[dict[str, Any]]) -> None:
        sheet.append(["Receipts"])
        sheet.append(list(RECEIPT_COLUMNS))
        for receipt in receipts:
            sheet.append(
                [
                    receipt["merchant"] or "Unknown",
                    receipt["spent_on"],
                    float(Decimal(receipt["amount"])) if receipt["amount"] is not None else None,
                    receipt["currency"],
                    receipt["category"],
                    receipt["note"],
                ]
            )

    def _write_totals(self, sheet: Worksheet, totals: dict[str, str]) -> None:
        sheet.append(["Totals"])
        for code, amount in totals.items():
            sheet.append([f"Total {code}", float(Decimal(amount)), code])


def read_rows(path: Path | str, sheet_name: str) -> list[tuple[Any, ...]]:
    """Utility for validation/testing: read all row values from an exported workbook."""
    workbook = load_workbook(path)
    return [tuple(row) for row in workbook[sheet_name].iter_rows(values_only=True)]
