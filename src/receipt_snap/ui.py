from __future__ import annotations

from html import escape

from .currency import format_amount, format_breakdown
from .models import ExtractionStatus, ReportView


def render_report_summary(view: ReportView) -> str:
    report = view.report
    totals = view.totals
    pending = [r for r in view.receipts if r.status is not ExtractionStatus.CONFIRMED]

    header = (
        f'<section class="report-summary {escape(report.status.value)}">'
        f"<h2>{escape(report.title)}</h2>"
        f"<p>Status: {escape(report.status.display_name)}</p>"
        f"<p>Receipts: {totals.receipt_count}</p>"
        f"<p>Total: {escape(format_breakdown(totals.totals))}</p>"
    )
    if not pending:
        return header + "</section>"

    items = "".join(
        f"<li>{escape(r.merchant or 'Unknown merchant')} ({escape(format_amount(r.amount, r.currency))}): "
        f"{escape(r.status.display_name)}</li>"
        for r in pending
    )
    return header + "<p>Review these receipts before submitting the report.</p>" f"<ul>{items}</ul></section>"
