from __future__ import annotations

import logging
import sqlite3
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Optional, Sequence, Union

from receipt_snap.classification import CATEGORIES
from receipt_snap.config import Settings
from receipt_snap.core import SubmissionSnapshotStore, compute_report_totals, new_id, utc_now
from receipt_snap.db import atomic
from receipt_snap.errors import EmptyReportError, InvalidStateError, NotFoundError
from receipt_snap.models import (
    ExtractionResult,
    ExtractionStatus,
    Receipt,
    Report,
    ReportStatus,
    ReportTotals,
    ReportView,
    TextBlock,
)
from receipt_snap.pipeline import ReceiptPipeline
from receipt_snap.repositories import ReceiptRepository, ReportRepository

logger = logging.getLogger(__name__)

EDITABLE_RECEIPT_FIELDS = {"merchant", "spent_on", "amount", "currency", "category", "note", "image_ref"}
EDITABLE_REPORT_FIELDS = {"title", "currency", "start_date", "end_date", "approver_email", "comment"}


def _validate_receipt_fields(fields: dict[str, Any]) -> dict[str, Any]:
    invalid = set(fields) - EDITABLE_RECEIPT_FIELDS
    if invalid:
        raise ValueError(f"Receipt fields cannot be edited: {sorted(invalid)}")
    cleaned = dict(fields)
    if cleaned.get("amount") is not None:
        try:
            amount = Decimal(str(cleaned["amount"]))
        except InvalidOperation as exc:
            raise ValueError(f"Receipt amount is not a number: {cleaned['amount']!r}") from exc
        if not amount.is_finite() or amount < 0:
            raise ValueError(f"Receipt amount must be a non-negative number, got {cleaned['amount']}")
        cleaned["amount"] = amount
    if cleaned.get("category") is not None and cleaned["category"] not in CATEGORIES:
        raise ValueError(f"Unknown receipt category {cleaned['category']!r}; expected one of {list(CATEGORIES)}")
    if cleaned.get("currency"):
        cleaned["currency"] = str(cleaned["currency"]).strip().upper()
    return cleaned


class LifecycleService:
    """Owns receipt/report state transitions and report membership.

    Each mutating call runs in one store transaction so the state check and
    the write cannot interleave with a concurrent submit.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        settings: Optional[Settings] = None,
        snapshots: Optional[SubmissionSnapshotStore] = None,
    ):
        self.conn = conn
        self.settings = settings or Settings()
        self.snapshots = snapshots
        self.receipts = ReceiptRepository(conn)
        self.reports = ReportRepository(conn)

    # -- lookups -----------------------------------------------------------

    def get_receipt(self, receipt_id: str) -> Receipt:
        receipt = self.receipts.get_by_id(receipt_id)
        if receipt is None:
            raise NotFoundError("Receipt", receipt_id)
        return receipt

    def get_report_record(self, report_id: str) -> Report:
        report = self.reports.get_by_id(report_id)
        if report is None:
            raise NotFoundError("Report", report_id)
        return report

    def get_report(self, report_id: str) -> ReportView:
        report = self.get_report_record(report_id)
        members = self.receipts.list_by_report(report_id)
        return ReportView(report=report, receipts=members, totals=compute_report_totals(report_id, members))

    def list_receipts(
        self,
        status: Optional[ExtractionStatus] = None,
        report_id: Optional[str] = None,
        search: Optional[str] = None,
    ) -> list[Receipt]:
        return self.receipts.find(status=status, report_id=report_id, search=search)

    def available_receipts(self) -> list[Receipt]:
        return self.receipts.find(status=ExtractionStatus.CONFIRMED, unlinked=True)

    def list_reports(self, status: Optional[ReportStatus] = None) -> list[Report]:
        return self.reports.find(status=status)

    def compute_totals(self, report_id: str) -> ReportTotals:
        self.get_report_record(report_id)
        return compute_report_totals(report_id, self.receipts.list_by_report(report_id))

    # -- receipts ----------------------------------------------------------

    def _ensure_receipt_editable(self, receipt: Receipt) -> None:
        if receipt.report_id is None:
            return
        owner = self.get_report_record(receipt.report_id)
        if not owner.status.is_editable:
            raise InvalidStateError(
                f"Receipt {receipt.receipt_id} belongs to {owner.status.value} report {owner.report_id} and is read-only"
            )

    def capture_receipt(self, image_ref: str) -> Receipt:
        receipt = Receipt(receipt_id=new_id(), created_at=utc_now(), image_ref=image_ref)
        with atomic(self.conn):
            self.receipts.create(receipt)
        logger.info("Captured receipt %s", receipt.receipt_id)
        return receipt

    def create_manual_receipt(
        self,
        merchant: Optional[str] = None,
        spent_on: Optional[date] = None,
        amount: Optional[Decimal] = None,
        currency: Optional[str] = None,
        category: Optional[str] = None,
        note: Optional[str] = None,
        image_ref: str = "",
    ) -> Receipt:
        fields = _validate_receipt_fields(
            {
                "merchant": merchant,
                "spent_on": spent_on,
                "amount": amount,
                "currency": currency or self.settings.default_currency,
                "category": category,
                "note": note,
                "image_ref": image_ref,
            }
        )
        receipt = Receipt(
            receipt_id=new_id(),
            created_at=utc_now(),
            status=ExtractionStatus.CONFIRMED,
            **fields,
        )
        with atomic(self.conn):
            self.receipts.create(receipt)
        logger.info("Created manual receipt %s", receipt.receipt_id)
        return receipt

    def apply_extraction(self, receipt_id: str, result: ExtractionResult) -> Receipt:
        """Copy extracted fields onto a receipt and queue it for confirmation."""
        with atomic(self.conn):
            receipt = self.get_receipt(receipt_id)
            self._ensure_receipt_editable(receipt)
            if receipt.status is ExtractionStatus.CONFIRMED:
                raise InvalidStateError(f"Receipt {receipt_id} is already confirmed")

            currency = result.currency
            if currency is None and result.amount is not None:
                currency = self.settings.default_currency
            self.receipts.update_fields(
                receipt_id,
                {
                    "merchant": result.merchant,
                    "spent_on": result.spent_on,
                    "amount": result.amount,
                    "currency": currency,
                    "category": result.category,
                    "confidence": result.confidence,
                    "raw_text": result.raw_text,
                    "status": ExtractionStatus.NEEDS_CONFIRMATION,
                },
            )
        logger.info("Receipt %s extracted with confidence %.2f", receipt_id, result.confidence)
        return self.get_receipt(receipt_id)

    def confirm_receipt(self, receipt_id: str, **corrections: Any) -> Receipt:
        fields = _validate_receipt_fields(corrections)
        with atomic(self.conn):
            receipt = self.get_receipt(receipt_id)
            self._ensure_receipt_editable(receipt)
            if receipt.status is ExtractionStatus.PENDING:
                raise InvalidStateError(f"Receipt {receipt_id} has not been extracted yet")
            fields["status"] = ExtractionStatus.CONFIRMED
            self.receipts.update_fields(receipt_id, fields)
        logger.info("Confirmed receipt %s", receipt_id)
        return self.get_receipt(receipt_id)

    def update_receipt(self, receipt_id: str, **changes: Any) -> Receipt:
        fields = _validate_receipt_fields(changes)
        with atomic(self.conn):
            receipt = self.get_receipt(receipt_id)
            self._ensure_receipt_editable(receipt)
            self.receipts.update_fields(receipt_id, fields)
        return self.get_receipt(receipt_id)

    def delete_receipt(self, receipt_id: str) -> None:
        with atomic(self.conn):
            receipt = self.get_receipt(receipt_id)
            self._ensure_receipt_editable(receipt)
            self.receipts.delete(receipt_id)
        logger.info("Deleted receipt %s", receipt_id)

    # -- reports -----------------------------------------------------------

    def _get_draft_report(self, report_id: str, action: str) -> Report:
        report = self.get_report_record(report_id)
        if not report.status.is_editable:
            raise InvalidStateError(f"Cannot {action}: report {report_id} is {report.status.value}")
        return report

    def create_report(
        self,
        title: str,
        currency: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        approver_email: Optional[str] = None,
        receipt_ids: Iterable[str] = (),
    ) -> Report:
        if not title or not title.strip():
            raise ValueError("Report title is required")
        if start_date and end_date and end_date < start_date:
            raise ValueError("Report end_date must not be before start_date")
        report = Report(
            report_id=new_id(),
            title=title.strip(),
            currency=(currency or self.settings.default_currency).upper(),
            created_at=utc_now(),
            start_date=start_date,
            end_date=end_date,
            approver_email=approver_email,
        )
        with atomic(self.conn):
            self.reports.create(report)
            for receipt_id in receipt_ids:
                self._link(receipt_id, report.report_id)
        logger.info("Created report %s", report.report_id)
        return report

    def update_report(self, report_id: str, **changes: Any) -> Report:
        invalid = set(changes) - EDITABLE_REPORT_FIELDS
        if invalid:
            raise ValueError(f"Report fields cannot be edited: {sorted(invalid)}")
        if "currency" in changes and changes["currency"]:
            changes["currency"] = str(changes["currency"]).upper()
        with atomic(self.conn):
            self._get_draft_report(report_id, "edit report")
            self.reports.update_fields(report_id, changes)
        return self.get_report_record(report_id)

    def _link(self, receipt_id: str, report_id: str) -> bool:
        self._get_draft_report(report_id, "link receipt")
        receipt = self.get_receipt(receipt_id)
        if receipt.report_id == report_id:
            return False
        if receipt.report_id is not None:
            raise InvalidStateError(
                f"Receipt {receipt_id} is already linked to report {receipt.report_id}; unlink it first"
            )
        self.receipts.update_fields(receipt_id, {"report_id": report_id})
        return True

    def link(self, receipt_id: str, report_id: str) -> ReportTotals:
        """Link a receipt to a draft report and return the report's fresh totals.

        Re-linking to the same report changes nothing.
        """
        with atomic(self.conn):
            changed = self._link(receipt_id, report_id)
            totals = compute_report_totals(report_id, self.receipts.list_by_report(report_id))
        if changed:
            logger.info("Linked receipt %s to report %s", receipt_id, report_id)
        return totals

    def unlink(self, receipt_id: str) -> Optional[ReportTotals]:
        """Detach a receipt from its draft report; returns that report's fresh totals."""
        with atomic(self.conn):
            receipt = self.get_receipt(receipt_id)
            if receipt.report_id is None:
                return None
            report_id = receipt.report_id
            self._get_draft_report(report_id, "unlink receipt")
            self.receipts.update_fields(receipt_id, {"report_id": None})
            totals = compute_report_totals(report_id, self.receipts.list_by_report(report_id))
        logger.info("Unlinked receipt %s from report %s", receipt_id, report_id)
        return totals

    def submit(self, report_id: str) -> ReportView:
        with atomic(self.conn):
            self._get_draft_report(report_id, "submit")
            if not self.settings.allow_empty_submit and not self.receipts.list_by_report(report_id):
                raise EmptyReportError(f"Report {report_id} has no receipts")
            self.reports.update_fields(
                report_id, {"status": ReportStatus.SUBMITTED, "submitted_at": utc_now()}
            )
            view = self.get_report(report_id)
            if self.snapshots is not None:
                self.snapshots.save_snapshot(view)
        logger.info("Submitted report %s with %d receipts", report_id, view.totals.receipt_count)
        return view

    def delete_report(self, report_id: str) -> int:
        """Unlink every member, then remove the draft report. Returns the unlinked count."""
        with atomic(self.conn):
            self._get_draft_report(report_id, "delete report")
            unlinked = self.receipts.unlink_all(report_id)
            self.reports.delete(report_id)
        logger.info("Deleted report %s, unlinked %d receipts", report_id, unlinked)
        return unlinked


class ReceiptIntakeService:
    """Moves captured receipts through extraction into review."""

    def __init__(self, lifecycle: LifecycleService, pipeline: ReceiptPipeline):
        self.lifecycle = lifecycle
        self.pipeline = pipeline

    def scan(self, image_ref: str) -> Receipt:
        receipt = self.lifecycle.capture_receipt(image_ref)
        result = self.pipeline.process_image(image_ref)
        return self.lifecycle.apply_extraction(receipt.receipt_id, result)

    def extract_text(
        self,
        receipt_id: str,
        raw_text: Optional[str],
        blocks: Optional[Sequence[Union[TextBlock, str]]] = None,
    ) -> Receipt:
        result = self.pipeline.extract(raw_text, blocks)
        return self.lifecycle.apply_extraction(receipt_id, result)
