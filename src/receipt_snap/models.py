from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional


class ExtractionStatus(str, Enum):
    PENDING = "pending"
    NEEDS_CONFIRMATION = "needs_confirmation"
    CONFIRMED = "confirmed"

    @property
    def display_name(self) -> str:
        return {
            ExtractionStatus.PENDING: "Processing",
            ExtractionStatus.NEEDS_CONFIRMATION: "Needs Review",
            ExtractionStatus.CONFIRMED: "Confirmed",
        }[self]


class ReportStatus(str, Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"

    @property
    def display_name(self) -> str:
        return self.value.capitalize()

    @property
    def is_editable(self) -> bool:
        return self is ReportStatus.DRAFT


@dataclass(frozen=True)
class TextBlock:
    text: str


@dataclass(frozen=True)
class OcrOutput:
    full_text: str
    blocks: tuple[TextBlock, ...] = ()


@dataclass(frozen=True)
class ExtractionResult:
    raw_text: str
    merchant: Optional[str] = None
    spent_on: Optional[date] = None
    amount: Optional[Decimal] = None
    currency: Optional[str] = None
    category: str = "Other"
    confidence: float = 0.0

    @classmethod
    def empty(cls) -> "ExtractionResult":
        return cls(raw_text="")


@dataclass(frozen=True)
class Receipt:
    receipt_id: str
    created_at: str
    image_ref: str = ""
    merchant: Optional[str] = None
    spent_on: Optional[date] = None
    amount: Optional[Decimal] = None
    currency: Optional[str] = None
    category: Optional[str] = None
    note: Optional[str] = None
    status: ExtractionStatus = ExtractionStatus.PENDING
    report_id: Optional[str] = None
    confidence: Optional[float] = None
    raw_text: Optional[str] = None

    @property
    def is_in_report(self) -> bool:
        return self.report_id is not None


@dataclass(frozen=True)
class Report:
    report_id: str
    title: str
    currency: str
    created_at: str
    status: ReportStatus = ReportStatus.DRAFT
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    approver_email: Optional[str] = None
    comment: Optional[str] = None
    submitted_at: Optional[str] = None


@dataclass(frozen=True)
class ReportTotals:
    """Per-currency totals derived from a report's current members.

    ``totals`` is the authoritative figure. ``single_total`` only exists as a
    display convenience when every counted receipt shares one currency.
    """

    report_id: str
    totals: dict[str, Decimal] = field(default_factory=dict)
    receipt_count: int = 0

    @property
    def single_total(self) -> Optional[Decimal]:
        if len(self.totals) != 1:
            return None
        return next(iter(self.totals.values()))

    @property
    def single_currency(self) -> Optional[str]:
        if len(self.totals) != 1:
            return None
        return next(iter(self.totals))

    def converted_total(self, rates, target: str) -> Decimal:
        return rates.convert_totals(self.totals, target)


@dataclass(frozen=True)
class ReportView:
    report: Report
    receipts: list[Receipt]
    totals: ReportTotals
