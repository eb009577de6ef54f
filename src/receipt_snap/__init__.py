from .config import Settings, load_settings
from .core import SubmissionSnapshot, SubmissionSnapshotStore, build_export_payload
from .errors import EmptyReportError, ImageUnreadableError, InvalidStateError, NotFoundError, ReceiptSnapError
from .models import (
    ExtractionResult,
    ExtractionStatus,
    Receipt,
    Report,
    ReportStatus,
    ReportTotals,
    ReportView,
)
from .pipeline import ReceiptPipeline
from .services import LifecycleService, ReceiptIntakeService
from .ui import render_report_summary

__all__ = [
    "EmptyReportError",
    "ExtractionResult",
    "ExtractionStatus",
    "ImageUnreadableError",
    "InvalidStateError",
    "LifecycleService",
    "NotFoundError",
    "Receipt",
    "ReceiptIntakeService",
    "ReceiptPipeline",
    "ReceiptSnapError",
    "Report",
    "ReportStatus",
    "ReportTotals",
    "ReportView",
    "Settings",
    "SubmissionSnapshot",
    "SubmissionSnapshotStore",
    "build_export_payload",
    "load_settings",
    "render_report_summary",
]
