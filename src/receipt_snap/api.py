from __future__ import annotations

from datetime import date
from decimal import Decimal
import logging
from pathlib import Path
import sqlite3
import threading
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, HTMLResponse, JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from .config import Settings, load_settings
from .core import SubmissionSnapshotStore, sanitize_identifier
from .currency import RateTable, format_total
from .db import apply_migrations, connect_sqlite
from .errors import EmptyReportError, InvalidStateError, NotFoundError
from .export import ReportWorkbookExporter
from .logging_setup import setup_logging
from .models import ExtractionStatus, ReportStatus, ReportTotals, ReportView
from .pipeline import OCRProvider, ReceiptPipeline
from .services import LifecycleService, ReceiptIntakeService
from .ui import render_report_summary

logger = logging.getLogger(__name__)

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


class ExtractRequest(BaseModel):
    raw_text: Optional[str] = None
    blocks: Optional[list[str]] = None


class ExtractionOut(BaseModel):
    merchant: Optional[str] = None
    spent_on: Optional[date] = None
    amount: Optional[Decimal] = None
    currency: Optional[str] = None
    category: str
    confidence: float


class CaptureRequest(BaseModel):
    image_ref: str = ""


class ReceiptFields(BaseModel):
    merchant: Optional[str] = None
    spent_on: Optional[date] = None
    amount: Optional[Decimal] = Field(default=None, ge=0)
    currency: Optional[str] = None
    category: Optional[str] = None
    note: Optional[str] = None


class ManualReceiptRequest(ReceiptFields):
    image_ref: str = ""


class ReceiptOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    receipt_id: str
    created_at: str
    image_ref: str
    merchant: Optional[str]
    spent_on: Optional[date]
    amount: Optional[Decimal]
    currency: Optional[str]
    category: Optional[str]
    note: Optional[str]
    status: ExtractionStatus
    report_id: Optional[str]
    confidence: Optional[float]


class ReportCreate(BaseModel):
    title: str
    currency: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    approver_email: Optional[str] = None
    receipt_ids: list[str] = []


class ReportOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    report_id: str
    title: str
    currency: str
    status: ReportStatus
    created_at: str
    start_date: Optional[date]
    end_date: Optional[date]
    approver_email: Optional[str]
    comment: Optional[str]
    submitted_at: Optional[str]


class TotalsOut(BaseModel):
    report_id: str
    totals: dict[str, Decimal]
    receipt_count: int
    single_total: Optional[Decimal] = None
    display_total: Optional[str] = None
    converted_total: Optional[Decimal] = None


class ReportDetailOut(BaseModel):
    report: ReportOut
    receipts: list[ReceiptOut]
    totals: TotalsOut


class UnlinkOut(BaseModel):
    receipt_id: str
    totals: Optional[TotalsOut] = None


def create_app(
    settings: Optional[Settings] = None,
    conn: Optional[sqlite3.Connection] = None,
    ocr_provider: Optional[OCRProvider] = None,
) -> FastAPI:
    settings = settings or load_settings()
    setup_logging(settings)

    if conn is None:
        conn = connect_sqlite(settings.database_path, check_same_thread=False)
    apply_migrations(conn)

    snapshots = SubmissionSnapshotStore(settings.snapshot_dir) if settings.snapshot_dir else None
    lifecycle = LifecycleService(conn, settings=settings, snapshots=snapshots)
    pipeline = ReceiptPipeline(ocr_provider=ocr_provider)
    intake = ReceiptIntakeService(lifecycle, pipeline)
    rates = RateTable.with_overrides(settings.rates)
    exporter = ReportWorkbookExporter()
    export_root = (settings.snapshot_dir or Path(".")) / "exports"
    # Handlers run in a threadpool over one shared connection.
    lock = threading.Lock()

    app = FastAPI(title="Receipt Snap API")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(NotFoundError)
    async def not_found(request: Request, exc: NotFoundError):
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(InvalidStateError)
    async def invalid_state(request: Request, exc: InvalidStateError):
        return JSONResponse(status_code=409, content={"detail": str(exc)})

    @app.exception_handler(EmptyReportError)
    async def empty_report(request: Request, exc: EmptyReportError):
        return JSONResponse(status_code=422, content={"detail": str(exc)})

    @app.exception_handler(ValueError)
    async def invalid_value(request: Request, exc: ValueError):
        return JSONResponse(status_code=422, content={"detail": str(exc)})

    def totals_out(totals: ReportTotals, report_currency: str) -> TotalsOut:
        return TotalsOut(
            report_id=totals.report_id,
            totals=totals.totals,
            receipt_count=totals.receipt_count,
            single_total=totals.single_total,
            display_total=format_total(totals.totals, report_currency),
            converted_total=totals.converted_total(rates, report_currency),
        )

    def detail_out(view: ReportView) -> ReportDetailOut:
        return ReportDetailOut(
            report=ReportOut.model_validate(view.report),
            receipts=[ReceiptOut.model_validate(r) for r in view.receipts],
            totals=totals_out(view.totals, view.report.currency),
        )

    @app.get("/health")
    def health():
        return {"status": "ok"}

    @app.post("/extract", response_model=ExtractionOut)
    def extract(payload: ExtractRequest):
        result = pipeline.extract(payload.raw_text, payload.blocks)
        return ExtractionOut(
            merchant=result.merchant,
            spent_on=result.spent_on,
            amount=result.amount,
            currency=result.currency,
            category=result.category,
            confidence=result.confidence,
        )

    @app.post("/receipts", response_model=ReceiptOut, status_code=201)
    def capture_receipt(payload: CaptureRequest):
        with lock:
            if ocr_provider is not None:
                receipt = intake.scan(payload.image_ref)
            else:
                receipt = lifecycle.capture_receipt(payload.image_ref)
        return ReceiptOut.model_validate(receipt)

    @app.post("/receipts/manual", response_model=ReceiptOut, status_code=201)
    def create_manual_receipt(payload: ManualReceiptRequest):
        with lock:
            receipt = lifecycle.create_manual_receipt(**payload.model_dump())
        return ReceiptOut.model_validate(receipt)

    @app.post("/receipts/{receipt_id}/extraction", response_model=ReceiptOut)
    def extract_receipt(receipt_id: str, payload: ExtractRequest):
        with lock:
            receipt = intake.extract_text(receipt_id, payload.raw_text, payload.blocks)
        return ReceiptOut.model_validate(receipt)

    @app.post("/receipts/{receipt_id}/confirm", response_model=ReceiptOut)
    def confirm_receipt(receipt_id: str, payload: Optional[ReceiptFields] = None):
        corrections = payload.model_dump(exclude_unset=True) if payload else {}
        with lock:
            receipt = lifecycle.confirm_receipt(receipt_id, **corrections)
        return ReceiptOut.model_validate(receipt)

    @app.patch("/receipts/{receipt_id}", response_model=ReceiptOut)
    def update_receipt(receipt_id: str, payload: ReceiptFields):
        with lock:
            receipt = lifecycle.update_receipt(receipt_id, **payload.model_dump(exclude_unset=True))
        return ReceiptOut.model_validate(receipt)

    @app.get("/receipts", response_model=list[ReceiptOut])
    def list_receipts(
        status: Optional[ExtractionStatus] = None,
        report_id: Optional[str] = None,
        search: Optional[str] = None,
        available: bool = False,
    ):
        with lock:
            if available:
                receipts = lifecycle.available_receipts()
            else:
                receipts = lifecycle.list_receipts(status=status, report_id=report_id, search=search)
        return [ReceiptOut.model_validate(r) for r in receipts]

    @app.get("/receipts/{receipt_id}", response_model=ReceiptOut)
    def get_receipt(receipt_id: str):
        with lock:
            receipt = lifecycle.get_receipt(receipt_id)
        return ReceiptOut.model_validate(receipt)

    @app.delete("/receipts/{receipt_id}", status_code=204)
    def delete_receipt(receipt_id: str):
        with lock:
            lifecycle.delete_receipt(receipt_id)

    @app.delete("/receipts/{receipt_id}/report", response_model=UnlinkOut)
    def unlink_receipt(receipt_id: str):
        with lock:
            totals = lifecycle.unlink(receipt_id)
            if totals is None:
                return UnlinkOut(receipt_id=receipt_id)
            report = lifecycle.get_report_record(totals.report_id)
        return UnlinkOut(receipt_id=receipt_id, totals=totals_out(totals, report.currency))

    @app.post("/reports", response_model=ReportOut, status_code=201)
    def create_report(payload: ReportCreate):
        with lock:
            report = lifecycle.create_report(**payload.model_dump())
        return ReportOut.model_validate(report)

    @app.get("/reports", response_model=list[ReportOut])
    def list_reports(status: Optional[ReportStatus] = None):
        with lock:
            reports = lifecycle.list_reports(status=status)
        return [ReportOut.model_validate(r) for r in reports]

    @app.get("/reports/{report_id}", response_model=ReportDetailOut)
    def get_report(report_id: str):
        with lock:
            view = lifecycle.get_report(report_id)
        return detail_out(view)

    @app.get("/reports/{report_id}/summary", response_class=HTMLResponse)
    def report_summary(report_id: str):
        with lock:
            view = lifecycle.get_report(report_id)
        return render_report_summary(view)

    @app.get("/reports/{report_id}/totals", response_model=TotalsOut)
    def report_totals(report_id: str):
        with lock:
            report = lifecycle.get_report_record(report_id)
            totals = lifecycle.compute_totals(report_id)
        return totals_out(totals, report.currency)

    @app.put("/reports/{report_id}/receipts/{receipt_id}", response_model=TotalsOut)
    def link_receipt(report_id: str, receipt_id: str):
        with lock:
            report = lifecycle.get_report_record(report_id)
            totals = lifecycle.link(receipt_id, report_id)
        return totals_out(totals, report.currency)

    @app.post("/reports/{report_id}/submit", response_model=ReportDetailOut)
    def submit_report(report_id: str):
        with lock:
            view = lifecycle.submit(report_id)
        return detail_out(view)

    @app.delete("/reports/{report_id}")
    def delete_report(report_id: str):
        with lock:
            unlinked = lifecycle.delete_report(report_id)
        return {"report_id": report_id, "unlinked": unlinked}

    @app.get("/reports/{report_id}/export.xlsx")
    def export_report(report_id: str):
        with lock:
            view = lifecycle.get_report(report_id)
        filename = f"report-{sanitize_identifier(report_id)}.xlsx"
        export_path = exporter.generate_export(view, export_root / filename)
        logger.info("Exported report %s to %s", report_id, export_path)
        return FileResponse(export_path, media_type=XLSX_MEDIA_TYPE, filename=filename)

    return app
