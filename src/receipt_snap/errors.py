from __future__ import annotations


class ReceiptSnapError(Exception):
    """Base class for errors surfaced to callers of the lifecycle engine."""


class NotFoundError(ReceiptSnapError, LookupError):
    """Raised when a receipt or report id is unknown."""

    def __init__(self, entity: str, entity_id: str):
        super().__init__(f"{entity} not found: {entity_id}")
        self.entity = entity
        self.entity_id = entity_id


class InvalidStateError(ReceiptSnapError):
    """Raised when an operation would violate the receipt/report state machine."""


class EmptyReportError(ReceiptSnapError):
    """Raised when submitting a report that has no linked receipts."""


class ImageUnreadableError(ReceiptSnapError):
    """Reported by an OCR collaborator that could not read the given image."""
