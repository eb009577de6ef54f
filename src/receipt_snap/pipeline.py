"""Receipt extraction pipeline.

This module composes the field extractors into a single extraction step:
- receives raw recognized text (and optional block geometry) from an OCR provider
- extracts merchant, date, amount and currency
- classifies the merchant into an expense category
- scores how complete the extraction is, for human review
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Optional, Protocol, Sequence, Union

from .classification import CategoryClassifier
from .errors import ImageUnreadableError
from .extraction import detect_currency, extract_amount, extract_date, extract_merchant, normalize
from .models import ExtractionResult, OcrOutput, TextBlock

logger = logging.getLogger(__name__)

MERCHANT_WEIGHT = 0.3
DATE_WEIGHT = 0.3
AMOUNT_WEIGHT = 0.4


# -----------------------------
# OCR provider abstraction
# -----------------------------


class OCRProvider(Protocol):
    """Text recognition collaborator.

    Implementations raise ``ImageUnreadableError`` for images they cannot read.
    """

    def recognize(self, image_ref: str) -> OcrOutput:
        ...


class StaticOCRProvider:
    """Provider returning fixed text, useful for tests and local development."""

    def __init__(self, text: str, blocks: Sequence[str] = ()):
        self._output = OcrOutput(full_text=text, blocks=tuple(TextBlock(text=b) for b in blocks))

    def recognize(self, image_ref: str) -> OcrOutput:
        _ = image_ref
        return self._output


# -----------------------------
# Pipeline
# -----------------------------


def score_confidence(merchant: Optional[str], spent_on, amount: Optional[Decimal]) -> float:
    score = 0.0
    if merchant:
        score += MERCHANT_WEIGHT
    if spent_on is not None:
        score += DATE_WEIGHT
    if amount is not None and amount > 0:
        score += AMOUNT_WEIGHT
    return round(min(score, 1.0), 2)


class ReceiptPipeline:
    """Coordinates OCR, field extraction and classification."""

    def __init__(
        self,
        ocr_provider: Optional[OCRProvider] = None,
        classifier: Optional[CategoryClassifier] = None,
    ) -> None:
        self.ocr_provider = ocr_provider
        self.classifier = classifier or CategoryClassifier()

    def extract(
        self,
        raw_text: Optional[str],
        blocks: Optional[Sequence[Union[TextBlock, str]]] = None,
    ) -> ExtractionResult:
        normalized = normalize(raw_text, blocks)
        if normalized.is_empty:
            return ExtractionResult(raw_text=normalized.text)

        merchant = extract_merchant(normalized)
        spent_on = extract_date(normalized.text)
        amount = extract_amount(normalized.text)
        currency = detect_currency(normalized.text)

        result = ExtractionResult(
            raw_text=normalized.text,
            merchant=merchant,
            spent_on=spent_on,
            amount=amount,
            currency=currency,
            category=self.classifier.classify(merchant),
            confidence=score_confidence(merchant, spent_on, amount),
        )
        logger.debug(
            "Extracted merchant=%r date=%s amount=%s currency=%s confidence=%.2f",
            result.merchant,
            result.spent_on,
            result.amount,
            result.currency,
            result.confidence,
        )
        return result

    def process_image(self, image_ref: str) -> ExtractionResult:
        if self.ocr_provider is None:
            raise RuntimeError("ReceiptPipeline has no OCR provider configured")
        try:
            output = self.ocr_provider.recognize(image_ref)
        except ImageUnreadableError as exc:
            logger.warning("OCR could not read %s: %s", image_ref, exc)
            return ExtractionResult.empty()
        except Exception:
            # Any OCR engine failure leaves the receipt for manual entry.
            logger.warning("OCR failed for %s", image_ref, exc_info=True)
            return ExtractionResult.empty()
        return self.extract(output.full_text, output.blocks)
