from datetime import date
from decimal import Decimal
import logging

import pytest

from receipt_snap.errors import ImageUnreadableError
from receipt_snap.models import ExtractionResult, OcrOutput
from receipt_snap.pipeline import ReceiptPipeline, StaticOCRProvider, score_confidence


class UnreadableProvider:
    def recognize(self, image_ref: str) -> OcrOutput:
        raise ImageUnreadableError(f"cannot decode {image_ref}")


class MissingFileProvider:
    def recognize(self, image_ref: str) -> OcrOutput:
        raise FileNotFoundError(image_ref)


class CrashingProvider:
    def recognize(self, image_ref: str) -> OcrOutput:
        raise RuntimeError("engine crashed")


def test_starbucks_receipt_extracts_every_field():
    result = ReceiptPipeline().extract("STARBUCKS\n03 Jan 2024\nTOTAL $12.50")

    assert result.merchant == "STARBUCKS"
    assert result.spent_on == date(2024, 1, 3)
    assert result.amount == Decimal("12.50")
    assert result.currency == "USD"
    assert result.category == "Food & Drink"
    assert result.confidence == 1.0


def test_partial_extraction_scores_lower_confidence():
    result = ReceiptPipeline().extract("HOTEL ALPINA\nRoom 4")

    assert result.merchant == "HOTEL ALPINA"
    assert result.spent_on is None
    assert result.amount == Decimal("4")
    assert result.category == "Lodging"
    assert result.confidence == 0.7


@pytest.mark.parametrize("raw_text", [None, "", "   \n  "])
def test_empty_text_yields_empty_result(raw_text):
    result = ReceiptPipeline().extract(raw_text)

    assert result.merchant is None
    assert result.amount is None
    assert result.spent_on is None
    assert result.category == "Other"
    assert result.confidence == 0.0


def test_blocks_take_precedence_for_merchant():
    result = ReceiptPipeline().extract("Thank you\nTOTAL 9.00", blocks=["Blue Bottle Coffee", "Thank you"])
    assert result.merchant == "Blue Bottle Coffee"
    assert result.category == "Food & Drink"


def test_zero_amount_does_not_count_towards_confidence():
    assert score_confidence("Shop", date(2024, 1, 1), Decimal("0")) == 0.6
    assert score_confidence(None, None, None) == 0.0


def test_process_image_uses_ocr_provider():
    provider = StaticOCRProvider("Uber\n2024-02-01\nTotal 23,40 EUR", blocks=["Uber"])
    result = ReceiptPipeline(ocr_provider=provider).process_image("uber.png")

    assert result.merchant == "Uber"
    assert result.spent_on == date(2024, 2, 1)
    assert result.amount == Decimal("23.40")
    assert result.currency == "EUR"
    assert result.category == "Transportation"


@pytest.mark.parametrize("provider", [UnreadableProvider(), MissingFileProvider(), CrashingProvider()])
def test_ocr_failure_yields_empty_result(provider, caplog):
    with caplog.at_level(logging.WARNING, logger="receipt_snap.pipeline"):
        result = ReceiptPipeline(ocr_provider=provider).process_image("blurry.jpg")

    assert result == ExtractionResult.empty()
    assert "blurry.jpg" in caplog.text


def test_process_image_requires_provider():
    with pytest.raises(RuntimeError):
        ReceiptPipeline().process_image("receipt.png")


def test_dot_leader_total_beats_the_year():
    result = ReceiptPipeline().extract("STARBUCKS\n03 Jan 2024\nTOTAL.....12.50")
    assert result.amount == Decimal("12.50")
    assert result.confidence == 1.0
