"""Field extraction from recognized receipt text.

The extractors in this module are pure functions over the normalized text:
- merchant: first plausible block from the top of the receipt
- date: first match in a fixed, ordered list of date formats
- amount: total-keyword anchor, falling back to the largest amount seen
- currency: first matching entry of an ordered signature table

None of them raise on unparseable input; a field that cannot be recovered is
returned as ``None``.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Callable, Optional, Sequence, Union

from .models import TextBlock

logger = logging.getLogger(__name__)


# -----------------------------
# Text normalization
# -----------------------------


@dataclass(frozen=True)
class NormalizedText:
    text: str
    lines: tuple[str, ...]
    blocks: tuple[str, ...]

    @property
    def is_empty(self) -> bool:
        return not self.lines


def normalize(
    raw_text: Optional[str],
    blocks: Optional[Sequence[Union[TextBlock, str]]] = None,
) -> NormalizedText:
    """Expose OCR output as flat text, trimmed lines and ordered blocks.

    Without OCR block geometry every non-empty line stands in for a block.
    """
    text = (raw_text or "").replace("\r\n", "\n").replace("\r", "\n")
    lines = tuple(line.strip() for line in text.split("\n") if line.strip())
    if blocks:
        block_texts = tuple(
            (block.text if isinstance(block, TextBlock) else str(block)).strip() for block in blocks
        )
    else:
        block_texts = lines
    return NormalizedText(text=text, lines=lines, blocks=block_texts)


# -----------------------------
# Dates
# -----------------------------


class DateFormat(str, Enum):
    NUMERIC_DAY_FIRST = "numeric_day_first"
    NUMERIC_YEAR_FIRST = "numeric_year_first"
    MONTH_NAME_FIRST = "month_name_first"
    DAY_MONTH_NAME = "day_month_name"


MONTHS = {
    "jan": 1,
    "feb": 2,
    "mar": 3,
    "apr": 4,
    "may": 5,
    "jun": 6,
    "jul": 7,
    "aug": 8,
    "sep": 9,
    "oct": 10,
    "nov": 11,
    "dec": 12,
}

_MONTH_NAME = (
    r"(jan(?:uary)?|feb(?:ruary)?|mar(?:ch)?|apr(?:il)?|may|june?|july?|aug(?:ust)?"
    r"|sep(?:t(?:ember)?)?|oct(?:ober)?|nov(?:ember)?|dec(?:ember)?)\b\.?"
)


def _build_date(year: int, month: int, day: int) -> Optional[date]:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def _parse_numeric_day_first(match: re.Match) -> Optional[date]:
    first, second, year = (int(group) for group in match.groups())
    # Day-first unless only the second component can be a day.
    if first <= 12 < second:
        day, month = second, first
    else:
        day, month = first, second
    return _build_date(year, month, day)


def _parse_numeric_year_first(match: re.Match) -> Optional[date]:
    year, month, day = (int(group) for group in match.groups())
    return _build_date(year, month, day)


def _parse_month_name_first(match: re.Match) -> Optional[date]:
    month_name, day, year = match.groups()
    return _build_date(int(year), MONTHS[month_name[:3].lower()], int(day))


def _parse_day_month_name(match: re.Match) -> Optional[date]:
    day, month_name, year = match.groups()
    return _build_date(int(year), MONTHS[month_name[:3].lower()], int(day))


DATE_FORMATS: list[tuple[DateFormat, re.Pattern, Callable[[re.Match], Optional[date]]]] = [
    (
        DateFormat.NUMERIC_DAY_FIRST,
        re.compile(r"(?<!\d)(\d{1,2})[/\-.](\d{1,2})[/\-.](\d{4})(?!\d)"),
        _parse_numeric_day_first,
    ),
    (
        DateFormat.NUMERIC_YEAR_FIRST,
        re.compile(r"(?<!\d)(\d{4})[/\-.](\d{1,2})[/\-.](\d{1,2})(?!\d)"),
        _parse_numeric_year_first,
    ),
    (
        DateFormat.MONTH_NAME_FIRST,
        re.compile(r"\b" + _MONTH_NAME + r"\s+(\d{1,2})(?:,\s*|\s+)(\d{4})(?!\d)", re.IGNORECASE),
        _parse_month_name_first,
    ),
    (
        DateFormat.DAY_MONTH_NAME,
        re.compile(r"(?<!\d)(\d{1,2})\s+" + _MONTH_NAME + r"\s+(\d{4})(?!\d)", re.IGNORECASE),
        _parse_day_month_name,
    ),
]


def extract_date(text: str) -> Optional[date]:
    """Return the date of the first matching format, or None.

    Only the first format that matches is parsed; an impossible calendar date
    in that match yields None rather than trying the remaining formats.
    """
    for date_format, pattern, parse in DATE_FORMATS:
        match = pattern.search(text)
        if match is None:
            continue
        parsed = parse(match)
        logger.debug("Date format %s matched %r -> %s", date_format.value, match.group(0), parsed)
        return parsed
    return None


# -----------------------------
# Currency
# -----------------------------


def _word(token: str) -> str:
    return rf"(?<![^\W\d_]){token}(?![^\W\d_])"


CURRENCY_SIGNATURES: list[tuple[str, re.Pattern]] = [
    ("RSD", re.compile("|".join([_word("RSD"), _word("РСД"), _word("din"), _word(r"динар\w*")]), re.IGNORECASE)),
    ("USD", re.compile("|".join([r"\$", _word("USD"), _word(r"US\s*Dollars?")]), re.IGNORECASE)),
    ("EUR", re.compile("|".join(["€", _word("EUR"), _word("Euros?")]), re.IGNORECASE)),
    ("GBP", re.compile("|".join(["£", _word("GBP"), _word("Pounds?")]), re.IGNORECASE)),
    ("INR", re.compile("|".join(["₹", _word("INR"), _word("Rupees?")]), re.IGNORECASE)),
    ("JPY", re.compile("|".join(["¥", _word("JPY"), _word("Yen")]), re.IGNORECASE)),
    ("CNY", re.compile("|".join([_word("CNY"), _word("Yuan"), _word("RMB")]), re.IGNORECASE)),
]


def detect_currency(text: str) -> Optional[str]:
    for code, signature in CURRENCY_SIGNATURES:
        if signature.search(text):
            return code
    return None


# -----------------------------
# Amounts
# -----------------------------


TOTAL_KEYWORDS = (
    "total",
    "ukupno",
    "suma",
    "subtotal",
    "amount",
    "due",
    "pay",
    "grand total",
    "net",
    "balance",
    "итого",
    "всего",
    "合計",
    "总计",
    "gesamt",
    "summe",
    "montant",
    "totale",
    "vrednost",
)

KEYWORD_WINDOW = 100

_KEYWORD_PATTERNS = [
    (keyword, re.compile(r"(?<![A-Za-z])" + re.escape(keyword), re.IGNORECASE)) for keyword in TOTAL_KEYWORDS
]

# A number touching a date/time separator or another digit is not an amount.
# Leader dots or commas count as separators only when a digit precedes them.
_AMOUNT_RE = re.compile(
    r"(?<!\d[.,])(?<![\d/\-])(?<!\d:)"
    r"(\d{1,3}(?:[,. \u00a0\u202f]\d{3})+(?:[,.]\d{1,2})?|\d+(?:[,.]\d{1,2})?)"
    r"(?![\d/:\-]|[.,]\d)"
)

_CURRENCY_SYMBOLS_RE = re.compile(r"[$€£¥₹\s]")
_DECIMAL_COMMA_RE = re.compile(r",\d{2}$")


def parse_amount(raw: str) -> Optional[Decimal]:
    """Parse an amount written with either decimal convention.

    ``1.234,56`` and ``1,234.56`` both give ``Decimal("1234.56")``.
    """
    cleaned = _CURRENCY_SYMBOLS_RE.sub("", raw)
    if _DECIMAL_COMMA_RE.search(cleaned):
        cleaned = cleaned.replace(".", "").replace(",", ".")
    else:
        cleaned = cleaned.replace(",", "")
    try:
        value = Decimal(cleaned)
    except InvalidOperation:
        return None
    if not value.is_finite():
        return None
    return value


def find_amounts(text: str) -> list[Decimal]:
    amounts: list[Decimal] = []
    for match in _AMOUNT_RE.finditer(text):
        value = parse_amount(match.group(1))
        if value is not None:
            amounts.append(value)
    return amounts


def find_keyword_total(text: str) -> Optional[Decimal]:
    for keyword, pattern in _KEYWORD_PATTERNS:
        match = pattern.search(text)
        if match is None:
            continue
        window = text[match.end() : match.end() + KEYWORD_WINDOW]
        candidate = _AMOUNT_RE.search(window)
        if candidate is None:
            continue
        value = parse_amount(candidate.group(1))
        if value is not None and value > 0:
            logger.debug("Total anchored on keyword %r: %s", keyword, value)
            return value
    return None


def extract_amount(text: str) -> Optional[Decimal]:
    total = find_keyword_total(text)
    if total is not None:
        return total
    amounts = find_amounts(text)
    if not amounts:
        return None
    largest = max(amounts)
    logger.debug("No total keyword anchor; using largest amount %s of %d", largest, len(amounts))
    return largest


# -----------------------------
# Merchant
# -----------------------------


NON_MERCHANT_PREFIXES = ("receipt", "invoice", "date", "time", "tel", "fax", "www")
MERCHANT_BLOCK_LIMIT = 3
MERCHANT_MAX_LENGTH = 50

_LEGAL_SUFFIX_RE = re.compile(r"\s*\b(?:ltd|llc|inc|corp|gmbh|s\.?a)\.?\s*$", re.IGNORECASE)


def looks_like_merchant(text: str) -> bool:
    digits = sum(ch.isdigit() for ch in text)
    if digits > len(text) * 0.5:
        return False
    if text.lower().startswith(NON_MERCHANT_PREFIXES):
        return False
    return len(text) >= 2


def clean_merchant_name(text: str) -> str:
    cleaned = text.strip().split("\n", 1)[0].strip()
    cleaned = _LEGAL_SUFFIX_RE.sub("", cleaned).strip()
    return cleaned[:MERCHANT_MAX_LENGTH].strip()


def extract_merchant(normalized: NormalizedText) -> Optional[str]:
    candidates = [block for block in normalized.blocks[:MERCHANT_BLOCK_LIMIT] if looks_like_merchant(block)]
    candidates.extend(line for line in normalized.lines if len(line) > 2)
    for candidate in candidates:
        cleaned = clean_merchant_name(candidate)
        if cleaned:
            return cleaned
    return None
