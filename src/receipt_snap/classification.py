from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Optional, Sequence

OTHER = "Other"

CATEGORIES = (
    "Lodging",
    "Transportation",
    "Travel",
    "Food & Drink",
    "Office Supplies",
    "Entertainment",
    "Utilities",
    OTHER,
)

# Evaluated in order; the first category with a keyword hit wins.
CATEGORY_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("Lodging", ("hotel", "motel", "hostel", "resort", "lodge", "marriott", "hilton", "hyatt", "airbnb", "suites")),
    (
        "Transportation",
        (
            "uber",
            "lyft",
            "taxi",
            "parking",
            "metro",
            "transit",
            "railway",
            "amtrak",
            "fuel",
            "petrol",
            "gas station",
            "shell",
            "chevron",
            "toll",
        ),
    ),
    ("Travel", ("airline", "airways", "airport", "flight", "expedia", "ryanair", "lufthansa", "travel")),
    (
        "Food & Drink",
        (
            "starbucks",
            "coffee",
            "cafe",
            "café",
            "restaurant",
            "pizza",
            "burger",
            "mcdonald",
            "kfc",
            "subway",
            "bakery",
            "bistro",
            "grill",
            "diner",
            "sushi",
            "deli",
            "food",
            "kitchen",
        ),
    ),
    ("Office Supplies", ("staples", "office depot", "officemax", "stationery", "office", "paper", "printing")),
    (
        "Entertainment",
        ("cinema", "movie", "theater", "theatre", "netflix", "spotify", "concert", "ticketmaster", "museum", "bowling"),
    ),
    (
        "Utilities",
        ("electric", "water", "internet", "telecom", "verizon", "at&t", "comcast", "vodafone", "utility", "energy", "power"),
    ),
)


@dataclass(frozen=True)
class Classification:
    category: str
    matched_keyword: Optional[str] = None


@dataclass
class CategoryClassifier:
    """Maps a merchant name onto the fixed expense taxonomy."""

    table: Sequence[tuple[str, Iterable[str]]] = CATEGORY_KEYWORDS
    _table: tuple[tuple[str, tuple[str, ...]], ...] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._table = tuple(
            (category, tuple(keyword.lower() for keyword in keywords)) for category, keywords in self.table
        )
        unknown = [category for category, _ in self._table if category not in CATEGORIES]
        if unknown:
            raise ValueError(f"Unknown categories in keyword table: {unknown}")

    def explain(self, merchant: Optional[str]) -> Classification:
        if not merchant:
            return Classification(category=OTHER)
        lowered = merchant.lower()
        for category, keywords in self._table:
            for keyword in keywords:
                if keyword in lowered:
                    return Classification(category=category, matched_keyword=keyword)
        return Classification(category=OTHER)

    def classify(self, merchant: Optional[str]) -> str:
        return self.explain(merchant).category


def classify(merchant: Optional[str]) -> str:
    return _DEFAULT_CLASSIFIER.classify(merchant)


_DEFAULT_CLASSIFIER = CategoryClassifier()
