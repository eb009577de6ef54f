from datetime import date
from decimal import Decimal

import pytest

from receipt_snap.classification import CategoryClassifier, classify
from receipt_snap.extraction import (
    clean_merchant_name,
    detect_currency,
    extract_amount,
    extract_date,
    extract_merchant,
    find_amounts,
    normalize,
    parse_amount,
)
from receipt_snap.models import TextBlock


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("1.234,56", Decimal("1234.56")),
        ("1,234.56", Decimal("1234.56")),
        ("$12.50", Decimal("12.50")),
        ("€ 7,90", Decimal("7.90")),
        ("1 234,56", Decimal("1234.56")),
        ("0", Decimal("0")),
    ],
)
def test_parse_amount_accepts_both_decimal_conventions(raw, expected):
    assert parse_amount(raw) == expected


@pytest.mark.parametrize("raw", ["", "abc", "12.3.4,x"])
def test_parse_amount_returns_none_for_garbage(raw):
    assert parse_amount(raw) is None


@pytest.mark.parametrize(
    "text, expected",
    [
        ("03/04/2024", date(2024, 4, 3)),
        ("13/04/2024", date(2024, 4, 13)),
        ("04/13/2024", date(2024, 4, 13)),
        ("2024-03-15", date(2024, 3, 15)),
        ("Paid on Jan 5, 2024", date(2024, 1, 5)),
        ("Sept 12 2024", date(2024, 9, 12)),
        ("03 Jan 2024", date(2024, 1, 3)),
        ("17 March 2023", date(2023, 3, 17)),
    ],
)
def test_extract_date_formats(text, expected):
    assert extract_date(text) == expected


def test_extract_date_impossible_calendar_date_is_none():
    assert extract_date("31/02/2024") is None


def test_extract_date_ignores_partial_numeric_runs():
    assert extract_date("Order 123/04/20245") is None
    assert extract_date("no date here") is None


def test_keyword_total_wins_over_larger_amounts():
    text = "Cash 50.00\nTOTAL 12.50\nChange 37.50"
    assert extract_amount(text) == Decimal("12.50")


def test_subtotal_does_not_satisfy_total_keyword():
    text = "Subtotal 10.00\nTax 2.00\nTotal 12.00"
    assert extract_amount(text) == Decimal("12.00")


def test_keyword_without_amount_falls_through_to_next_keyword():
    text = "Total items: none\n" + "x" * 120 + "\nAmount due 45.00"
    assert extract_amount(text) == Decimal("45.00")


def test_largest_amount_used_when_no_keyword_anchor():
    text = "CORNER SHOP\nMilk 4.99\nBread 12.00\nEggs 3.50"
    assert extract_amount(text) == Decimal("12.00")


@pytest.mark.parametrize(
    "text",
    [
        "STARBUCKS\n03 Jan 2024\nTOTAL.....12.50",
        "STARBUCKS\n03 Jan 2024\nTotal,,12.50",
        "STARBUCKS\n03 Jan 2024\nTOTAL .......... $12.50",
    ],
)
def test_total_after_leader_dots(text):
    assert extract_amount(text) == Decimal("12.50")


def test_separator_after_a_digit_still_blocks_partial_amounts():
    assert find_amounts("12.05.2024") == []
    assert find_amounts("1.234,56") == [Decimal("1234.56")]


def test_dates_times_and_phone_numbers_are_not_amounts():
    assert find_amounts("12/05/2024 14:30 Tel 555-1234") == []


def test_extract_amount_none_without_numbers():
    assert extract_amount("THANK YOU") is None


@pytest.mark.parametrize(
    "text, expected",
    [
        ("TOTAL $12.50", "USD"),
        ("Ukupno 1.200,00 RSD", "RSD"),
        ("Summe 7,90 €", "EUR"),
        ("£3.20", "GBP"),
        ("₹250", "INR"),
        ("¥1200", "JPY"),
        ("RMB 88", "CNY"),
        ("dinner for two 30.00", None),
    ],
)
def test_detect_currency(text, expected):
    assert detect_currency(text) == expected


def test_currency_table_order_rsd_before_usd():
    assert detect_currency("Iznos 500 din ($4.60)") == "RSD"


def test_merchant_skips_numeric_and_header_blocks():
    normalized = normalize("", [TextBlock("12345"), TextBlock("Receipt #1"), TextBlock("ACME Corp")])
    assert extract_merchant(normalized) == "ACME"


def test_merchant_falls_back_to_first_long_line():
    normalized = normalize("1\n22\nTel 555\nDate 2024\nMain Street Deli")
    assert extract_merchant(normalized) == "Tel 555"


def test_merchant_suffix_needs_word_boundary():
    assert clean_merchant_name("VISA") == "VISA"
    assert clean_merchant_name("Blue Bottle LLC.") == "Blue Bottle"
    assert len(clean_merchant_name("A" * 80)) == 50


def test_merchant_block_that_cleans_to_nothing_is_skipped():
    normalized = normalize("", ["LLC", "Main Cafe"])
    assert extract_merchant(normalized) == "Main Cafe"


def test_merchant_none_for_empty_text():
    assert extract_merchant(normalize(None)) is None


@pytest.mark.parametrize(
    "merchant, expected",
    [
        ("STARBUCKS", "Food & Drink"),
        ("Hilton Garden Inn", "Lodging"),
        ("Uber Trip", "Transportation"),
        ("Lufthansa", "Travel"),
        ("Office Depot", "Office Supplies"),
        ("AMC Cinema", "Entertainment"),
        ("Vodafone", "Utilities"),
        ("Unknown Shop", "Other"),
        (None, "Other"),
    ],
)
def test_classify(merchant, expected):
    assert classify(merchant) == expected


def test_classifier_first_category_wins():
    # "airport hotel" hits both Lodging and Travel keywords.
    assert classify("Airport Hotel") == "Lodging"


def test_classifier_accepts_replacement_table():
    classifier = CategoryClassifier(table=[("Travel", ["Rail"])])
    explained = classifier.explain("Swiss Rail")
    assert explained.category == "Travel"
    assert explained.matched_keyword == "rail"
    assert classifier.classify("Hilton") == "Other"


def test_classifier_rejects_unknown_category():
    with pytest.raises(ValueError):
        CategoryClassifier(table=[("Snacks", ["chips"])])
