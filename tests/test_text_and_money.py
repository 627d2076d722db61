from __future__ import annotations

from decimal import Decimal

import pytest

from coursepay.utils.money import parse_amount, taka
from coursepay.utils.text_normalize import normalize_account, normalize_text


@pytest.mark.parametrize(
    "raw,expected",
    [
        (500, Decimal("500.00")),
        ("1,250.5", Decimal("1250.50")),
        (" 99.999 ", Decimal("100.00")),
        ("abc", None),
        ("NaN", None),
        ("1e30", None),
        (True, None),
        (None, None),
    ],
)
def test_parse_amount(raw, expected) -> None:
    assert parse_amount(raw) == expected


def test_taka_formatting() -> None:
    assert taka(Decimal("1250.5")) == "৳1,250.50"


def test_normalize_account_handles_bengali_digits_and_separators() -> None:
    assert normalize_account(" ০১৭১১-২২২ ৩৩৩ ") == "01711222333"
    assert normalize_account("(017) 11.000.000") == "01711000000"
    assert normalize_account(None) == ""


def test_normalize_text_strips_invisible_chars() -> None:
    assert normalize_text("  8N7A‌   6B5C ") == "8N7A 6B5C"
    assert normalize_text("REF‍1") == "REF1"
