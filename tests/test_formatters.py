from datetime import date, datetime

import pytest

from formatters import (
    format_currency,
    format_date,
    format_day_label,
    format_percentage,
    month_key,
    parse_currency,
    round_half_up,
)


def test_format_currency():
    assert format_currency(1234.5) == "R$ 1.234,50"
    assert format_currency(0) == "R$ 0,00"
    assert format_currency(-10) == "-R$ 10,00"
    assert format_currency(1000000, "USD") == "US$ 1.000.000,00"


def test_parse_currency():
    assert parse_currency("R$ 1.234,50") == 1234.5
    assert parse_currency("-R$ 10,00") == -10.0
    assert parse_currency("1234,56") == 1234.56
    assert parse_currency(format_currency(987654.32)) == 987654.32


def test_parse_currency_rejects_text_without_digits():
    with pytest.raises(ValueError):
        parse_currency("R$")


def test_dates():
    assert format_date(date(2024, 1, 5)) == "05/01/2024"
    assert format_date("2024-01-05T10:00:00") == "05/01/2024"
    assert format_day_label(datetime(2024, 1, 5, 23, 59)) == "05/01"
    assert month_key(date(2024, 1, 5)) == "2024-01"


def test_round_half_up():
    assert round_half_up(2.5) == 3
    assert round_half_up(2.4) == 2
    assert round_half_up(14.5) == 15
    assert round_half_up(-2.5) == -3
    assert format_percentage(66.5) == "67%"
