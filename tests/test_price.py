import logging

import pytest

from app.sync.components.price import normalize_price, parse_price


@pytest.mark.parametrize("raw,expected", [
    (1.5, 1500),
    ("1.5", 1500),
    ("1,5", 1500),
    ("210", 210000),
    (210, 210000),
    ("12k", 12000),
    (" 99 ", 99000),
    (0.0005, 1),      # half rounds up
    ("0,0004", 0),
])
def test_normalize_price(raw, expected):
    assert normalize_price(raw) == expected


def test_only_first_comma_is_decimal_separator():
    # "1,234,5" -> "1.234,5" -> 1.234
    assert parse_price("1,234,5") == pytest.approx(1.234)


@pytest.mark.parametrize("raw", ["abc", "", None, "  ", True, float("nan")])
def test_unparseable_price_becomes_zero_with_warning(raw, caplog):
    with caplog.at_level(logging.WARNING, logger="uvicorn.error"):
        assert normalize_price(raw) == 0
    assert "invalid price" in caplog.text


def test_custom_scale():
    assert normalize_price("2,5", scale=1) == 3
