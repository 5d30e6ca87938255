import pytest

from errors import InvalidDataError
from pricing import (
    CRITICAL,
    IN_STOCK,
    LOW_STOCK,
    OUT_OF_STOCK,
    StockThresholds,
    check_minimum,
    clamp_discount,
    effective_price,
    order_total,
    stock_status,
)


@pytest.mark.parametrize("price", [0, 1, 89.99, 1500])
def test_no_discount_keeps_price(price):
    assert effective_price(price, 0) == price


@pytest.mark.parametrize("raw, expected", [(-5, 0), (150, 100), (20, 20), ("30", 30), ("abc", 0), (None, 0)])
def test_clamp_discount(raw, expected):
    clamped = clamp_discount(raw)
    assert clamped == expected
    assert clamp_discount(clamped) == clamped


def test_effective_price_clamps_before_applying():
    assert effective_price(100, 20) == pytest.approx(80)
    assert effective_price(100, 250) == 0
    assert effective_price(100, -10) == 100


def test_stock_status_default_thresholds():
    thresholds = StockThresholds(critical=10, low=15)
    assert stock_status(0, thresholds) == OUT_OF_STOCK
    assert stock_status(5, thresholds) == CRITICAL
    assert stock_status(12, thresholds) == LOW_STOCK
    assert stock_status(20, thresholds) == IN_STOCK


def test_zero_stock_is_out_of_stock_for_any_thresholds():
    for thresholds in (StockThresholds(0, 0), StockThresholds(1, 100), StockThresholds(50, 50)):
        assert stock_status(0, thresholds) == OUT_OF_STOCK


def test_thresholds_must_be_ordered():
    with pytest.raises(InvalidDataError):
        StockThresholds(critical=20, low=10).validate()
    assert StockThresholds(critical=10, low=10).validate() == (10, 10)


def test_order_total_with_discount_and_fee():
    unit = effective_price(100, 20)
    assert order_total(unit, 2, 10) == pytest.approx(170)


def test_minimum_amount_rejects_small_orders():
    unit = effective_price(100, 20)
    with pytest.raises(InvalidDataError):
        check_minimum(unit, 2, 200)
    assert check_minimum(unit, 2, 160) == pytest.approx(160)
    assert check_minimum(unit, 2, 0) == pytest.approx(160)
