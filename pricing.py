"""Price and stock derivations. Pure functions, no I/O."""

import math
from typing import NamedTuple

from errors import InvalidDataError

IN_STOCK = "in-stock"
LOW_STOCK = "low-stock"
CRITICAL = "critical"
OUT_OF_STOCK = "out-of-stock"


class StockThresholds(NamedTuple):
    critical: int = 10
    low: int = 15

    def validate(self) -> "StockThresholds":
        if self.critical > self.low:
            raise InvalidDataError("critical threshold must not exceed low threshold")
        return self


DEFAULT_THRESHOLDS = StockThresholds()


def clamp_discount(value) -> float:
    """Coerce a discount to a number in [0, 100]; anything unparseable is 0."""
    try:
        num = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(num):
        return 0.0
    return max(0.0, min(100.0, num))


def effective_price(price: float, discount_percent=0) -> float:
    return float(price) * (1 - clamp_discount(discount_percent) / 100)


def stock_status(stock: int, thresholds: StockThresholds = DEFAULT_THRESHOLDS) -> str:
    stock = int(stock or 0)
    if stock <= 0:
        return OUT_OF_STOCK
    if stock < thresholds.critical:
        return CRITICAL
    if stock < thresholds.low:
        return LOW_STOCK
    return IN_STOCK


def order_total(unit_price: float, quantity: int, delivery_fee: float = 0) -> float:
    return unit_price * quantity + (delivery_fee or 0)


def check_minimum(unit_price: float, quantity: int, min_amount: float = 0) -> float:
    """Return the base amount, or raise when it is under the store minimum."""
    base = unit_price * quantity
    if min_amount and base < min_amount:
        raise InvalidDataError(f"Minimum order amount is {min_amount:g}")
    return base
