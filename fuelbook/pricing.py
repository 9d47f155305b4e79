from __future__ import annotations

import math
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from fuelbook.errors import ValidationError
from fuelbook.schemas import FUEL_TYPES, FuelPrices

CENT = Decimal("0.01")


def round_currency(value: float) -> float:
    """Half-up rounding to two places, e.g. 2.345 -> 2.35."""
    return float(Decimal(repr(value)).quantize(CENT, rounding=ROUND_HALF_UP))


def _positive_finite(value: float) -> bool:
    return math.isfinite(value) and value > 0


def _positive_price(fuel_type: str, value: Any) -> float:
    if isinstance(value, bool):
        raise ValidationError(f"Please enter a valid price for {fuel_type}")
    try:
        price = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Please enter a valid price for {fuel_type}") from None
    if not math.isfinite(price) or price <= 0:
        raise ValidationError(f"Please enter a valid price for {fuel_type}")
    return price


class PriceTable:
    def __init__(self, prices: FuelPrices | None = None) -> None:
        self.prices = prices or FuelPrices()

    def set_prices(self, normal: Any, xp95: Any, diesel: Any) -> FuelPrices:
        # validate all three before touching the table
        validated = {
            "normal": _positive_price("normal", normal),
            "xp95": _positive_price("xp95", xp95),
            "diesel": _positive_price("diesel", diesel),
        }
        self.prices = FuelPrices(**validated)
        return self.prices

    def price_for(self, fuel_type: str) -> float:
        if fuel_type not in FUEL_TYPES:
            raise ValidationError(f"unknown fuel type: {fuel_type}")
        return getattr(self.prices, fuel_type)


@dataclass(frozen=True)
class AmountQuote:
    unit_price: float
    customer_amount: float
    discount: float
    fuel_to_give: float

    def rounded(self) -> dict:
        return {
            "unit_price": round_currency(self.unit_price),
            "customer_amount": round_currency(self.customer_amount),
            "discount": round_currency(self.discount),
            "fuel_to_give": round_currency(self.fuel_to_give),
        }


@dataclass(frozen=True)
class VolumeQuote:
    liters: float
    unit_price: float
    per_liter_discount: float
    total_amount: float
    total_discount: float
    fuel_to_give: float

    def rounded(self) -> dict:
        return {
            "liters": self.liters,
            "unit_price": round_currency(self.unit_price),
            "per_liter_discount": round_currency(self.per_liter_discount),
            "total_amount": round_currency(self.total_amount),
            "total_discount": round_currency(self.total_discount),
            "fuel_to_give": round_currency(self.fuel_to_give),
        }


def quote_by_amount(unit_price: float, customer_amount: float, strict: bool = True) -> AmountQuote:
    """Discount for a customer paying ``customer_amount`` at ``unit_price``.

    With ``strict=False`` invalid inputs produce a zero quote instead of an
    error, which is what a live calculator shows while the operator types.
    """
    price_ok = _positive_finite(unit_price)
    amount_ok = _positive_finite(customer_amount)
    if not (price_ok and amount_ok):
        if strict:
            if not price_ok:
                raise ValidationError("Please set fuel prices first")
            raise ValidationError("Please enter a valid customer price")
        return AmountQuote(
            unit_price=unit_price if price_ok else 0.0,
            customer_amount=customer_amount if amount_ok else 0.0,
            discount=0.0,
            fuel_to_give=0.0,
        )
    discount = customer_amount / unit_price
    return AmountQuote(
        unit_price=unit_price,
        customer_amount=customer_amount,
        discount=discount,
        fuel_to_give=customer_amount + discount,
    )


def quote_by_volume(liters: float, unit_price: float, per_liter_discount: float = 1.0) -> VolumeQuote:
    if not _positive_finite(liters):
        raise ValidationError("Please enter a valid number of liters")
    if not _positive_finite(unit_price):
        raise ValidationError("Please set fuel prices first")
    if not math.isfinite(per_liter_discount) or per_liter_discount < 0:
        raise ValidationError("Per-liter discount cannot be negative")
    total_discount = liters * per_liter_discount
    total_amount = liters * unit_price
    return VolumeQuote(
        liters=liters,
        unit_price=unit_price,
        per_liter_discount=per_liter_discount,
        total_amount=total_amount,
        total_discount=total_discount,
        fuel_to_give=total_amount + total_discount,
    )
