from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

FUEL_TYPES = ("normal", "xp95", "diesel")


class PaymentMethod(str, Enum):
    CASH = "cash"
    CARD = "card"
    ONLINE = "online"


class WireModel(BaseModel):
    """Python names in snake_case, stored and exported documents in camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, allow_inf_nan=False)

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


def _blank_to_none(value):
    # legacy web app documents store unset times as ''
    if isinstance(value, str) and not value.strip():
        return None
    return value


class Transaction(WireModel):
    model_config = ConfigDict(frozen=True)

    id: int
    timestamp: datetime
    payment_method: PaymentMethod
    amount: float = Field(ge=0)
    discount: float = Field(ge=0)


class ShiftInfo(WireModel):
    employee_name: str = ""
    shift_start: Optional[datetime] = None
    shift_end: Optional[datetime] = None

    @field_validator("shift_start", "shift_end", mode="before")
    @classmethod
    def blank_times_to_none(cls, value):
        return _blank_to_none(value)

    @property
    def is_open(self) -> bool:
        return bool(self.employee_name) and self.shift_start is not None


class ShiftTotals(WireModel):
    """Aggregates archived with a closed shift.

    ``online_discount`` is the pure online discount here; the dashboard
    bucket that also carries card discounts is ``online_bucket_discount``.
    """

    model_config = ConfigDict(frozen=True)

    cash_total: float = 0.0
    cash_discount: float = 0.0
    card_total: float = 0.0
    card_discount: float = 0.0
    online_total: float = 0.0
    online_discount: float = 0.0
    grand_total: float = 0.0
    total_discount: float = 0.0
    total_transactions: int = 0

    @property
    def online_bucket_discount(self) -> float:
        return self.online_discount + self.card_discount


class ShiftSummary(WireModel):
    model_config = ConfigDict(frozen=True)

    id: int
    employee_name: str
    shift_start: Optional[datetime] = None
    shift_end: Optional[datetime] = None
    transactions: list[Transaction] = Field(default_factory=list)
    summary: ShiftTotals = Field(default_factory=ShiftTotals)

    @field_validator("shift_start", "shift_end", mode="before")
    @classmethod
    def blank_times_to_none(cls, value):
        return _blank_to_none(value)


class FuelPrices(WireModel):
    normal: float = Field(default=106.39, gt=0)
    xp95: float = Field(default=113.73, gt=0)
    diesel: float = Field(default=90.00, gt=0)


class LedgerSnapshot(WireModel):
    transactions: list[Transaction] = Field(default_factory=list)
    shift_info: ShiftInfo = Field(default_factory=ShiftInfo)
    shift_history: list[ShiftSummary] = Field(default_factory=list)
    fuel_prices: FuelPrices = Field(default_factory=FuelPrices)
    last_updated: Optional[datetime] = None

    def data_section(self) -> dict:
        wire = self.to_wire()
        wire.pop("lastUpdated", None)
        return wire
