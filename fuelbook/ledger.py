from __future__ import annotations

import math
import time
from datetime import datetime, timezone
from typing import Iterable, Iterator, Optional, Union

from pydantic import BaseModel

from fuelbook.errors import ValidationError
from fuelbook.pricing import round_currency
from fuelbook.schemas import PaymentMethod, ShiftTotals, Transaction

ALL = "all"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def parse_method(method: Union[str, PaymentMethod]) -> PaymentMethod:
    try:
        return PaymentMethod(method)
    except ValueError:
        raise ValidationError(f"unknown payment method: {method}") from None


class IdSequence:
    """Epoch-millisecond ids, strictly increasing even within one millisecond."""

    def __init__(self) -> None:
        self._last = 0

    def observe(self, ids: Iterable[int]) -> None:
        for value in ids:
            if value > self._last:
                self._last = value

    def next(self) -> int:
        candidate = int(time.time() * 1000)
        self._last = max(candidate, self._last + 1)
        return self._last


class Totals(BaseModel):
    # online_discount also carries card discounts
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
    def pure_online_discount(self) -> float:
        return self.online_discount - self.card_discount

    def to_shift_totals(self) -> ShiftTotals:
        values = self.model_dump()
        values["online_discount"] = self.pure_online_discount
        return ShiftTotals(**values)

    def rounded(self) -> dict:
        data = {}
        for name, value in self.model_dump().items():
            data[name] = value if isinstance(value, int) else round_currency(value)
        data["pure_online_discount"] = round_currency(self.pure_online_discount)
        return data


def aggregate(transactions: Iterable[Transaction]) -> Totals:
    cash_total = cash_discount = 0.0
    card_total = card_discount = 0.0
    online_total = online_discount = 0.0
    count = 0
    for transaction in transactions:
        count += 1
        if transaction.payment_method is PaymentMethod.CASH:
            cash_total += transaction.amount
            cash_discount += transaction.discount
        elif transaction.payment_method is PaymentMethod.CARD:
            card_total += transaction.amount
            card_discount += transaction.discount
            online_discount += transaction.discount
        elif transaction.payment_method is PaymentMethod.ONLINE:
            online_total += transaction.amount
            online_discount += transaction.discount
    return Totals(
        cash_total=cash_total,
        cash_discount=cash_discount,
        card_total=card_total,
        card_discount=card_discount,
        online_total=online_total,
        online_discount=online_discount,
        grand_total=cash_total + card_total + online_total,
        total_discount=cash_discount + online_discount,
        total_transactions=count,
    )


class TransactionLedger:
    def __init__(self, transactions: Optional[list[Transaction]] = None, ids: Optional[IdSequence] = None) -> None:
        self.transactions: list[Transaction] = list(transactions or [])
        self.ids = ids or IdSequence()
        self.ids.observe(t.id for t in self.transactions)

    def __len__(self) -> int:
        return len(self.transactions)

    def __iter__(self) -> Iterator[Transaction]:
        return iter(self.transactions)

    def get(self, transaction_id: int) -> Optional[Transaction]:
        for transaction in self.transactions:
            if transaction.id == transaction_id:
                return transaction
        return None

    def add(self, amount: float, discount: float, method: Union[str, PaymentMethod]) -> Transaction:
        payment_method = parse_method(method)
        if not (math.isfinite(amount) and math.isfinite(discount)):
            raise ValidationError("Please enter a valid amount")
        if amount == 0 and discount == 0:
            raise ValidationError("Please enter either payment amount or discount amount")
        if discount < 0:
            raise ValidationError("Discount cannot be negative")
        if amount < 0:
            raise ValidationError("Amount cannot be negative")
        transaction = Transaction(
            id=self.ids.next(),
            timestamp=_now(),
            payment_method=payment_method,
            amount=amount,
            discount=discount,
        )
        self.transactions.insert(0, transaction)
        return transaction

    def delete(self, transaction_id: int) -> bool:
        remaining = [t for t in self.transactions if t.id != transaction_id]
        removed = len(remaining) != len(self.transactions)
        self.transactions = remaining
        return removed

    def update_payment_method(
        self, transaction_id: int, method: Union[str, PaymentMethod]
    ) -> Optional[Transaction]:
        payment_method = parse_method(method)
        for index, transaction in enumerate(self.transactions):
            if transaction.id == transaction_id:
                updated = transaction.model_copy(update={"payment_method": payment_method})
                self.transactions[index] = updated
                return updated
        return None

    def filter(self, method: Union[str, PaymentMethod] = ALL) -> Iterator[Transaction]:
        if method == ALL:
            yield from self.transactions
            return
        payment_method = parse_method(method)
        for transaction in self.transactions:
            if transaction.payment_method is payment_method:
                yield transaction

    def counts(self) -> dict:
        counts = {m.value: 0 for m in PaymentMethod}
        for transaction in self.transactions:
            counts[transaction.payment_method.value] += 1
        counts[ALL] = len(self.transactions)
        return counts

    def filter_summary(self, method: Union[str, PaymentMethod] = ALL) -> dict:
        total_amount = 0.0
        total_discount = 0.0
        count = 0
        for transaction in self.filter(method):
            total_amount += transaction.amount
            total_discount += transaction.discount
            count += 1
        return {
            "count": count,
            "total_amount": round_currency(total_amount),
            "total_discount": round_currency(total_discount),
        }

    def extend(self, transactions: Iterable[Transaction]) -> None:
        incoming = list(transactions)
        self.transactions.extend(incoming)
        self.ids.observe(t.id for t in incoming)

    def clear(self) -> None:
        self.transactions = []

    def aggregate(self) -> Totals:
        return aggregate(self.transactions)
