from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable, Iterator, Optional

from fuelbook.errors import ConfirmationRequired, ValidationError
from fuelbook.ledger import IdSequence, TransactionLedger
from fuelbook.schemas import ShiftInfo, ShiftSummary


def _now(like: Optional[datetime] = None) -> datetime:
    # naive when `like` is naive, so one shift never mixes naive and aware times
    tz = like.tzinfo if like is not None else timezone.utc
    return datetime.now(tz)


class HistoryStore:
    def __init__(self, shifts: Optional[list[ShiftSummary]] = None, ids: Optional[IdSequence] = None) -> None:
        self.shifts: list[ShiftSummary] = list(shifts or [])
        self.ids = ids or IdSequence()
        self.ids.observe(s.id for s in self.shifts)

    def __len__(self) -> int:
        return len(self.shifts)

    def __iter__(self) -> Iterator[ShiftSummary]:
        return iter(self.shifts)

    def get(self, shift_id: int) -> Optional[ShiftSummary]:
        for shift in self.shifts:
            if shift.id == shift_id:
                return shift
        return None

    def delete(self, shift_id: int) -> bool:
        remaining = [s for s in self.shifts if s.id != shift_id]
        removed = len(remaining) != len(self.shifts)
        self.shifts = remaining
        return removed

    def clear(self) -> None:
        self.shifts = []

    def extend(self, shifts: Iterable[ShiftSummary]) -> None:
        incoming = list(shifts)
        self.shifts.extend(incoming)
        self.ids.observe(s.id for s in incoming)


class ShiftManager:
    def __init__(self, ledger: TransactionLedger, history: HistoryStore, info: Optional[ShiftInfo] = None) -> None:
        self.ledger = ledger
        self.history = history
        self.info = info or ShiftInfo()

    @property
    def is_open(self) -> bool:
        return self.info.is_open

    def save_shift_info(
        self,
        employee_name: str,
        shift_start: Optional[datetime],
        shift_end: Optional[datetime] = None,
    ) -> ShiftInfo:
        name = (employee_name or "").strip()
        if not name:
            raise ValidationError("Please enter employee name")
        if shift_start is None:
            raise ValidationError("Please select shift start time")
        self.info = ShiftInfo(employee_name=name, shift_start=shift_start, shift_end=shift_end)
        return self.info

    def end_shift(self, confirm_empty: bool = False) -> ShiftSummary:
        if not self.info.is_open:
            raise ValidationError("Please save shift information first")
        if len(self.ledger) == 0 and not confirm_empty:
            raise ConfirmationRequired("No transactions recorded. Confirm to end the shift anyway.")

        totals = self.ledger.aggregate()
        summary = ShiftSummary(
            id=self.history.ids.next(),
            employee_name=self.info.employee_name,
            shift_start=self.info.shift_start,
            shift_end=self.info.shift_end or _now(self.info.shift_start),
            transactions=list(self.ledger.transactions),
            summary=totals.to_shift_totals(),
        )
        archived = [summary] + self.history.shifts

        self.history.shifts = archived
        self.ledger.clear()
        self.info = ShiftInfo()
        return summary

    def reset(self) -> None:
        # history is kept
        self.ledger.clear()
        self.info = ShiftInfo()
