from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import ValidationError as PydanticValidationError

from fuelbook.errors import FormatError
from fuelbook.schemas import FuelPrices, LedgerSnapshot, ShiftSummary, Transaction

EXPORT_VERSION = "1.0"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def export_snapshot(snapshot: LedgerSnapshot, app_name: str, exported_at: Optional[datetime] = None) -> dict:
    return {
        "version": EXPORT_VERSION,
        "exportDate": (exported_at or _now()).isoformat(),
        "appName": app_name,
        "data": snapshot.data_section(),
    }


def export_filename(exported_at: Optional[datetime] = None) -> str:
    return f"fuel-record-backup-{(exported_at or _now()).date().isoformat()}.json"


@dataclass(frozen=True)
class ImportPayload:
    transactions: list[Transaction]
    shift_history: list[ShiftSummary]
    fuel_prices: Optional[FuelPrices]


@dataclass(frozen=True)
class ImportResult:
    transactions_added: int
    shifts_added: int
    prices_updated: bool

    def to_dict(self) -> dict:
        return {
            "transactions_added": self.transactions_added,
            "shifts_added": self.shifts_added,
            "prices_updated": self.prices_updated,
        }


def _section(data: dict, key: str, model: Any) -> list:
    raw = data.get(key)
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise FormatError(f"'{key}' must be a list")
    try:
        return [model.model_validate(item) for item in raw]
    except PydanticValidationError as exc:
        raise FormatError(f"invalid entry in '{key}': {exc.errors()[0]['msg']}") from exc


def parse_import(document: Any) -> ImportPayload:
    """Validate an import document; nothing is merged when this raises."""
    if not isinstance(document, dict) or not isinstance(document.get("data"), dict):
        raise FormatError("Invalid file format!")
    data = document["data"]
    fuel_prices = None
    if data.get("fuelPrices") is not None:
        try:
            fuel_prices = FuelPrices.model_validate(data["fuelPrices"])
        except PydanticValidationError as exc:
            raise FormatError("invalid 'fuelPrices' section") from exc
    return ImportPayload(
        transactions=_section(data, "transactions", Transaction),
        shift_history=_section(data, "shiftHistory", ShiftSummary),
        fuel_prices=fuel_prices,
    )


def _new_by_id(existing_ids: set[int], incoming: list) -> list:
    seen = set(existing_ids)
    fresh = []
    for item in incoming:
        if item.id in seen:
            continue
        seen.add(item.id)
        fresh.append(item)
    return fresh


def plan_merge(
    payload: ImportPayload,
    existing_transaction_ids: set[int],
    existing_shift_ids: set[int],
) -> tuple[list[Transaction], list[ShiftSummary]]:
    """Entries of ``payload`` whose ids are not yet known, in document order."""
    return (
        _new_by_id(existing_transaction_ids, payload.transactions),
        _new_by_id(existing_shift_ids, payload.shift_history),
    )
