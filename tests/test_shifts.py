from datetime import datetime, timezone

import pytest

from fuelbook.errors import ConfirmationRequired, ValidationError
from fuelbook.ledger import IdSequence, TransactionLedger
from fuelbook.schemas import ShiftInfo
from fuelbook.shifts import HistoryStore, ShiftManager


def _manager() -> ShiftManager:
    ids = IdSequence()
    return ShiftManager(TransactionLedger(ids=ids), HistoryStore(ids=ids))


def test_save_shift_info_requires_name_and_start() -> None:
    manager = _manager()
    with pytest.raises(ValidationError):
        manager.save_shift_info("   ", datetime(2026, 1, 1, 6))
    with pytest.raises(ValidationError):
        manager.save_shift_info("Ravi", None)
    assert manager.is_open is False

    info = manager.save_shift_info("  Ravi ", datetime(2026, 1, 1, 6))
    assert info.employee_name == "Ravi"
    assert info.shift_end is None
    assert manager.is_open is True


def test_end_shift_archives_and_resets() -> None:
    manager = _manager()
    manager.save_shift_info("Ravi", datetime(2026, 1, 1, 6), datetime(2026, 1, 1, 14))
    manager.ledger.add(100, 5, "cash")
    manager.ledger.add(200, 10, "card")
    manager.ledger.add(50, 2, "online")
    before = list(manager.ledger.transactions)
    expected = manager.ledger.aggregate().to_shift_totals()

    summary = manager.end_shift()

    assert len(manager.ledger) == 0
    assert manager.info == ShiftInfo()
    assert manager.history.shifts[0] is summary
    assert summary.transactions == before
    assert summary.summary == expected
    assert summary.shift_end == datetime(2026, 1, 1, 14)
    assert summary.summary.online_discount == 2
    assert summary.summary.total_discount == 17


def test_end_shift_defaults_end_time_to_now() -> None:
    manager = _manager()
    manager.save_shift_info("Ravi", datetime(2026, 1, 1, 6))
    manager.ledger.add(10, 1, "cash")
    summary = manager.end_shift()
    assert summary.shift_end is not None
    assert summary.shift_end.tzinfo is None


def test_default_end_time_follows_aware_start() -> None:
    manager = _manager()
    manager.save_shift_info("Ravi", datetime(2026, 1, 1, 6, tzinfo=timezone.utc))
    manager.ledger.add(10, 1, "cash")
    summary = manager.end_shift()
    assert summary.shift_end.tzinfo is not None
    assert summary.shift_end > summary.shift_start


def test_end_shift_needs_open_shift() -> None:
    manager = _manager()
    manager.ledger.add(10, 1, "cash")
    with pytest.raises(ValidationError):
        manager.end_shift()
    assert len(manager.ledger) == 1


def test_end_shift_on_empty_ledger_requires_confirmation() -> None:
    manager = _manager()
    manager.save_shift_info("Ravi", datetime(2026, 1, 1, 6))
    with pytest.raises(ConfirmationRequired):
        manager.end_shift()
    assert manager.is_open is True
    assert len(manager.history) == 0

    summary = manager.end_shift(confirm_empty=True)
    assert summary.summary.total_transactions == 0
    assert len(manager.history) == 1


def test_history_newest_first_and_deletion() -> None:
    manager = _manager()
    ids = []
    for name in ("Ravi", "Asha"):
        manager.save_shift_info(name, datetime(2026, 1, 1, 6))
        manager.ledger.add(10, 1, "cash")
        ids.append(manager.end_shift().id)
    assert [s.employee_name for s in manager.history] == ["Asha", "Ravi"]
    assert ids[1] > ids[0]

    assert manager.history.delete(424242) is False
    assert manager.history.delete(ids[0]) is True
    assert manager.history.get(ids[0]) is None
    manager.history.clear()
    assert len(manager.history) == 0


def test_reset_keeps_history() -> None:
    manager = _manager()
    manager.save_shift_info("Ravi", datetime(2026, 1, 1, 6))
    manager.ledger.add(10, 1, "cash")
    manager.end_shift()
    manager.save_shift_info("Asha", datetime(2026, 1, 2, 6))
    manager.ledger.add(20, 2, "card")
    manager.reset()
    assert len(manager.ledger) == 0
    assert manager.is_open is False
    assert len(manager.history) == 1
