from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Iterator, Optional

from fuelbook.config import Settings
from fuelbook.db import make_engine
from fuelbook.errors import ValidationError
from fuelbook.ledger import ALL, IdSequence, TransactionLedger, parse_method
from fuelbook.pricing import AmountQuote, PriceTable, VolumeQuote, quote_by_amount, quote_by_volume
from fuelbook.schemas import FuelPrices, LedgerSnapshot, ShiftInfo, ShiftSummary, Transaction
from fuelbook.shifts import HistoryStore, ShiftManager
from fuelbook.storage import BackupStore, DurableStore, ReconcilingStore, SaveReport
from fuelbook.transfer import ImportResult, export_snapshot, parse_import, plan_merge

logger = logging.getLogger(__name__)


class AppState:
    """Everything the running process knows; storage only holds copies."""

    def __init__(self, snapshot: Optional[LedgerSnapshot] = None) -> None:
        snapshot = snapshot or LedgerSnapshot()
        self.ids = IdSequence()
        self.ledger = TransactionLedger(snapshot.transactions, ids=self.ids)
        self.history = HistoryStore(snapshot.shift_history, ids=self.ids)
        self.shifts = ShiftManager(self.ledger, self.history, snapshot.shift_info)
        self.prices = PriceTable(snapshot.fuel_prices)
        self.active_filter = ALL

    def snapshot(self) -> LedgerSnapshot:
        return LedgerSnapshot(
            transactions=list(self.ledger.transactions),
            shift_info=self.shifts.info,
            shift_history=list(self.history.shifts),
            fuel_prices=self.prices.prices,
        )


class LedgerService:
    """Single owner of the ledger state.

    Each mutator applies its change in memory and then writes the whole
    snapshot through the reconciling store, all under one lock so that the
    autosave thread and request handlers never interleave. A failed save is
    logged and retried but never undoes the in-memory change.
    """

    def __init__(
        self,
        store: ReconcilingStore,
        app_name: str = "Fuel Record Book",
        per_liter_discount: float = 1.0,
        save_retries: int = 2,
        autosave_interval: float = 30.0,
    ) -> None:
        self.store = store
        self.app_name = app_name
        self.per_liter_discount = per_liter_discount
        self.save_retries = save_retries
        self.autosave_interval = autosave_interval
        self.state = AppState()
        self.last_save: Optional[SaveReport] = None
        self._lock = threading.RLock()
        self._local = threading.local()
        self._autosave: Optional[AutosaveWorker] = None

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load(self) -> AppState:
        with self._lock:
            self.state = AppState(self.store.load())
            return self.state

    def save(self) -> SaveReport:
        with self._lock:
            snapshot = self.state.snapshot()
            report = self.store.save(snapshot)
            attempt = 0
            while not report.ok and attempt < self.save_retries:
                attempt += 1
                logger.warning("Both stores failed, retrying save (%d/%d)", attempt, self.save_retries)
                report = self.store.save(snapshot)
            if not report.ok:
                logger.error("Ledger state could not be persisted, keeping it in memory only")
            self.last_save = report
            recorded = getattr(self._local, "reports", None)
            if recorded is not None:
                recorded.append(report)
            return report

    @contextmanager
    def recording_saves(self) -> Iterator[list[SaveReport]]:
        """Collect the saves made by the calling thread inside the block."""
        previous = getattr(self._local, "reports", None)
        reports: list[SaveReport] = []
        self._local.reports = reports
        try:
            yield reports
        finally:
            self._local.reports = previous

    def mirror_durable(self) -> bool:
        with self._lock:
            return self.store.save_durable(self.state.snapshot())

    def start_autosave(self) -> None:
        if self._autosave is None and self.autosave_interval > 0:
            self._autosave = AutosaveWorker(self, self.autosave_interval)
            self._autosave.start()

    def close(self) -> None:
        if self._autosave is not None:
            self._autosave.stop()
            self._autosave = None
        self.save()

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def add_transaction(self, amount: float, discount: float, method: str) -> Transaction:
        with self._lock:
            transaction = self.state.ledger.add(amount, discount, method)
            self.save()
            return transaction

    def delete_transaction(self, transaction_id: int) -> bool:
        with self._lock:
            removed = self.state.ledger.delete(transaction_id)
            if removed:
                self.save()
            return removed

    def update_payment_method(self, transaction_id: int, method: str) -> Optional[Transaction]:
        with self._lock:
            updated = self.state.ledger.update_payment_method(transaction_id, method)
            if updated is not None:
                self.save()
            return updated

    def set_filter(self, method: str) -> str:
        with self._lock:
            self.state.active_filter = ALL if method == ALL else parse_method(method).value
            return self.state.active_filter

    def filtered_transactions(self, method: Optional[str] = None) -> list[Transaction]:
        with self._lock:
            return list(self.state.ledger.filter(method or self.state.active_filter))

    def dashboard(self) -> dict:
        with self._lock:
            ledger = self.state.ledger
            active = self.state.active_filter
            return {
                "totals": ledger.aggregate().rounded(),
                "counts": ledger.counts(),
                "filter": active,
                "filter_summary": None if active == ALL else ledger.filter_summary(active),
            }

    # ------------------------------------------------------------------
    # Shifts
    # ------------------------------------------------------------------

    @property
    def shift_info(self) -> ShiftInfo:
        return self.state.shifts.info

    def save_shift_info(
        self, employee_name: str, shift_start: Optional[datetime], shift_end: Optional[datetime] = None
    ) -> ShiftInfo:
        with self._lock:
            info = self.state.shifts.save_shift_info(employee_name, shift_start, shift_end)
            self.save()
            return info

    def end_shift(self, confirm_empty: bool = False) -> ShiftSummary:
        with self._lock:
            summary = self.state.shifts.end_shift(confirm_empty=confirm_empty)
            self.state.active_filter = ALL
            self.save()
            logger.info(
                "Shift of %s closed with %d transactions",
                summary.employee_name,
                summary.summary.total_transactions,
            )
            return summary

    def clear_all_data(self) -> None:
        with self._lock:
            self.state.shifts.reset()
            self.state.active_filter = ALL
            self.save()

    def shift_history(self) -> list[ShiftSummary]:
        with self._lock:
            return list(self.state.history)

    def get_shift(self, shift_id: int) -> Optional[ShiftSummary]:
        with self._lock:
            return self.state.history.get(shift_id)

    def delete_shift(self, shift_id: int) -> bool:
        with self._lock:
            removed = self.state.history.delete(shift_id)
            if removed:
                self.save()
            return removed

    def clear_history(self) -> None:
        with self._lock:
            self.state.history.clear()
            self.save()

    # ------------------------------------------------------------------
    # Prices and discounts
    # ------------------------------------------------------------------

    @property
    def fuel_prices(self) -> FuelPrices:
        return self.state.prices.prices

    def save_fuel_prices(self, normal: Any, xp95: Any, diesel: Any) -> FuelPrices:
        with self._lock:
            prices = self.state.prices.set_prices(normal, xp95, diesel)
            self.save()
            return prices

    def price_for(self, fuel_type: str) -> float:
        return self.state.prices.price_for(fuel_type)

    def _unit_price(self, fuel_type: Optional[str], unit_price: Optional[float]) -> float:
        if unit_price is not None:
            return unit_price
        if fuel_type is None:
            raise ValidationError("Please choose a fuel type or a unit price")
        return self.price_for(fuel_type)

    def quote_by_amount(
        self,
        customer_amount: float,
        fuel_type: Optional[str] = None,
        unit_price: Optional[float] = None,
        strict: bool = True,
    ) -> AmountQuote:
        return quote_by_amount(self._unit_price(fuel_type, unit_price), customer_amount, strict=strict)

    def quote_by_volume(
        self,
        liters: float,
        fuel_type: Optional[str] = None,
        unit_price: Optional[float] = None,
        per_liter_discount: Optional[float] = None,
    ) -> VolumeQuote:
        if per_liter_discount is None:
            per_liter_discount = self.per_liter_discount
        return quote_by_volume(liters, self._unit_price(fuel_type, unit_price), per_liter_discount)

    # ------------------------------------------------------------------
    # Import / export
    # ------------------------------------------------------------------

    def export_snapshot(self) -> dict:
        with self._lock:
            return export_snapshot(self.state.snapshot(), self.app_name)

    def import_snapshot(self, document: Any, replace_prices: bool = False) -> ImportResult:
        payload = parse_import(document)
        with self._lock:
            state = self.state
            transactions, shifts = plan_merge(
                payload,
                {t.id for t in state.ledger},
                {s.id for s in state.history},
            )
            state.ledger.extend(transactions)
            state.history.extend(shifts)
            prices_updated = replace_prices and payload.fuel_prices is not None
            if prices_updated:
                state.prices.prices = payload.fuel_prices
            self.save()
        logger.info(
            "Imported %d transactions and %d shifts (prices updated: %s)",
            len(transactions),
            len(shifts),
            prices_updated,
        )
        return ImportResult(
            transactions_added=len(transactions),
            shifts_added=len(shifts),
            prices_updated=prices_updated,
        )


class AutosaveWorker:
    """Mirrors the state into the durable store at a fixed interval."""

    def __init__(self, service: LedgerService, interval: float) -> None:
        self.service = service
        self.interval = interval
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._run, name="ledger-autosave", daemon=True)

    def start(self) -> None:
        self._thread.start()
        logger.info("Autosave thread started (interval=%ss)", self.interval)

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            try:
                self.service.mirror_durable()
            except Exception:
                logger.exception("Periodic durable save failed")

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        self._thread.join(timeout)


def build_service(settings: Settings) -> LedgerService:
    engine = make_engine(settings.database_url)
    store = ReconcilingStore(DurableStore(engine), BackupStore(settings.backup_dir))
    return LedgerService(
        store,
        app_name=settings.app_name,
        per_liter_discount=settings.per_liter_discount,
        save_retries=settings.save_retries,
        autosave_interval=settings.autosave_interval,
    )
