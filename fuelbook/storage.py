"""Durable and backup stores for the ledger state, and the policy that reconciles them."""
from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Protocol

from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel
from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from fuelbook.db import Base, make_session_factory
from fuelbook.errors import PersistenceError
from fuelbook.models import LedgerRecord
from fuelbook.schemas import LedgerSnapshot

logger = logging.getLogger(__name__)

RECORD_KEY = "fuelRecordData"

# file stems match the browser storage keys of the legacy web app
BACKUP_KEYS = {
    "transactions": "fuelRecordTransactions",
    "shiftInfo": "fuelRecordShiftInfo",
    "shiftHistory": "fuelRecordShiftHistory",
    "fuelPrices": "fuelRecordPrices",
}


def _now() -> datetime:
    return datetime.now(timezone.utc)


class Store(Protocol):
    def read(self) -> Optional[dict]:
        ...

    def write(self, snapshot: dict) -> None:
        ...


class DurableStore:
    def __init__(self, engine: Engine, key: str = RECORD_KEY) -> None:
        self.engine = engine
        self.key = key
        self._session_factory = make_session_factory(engine)
        self._schema_ready = False

    def _ensure_schema(self) -> None:
        if not self._schema_ready:
            Base.metadata.create_all(bind=self.engine)
            self._schema_ready = True

    def read(self) -> Optional[dict]:
        try:
            self._ensure_schema()
            with self._session_factory() as db:
                record = db.get(LedgerRecord, self.key)
                if record is None:
                    return None
                return dict(record.payload)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"durable store read failed: {exc}") from exc

    def write(self, snapshot: dict) -> None:
        try:
            self._ensure_schema()
            with self._session_factory() as db:
                record = db.get(LedgerRecord, self.key)
                if record is None:
                    record = LedgerRecord(key=self.key, payload=snapshot, last_updated=_now())
                    db.add(record)
                else:
                    record.payload = snapshot
                    record.last_updated = _now()
                db.commit()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"durable store write failed: {exc}") from exc

    def ping(self) -> bool:
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError:
            logger.warning("Durable store is not reachable", exc_info=True)
            return False


class BackupStore:
    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)

    def _path(self, field: str) -> Path:
        return self.directory / f"{BACKUP_KEYS[field]}.json"

    def read(self) -> Optional[dict]:
        found: dict = {}
        for field in BACKUP_KEYS:
            path = self._path(field)
            if not path.exists():
                continue
            try:
                found[field] = json.loads(path.read_text(encoding="utf-8"))
            except (OSError, ValueError):
                logger.warning("Skipping unreadable backup entry %s", path, exc_info=True)
        return found or None

    def write(self, snapshot: dict) -> None:
        failed: list[str] = []
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise PersistenceError(f"backup directory unavailable: {exc}") from exc
        for field in BACKUP_KEYS:
            if field not in snapshot:
                continue
            path = self._path(field)
            tmp_path = path.with_suffix(".json.tmp")
            try:
                tmp_path.write_text(json.dumps(snapshot[field], ensure_ascii=False, indent=2), encoding="utf-8")
                os.replace(tmp_path, path)
            except OSError:
                logger.exception("Failed to write backup entry %s", path)
                failed.append(field)
        if failed:
            raise PersistenceError(f"backup store write failed for: {', '.join(failed)}")


def _valid_fields(payload: dict) -> tuple[dict, set[str]]:
    values: dict = {}
    invalid: set[str] = set()
    for name in LedgerSnapshot.model_fields:
        raw = payload.get(to_camel(name), payload.get(name))
        if raw is None:
            continue
        try:
            LedgerSnapshot.model_validate({name: raw})
        except PydanticValidationError:
            logger.warning("Stored field %s is invalid", to_camel(name))
            invalid.add(name)
            continue
        values[name] = raw
    return values, invalid


def coerce_snapshot(payload: dict) -> LedgerSnapshot:
    values, _ = _valid_fields(payload)
    return LedgerSnapshot.model_validate(values)


@dataclass(frozen=True)
class SaveReport:
    durable_ok: bool
    backup_ok: bool

    @property
    def ok(self) -> bool:
        return self.durable_ok or self.backup_ok


class ReconcilingStore:
    def __init__(self, durable: Store, backup: Store) -> None:
        self.durable = durable
        self.backup = backup

    def _write_durable(self, payload: dict) -> bool:
        try:
            self.durable.write(payload)
            return True
        except PersistenceError:
            logger.exception("Durable store write failed")
            return False

    def _write_backup(self, payload: dict) -> bool:
        fields = {key: payload[key] for key in BACKUP_KEYS if key in payload}
        try:
            self.backup.write(fields)
            return True
        except PersistenceError:
            logger.exception("Backup store write failed")
            return False

    def _read_backup(self) -> dict:
        try:
            return self.backup.read() or {}
        except PersistenceError:
            logger.exception("Backup store read failed")
            return {}

    @staticmethod
    def _stamp(snapshot: LedgerSnapshot) -> dict:
        return snapshot.model_copy(update={"last_updated": _now()}).to_wire()

    def save(self, snapshot: LedgerSnapshot) -> SaveReport:
        payload = self._stamp(snapshot)
        return SaveReport(
            durable_ok=self._write_durable(payload),
            backup_ok=self._write_backup(payload),
        )

    def save_durable(self, snapshot: LedgerSnapshot) -> bool:
        return self._write_durable(self._stamp(snapshot))

    def load(self) -> LedgerSnapshot:
        try:
            payload = self.durable.read()
        except PersistenceError:
            logger.exception("Durable store read failed, falling back to backup store")
            payload = None

        if payload is not None and "transactions" in payload:
            values, invalid = _valid_fields(payload)
            if invalid:
                backup_values, _ = _valid_fields(self._read_backup())
                for name in invalid.intersection(backup_values):
                    logger.warning("Recovered %s from backup store", to_camel(name))
                    values[name] = backup_values[name]
            snapshot = LedgerSnapshot.model_validate(values)
            # a field neither store holds validly must not overwrite the backup copy
            lost = {to_camel(name) for name in invalid.difference(values)}
            wire = snapshot.to_wire()
            self._write_backup({key: value for key, value in wire.items() if key not in lost})
            logger.info(
                "Loaded %d transactions and %d shifts from durable store",
                len(snapshot.transactions),
                len(snapshot.shift_history),
            )
            return snapshot

        fields = self._read_backup()
        snapshot = coerce_snapshot(fields)
        if fields:
            logger.info("Migrating backup store fields %s into durable store", sorted(fields))
        else:
            logger.info("No stored ledger found, starting from defaults")
        self._write_durable(self._stamp(snapshot))
        return snapshot
