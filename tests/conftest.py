import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from fuelbook.errors import PersistenceError
from fuelbook.service import LedgerService
from fuelbook.storage import BackupStore, DurableStore, ReconcilingStore


class FakeStore:
    """In-memory Store with switchable failures."""

    def __init__(self, data=None):
        self.data = data
        self.fail_reads = False
        self.fail_writes = False
        self.writes = []

    def read(self):
        if self.fail_reads:
            raise PersistenceError("read refused")
        return None if self.data is None else dict(self.data)

    def write(self, snapshot):
        self.writes.append(snapshot)
        if self.fail_writes:
            raise PersistenceError("write refused")
        self.data = dict(snapshot)


def memory_engine():
    return create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )


@pytest.fixture
def engine():
    return memory_engine()


@pytest.fixture
def store(engine, tmp_path):
    return ReconcilingStore(DurableStore(engine), BackupStore(tmp_path / "backup"))


@pytest.fixture
def service(store):
    service = LedgerService(store, autosave_interval=0)
    service.load()
    return service
