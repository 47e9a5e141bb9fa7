import pytest

from repositories import InMemoryLedgerRepository, SqliteLedgerRepository
from services import TransactionProcessor


@pytest.fixture(params=["memory", "sqlite"])
def repository(request, tmp_path):
    """Run each test against both store backends."""
    if request.param == "memory":
        repo = InMemoryLedgerRepository()
    else:
        repo = SqliteLedgerRepository(str(tmp_path / "ledger.db"))
    yield repo
    repo.close()


@pytest.fixture
def processor(repository):
    return TransactionProcessor(repository)
