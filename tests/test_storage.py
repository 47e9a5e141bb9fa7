import pytest

from config import Settings
from errors import StorageError
from repositories import InMemoryLedgerRepository, SqliteLedgerRepository
from storage import open_ledger_store


class TestOpenLedgerStore:
    """Test that the per-run store is isolated and cleaned up."""

    def test_sqlite_store_removed_after_run(self, tmp_path):
        settings = Settings(store_backend="sqlite", store_dir=str(tmp_path))

        with open_ledger_store(settings) as repository:
            assert isinstance(repository, SqliteLedgerRepository)
            repository.create_account(1)
            assert len(list(tmp_path.iterdir())) == 1

        assert list(tmp_path.iterdir()) == []

    def test_sqlite_store_removed_on_error(self, tmp_path):
        settings = Settings(store_backend="sqlite", store_dir=str(tmp_path))

        with pytest.raises(RuntimeError):
            with open_ledger_store(settings) as repository:
                repository.create_account(1)
                raise RuntimeError("boom")

        assert list(tmp_path.iterdir()) == []

    def test_runs_are_isolated(self, tmp_path):
        settings = Settings(store_backend="sqlite", store_dir=str(tmp_path))

        with open_ledger_store(settings) as repository:
            repository.create_account(1)
        with open_ledger_store(settings) as repository:
            assert repository.get_account(1) is None

    def test_memory_backend(self):
        settings = Settings(store_backend="memory")
        with open_ledger_store(settings) as repository:
            assert isinstance(repository, InMemoryLedgerRepository)

    def test_missing_store_dir_raises_storage_error(self, tmp_path):
        settings = Settings(store_backend="sqlite", store_dir=str(tmp_path / "missing"))
        with pytest.raises(StorageError):
            with open_ledger_store(settings):
                pass
