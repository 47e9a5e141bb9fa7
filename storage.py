import os
import shutil
import tempfile
from contextlib import contextmanager
from typing import Iterator, Optional

import structlog

from config import Settings, get_settings
from errors import StorageError
from repositories import InMemoryLedgerRepository, LedgerRepository, SqliteLedgerRepository

logger = structlog.get_logger()


@contextmanager
def open_ledger_store(settings: Optional[Settings] = None) -> Iterator[LedgerRepository]:
    """Acquire a ledger store for a single run.

    The SQLite backend lives in a private temporary directory that is
    removed when the block exits, whether it finishes or raises, so no
    state is shared between runs.
    """
    settings = settings or get_settings()

    if settings.store_backend == "memory":
        repository = InMemoryLedgerRepository()
        try:
            yield repository
        finally:
            repository.close()
        return

    try:
        workdir = tempfile.mkdtemp(prefix="ledger-", dir=settings.store_dir)
    except OSError as e:
        raise StorageError(f"failed to create ledger store directory: {e}") from e

    try:
        repository = SqliteLedgerRepository(os.path.join(workdir, settings.sqlite_filename))
        try:
            yield repository
        finally:
            repository.close()
    finally:
        _remove_workdir(workdir)


def _remove_workdir(workdir: str) -> None:
    try:
        shutil.rmtree(workdir)
    except OSError as e:
        logger.warning("Failed to remove ledger store directory", path=workdir, error=str(e))
    else:
        logger.debug("Ledger store directory removed", path=workdir)
