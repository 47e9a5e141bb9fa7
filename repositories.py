import sqlite3
from abc import ABC, abstractmethod
from typing import Dict, Iterator, List, Optional, Tuple

import structlog

from errors import StorageError
from models import BalanceTransfer, ClientAccount, Dispute, DisputeStatus

logger = structlog.get_logger()


class LedgerRepository(ABC):
    """Owns every account, balance transfer and dispute for one run.

    Uniqueness and state preconditions are reported as boolean outcomes;
    only genuine storage failures raise StorageError.
    """

    @abstractmethod
    def create_account(self, client_id: int) -> ClientAccount:
        """Create a zeroed, unlocked account. Raises StorageError if one already exists."""
        pass

    @abstractmethod
    def get_account(self, client_id: int) -> Optional[ClientAccount]:
        """Get account. Returns None if account doesn't exist."""
        pass

    @abstractmethod
    def update_account(self, account: ClientAccount) -> None:
        """Overwrite available, held, total and locked for an existing account."""
        pass

    @abstractmethod
    def try_insert_transfer(self, transfer: BalanceTransfer) -> bool:
        """Insert a transfer. False if its txn_id is taken or its account doesn't exist."""
        pass

    @abstractmethod
    def get_transfer(self, client_id: int, txn_id: int) -> Optional[BalanceTransfer]:
        """Get the transfer with txn_id owned by client_id, or None."""
        pass

    @abstractmethod
    def try_insert_dispute(self, client_id: int, txn_id: int) -> bool:
        """Open a dispute. False if already disputed or the client owns no such transfer."""
        pass

    @abstractmethod
    def try_transition_dispute(
        self,
        client_id: int,
        txn_id: int,
        from_status: DisputeStatus,
        to_status: DisputeStatus
    ) -> bool:
        """Compare-and-set a dispute's status. False if absent or not in from_status."""
        pass

    @abstractmethod
    def get_dispute(self, client_id: int, txn_id: int) -> Optional[Dispute]:
        """Get dispute for a transfer, or None."""
        pass

    @abstractmethod
    def iter_accounts(self) -> Iterator[ClientAccount]:
        """Iterate over all accounts ordered by client id."""
        pass

    @abstractmethod
    def get_accounts_count(self) -> int:
        """Get total number of accounts."""
        pass

    @abstractmethod
    def get_transfers_count(self) -> int:
        """Get total number of accepted transfers."""
        pass

    def close(self) -> None:
        """Release any resources held by the store."""
        pass


class InMemoryLedgerRepository(LedgerRepository):
    def __init__(self):
        self.accounts: Dict[int, ClientAccount] = {}
        self.transfers: Dict[int, BalanceTransfer] = {}
        self.disputes: Dict[Tuple[int, int], Dispute] = {}

    def create_account(self, client_id: int) -> ClientAccount:
        if client_id in self.accounts:
            raise StorageError(f"Account {client_id} already exists")
        account = ClientAccount(client_id=client_id)
        self.accounts[client_id] = account
        return account.model_copy()

    def get_account(self, client_id: int) -> Optional[ClientAccount]:
        account = self.accounts.get(client_id)
        return account.model_copy() if account is not None else None

    def update_account(self, account: ClientAccount) -> None:
        if account.client_id not in self.accounts:
            raise StorageError(f"Account {account.client_id} does not exist")
        self.accounts[account.client_id] = account.model_copy()

    def try_insert_transfer(self, transfer: BalanceTransfer) -> bool:
        if transfer.txn_id in self.transfers or transfer.client_id not in self.accounts:
            return False
        self.transfers[transfer.txn_id] = transfer
        return True

    def get_transfer(self, client_id: int, txn_id: int) -> Optional[BalanceTransfer]:
        transfer = self.transfers.get(txn_id)
        if transfer is None or transfer.client_id != client_id:
            return None
        return transfer

    def try_insert_dispute(self, client_id: int, txn_id: int) -> bool:
        key = (client_id, txn_id)
        if key in self.disputes or self.get_transfer(client_id, txn_id) is None:
            return False
        self.disputes[key] = Dispute(client_id=client_id, txn_id=txn_id)
        return True

    def try_transition_dispute(
        self,
        client_id: int,
        txn_id: int,
        from_status: DisputeStatus,
        to_status: DisputeStatus
    ) -> bool:
        key = (client_id, txn_id)
        dispute = self.disputes.get(key)
        if dispute is None or dispute.status != from_status:
            return False
        self.disputes[key] = dispute.model_copy(update={"status": to_status})
        return True

    def get_dispute(self, client_id: int, txn_id: int) -> Optional[Dispute]:
        return self.disputes.get((client_id, txn_id))

    def iter_accounts(self) -> Iterator[ClientAccount]:
        for client_id in sorted(self.accounts):
            yield self.accounts[client_id].model_copy()

    def get_accounts_count(self) -> int:
        return len(self.accounts)

    def get_transfers_count(self) -> int:
        return len(self.transfers)

    def clear(self) -> None:
        """Drop all ledger state."""
        self.accounts.clear()
        self.transfers.clear()
        self.disputes.clear()


_SCHEMA = """
CREATE TABLE IF NOT EXISTS clients (
    client_id INTEGER NOT NULL PRIMARY KEY,
    available REAL NOT NULL,
    held REAL NOT NULL,
    total REAL NOT NULL,
    locked INTEGER NOT NULL
);
CREATE TABLE IF NOT EXISTS balance_transfers (
    client_id INTEGER NOT NULL,
    txn_id INTEGER NOT NULL UNIQUE,
    amount REAL NOT NULL,
    PRIMARY KEY (client_id, txn_id),
    FOREIGN KEY (client_id) REFERENCES clients(client_id) ON DELETE CASCADE
);
CREATE TABLE IF NOT EXISTS disputes (
    client_id INTEGER NOT NULL,
    txn_id INTEGER NOT NULL,
    status TEXT NOT NULL,
    PRIMARY KEY (client_id, txn_id),
    FOREIGN KEY (client_id, txn_id)
        REFERENCES balance_transfers(client_id, txn_id) ON DELETE CASCADE
);
"""


class SqliteLedgerRepository(LedgerRepository):
    """Ledger store backed by a single SQLite file.

    Uniqueness and referential checks are left to the schema: an
    IntegrityError from an insert is a rejection, any other sqlite3.Error
    is a StorageError.
    """

    def __init__(self, path: str):
        self.path = path
        try:
            self._conn = sqlite3.connect(path, isolation_level=None)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA foreign_keys=ON")
            self._conn.executescript(_SCHEMA)
        except sqlite3.Error as e:
            raise StorageError(f"failed to open ledger store at {path}: {e}") from e
        logger.debug("Ledger store opened", path=path)

    def _execute(self, action: str, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        try:
            return self._conn.execute(sql, params)
        except sqlite3.IntegrityError:
            raise
        except sqlite3.Error as e:
            raise StorageError(f"failed to {action}: {e}") from e

    def _fetchall(self, action: str, sql: str, params: tuple = ()) -> List[sqlite3.Row]:
        cursor = self._execute(action, sql, params)
        try:
            return cursor.fetchall()
        except sqlite3.Error as e:
            raise StorageError(f"failed to {action}: {e}") from e

    @staticmethod
    def _row_to_account(row: sqlite3.Row) -> ClientAccount:
        return ClientAccount(
            client_id=row["client_id"],
            available=row["available"],
            held=row["held"],
            total=row["total"],
            locked=bool(row["locked"]),
        )

    def create_account(self, client_id: int) -> ClientAccount:
        account = ClientAccount(client_id=client_id)
        try:
            self._execute(
                "create account",
                "INSERT INTO clients (client_id, available, held, total, locked) VALUES (?, ?, ?, ?, ?)",
                (account.client_id, account.available, account.held, account.total, int(account.locked)),
            )
        except sqlite3.IntegrityError as e:
            raise StorageError(f"Account {client_id} already exists") from e
        return account

    def get_account(self, client_id: int) -> Optional[ClientAccount]:
        rows = self._fetchall(
            "get account",
            "SELECT client_id, available, held, total, locked FROM clients WHERE client_id = ?",
            (client_id,),
        )
        return self._row_to_account(rows[0]) if rows else None

    def update_account(self, account: ClientAccount) -> None:
        try:
            cursor = self._execute(
                "update account",
                "UPDATE clients SET available = ?, held = ?, total = ?, locked = ? WHERE client_id = ?",
                (account.available, account.held, account.total, int(account.locked), account.client_id),
            )
        except sqlite3.IntegrityError as e:
            raise StorageError(f"failed to update account {account.client_id}: {e}") from e
        if cursor.rowcount != 1:
            raise StorageError(f"Account {account.client_id} does not exist")

    def try_insert_transfer(self, transfer: BalanceTransfer) -> bool:
        try:
            self._execute(
                "insert balance transfer",
                "INSERT INTO balance_transfers (client_id, txn_id, amount) VALUES (?, ?, ?)",
                (transfer.client_id, transfer.txn_id, transfer.amount),
            )
        except sqlite3.IntegrityError:
            return False
        return True

    def get_transfer(self, client_id: int, txn_id: int) -> Optional[BalanceTransfer]:
        rows = self._fetchall(
            "get balance transfer",
            "SELECT client_id, txn_id, amount FROM balance_transfers WHERE client_id = ? AND txn_id = ?",
            (client_id, txn_id),
        )
        if not rows:
            return None
        row = rows[0]
        return BalanceTransfer(client_id=row["client_id"], txn_id=row["txn_id"], amount=row["amount"])

    def try_insert_dispute(self, client_id: int, txn_id: int) -> bool:
        try:
            self._execute(
                "insert dispute",
                "INSERT INTO disputes (client_id, txn_id, status) VALUES (?, ?, ?)",
                (client_id, txn_id, DisputeStatus.open.value),
            )
        except sqlite3.IntegrityError:
            return False
        return True

    def try_transition_dispute(
        self,
        client_id: int,
        txn_id: int,
        from_status: DisputeStatus,
        to_status: DisputeStatus
    ) -> bool:
        try:
            cursor = self._execute(
                "transition dispute",
                "UPDATE disputes SET status = ? WHERE client_id = ? AND txn_id = ? AND status = ?",
                (to_status.value, client_id, txn_id, from_status.value),
            )
        except sqlite3.IntegrityError as e:
            raise StorageError(f"failed to transition dispute {txn_id}: {e}") from e
        return cursor.rowcount == 1

    def get_dispute(self, client_id: int, txn_id: int) -> Optional[Dispute]:
        rows = self._fetchall(
            "get dispute",
            "SELECT client_id, txn_id, status FROM disputes WHERE client_id = ? AND txn_id = ?",
            (client_id, txn_id),
        )
        if not rows:
            return None
        row = rows[0]
        return Dispute(client_id=row["client_id"], txn_id=row["txn_id"], status=DisputeStatus(row["status"]))

    def iter_accounts(self) -> Iterator[ClientAccount]:
        rows = self._fetchall(
            "list accounts",
            "SELECT client_id, available, held, total, locked FROM clients ORDER BY client_id",
        )
        for row in rows:
            yield self._row_to_account(row)

    def get_accounts_count(self) -> int:
        return self._fetchall("count accounts", "SELECT COUNT(*) FROM clients")[0][0]

    def get_transfers_count(self) -> int:
        return self._fetchall("count balance transfers", "SELECT COUNT(*) FROM balance_transfers")[0][0]

    def close(self) -> None:
        try:
            self._conn.close()
        except sqlite3.Error as e:
            raise StorageError(f"failed to close ledger store: {e}") from e
        logger.debug("Ledger store closed", path=self.path)
