from typing import Optional

import structlog

from errors import InvariantViolation
from models import (
    BalanceTransfer,
    ChargebackCommand,
    ClientAccount,
    Command,
    DisputeCommand,
    DisputeStatus,
    RawTransaction,
    ResolveCommand,
    TransactionType,
    TransferCommand,
)
from repositories import LedgerRepository

# Configure structured logging
logger = structlog.get_logger()


_DISPUTE_LIFECYCLE_COMMANDS = {
    TransactionType.dispute: DisputeCommand,
    TransactionType.resolve: ResolveCommand,
    TransactionType.chargeback: ChargebackCommand,
}


def validate_raw_input(raw: RawTransaction) -> Optional[Command]:
    """Turn a raw record into a command, or None if the record should be dropped.

    Deposits and withdrawals become a single signed TransferCommand: the
    withdrawal amount is negated. Dispute, resolve and chargeback must not
    carry an amount.
    """
    try:
        txn_type = TransactionType(raw.type)
    except ValueError:
        return None

    if txn_type in (TransactionType.deposit, TransactionType.withdrawal):
        if raw.amount is None or raw.amount <= 0:
            return None
        amount = raw.amount if txn_type == TransactionType.deposit else -raw.amount
        return TransferCommand(client_id=raw.client, txn_id=raw.tx, amount=amount)

    if raw.amount is not None:
        return None
    return _DISPUTE_LIFECYCLE_COMMANDS[txn_type](client_id=raw.client, txn_id=raw.tx)


class TransactionProcessor:
    def __init__(self, repository: LedgerRepository):
        self.repository = repository
        self.applied_count = 0

    def process(self, raw: RawTransaction) -> bool:
        """Validate and apply one raw record. Returns True if any account changed."""
        command = validate_raw_input(raw)
        if command is None:
            logger.debug(
                "Dropping invalid record",
                type=raw.type,
                client_id=raw.client,
                txn_id=raw.tx
            )
            return False
        return self.process_command(command)

    def process_command(self, command: Command) -> bool:
        """Apply one command against its client's current account state."""
        account = self._load_account(command.client_id)

        # Locked accounts are frozen for good
        if account.locked:
            logger.debug(
                "Ignoring command for locked account",
                kind=command.kind,
                client_id=command.client_id,
                txn_id=command.txn_id
            )
            return False

        if isinstance(command, TransferCommand):
            applied = self._apply_transfer(account, command)
        elif isinstance(command, DisputeCommand):
            applied = self._apply_dispute(account, command)
        elif isinstance(command, ResolveCommand):
            applied = self._apply_resolve(account, command)
        elif isinstance(command, ChargebackCommand):
            applied = self._apply_chargeback(account, command)
        else:
            raise InvariantViolation(f"Unsupported command type {type(command).__name__}")

        if not applied:
            return False

        account.recompute_total()
        self.repository.update_account(account)
        self.applied_count += 1

        logger.debug(
            "Command applied",
            kind=command.kind,
            client_id=account.client_id,
            txn_id=command.txn_id,
            available=account.available,
            held=account.held,
            total=account.total,
            locked=account.locked
        )
        return True

    def _load_account(self, client_id: int) -> ClientAccount:
        account = self.repository.get_account(client_id)
        if account is None:
            account = self.repository.create_account(client_id)
        return account

    def _require_transfer(self, command: Command) -> BalanceTransfer:
        transfer = self.repository.get_transfer(command.client_id, command.txn_id)
        if transfer is None:
            logger.error(
                "Dispute state refers to a missing balance transfer",
                kind=command.kind,
                client_id=command.client_id,
                txn_id=command.txn_id
            )
            raise InvariantViolation(
                f"{command.kind} on transaction {command.txn_id} for client "
                f"{command.client_id} succeeded but the balance transfer is missing"
            )
        return transfer

    def _apply_transfer(self, account: ClientAccount, command: TransferCommand) -> bool:
        # available may already be negative after a dispute; deposits are still allowed
        if command.amount < 0 and account.available + command.amount < 0:
            logger.debug(
                "Insufficient funds for withdrawal",
                client_id=account.client_id,
                txn_id=command.txn_id,
                available=account.available,
                requested_amount=-command.amount
            )
            return False

        transfer = BalanceTransfer(
            client_id=command.client_id,
            txn_id=command.txn_id,
            amount=command.amount
        )
        if not self.repository.try_insert_transfer(transfer):
            logger.debug(
                "Duplicate transaction id",
                client_id=account.client_id,
                txn_id=command.txn_id
            )
            return False

        account.available += command.amount
        return True

    def _apply_dispute(self, account: ClientAccount, command: DisputeCommand) -> bool:
        if not self.repository.try_insert_dispute(command.client_id, command.txn_id):
            logger.debug(
                "Dispute rejected",
                client_id=account.client_id,
                txn_id=command.txn_id
            )
            return False

        transfer = self._require_transfer(command)
        if transfer.is_withdrawal:
            # amount is negative, so held grows by the withdrawn amount
            account.held -= transfer.amount
        else:
            account.held += transfer.amount
            account.available -= transfer.amount
        return True

    def _apply_resolve(self, account: ClientAccount, command: ResolveCommand) -> bool:
        if not self.repository.try_transition_dispute(
            command.client_id, command.txn_id, DisputeStatus.open, DisputeStatus.resolved
        ):
            logger.debug(
                "Resolve rejected, no open dispute",
                client_id=account.client_id,
                txn_id=command.txn_id
            )
            return False

        transfer = self._require_transfer(command)
        if transfer.is_withdrawal:
            account.held += transfer.amount
        else:
            account.held -= transfer.amount
            account.available += transfer.amount
        return True

    def _apply_chargeback(self, account: ClientAccount, command: ChargebackCommand) -> bool:
        if not self.repository.try_transition_dispute(
            command.client_id, command.txn_id, DisputeStatus.open, DisputeStatus.chargeback
        ):
            logger.debug(
                "Chargeback rejected, no open dispute",
                client_id=account.client_id,
                txn_id=command.txn_id
            )
            return False

        transfer = self._require_transfer(command)
        if transfer.is_withdrawal:
            # the withdrawn funds come back to the client for good
            account.held += transfer.amount
            account.available -= transfer.amount
        else:
            # available was already reduced when the dispute opened
            account.held -= transfer.amount
        account.locked = True

        logger.info(
            "Account locked after chargeback",
            client_id=account.client_id,
            txn_id=command.txn_id
        )
        return True


# Factory function for dependency injection
def get_transaction_processor(repository: LedgerRepository) -> TransactionProcessor:
    return TransactionProcessor(repository)
