from pydantic import BaseModel, ConfigDict, Field, FiniteFloat, ValidationInfo, field_validator
from enum import Enum
from typing import Annotated, Literal, Optional, Union


MAX_CLIENT_ID = 2**16 - 1
MAX_TXN_ID = 2**32 - 1


class TransactionType(str, Enum):
    deposit = "deposit"
    withdrawal = "withdrawal"
    dispute = "dispute"
    resolve = "resolve"
    chargeback = "chargeback"


class DisputeStatus(str, Enum):
    open = "open"
    resolved = "resolved"
    chargeback = "chargeback"


class RawTransaction(BaseModel):
    """One untyped input row, after column mapping but before validation into a command."""

    type: str = Field(..., description="Transaction type as it appears in the input")
    client: int = Field(..., ge=0, le=MAX_CLIENT_ID, description="Client identifier")
    tx: int = Field(..., ge=0, le=MAX_TXN_ID, description="Globally unique transaction identifier")
    amount: Optional[FiniteFloat] = Field(
        None,
        description="Transfer amount, only meaningful for deposits and withdrawals"
    )

    @field_validator('type', 'client', 'tx', 'amount', mode='before')
    @classmethod
    def strip_whitespace(cls, v, info: ValidationInfo):
        if isinstance(v, str):
            v = v.strip()
            # an empty amount column means no amount was given
            if info.field_name == 'amount' and not v:
                return None
            if info.field_name in ('client', 'tx') and not (v.isascii() and v.isdigit()):
                raise ValueError('must be a non-negative whole number')
        return v


class ClientAccount(BaseModel):
    client_id: int = Field(..., ge=0, le=MAX_CLIENT_ID)
    available: float = Field(0.0, description="Funds the client may withdraw now")
    held: float = Field(0.0, description="Funds frozen pending dispute resolution")
    total: float = Field(0.0, description="available + held")
    locked: bool = Field(False, description="Set permanently after a chargeback")

    def recompute_total(self) -> None:
        self.total = self.available + self.held


class BalanceTransfer(BaseModel):
    """A deposit (positive amount) or a withdrawal (negative amount)."""

    model_config = ConfigDict(frozen=True)

    client_id: int
    txn_id: int
    amount: float

    @property
    def is_withdrawal(self) -> bool:
        return self.amount < 0


class Dispute(BaseModel):
    model_config = ConfigDict(frozen=True)

    client_id: int
    txn_id: int
    status: DisputeStatus = DisputeStatus.open


class TransferCommand(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["transfer"] = "transfer"
    client_id: int
    txn_id: int
    amount: float = Field(..., description="Signed amount: negative for withdrawals")


class DisputeCommand(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["dispute"] = "dispute"
    client_id: int
    txn_id: int


class ResolveCommand(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["resolve"] = "resolve"
    client_id: int
    txn_id: int


class ChargebackCommand(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["chargeback"] = "chargeback"
    client_id: int
    txn_id: int


Command = Annotated[
    Union[TransferCommand, DisputeCommand, ResolveCommand, ChargebackCommand],
    Field(discriminator="kind"),
]


class RunSummary(BaseModel):
    records_read: int = Field(..., description="Data rows read from the input")
    records_skipped: int = Field(..., description="Rows dropped for format errors")
    commands_applied: int = Field(..., description="Commands that changed an account")
    accounts_count: int = Field(..., description="Number of accounts in the ledger")
    transfers_count: int = Field(..., description="Number of accepted deposits and withdrawals")
