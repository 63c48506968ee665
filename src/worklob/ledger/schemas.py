"""Wallet and transaction response schemas."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Literal

from pydantic import AliasChoices, Field, field_validator

from worklob.auth.address_validation import validate_wallet_address
from worklob.schemas import CamelModel, PaginationInfo


class WalletInfo(CamelModel):
    balance: float
    escrow_balance: float
    total_balance: float
    currency: str = "USD"
    connected_wallet_address: str | None = None


class LobTokenBalances(CamelModel):
    pending: float = 0
    available: float = 0
    withdrawn: float = 0


class WalletResponse(CamelModel):
    """USD wallet plus LOB token sub-balances."""

    wallet: WalletInfo
    lob_tokens: LobTokenBalances


class TransactionResponse(CamelModel):
    id: int
    type: str
    status: str
    amount: float
    currency: str
    direction: str
    description: str
    from_user_id: int | None = None
    to_user_id: int | None = None
    is_on_chain: bool = False
    tx_hash: str | None = None
    token_symbol: str | None = None
    from_address: str | None = None
    token_address: str | None = None
    to_address: str | None = None
    block_number: int | None = None
    details: dict[str, Any] | None = Field(
        None, validation_alias=AliasChoices("details", "metadata"), serialization_alias="metadata"
    )
    created_at: datetime


class TransactionListResponse(CamelModel):
    transactions: list[TransactionResponse]
    pagination: PaginationInfo


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------


class DepositRequest(CamelModel):
    amount: Decimal = Field(..., ge=1, decimal_places=8)
    payment_method: str | None = Field(None, max_length=64)


class WithdrawRequest(CamelModel):
    amount: Decimal = Field(..., ge=1, decimal_places=8)
    bank_account: str = Field(..., min_length=1, max_length=128)


class TransferRequest(CamelModel):
    to_user: int = Field(..., gt=0)
    amount: Decimal = Field(..., ge=1, decimal_places=8)
    description: str | None = Field(None, max_length=500)


class EscrowRequest(CamelModel):
    amount: Decimal = Field(..., ge=1, decimal_places=8)
    action: Literal["deposit", "release"]
    job_id: str | None = Field(None, max_length=64)
    gig_id: str | None = Field(None, max_length=64)
    description: str | None = Field(None, max_length=500)


class WalletMutationResponse(CamelModel):
    message: str
    new_balance: float
    new_escrow_balance: float | None = None
    transaction: TransactionResponse


class EscrowDetailsResponse(CamelModel):
    total_escrow: float
    escrow_details: list[TransactionResponse]
    count: int
    pagination: PaginationInfo


class OnchainTransactionRequest(CamelModel):
    """Client-reported on-chain transfer. Amounts beyond 8 places are truncated."""

    tx_hash: str = Field(..., min_length=1, max_length=128)
    amount: Decimal = Field(..., ge=0)
    type: Literal["deposit", "withdrawal", "transfer", "swap"]
    token_address: str | None = Field(None, max_length=64)
    token_symbol: str | None = Field(None, max_length=16)
    from_address: str | None = Field(None, max_length=64)
    to_address: str | None = Field(None, max_length=64)
    block_number: int | None = Field(None, ge=0)
    gas_used: int | None = Field(None, ge=0)
    gas_price: int | None = Field(None, ge=0)
    description: str | None = Field(None, max_length=500)


class OnchainTransactionResponse(CamelModel):
    message: str = "Transaction saved successfully"
    transaction: TransactionResponse


class ConnectWalletRequest(CamelModel):
    wallet_address: str

    @field_validator("wallet_address")
    @classmethod
    def check_address(cls, v: str) -> str:
        return validate_wallet_address(v)


class ConnectWalletResponse(CamelModel):
    message: str
    connected_wallet_address: str | None = None
