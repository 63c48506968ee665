"""Deployer request/response schemas."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Literal

from pydantic import Field

from worklob.ledger.schemas import TransactionResponse
from worklob.schemas import CamelModel


class ConfigItemResponse(CamelModel):
    key: str
    value: Any
    description: str
    is_default: bool
    updated_at: datetime | None = None
    updated_by_id: int | None = None


class ConfigResponse(CamelModel):
    config: dict[str, Any]
    entries: list[ConfigItemResponse]


class ConfigUpdateRequest(CamelModel):
    """Keys are config_entries keys (snake_case), e.g. ``blog_earnings_views_rate``."""

    values: dict[str, Any] = Field(..., min_length=1)


class ConfigUpdateResponse(CamelModel):
    success: bool = True
    message: str = "Configuration updated"
    updated: dict[str, int | float]


class DeployerTransactionRequest(CamelModel):
    type: str
    amount: Decimal = Field(Decimal("0"), ge=0, decimal_places=8)
    description: str | None = Field(None, max_length=500)
    tx_hash: str | None = Field(None, max_length=128)
    direction: Literal["credit", "debit"] = "debit"
    metadata: dict[str, Any] = Field(default_factory=dict)
    to_address: str | None = Field(None, max_length=64)


class DeployerTransactionCreated(CamelModel):
    transaction: TransactionResponse


class DeployerTransactionList(CamelModel):
    transactions: list[TransactionResponse]
    page: int
    pages: int
    total: int
