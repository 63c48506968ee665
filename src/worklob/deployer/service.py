"""Deployer-only operations: runtime config and the deployer ledger.

Access is granted to exactly one wallet, configured through
``WORKLOB_DEPLOYER_WALLET_ADDRESS``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy import select

from worklob.config import get_settings
from worklob.config_store.service import REGISTRY, set_value, validate_value
from worklob.db.models import ConfigEntry, Transaction, User
from worklob.ledger.service import DEPLOYER_TYPES, list_transactions_by_types, record_transaction

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from worklob.schemas import PaginationInfo

logger = structlog.get_logger()


class DeployerNotConfiguredError(RuntimeError):
    """No deployer wallet is configured on the server (-> 503)."""


@dataclass
class ConfigItem:
    key: str
    value: Any
    description: str
    is_default: bool
    updated_at: datetime | None = None
    updated_by_id: int | None = None


def configured_deployer_wallet() -> str | None:
    wallet = get_settings().deployer_wallet_address.strip()
    return wallet.lower() if wallet else None


def check_deployer(user: User) -> None:
    """
    Raises:
        DeployerNotConfiguredError: No deployer wallet configured.
        PermissionError: User has no wallet, or it is not the deployer wallet.
    """
    configured = configured_deployer_wallet()
    if configured is None:
        msg = "Deployer wallet is not configured on the server"
        raise DeployerNotConfiguredError(msg)
    wallet = (user.wallet_address or "").lower()
    if not wallet:
        msg = "User wallet address not available"
        raise PermissionError(msg)
    if wallet != configured:
        msg = "Access denied: wallet does not match configured deployer wallet"
        raise PermissionError(msg)


async def get_config(db: AsyncSession) -> list[ConfigItem]:
    """Every registered key with its stored value or default."""
    result = await db.execute(select(ConfigEntry).where(ConfigEntry.key.in_(list(REGISTRY))))
    stored = {entry.key: entry for entry in result.scalars().all()}

    items = []
    for key, config_key in REGISTRY.items():
        entry = stored.get(key)
        if entry is None:
            items.append(
                ConfigItem(key=key, value=config_key.default, description=config_key.description, is_default=True)
            )
        else:
            items.append(
                ConfigItem(
                    key=key,
                    value=entry.value,
                    description=entry.description or config_key.description,
                    is_default=False,
                    updated_at=entry.updated_at,
                    updated_by_id=entry.updated_by_id,
                )
            )
    return items


async def update_config(db: AsyncSession, values: dict[str, Any], updated_by: int) -> dict[str, int | float]:
    """
    Validate every value, then store them all.

    Nothing is written if any key fails validation.

    Raises:
        ConfigValidationError: Unknown key or invalid value.
    """
    normalized = {key: validate_value(key, value) for key, value in values.items()}
    for key, value in normalized.items():
        await set_value(db, key, value, updated_by=updated_by)
    logger.info("deployer_config_updated", keys=sorted(normalized), updated_by=updated_by)
    return normalized


async def list_deployer_transactions(
    db: AsyncSession,
    user: User,
    page: int = 1,
    limit: int = 25,
) -> tuple[list[Transaction], PaginationInfo]:
    return await list_transactions_by_types(db, DEPLOYER_TYPES, from_user_id=user.id, page=page, limit=limit)


async def log_deployer_transaction(  # noqa: PLR0913
    db: AsyncSession,
    user: User,
    type_: str,
    description: str,
    amount: Decimal = Decimal("0"),
    tx_hash: str | None = None,
    direction: str = "debit",
    details: dict[str, Any] | None = None,
    to_address: str | None = None,
) -> Transaction:
    """
    Record an on-chain action taken from the deployer wallet.

    Raises:
        ValueError: Type is not a deployer type, or description is empty.
    """
    if type_ not in DEPLOYER_TYPES:
        msg = "Invalid deployer transaction type"
        raise ValueError(msg)
    if not description or not description.strip():
        msg = "Description is required"
        raise ValueError(msg)

    details = dict(details or {})
    details["contractAddress"] = details.get("contractAddress") or get_settings().job_contract_address or None
    return await record_transaction(
        db,
        type=type_,
        amount=amount,
        description=description.strip(),
        from_user_id=user.id,
        status="completed",
        direction=direction,
        tx_hash=tx_hash,
        is_on_chain=True,
        details=details,
        from_address=user.wallet_address,
        to_address=to_address or details.get("toAddress"),
    )
