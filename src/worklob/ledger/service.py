"""Append-only transaction log and wallet views.

Rows written here describe what happened; balances on ``users`` stay the
source of truth.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy import or_, select

from worklob.db.models import Transaction, User
from worklob.pagination import paginate

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from worklob.schemas import PaginationInfo

logger = structlog.get_logger()

TRANSACTION_TYPES: frozenset[str] = frozenset(
    {
        "deposit",
        "withdrawal",
        "transfer",
        "swap",
        "escrow_deposit",
        "escrow_in_progress",
        "escrow_completion",
        "escrow_disburse",
        "escrow_confirm",
        "escrow_release",
        "job_payment",
        "gig_payment",
        "refund",
        "bonus",
        "referral",
        "deployer_set_fee",
        "deployer_add_funds",
        "deployer_withdraw",
        "deployer_check_balance",
        "deployer_verify",
        "staking_pool_fund",
        "staking_pool_add",
        "staking_pool_withdraw",
        "dao_pool_fund_eth",
        "dao_pool_withdraw_eth",
        "dao_pool_fund_lob",
        "dao_pool_withdraw_lob",
        "dao_set_voter_reward",
        "blog_withdrawal",
    }
)
TRANSACTION_STATUSES: frozenset[str] = frozenset({"pending", "completed", "failed", "cancelled"})
DEPLOYER_TYPES: frozenset[str] = frozenset(t for t in TRANSACTION_TYPES if t.startswith("deployer_"))


async def record_transaction(  # noqa: PLR0913
    db: AsyncSession,
    *,
    type: str,  # noqa: A002
    amount: Decimal | float,
    description: str,
    from_user_id: int | None = None,
    to_user_id: int | None = None,
    status: str = "completed",
    currency: str = "USD",
    direction: str = "credit",
    tx_hash: str | None = None,
    is_on_chain: bool | None = None,
    details: dict[str, Any] | None = None,
    **on_chain: Any,  # noqa: ANN401
) -> Transaction:
    """
    Append a ledger row. Caller commits.

    ``on_chain`` may carry token_symbol, from_address, to_address,
    block_number, gas_used and gas_price. Without an explicit
    ``is_on_chain`` a row is on-chain exactly when it has a tx_hash.

    Raises:
        ValueError: Unknown type or status.
    """
    if type not in TRANSACTION_TYPES:
        msg = f"Unknown transaction type: {type}"
        raise ValueError(msg)
    if status not in TRANSACTION_STATUSES:
        msg = f"Unknown transaction status: {status}"
        raise ValueError(msg)

    tx = Transaction(
        type=type,
        amount=Decimal(str(amount)),
        description=description,
        from_user_id=from_user_id,
        to_user_id=to_user_id,
        status=status,
        currency=currency,
        direction=direction,
        tx_hash=tx_hash,
        is_on_chain=tx_hash is not None if is_on_chain is None else is_on_chain,
        details=details,
        **on_chain,
    )
    db.add(tx)
    await db.flush()
    logger.info("transaction_recorded", tx_id=tx.id, type=type, amount=str(amount), currency=currency)
    return tx


async def record_transaction_best_effort(db: AsyncSession, **kwargs: Any) -> Transaction | None:  # noqa: ANN401
    """Append a ledger row inside a savepoint; failures are logged, not raised."""
    try:
        async with db.begin_nested():
            return await record_transaction(db, **kwargs)
    except Exception:
        logger.exception("transaction_log_failed", type=kwargs.get("type"), tx_hash=kwargs.get("tx_hash"))
        return None


async def list_user_transactions(
    db: AsyncSession,
    user_id: int,
    page: int = 1,
    limit: int = 20,
    type_filter: str | None = None,
    status: str | None = None,
) -> tuple[list[Transaction], PaginationInfo]:
    """Transactions where the user is sender or recipient, newest first."""
    query = (
        select(Transaction)
        .where(or_(Transaction.from_user_id == user_id, Transaction.to_user_id == user_id))
        .order_by(Transaction.created_at.desc(), Transaction.id.desc())
    )
    if type_filter:
        query = query.where(Transaction.type == type_filter)
    if status:
        query = query.where(Transaction.status == status)
    return await paginate(db, query, page, limit)


async def list_transactions_by_types(
    db: AsyncSession,
    types: frozenset[str],
    from_user_id: int | None = None,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[Transaction], PaginationInfo]:
    """Transactions of the given types, optionally sent by one user, newest first."""
    query = (
        select(Transaction)
        .where(Transaction.type.in_(sorted(types)))
        .order_by(Transaction.created_at.desc(), Transaction.id.desc())
    )
    if from_user_id is not None:
        query = query.where(Transaction.from_user_id == from_user_id)
    return await paginate(db, query, page, limit)


def wallet_summary(user: User) -> dict[str, float | str]:
    """USD wallet balances for display."""
    balance = float(user.wallet_balance or 0)
    escrow = float(user.escrow_balance or 0)
    return {
        "balance": balance,
        "escrow_balance": escrow,
        "total_balance": balance + escrow,
        "currency": "USD",
    }
