"""USD wallet mutations: deposits, withdrawals, transfers and escrow moves.

Every balance change is a single conditional ``UPDATE`` (``WHERE balance >=
:amount``) followed by a ledger row in the same transaction. A guard that
matches no row means the balance was too low at write time, whatever the
caller read earlier.
"""

from __future__ import annotations

from decimal import ROUND_DOWN, Decimal
from typing import TYPE_CHECKING, Any, Literal

import structlog
from sqlalchemy import or_, select, update

from worklob.db.models import Transaction, User
from worklob.ledger.service import record_transaction
from worklob.pagination import paginate

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from worklob.schemas import PaginationInfo

logger = structlog.get_logger()

ONCHAIN_TYPES = ("deposit", "withdrawal", "transfer", "swap")
ESCROW_TYPES: frozenset[str] = frozenset(
    {
        "escrow_deposit",
        "escrow_in_progress",
        "escrow_completion",
        "escrow_disburse",
        "escrow_confirm",
        "escrow_release",
    }
)
EscrowAction = Literal["deposit", "release"]

_PLACES = Decimal("0.00000001")


class WalletError(ValueError):
    """Wallet request that cannot be applied."""


class InsufficientBalanceError(WalletError):
    """Debit larger than the balance it is drawn from."""


class DuplicateTransactionError(WalletError):
    """On-chain transaction hash already recorded."""


class RecipientNotFoundError(LookupError):
    """Transfer to an unknown user."""


async def _debit(db: AsyncSession, user_id: int, amount: Decimal, **extra: Any) -> bool:  # noqa: ANN401
    result = await db.execute(
        update(User)
        .where(User.id == user_id, User.wallet_balance >= amount)
        .values(wallet_balance=User.wallet_balance - amount, **extra)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def deposit(db: AsyncSession, user: User, amount: Decimal, payment_method: str | None = None) -> Transaction:
    """Credit an external deposit. Caller commits."""
    await db.execute(
        update(User)
        .where(User.id == user.id)
        .values(wallet_balance=User.wallet_balance + amount)
        .execution_options(synchronize_session=False)
    )
    tx = await record_transaction(
        db,
        type="deposit",
        amount=amount,
        description=f"Deposit via {payment_method or 'payment method'}",
        to_user_id=user.id,
        details={"paymentMethod": payment_method} if payment_method else None,
    )
    await db.refresh(user)
    logger.info("wallet_deposit", user_id=user.id, amount=str(amount))
    return tx


async def withdraw(db: AsyncSession, user: User, amount: Decimal, bank_account: str) -> Transaction:
    """
    Debit a withdrawal request. The ledger row stays ``pending`` until paid out.

    Raises:
        InsufficientBalanceError: Balance below ``amount``.
    """
    if not await _debit(db, user.id, amount):
        msg = "Insufficient balance"
        raise InsufficientBalanceError(msg)

    tx = await record_transaction(
        db,
        type="withdrawal",
        amount=amount,
        description=f"Withdrawal to {bank_account}",
        from_user_id=user.id,
        status="pending",
        direction="debit",
    )
    await db.refresh(user)
    logger.info("wallet_withdrawal_requested", user_id=user.id, amount=str(amount), tx_id=tx.id)
    return tx


async def transfer(
    db: AsyncSession,
    sender: User,
    to_user_id: int,
    amount: Decimal,
    description: str | None = None,
) -> Transaction:
    """
    Move ``amount`` from the sender's wallet to another user's.

    Raises:
        RecipientNotFoundError: Unknown recipient.
        WalletError: Transfer to self.
        InsufficientBalanceError: Sender balance below ``amount``.
    """
    recipient = await db.get(User, to_user_id)
    if recipient is None:
        msg = "Recipient not found"
        raise RecipientNotFoundError(msg)
    if recipient.id == sender.id:
        msg = "Cannot transfer to yourself"
        raise WalletError(msg)

    if not await _debit(db, sender.id, amount):
        msg = "Insufficient balance"
        raise InsufficientBalanceError(msg)
    await db.execute(
        update(User)
        .where(User.id == recipient.id)
        .values(wallet_balance=User.wallet_balance + amount)
        .execution_options(synchronize_session=False)
    )

    tx = await record_transaction(
        db,
        type="transfer",
        amount=amount,
        description=description or f"Transfer to {recipient.username}",
        from_user_id=sender.id,
        to_user_id=recipient.id,
        direction="debit",
    )
    await db.refresh(sender)
    logger.info("wallet_transfer", from_user_id=sender.id, to_user_id=recipient.id, amount=str(amount))
    return tx


async def move_escrow(
    db: AsyncSession,
    user: User,
    amount: Decimal,
    action: EscrowAction,
    description: str | None = None,
    reference: dict[str, str] | None = None,
) -> Transaction:
    """
    Move funds between the spendable balance and escrow.

    ``deposit`` locks funds in escrow, ``release`` returns them.

    Raises:
        InsufficientBalanceError: Source balance below ``amount``.
    """
    if action == "deposit":
        moved = await _debit(db, user.id, amount, escrow_balance=User.escrow_balance + amount)
        if not moved:
            msg = "Insufficient balance"
            raise InsufficientBalanceError(msg)
    else:
        result = await db.execute(
            update(User)
            .where(User.id == user.id, User.escrow_balance >= amount)
            .values(
                escrow_balance=User.escrow_balance - amount,
                wallet_balance=User.wallet_balance + amount,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            msg = "Insufficient escrow balance"
            raise InsufficientBalanceError(msg)

    tx = await record_transaction(
        db,
        type=f"escrow_{action}",
        amount=amount,
        description=description or f"Escrow {action}",
        from_user_id=user.id if action == "deposit" else None,
        to_user_id=user.id if action == "release" else None,
        direction="debit" if action == "deposit" else "credit",
        details=reference or None,
    )
    await db.refresh(user)
    logger.info("wallet_escrow_moved", user_id=user.id, action=action, amount=str(amount))
    return tx


async def escrow_history(
    db: AsyncSession, user_id: int, page: int = 1, limit: int = 20
) -> tuple[list[Transaction], PaginationInfo]:
    """Escrow ledger rows that touch the user, newest first."""
    query = (
        select(Transaction)
        .where(
            Transaction.type.in_(sorted(ESCROW_TYPES)),
            or_(Transaction.from_user_id == user_id, Transaction.to_user_id == user_id),
        )
        .order_by(Transaction.created_at.desc(), Transaction.id.desc())
    )
    return await paginate(db, query, page, limit)


def linked_address(user: User) -> str | None:
    """The address on-chain activity is matched against."""
    if user.auth_method == "email" and user.connected_wallet_address:
        return user.connected_wallet_address
    return user.wallet_address


async def record_onchain(db: AsyncSession, user: User, data: dict[str, Any]) -> Transaction:
    """
    Log a client-reported on-chain transaction.

    The direction comes from which side of the transfer the user's linked
    address is on. A row matching neither side is logged as received so it
    still shows in the user's history.

    Raises:
        DuplicateTransactionError: ``tx_hash`` already logged.
    """
    tx_hash = data["tx_hash"]
    existing = await db.execute(select(Transaction.id).where(Transaction.tx_hash == tx_hash))
    if existing.first() is not None:
        msg = "Transaction already exists"
        raise DuplicateTransactionError(msg)

    address = (linked_address(user) or "").lower()
    from_address = data.get("from_address")
    to_address = data.get("to_address")
    is_from = bool(address) and (from_address or "").lower() == address
    is_to = bool(address) and (to_address or "").lower() == address
    if not is_from and not is_to:
        is_to = True

    symbol = data.get("token_symbol") or "ETH"
    gas_price = data.get("gas_price") or None
    tx = await record_transaction(
        db,
        type=data["type"],
        amount=Decimal(data["amount"]).quantize(_PLACES, rounding=ROUND_DOWN),
        description=data.get("description") or f"On-chain {data['type']}",
        from_user_id=user.id if is_from else None,
        to_user_id=user.id if is_to else None,
        currency=symbol[:8],
        direction="debit" if is_from and not is_to else "credit",
        tx_hash=tx_hash,
        is_on_chain=True,
        token_symbol=symbol,
        token_address=data.get("token_address"),
        from_address=from_address,
        to_address=to_address,
        block_number=data.get("block_number"),
        gas_used=data.get("gas_used"),
        gas_price=gas_price,
    )
    logger.info("onchain_transaction_recorded", user_id=user.id, tx_hash=tx_hash, type=data["type"])
    return tx


async def connect_wallet(db: AsyncSession, user: User, address: str) -> User:
    """
    Link an external wallet to an email account.

    Raises:
        WalletError: Wallet account, or the address belongs to another user.
    """
    if user.auth_method != "email":
        msg = "This endpoint is only for email-logged users"
        raise WalletError(msg)

    taken = await db.execute(
        select(User.id).where(
            User.id != user.id,
            or_(User.wallet_address == address, User.connected_wallet_address == address),
        )
    )
    if taken.first() is not None:
        msg = "This wallet address is already connected to another account"
        raise WalletError(msg)

    user.connected_wallet_address = address
    await db.flush()
    logger.info("wallet_connected", user_id=user.id)
    return user


async def disconnect_wallet(db: AsyncSession, user: User) -> User:
    """Raises WalletError for wallet accounts."""
    if user.auth_method != "email":
        msg = "This endpoint is only for email-logged users"
        raise WalletError(msg)
    user.connected_wallet_address = None
    await db.flush()
    logger.info("wallet_disconnected", user_id=user.id)
    return user
