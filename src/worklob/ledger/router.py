"""Wallet router: balances, transaction history and wallet mutations."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from worklob.auth.dependencies import get_current_user
from worklob.database import get_session
from worklob.db.models import User
from worklob.ledger.schemas import (
    ConnectWalletRequest,
    ConnectWalletResponse,
    DepositRequest,
    EscrowDetailsResponse,
    EscrowRequest,
    LobTokenBalances,
    OnchainTransactionRequest,
    OnchainTransactionResponse,
    TransactionListResponse,
    TransactionResponse,
    TransferRequest,
    WalletInfo,
    WalletMutationResponse,
    WalletResponse,
    WithdrawRequest,
)
from worklob.ledger.service import list_user_transactions, wallet_summary
from worklob.ledger.wallet import (
    RecipientNotFoundError,
    WalletError,
    connect_wallet,
    deposit,
    disconnect_wallet,
    escrow_history,
    move_escrow,
    record_onchain,
    transfer,
    withdraw,
)

router = APIRouter(prefix="/api/v1/wallet", tags=["Wallet"])


def _wallet_response(user: User) -> WalletResponse:
    return WalletResponse(
        wallet=WalletInfo(**wallet_summary(user), connected_wallet_address=user.connected_wallet_address),
        lob_tokens=LobTokenBalances(
            pending=float(user.lob_pending or 0),
            available=float(user.lob_available or 0),
            withdrawn=float(user.lob_withdrawn or 0),
        ),
    )


@router.get("", response_model=WalletResponse)
async def get_wallet(user: User = Depends(get_current_user)) -> WalletResponse:
    """USD wallet and LOB token balances."""
    return _wallet_response(user)


@router.get("/balance", response_model=WalletResponse)
async def get_balance(user: User = Depends(get_current_user)) -> WalletResponse:
    return _wallet_response(user)


@router.get("/transactions", response_model=TransactionListResponse)
async def get_transactions(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    type: str | None = Query(None),  # noqa: A002
    status: str | None = Query(None),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> TransactionListResponse:
    """Paginated history of transactions sent or received by the user."""
    rows, pagination = await list_user_transactions(db, user.id, page, limit, type, status)
    return TransactionListResponse(
        transactions=[TransactionResponse.model_validate(tx) for tx in rows],
        pagination=pagination,
    )


@router.post("/transactions/onchain", response_model=OnchainTransactionResponse, status_code=201)
async def save_onchain_transaction(
    body: OnchainTransactionRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> OnchainTransactionResponse:
    """Log an on-chain transaction the client already broadcast. Not verified on chain."""
    try:
        tx = await record_onchain(db, user, body.model_dump())
    except WalletError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    await db.commit()
    return OnchainTransactionResponse(transaction=TransactionResponse.model_validate(tx))


# ---------------------------------------------------------------------------
# Balance mutations
# ---------------------------------------------------------------------------


@router.post("/deposit", response_model=WalletMutationResponse)
async def deposit_funds(
    body: DepositRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> WalletMutationResponse:
    tx = await deposit(db, user, body.amount, body.payment_method)
    await db.commit()
    return WalletMutationResponse(
        message="Deposit successful",
        new_balance=float(user.wallet_balance),
        transaction=TransactionResponse.model_validate(tx),
    )


@router.post("/withdraw", response_model=WalletMutationResponse)
async def withdraw_funds(
    body: WithdrawRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> WalletMutationResponse:
    """Request a payout. The balance is debited now; the ledger row stays pending."""
    try:
        tx = await withdraw(db, user, body.amount, body.bank_account)
    except WalletError as e:
        await db.rollback()
        raise HTTPException(status_code=400, detail=str(e)) from e
    await db.commit()
    return WalletMutationResponse(
        message="Withdrawal request submitted",
        new_balance=float(user.wallet_balance),
        transaction=TransactionResponse.model_validate(tx),
    )


@router.post("/transfer", response_model=WalletMutationResponse)
async def transfer_funds(
    body: TransferRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> WalletMutationResponse:
    """Send funds to another user's wallet."""
    try:
        tx = await transfer(db, user, body.to_user, body.amount, body.description)
    except RecipientNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except WalletError as e:
        await db.rollback()
        raise HTTPException(status_code=400, detail=str(e)) from e
    await db.commit()
    return WalletMutationResponse(
        message="Transfer successful",
        new_balance=float(user.wallet_balance),
        transaction=TransactionResponse.model_validate(tx),
    )


@router.post("/escrow", response_model=WalletMutationResponse)
async def escrow_funds(
    body: EscrowRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> WalletMutationResponse:
    """Lock funds in escrow (``deposit``) or return them (``release``)."""
    reference = {k: v for k, v in (("jobId", body.job_id), ("gigId", body.gig_id)) if v}
    try:
        tx = await move_escrow(db, user, body.amount, body.action, body.description, reference)
    except WalletError as e:
        await db.rollback()
        raise HTTPException(status_code=400, detail=str(e)) from e
    await db.commit()
    return WalletMutationResponse(
        message=f"Escrow {body.action} successful",
        new_balance=float(user.wallet_balance),
        new_escrow_balance=float(user.escrow_balance),
        transaction=TransactionResponse.model_validate(tx),
    )


@router.get("/escrow/details", response_model=EscrowDetailsResponse)
async def escrow_details(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> EscrowDetailsResponse:
    """Escrow balance and the escrow ledger rows behind it."""
    rows, pagination = await escrow_history(db, user.id, page, limit)
    return EscrowDetailsResponse(
        total_escrow=float(user.escrow_balance or 0),
        escrow_details=[TransactionResponse.model_validate(tx) for tx in rows],
        count=pagination.total,
        pagination=pagination,
    )


# ---------------------------------------------------------------------------
# Linked wallet (email accounts)
# ---------------------------------------------------------------------------


@router.post("/connect", response_model=ConnectWalletResponse)
async def connect(
    body: ConnectWalletRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> ConnectWalletResponse:
    try:
        await connect_wallet(db, user, body.wallet_address)
    except WalletError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    await db.commit()
    return ConnectWalletResponse(
        message="Wallet connected successfully",
        connected_wallet_address=user.connected_wallet_address,
    )


@router.post("/disconnect", response_model=ConnectWalletResponse, response_model_exclude_none=True)
async def disconnect(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> ConnectWalletResponse:
    try:
        await disconnect_wallet(db, user)
    except WalletError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    await db.commit()
    return ConnectWalletResponse(message="Wallet disconnected successfully")
