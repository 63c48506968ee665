"""Deployer API endpoints: /api/v1/deployer/*."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from worklob.auth.dependencies import get_current_user
from worklob.config_store.service import ConfigValidationError
from worklob.database import get_session
from worklob.db.models import User
from worklob.deployer.schemas import (
    ConfigItemResponse,
    ConfigResponse,
    ConfigUpdateRequest,
    ConfigUpdateResponse,
    DeployerTransactionCreated,
    DeployerTransactionList,
    DeployerTransactionRequest,
)
from worklob.deployer.service import (
    DeployerNotConfiguredError,
    check_deployer,
    get_config,
    list_deployer_transactions,
    log_deployer_transaction,
    update_config,
)
from worklob.ledger.schemas import TransactionResponse

router = APIRouter(prefix="/api/v1/deployer", tags=["Deployer"])


async def require_deployer(user: User = Depends(get_current_user)) -> User:
    """Authenticated user whose wallet is the configured deployer wallet."""
    try:
        check_deployer(user)
    except DeployerNotConfiguredError as e:
        raise HTTPException(status_code=503, detail=str(e)) from e
    except PermissionError as e:
        raise HTTPException(status_code=403, detail=str(e)) from e
    return user


@router.get("/config", response_model=ConfigResponse)
async def read_config(
    _: User = Depends(require_deployer),
    db: AsyncSession = Depends(get_session),
) -> ConfigResponse:
    items = await get_config(db)
    return ConfigResponse(
        config={item.key: item.value for item in items},
        entries=[ConfigItemResponse.model_validate(item) for item in items],
    )


@router.put("/config", response_model=ConfigUpdateResponse)
async def write_config(
    body: ConfigUpdateRequest,
    user: User = Depends(require_deployer),
    db: AsyncSession = Depends(get_session),
) -> ConfigUpdateResponse:
    """Update runtime config. Every value is validated before any is stored."""
    try:
        updated = await update_config(db, body.values, updated_by=user.id)
    except ConfigValidationError as e:
        await db.rollback()
        raise HTTPException(status_code=400, detail=str(e)) from e
    await db.commit()
    return ConfigUpdateResponse(updated=updated)


@router.get("/transactions", response_model=DeployerTransactionList)
async def read_transactions(
    page: int = Query(1, ge=1),
    limit: int = Query(25, ge=1, le=100),
    user: User = Depends(require_deployer),
    db: AsyncSession = Depends(get_session),
) -> DeployerTransactionList:
    rows, pagination = await list_deployer_transactions(db, user, page, limit)
    return DeployerTransactionList(
        transactions=[TransactionResponse.model_validate(tx) for tx in rows],
        page=pagination.page,
        pages=pagination.pages,
        total=pagination.total,
    )


@router.post("/transactions", response_model=DeployerTransactionCreated, status_code=201)
async def create_transaction(
    body: DeployerTransactionRequest,
    user: User = Depends(require_deployer),
    db: AsyncSession = Depends(get_session),
) -> DeployerTransactionCreated:
    """Log an on-chain action sent from the deployer wallet."""
    try:
        tx = await log_deployer_transaction(
            db,
            user,
            body.type,
            body.description or "",
            amount=body.amount,
            tx_hash=body.tx_hash,
            direction=body.direction,
            details=body.metadata,
            to_address=body.to_address,
        )
    except ValueError as e:
        await db.rollback()
        raise HTTPException(status_code=400, detail=str(e)) from e
    await db.commit()
    return DeployerTransactionCreated(transaction=TransactionResponse.model_validate(tx))
