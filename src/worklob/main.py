"""FastAPI application factory."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI

from worklob.auth.router import router as auth_router
from worklob.blogs.router import router as blogs_router
from worklob.config import get_settings
from worklob.database import close_db, init_db
from worklob.deployer.router import router as deployer_router
from worklob.governance.router import router as governance_router
from worklob.health.router import router as health_router
from worklob.ledger.router import router as wallet_router
from worklob.middleware import setup_middleware
from worklob.notifications.router import router as notifications_router
from worklob.redis_client import close_redis, init_redis
from worklob.referral.router import router as referral_router
from worklob.staking.router import router as staking_router
from worklob.users.router import router as users_router

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url)
    await init_redis(settings.redis_url)
    logger.info("startup", environment=settings.environment, version=settings.app_version)

    yield

    await close_db()
    await close_redis()
    logger.info("shutdown")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="WorkLob API",
        description="Backend API for the WorkLob marketplace: accounts, blogs, referrals, staking and governance",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(auth_router)
    app.include_router(users_router)
    app.include_router(wallet_router)
    app.include_router(blogs_router)
    app.include_router(referral_router)
    app.include_router(staking_router)
    app.include_router(governance_router)
    app.include_router(deployer_router)
    app.include_router(notifications_router)

    return app


app = create_app()
