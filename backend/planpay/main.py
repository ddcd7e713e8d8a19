"""PlanPay — FastAPI application entry point."""

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from planpay.api.v1.auth import router as auth_router
from planpay.api.v1.avatars import router as avatars_router
from planpay.api.v1.click import router as click_router
from planpay.api.v1.payme import router as payme_router
from planpay.api.v1.plans import router as plans_router
from planpay.api.v1.user_plans import router as user_plans_router
from planpay.api.v1.users import router as users_router
from planpay.config import settings
from planpay.database import async_session_factory, engine
from planpay.services.plan_expiration import PlanExpirationWorker

# Configure root logger so all planpay.* loggers output to stderr (captured by Docker).
logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Start the plan expiration sweeper; stop it and dispose the engine on shutdown."""
    sweeper: asyncio.Task[None] | None = None
    if settings.plan_expiration_enabled:
        worker = PlanExpirationWorker(
            async_session_factory,
            interval_seconds=settings.plan_expiration_interval_seconds,
        )
        sweeper = asyncio.create_task(worker.run_forever(), name="plan-expiration")
    else:
        logger.info("Plan expiration sweeper disabled")

    yield

    if sweeper is not None:
        sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sweeper
        logger.info("Plan expiration worker stopped")

    await engine.dispose()


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Subscription billing backend for Click and Payme payments.",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routers
app.include_router(auth_router)
app.include_router(users_router)
app.include_router(plans_router)
app.include_router(user_plans_router)
app.include_router(avatars_router)
app.include_router(click_router)
app.include_router(payme_router)


@app.get("/health", tags=["health"])
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy", "service": settings.app_name}


@app.get("/", tags=["root"])
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {
        "service": settings.app_name,
        "version": settings.app_version,
        "docs": "/docs",
    }
