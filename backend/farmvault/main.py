import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from farmvault.config import settings
from farmvault.database import engine
from farmvault.middleware.exceptions import register_exception_handlers
from farmvault.routers import collections, health, wallets
from farmvault.utils.cache import close_redis

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("farmvault")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Release the Redis pool and DB connections on shutdown."""
    logger.info("FarmVault harvest ledger starting (%s)", settings.environment)
    try:
        yield
    finally:
        await close_redis()
        await engine.dispose()
        logger.info("FarmVault harvest ledger stopped")


app = FastAPI(
    title="FarmVault Harvest Ledger",
    description="Harvest collection, picker payout and cash settlement ledger",
    version="0.1.0",
    lifespan=lifespan,
)

# ── Exception Handlers ───────────────────────────────────────
register_exception_handlers(app)

# ── Middleware ───────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Routers ──────────────────────────────────────────────────
app.include_router(health.router)
app.include_router(collections.router, prefix="/api/collections", tags=["collections"])
app.include_router(wallets.router, prefix="/api/wallets", tags=["wallets"])
