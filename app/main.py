"""Main FastAPI application for the authentication attempt gate."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from app import db
from app.config import LOG_LEVEL, sqlite_backend
from app.rate_limit import limiter
from app.routers import auth_gate as auth_gate_router
from app.routers import client_ip, health
from app.services.auth_gate import auth_gate

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    if sqlite_backend():
        await db.init_db()
    await auth_gate.start()
    logger.info("Auth gate ready")
    try:
        yield
    finally:
        await auth_gate.stop()
        if sqlite_backend():
            await db.close_db()


app = FastAPI(
    title="Auth Gate API",
    description="Client identification and sign-in attempt rate limiting",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.include_router(health.router)
app.include_router(client_ip.router)
app.include_router(auth_gate_router.router)
