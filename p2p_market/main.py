# p2p_market/main.py
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from p2p_market import models  # noqa: F401  (registers tables on Base)
from p2p_market.config import project_rules as R
from p2p_market.config.loader import apply_rules_overrides
from p2p_market.database import Base, engine
from p2p_market.errors import (
    ForbiddenError,
    InvalidArgumentError,
    InvalidStateError,
    MarketError,
    NotFoundError,
)
from p2p_market.routers import auth, listings, notifications, offers, transactions

logging.basicConfig(
    level=getattr(logging, R.LOG_LEVEL, logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger("p2p_market")


# Lifespan
@asynccontextmanager
async def lifespan(app: FastAPI):
    apply_rules_overrides()
    # tables are created here, not at import time; alembic owns real migrations
    Base.metadata.create_all(bind=engine)
    yield


app = FastAPI(title="P2P Market API", version="1.0.0", lifespan=lifespan)


# --------------------------------------------------
# error mapping
# --------------------------------------------------
_STATUS_BY_ERROR = (
    (NotFoundError, 404),
    (ForbiddenError, 403),
    (InvalidStateError, 409),  # includes InvalidStateTransitionError
    (InvalidArgumentError, 400),
)


def status_for(exc: MarketError) -> int:
    for cls, code in _STATUS_BY_ERROR:
        if isinstance(exc, cls):
            return code
    return 400


@app.exception_handler(MarketError)
async def market_error_handler(request: Request, exc: MarketError):
    return JSONResponse(
        status_code=status_for(exc),
        content={"detail": {"error": exc.__class__.__name__, "msg": str(exc)}},
    )


@app.exception_handler(Exception)
async def unhandled_exc_handler(request: Request, exc: Exception):
    logger.error("unhandled error at %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"detail": "Internal error"})


# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=R.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


app.include_router(auth.router)
app.include_router(listings.router)
app.include_router(offers.router)
app.include_router(transactions.router)
app.include_router(notifications.router)


# Health
@app.get("/")
def root():
    return {"message": "P2P Market API is running"}


@app.get("/health")
def health():
    return {"ok": True}
