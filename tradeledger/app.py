"""
TradeLedger Web API — read-only access to trade groups and reports.

Usage:
    DATABASE_URL=sqlite:///tradeledger.db python -m tradeledger.app
"""

import os
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from tradeledger import dependencies
from tradeledger.config import get_log_dir, get_log_level, load_settings
from tradeledger.routers import groups, health, reports

load_settings()

# Configure logging
logger.add(
    os.path.join(get_log_dir(), "webapp_{time}.log"),
    rotation="1 day",
    retention="7 days",
    level=get_log_level(),
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    dependencies.db.ensure_initialized()
    logger.info("TradeLedger API ready")
    yield


app = FastAPI(
    title="TradeLedger",
    description="Option trade grouping and P&L reports",
    version="1.0.0",
    lifespan=lifespan,
)

# Add CORS middleware for local development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET"],
    allow_headers=["*"],
)

# Routers
app.include_router(health.router)
app.include_router(groups.router)
app.include_router(reports.router)


if __name__ == "__main__":
    port = int(os.environ.get("PORT", "8000"))
    uvicorn.run("tradeledger.app:app", host="127.0.0.1", port=port)
