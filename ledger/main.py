"""
Ledger - Main Application
Regret -> principle onboarding, framework-driven coaching sessions and
follow-up check-ins.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ledger.api import auth, onboarding, principles, sessions
from ledger.config import settings
from ledger.db import create_db_and_tables, verify_database_connection
from ledger.services.crisis import DISCLAIMER
from ledger.services.frameworks import FRAMEWORKS, WedgeLabel

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger("ledger")

VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.env != "prod":
        await create_db_and_tables()
        logger.info("database_initialized", extra={"env": settings.env})

    if not settings.openai_api_key:
        logger.warning("openai_api_key_missing; coaching replies will fail until it is set")

    logger.info("ledger_online", extra={"version": VERSION})
    yield

    sessions.active_sessions.clear()
    onboarding.active_onboarding.clear()
    logger.info("ledger_offline")


app = FastAPI(
    title="Ledger",
    description="Turn your worst moments into leadership principles. Share a regret, "
                "get a principle, receive coaching, commit to action.",
    version=VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/")
def read_root():
    return {
        "message": "Ledger leadership coach is running",
        "docs": "/docs",
        "version": VERSION,
        "disclaimer": DISCLAIMER,
        "frameworks": [{"id": f.id, "label": f.label} for f in FRAMEWORKS],
        "wedges": [w.value for w in WedgeLabel],
    }


@app.get("/health")
async def health_check():
    db_status = await verify_database_connection()
    return {
        "status": "ok" if db_status["database"] else "degraded",
        "version": VERSION,
        "database": db_status,
        "chat_backend_configured": bool(settings.openai_api_key),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


app.include_router(auth.router, prefix="/api")
app.include_router(principles.router, prefix="/api")
app.include_router(sessions.router, prefix="/api")
app.include_router(onboarding.router, prefix="/api")
