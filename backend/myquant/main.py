# backend/myquant/main.py
from __future__ import annotations

from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pymongo.errors import PyMongoError

from myquant import __version__
from myquant.core.config import settings
from myquant.db import connect_to_mongo, close_mongo_connection, get_db, get_repository
from myquant.db.repositories import UserRepository
from myquant.logger import get_logger
from myquant.routers import digest, holdings
from myquant.services.price_cache import PriceCache
from myquant.tasks.scheduler import start_scheduler, shutdown_scheduler, get_scheduler_status
from myquant.tasks.weekly_digest import build_digest_assembler

log = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # ========== STARTUP ==========
    log.info("Starting myquant. digest backend...")

    try:
        await connect_to_mongo()
    except PyMongoError as e:
        log.error(f"Failed to connect to MongoDB: {e}")
        raise

    app.state.http = httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT_SECONDS, follow_redirects=True)
    app.state.price_cache = PriceCache(settings.CACHE_TTL_SECONDS)
    app.state.assembler = build_digest_assembler(get_db(), app.state.http, app.state.price_cache)

    scheduler = start_scheduler(app.state.assembler, get_repository(UserRepository))
    if scheduler:
        log.info(f"Scheduler started with jobs: {[job.id for job in scheduler.get_jobs()]}")

    log.info("Application startup complete!")

    yield

    # ========== SHUTDOWN ==========
    log.info("Shutting down myquant. digest backend...")
    shutdown_scheduler()
    await app.state.http.aclose()
    await close_mongo_connection()
    log.info("Application shutdown complete!")


app = FastAPI(
    title="myquant. weekly digest",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS or ["http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ========== ROUTERS ==========
app.include_router(holdings.router, prefix=settings.API_PREFIX)
app.include_router(digest.router, prefix=settings.API_PREFIX)


@app.get("/health")
async def health_check():
    """Health check endpoint for monitoring"""
    health_status = {
        "status": "healthy",
        "database": "unknown",
        "scheduler": "unknown",
    }

    try:
        await get_db().command("ping")
        health_status["database"] = "healthy"
    except PyMongoError:
        health_status["database"] = "unhealthy"
        health_status["status"] = "degraded"

    health_status["scheduler"] = "healthy" if get_scheduler_status().get("running") else "stopped"
    return health_status
