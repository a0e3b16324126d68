from contextlib import asynccontextmanager
from utils.utcnow import utcnow
from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession
import traceback

from config import settings
from api.routes_revenue_share import router as revenue_share_router
from models.database import get_db_session, init_database
from services.tier_catalog import tier_catalog
from utils.logger import setup_logging, get_logger

# Setup logging
setup_logging(level=settings.LOG_LEVEL, json_format=settings.LOG_JSON, log_file=settings.LOG_FILE)
logger = get_logger("main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events"""
    logger.info("Starting provider revenue share service...")

    await init_database()
    logger.info("Database initialized")

    # Tier definitions must exist and be cached before any evaluation runs
    inserted = await tier_catalog.seed_defaults()
    tiers = await tier_catalog.refresh_cache()
    logger.info("Tier catalog ready", seeded=inserted, active_tiers=len(tiers))

    yield

    logger.info("Shutdown complete")


app = FastAPI(
    title="Provider Revenue Share",
    description="Signal provider tiers, revenue share payouts and incentive bonuses",
    version="1.0.0",
    lifespan=lifespan,
)


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(
        "Unhandled exception",
        path=request.url.path,
        method=request.method,
        error=str(exc),
        traceback=traceback.format_exc(),
    )
    return JSONResponse(
        status_code=500, content={"detail": "Internal server error", "error": str(exc)}
    )


# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# API routes
app.include_router(revenue_share_router, prefix="/api")


# Health checks
@app.get("/health")
async def health_check():
    """Basic health check - for load balancers"""
    return {"status": "ok"}


@app.get("/health/live")
async def liveness_check():
    """Liveness probe - is the service running?"""
    return {"status": "alive", "timestamp": utcnow().isoformat()}


@app.get("/health/ready")
async def readiness_check(session: AsyncSession = Depends(get_db_session)):
    """Readiness probe - is the service ready to accept traffic?"""
    database_ok = True
    try:
        await session.execute(text("SELECT 1"))
    except Exception as e:
        logger.warning("Readiness database check failed", error=str(e))
        database_ok = False

    checks = {
        "database": database_ok,
        "tier_catalog": len(tier_catalog.list_active()) > 0,
    }

    all_ready = all(checks.values())

    return {
        "status": "ready" if all_ready else "not_ready",
        "checks": checks,
        "timestamp": utcnow().isoformat(),
    }


if __name__ == "__main__":
    import os
    import uvicorn

    port = int(os.environ.get("PORT", 8000))
    uvicorn.run(
        app,
        host="0.0.0.0",
        port=port,
        timeout_keep_alive=30,
    )
