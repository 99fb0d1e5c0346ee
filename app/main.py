from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.routes import offers, research
from app.config import settings
from app.services import database as db
from app.services import run_manager
from app.services.logger import logger


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    if settings.database_url:
        await db.init_schema()
        await run_manager.recover_interrupted_runs()
        await db.apply_run_guard()
    else:
        logger.warning("DATABASE_URL not set; research endpoints will be unavailable")
    yield
    # Shutdown
    await db.close_pool()


app = FastAPI(
    title="Offer Scout",
    description="Casino and promotion discovery runs backed by OpenRouter models",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(research.router)
app.include_router(offers.router)


@app.exception_handler(db.PersistenceError)
async def persistence_error_handler(request: Request, exc: db.PersistenceError):
    logger.error(f"Store failure on {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=503, content={"detail": "Research store unavailable"})


@app.get("/api/health")
async def health():
    return {
        "status": "ok",
        "service": "offerscout",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
