import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from vslgen.api import videos
from vslgen.config import get_settings
from vslgen.exceptions import VslError
from vslgen.models.database import async_session_maker, engine, init_db
from vslgen.services.job_queue import JobQueue, default_session_factory
from vslgen.services.retention_sweeper import RetentionSweeper
from vslgen.services.storage_service import get_storage_service
from vslgen.services.video_store import SqlVideoStore

settings = get_settings()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # Startup
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    storage = get_storage_service()
    storage.ensure_dirs()
    await init_db()

    store = SqlVideoStore(async_session_maker, retention_days=settings.video_retention_days)
    app.state.store = store
    app.state.job_queue = JobQueue(store, default_session_factory(storage, settings))
    app.state.sweeper = RetentionSweeper(store, storage, settings)
    app.state.sweeper.start()
    logger.info(f"{settings.app_name} {settings.app_version} started ({settings.environment})")
    yield
    # Shutdown
    await app.state.sweeper.stop()
    await app.state.job_queue.shutdown()
    await engine.dispose()


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(VslError)
async def vsl_exception_handler(request: Request, exc: VslError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{exc.code}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.to_dict()},
    )


# Global exception handler to ensure errors return proper JSON
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled exception: {exc}")
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": {"code": "INTERNAL_ERROR", "message": "Internal server error"}},
    )


# Routers
app.include_router(videos.router, prefix="/api/videos", tags=["videos"])


@app.get("/health")
async def health_check() -> dict[str, str]:
    return {"status": "healthy", "version": settings.app_version}
