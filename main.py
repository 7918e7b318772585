import asyncio
import logging
import time
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI, Depends, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from slowapi.errors import RateLimitExceeded
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool
from starlette.requests import Request

import auth
import auth_service
import models
from config import settings
from database import SessionLocal, engine, get_db
from errors import install_exception_handlers
from logging_config import setup_logging
from rate_limiter import limiter, rate_limit_exceeded_handler
from routers import auth as auth_routes, local_upload, media, portfolio, posts
from upload_storage import create_upload_backend

# Setup logging
setup_logging()
logger = logging.getLogger(__name__)


def _run_startup_tasks() -> None:
    db = SessionLocal()
    try:
        auth_service.bootstrap_owner_if_needed(db)
        auth.cleanup_expired_sessions(db)
    finally:
        db.close()


def _cleanup_sessions_once() -> int:
    db = SessionLocal()
    try:
        return auth.cleanup_expired_sessions(db)
    finally:
        db.close()


async def _session_cleanup_loop(interval_minutes: int) -> None:
    while True:
        await asyncio.sleep(interval_minutes * 60)
        try:
            await run_in_threadpool(_cleanup_sessions_once)
        except SQLAlchemyError:
            logger.exception("Session cleanup failed")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup logic
    logger.info("Starting up blog-service...")
    models.Base.metadata.create_all(bind=engine)
    app.state.upload_backend = create_upload_backend(settings)
    logger.info(f"Using {app.state.upload_backend.name} storage for uploads")
    await run_in_threadpool(_run_startup_tasks)

    cleanup_task = None
    if settings.SESSION_CLEANUP_INTERVAL_MINUTES > 0:
        cleanup_task = asyncio.create_task(_session_cleanup_loop(settings.SESSION_CLEANUP_INTERVAL_MINUTES))
    yield
    # Shutdown logic
    if cleanup_task is not None:
        cleanup_task.cancel()
        with suppress(asyncio.CancelledError):
            await cleanup_task
    logger.info("Shutting down blog-service...")


app = FastAPI(
    title="Blog & Portfolio Service",
    description="Single-author blog and portfolio content API",
    version="1.0.0",
    lifespan=lifespan,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
install_exception_handlers(app)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.time()
    response = await call_next(request)
    duration_ms = (time.time() - start) * 1000
    logger.info(
        "%s %s -> %s (%.2f ms) ip=%s",
        request.method,
        request.url.path,
        response.status_code,
        duration_ms,
        request.client.host if request.client else "unknown",
    )
    return response


# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Health check endpoint
@app.get("/health", tags=["System"])
async def health_check(db: Session = Depends(get_db)):
    try:
        db.execute(text("SELECT 1"))
        return {"status": "healthy", "service": "blog-service", "database": "connected"}
    except SQLAlchemyError as e:
        logger.error(f"Health check failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service unhealthy"
        )


app.include_router(auth_routes.router)
app.include_router(posts.router)
app.include_router(portfolio.router)
app.include_router(media.router)
app.include_router(local_upload.router)

if settings.storage_provider == "local":
    app.mount(
        settings.UPLOAD_URL_PREFIX,
        StaticFiles(directory=settings.UPLOAD_DIR, check_dir=False),
        name="uploads",
    )

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=5000)
