import logging
import sys
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from skilltrace import __version__
from skilltrace.api.router import api_router
from skilltrace.config import settings
from skilltrace.services.backend import get_cache_stats


def setup_logging() -> None:
    """Configure application logging."""
    log_format = "%(asctime)s | %(levelname)-7s | %(name)s | %(message)s"
    date_format = "%H:%M:%S"

    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format=log_format,
        datefmt=date_format,
        stream=sys.stdout,
        force=True,
    )

    # Quiet per-request logging from the HTTP stack
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    """Application lifespan: startup and shutdown events."""
    from skilltrace.api.deps import close_controller
    from skilltrace.services.backend import close_backend_client

    setup_logging()
    logger.info(f"skilltrace starting up (backend: {settings.backend_url})")
    yield
    # Shutdown: stop tracking before the HTTP client goes away
    await close_controller()
    await close_backend_client()
    logger.info("skilltrace shutting down")


app = FastAPI(
    title="skilltrace",
    description="Analysis job tracking for the repository skill dashboard",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log failed requests and job-changing calls, skipping OPTIONS preflight."""
    if request.method == "OPTIONS" or request.url.path == "/health":
        return await call_next(request)

    response = await call_next(request)

    path = request.url.path
    if response.status_code >= 400 or any(
        keyword in path for keyword in ["select", "start", "cancel"]
    ):
        logger.info(f"{request.method} {path} -> {response.status_code}")

    return response


app.include_router(api_router)


@app.get("/health")
async def health_check():
    """Health check endpoint, with the size of the backend response caches."""
    return {"status": "healthy", "caches": get_cache_stats()}


def run() -> None:
    """Console entry point: serve the API with uvicorn."""
    uvicorn.run("skilltrace.main:app", host="127.0.0.1", port=8000)
