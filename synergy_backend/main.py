import os
import subprocess
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from synergy_backend.config.logger import app_logger, log_request_start, log_request_end, log_request_error
from synergy_backend.config.settings import settings
from synergy_backend.services.errors import MissingSourceDataError
from synergy_backend.utils.responses import error_response
from synergy_backend.api.synergy.router import router as synergy_router


_git_sha_cache: Optional[str] = None


def get_git_sha() -> str:
    """Get the current Git commit SHA (cached to avoid blocking)."""
    global _git_sha_cache
    if _git_sha_cache is not None:
        return _git_sha_cache

    try:
        result = subprocess.run(
            ["git", "rev-parse", "HEAD"],
            capture_output=True,
            text=True,
            check=True,
            timeout=1.0
        )
        _git_sha_cache = result.stdout.strip()[:8]
        return _git_sha_cache
    except (subprocess.CalledProcessError, FileNotFoundError, subprocess.TimeoutExpired):
        _git_sha_cache = "local-dev"
        return _git_sha_cache


def data_files_status() -> dict:
    """Presence of every data file the search depends on."""
    return {
        "nft_data": settings.nft_data_path.exists(),
        "attributes_power": settings.attributes_power_path.exists(),
        "synergy_map": settings.synergy_map_path.exists(),
        "synergy_exceptions": settings.synergy_exceptions_path.exists(),
    }


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan context manager for startup and shutdown events."""
    # Startup
    app_logger.info(f"{settings.APP_NAME} starting up")
    app_logger.info(f"Data directory: {settings.data_path.resolve()}")

    for name, present in data_files_status().items():
        if present:
            app_logger.info(f"Data file available: {name}")
        else:
            app_logger.warning(f"Data file missing: {name}")

    app_logger.info("Application initialized successfully")

    yield

    # Shutdown
    app_logger.info(f"{settings.APP_NAME} shutting down")


app = FastAPI(
    title=settings.APP_NAME,
    description=settings.APP_DESCRIPTION,
    version=settings.APP_VERSION,
    servers=[
        {
            "url": "http://localhost:8000",
            "description": "Development server",
        },
    ],
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Logging middleware
@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all HTTP requests with timing information using Loguru."""
    start_time = datetime.now()

    log_request_start(request)

    try:
        response = await call_next(request)
        process_time = (datetime.now() - start_time).total_seconds()
        log_request_end(request, response.status_code, process_time)
        return response

    except Exception as e:
        process_time = (datetime.now() - start_time).total_seconds()
        log_request_error(request, e, process_time)
        raise


@app.exception_handler(MissingSourceDataError)
async def missing_source_data_handler(request: Request, exc: MissingSourceDataError):
    app_logger.error(f"Unhandled missing source data on {request.url.path}: {exc}")
    body = error_response(error="Source data unavailable", detail=str(exc))
    return JSONResponse(status_code=503, content=body.model_dump(mode="json"))


@app.get("/", tags=["health"])
async def root():
    """Root endpoint with basic API information."""
    app_logger.info("Root endpoint accessed")
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "status": "operational",
        "docs": "/docs",
        "redoc": "/redoc"
    }


@app.get("/status", tags=["health"])
async def status():
    """Status endpoint with build information for CI/CD monitoring."""
    app_logger.info("Status endpoint accessed")

    build_number = os.getenv("BUILD_NUMBER", "local-dev")
    git_sha = os.getenv("GIT_SHA", os.getenv("GITHUB_SHA", get_git_sha()))
    environment = os.getenv("ENVIRONMENT", os.getenv("ENV", "development"))

    return {
        "status": "ok",
        "build": build_number,
        "sha": git_sha,
        "env": environment
    }


@app.get("/health/data", tags=["health"])
async def health_data():
    """Data health endpoint: the catalog and the synergy map must be present."""
    files = data_files_status()
    if not files["attributes_power"] or not files["synergy_map"]:
        return JSONResponse(
            status_code=503,
            content={"status": "degraded", "data_dir": str(settings.data_path), "files": files}
        )
    return {"status": "ok", "data_dir": str(settings.data_path), "files": files}


app.include_router(synergy_router)


if __name__ == "__main__":
    import uvicorn

    app_logger.info(f"Starting {settings.APP_NAME} server")

    uvicorn.run(
        app,
        host="0.0.0.0",
        port=8000,
        log_config=None  # Use our custom logger
    )
