"""
Energy Allocation API
=====================

FastAPI settlement service

Usage:
------
# Development
uvicorn api.main:app --reload --host 0.0.0.0 --port 8000

# Production
python run_api.py --host 0.0.0.0 --port 8000
"""

import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src.energy_allocation.validators.errors import (
    ChargeConflictError,
    InvalidInputError,
    ValidationError,
)
from src.monitoring.logging_config import LogConfig, RequestLogger, setup_logging

from . import __version__
from .config import settings
from .schemas import ErrorResponse, HealthResponse
from .service import AllocationNotFoundError, get_settlement_service
from .settlement_routes import router as settlement_router

setup_logging(LogConfig(
    level=LogConfig.parse_level(settings.LOG_LEVEL),
    format=settings.LOG_FORMAT,
    output=settings.LOG_OUTPUT,
    log_dir=settings.LOG_DIR,
))
logger = logging.getLogger(__name__)
request_logger = RequestLogger()


# ============================================================
# Lifespan (Startup/Shutdown)
# ============================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
    get_settlement_service()
    logger.info(f"API server ready at http://{settings.HOST}:{settings.PORT}")

    yield

    logger.info("Shutting down API server...")


# ============================================================
# FastAPI App
# ============================================================

app = FastAPI(
    title=settings.APP_NAME,
    description=settings.APP_DESCRIPTION,
    version=settings.APP_VERSION,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
    allow_methods=settings.CORS_ALLOW_METHODS.split(",") if settings.CORS_ALLOW_METHODS != "*" else ["*"],
    allow_headers=settings.CORS_ALLOW_HEADERS.split(",") if settings.CORS_ALLOW_HEADERS != "*" else ["*"],
)

app.include_router(settlement_router)


# ============================================================
# Middleware
# ============================================================

@app.middleware("http")
async def log_requests(request: Request, call_next):
    start_time = time.perf_counter()
    response = await call_next(request)
    process_time = (time.perf_counter() - start_time) * 1000

    request_logger.log_request(
        request.method,
        request.url.path,
        response.status_code,
        round(process_time, 2),
    )
    response.headers["X-Process-Time"] = f"{process_time:.2f}ms"
    return response


# ============================================================
# Exception Handlers
# ============================================================

def _error(status_code: int, code: str, exc: ValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(
            error_code=code,
            error_message=exc.message,
            errors=exc.errors,
        ).model_dump()
    )


@app.exception_handler(InvalidInputError)
async def invalid_input_handler(request: Request, exc: InvalidInputError):
    logger.warning(f"Invalid input on {request.url.path}: {exc.message}")
    return _error(422, "INVALID_INPUT", exc)


@app.exception_handler(ChargeConflictError)
async def charge_conflict_handler(request: Request, exc: ChargeConflictError):
    return _error(409, "CHARGE_CONFLICT", exc)


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return _error(400, "VALIDATION_ERROR", exc)


@app.exception_handler(AllocationNotFoundError)
async def not_found_handler(request: Request, exc: AllocationNotFoundError):
    return JSONResponse(
        status_code=404,
        content=ErrorResponse(
            error_code="NOT_FOUND",
            error_message=str(exc),
        ).model_dump()
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error_code="INTERNAL_ERROR",
            error_message="Internal server error",
            detail=str(exc) if settings.DEBUG else None
        ).model_dump()
    )


# ============================================================
# Routes - Health & Info
# ============================================================

@app.get("/", summary="API root")
async def root():
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "description": settings.APP_DESCRIPTION,
        "docs": "/docs",
        "health": "/health"
    }


@app.get("/health", response_model=HealthResponse, summary="Health check")
async def health_check():
    service = get_settlement_service()
    return HealthResponse(
        status="healthy",
        version=__version__,
        settled_months=len(service.settled_months()),
        uptime_seconds=round(service.get_uptime(), 2)
    )
