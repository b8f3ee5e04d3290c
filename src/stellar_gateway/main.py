# src/stellar_gateway/main.py
"""Main entry point for the Stellar AI gateway."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from stellar_gateway import __version__
from stellar_gateway.api.v1 import (
    ai_router,
    auth_router,
    conversations_router,
    credits_router,
    stellar_router,
    transactions_router,
    usage_router,
)
from stellar_gateway.core.errors import GatewayError
from stellar_gateway.core.settings import settings
from stellar_gateway.db.session import Store
from stellar_gateway.schemas.common import ErrorResponse
from stellar_gateway.services.ai import close_ai_service
from stellar_gateway.services.ledger import close_ledger_client

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    store = Store(settings.database_url, echo=settings.sql_debug).open()
    store.create_tables()
    app.state.store = store
    if not settings.stellar_settlement_destination:
        logger.warning("No settlement destination configured; ledger charges are self-payments")
    logger.info(
        "%s %s started (%s, Stellar %s)",
        settings.app_name,
        settings.app_version,
        settings.environment,
        settings.stellar_network,
    )
    try:
        yield
    finally:
        await close_ledger_client()
        await close_ai_service()
        store.close()


# Initialize FastAPI app
app = FastAPI(
    title=settings.app_name,
    description="Pay-per-prompt AI gateway settled in Stellar lumens",
    version=__version__,
    lifespan=lifespan,
    responses={
        status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
        status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": ErrorResponse},
    },
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)

# Add GZip middleware for compression
app.add_middleware(GZipMiddleware)


@app.exception_handler(GatewayError)
async def gateway_error_handler(request: Request, exc: GatewayError) -> JSONResponse:
    body: dict[str, Any] = {"error": exc.message, "code": exc.code, **exc.payload()}
    return JSONResponse(status_code=exc.status_code, content=body)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    fields = [".".join(str(part) for part in error["loc"][1:]) for error in exc.errors()]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "error": "Missing or malformed required fields",
            "code": "MISSING_REQUIRED_FIELDS",
            "fields": fields,
        },
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    message = "Internal server error" if settings.is_production else str(exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": message, "code": "INTERNAL_ERROR"},
    )


# Include API routers
app.include_router(auth_router, prefix="/api")
app.include_router(ai_router, prefix="/api")
app.include_router(credits_router, prefix="/api")
app.include_router(conversations_router, prefix="/api")
app.include_router(usage_router, prefix="/api")
app.include_router(transactions_router, prefix="/api")
app.include_router(stellar_router, prefix="/api")


@app.get("/api/health")
@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint to verify the service is running."""
    return {
        "status": "ok",
        "environment": settings.environment,
        "network": settings.stellar_network,
        "version": __version__,
    }


@app.get("/")
async def root() -> dict[str, Any]:
    """Root endpoint with basic information about the API."""
    return {
        "name": settings.app_name,
        "version": __version__,
        "description": "Pay-per-prompt AI gateway settled in Stellar lumens",
        "docs": "/docs",
        "redoc": "/redoc",
        "network": settings.stellar_network,
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("stellar_gateway.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
