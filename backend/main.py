"""
Merchant IPN Confirmation Service - FastAPI Application

Receives gateway payment callbacks, authenticates them, confirms them with
the gateway's verify endpoint and applies them to the order ledger exactly
once.

Status codes are the contract with the gateway:
    2xx          the callback was handled (applied or duplicate), stop resending
    4xx          rejected for good (signature, payload, unknown status)
    5xx          not handled yet (verify unavailable, ledger busy), resend later
"""
import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import settings
from domain.errors import DomainError
from domain.responses import error_code_for, error_response
from routes import health, ipn, payments

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings.validate_production_settings()

    from database import init_db
    await init_db()

    logger.info(
        f"IPN service up: env={settings.environment} "
        f"verify_attempts={settings.verify_max_attempts} "
        f"verify_deadline={settings.verify_deadline_seconds}s "
        f"transient_regression={'on' if settings.allow_transient_regression else 'off'}"
    )

    yield

    from deps import close_gateway_client
    await close_gateway_client()
    logger.info("Shutting down")


app = FastAPI(
    title="Merchant IPN Confirmation API",
    description="Verified payment-status ingestion for a non-custodial crypto payment gateway",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(ipn.router)
app.include_router(payments.router)


# ── Exception Handlers ──────────────────────────────────────────────


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    if exc.status_code >= 500:
        logger.warning(f"{request.url.path} -> {exc.status_code} {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content=error_response(error_code_for(exc), exc.message, exc.details),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    detail = exc.detail
    return JSONResponse(
        status_code=exc.status_code,
        content=error_response(
            error_code_for(exc),
            detail if isinstance(detail, str) else "Request failed",
            None if isinstance(detail, str) else detail,
        ),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=422,
        content=error_response("validation_error", "Request validation failed", jsonable_encoder(exc.errors())),
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """
    Last resort. The traceback stays in the server log; the client (usually
    the gateway) only sees a retryable 500.
    """
    logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content=error_response("internal_server_error", "Internal server error"),
    )


if __name__ == "__main__":
    import uvicorn
    port = int(os.environ.get("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port, log_level=settings.log_level.lower())
