"""FastAPI application factory"""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from community_fund.api.dependencies import get_request_id
from community_fund.api.middleware import RequestIDMiddleware, MetricsMiddleware
from community_fund.api.v1 import admin, contributions, finances, historical_interest, loans, members, repayments
from community_fund.api.v1.schemas import ErrorResponse
from community_fund.domain.exceptions import DomainException
from community_fund.infrastructure.observability.logging import setup_logging
from community_fund.config import settings

# Setup structured logging
setup_logging(settings.log_level)


def error_response(status_code: int, error_kind: str, message: str) -> JSONResponse:
    body = ErrorResponse(error_kind=error_kind, message=message)
    return JSONResponse(status_code=status_code, content=body.model_dump())


async def domain_exception_handler(request: Request, exc: DomainException) -> JSONResponse:
    """Render business rule failures in the error envelope"""
    logging.warning(
        f"{exc.kind}: {exc.message}",
        extra={"request_id": get_request_id(request), "error_kind": exc.kind, "path": request.url.path},
    )
    return error_response(exc.status_code, exc.kind, exc.message)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed bodies, params and headers are validation errors too"""
    details = "; ".join(
        f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in exc.errors()
    )
    logging.warning(f"Request validation failed: {details}", extra={"request_id": get_request_id(request)})
    return error_response(400, "ValidationError", details or "Invalid request")


async def unexpected_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logging.error(f"Unexpected error: {exc}", exc_info=exc, extra={"request_id": get_request_id(request)})
    return error_response(500, "InternalError", "Internal server error")


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="Community Fund",
        description="Contribution ledger and member lending for a savings community",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    app.add_exception_handler(DomainException, domain_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unexpected_exception_handler)

    # Health check endpoint
    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name}

    # Prometheus metrics endpoint
    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # Register API routers
    app.include_router(members.router, prefix="/v1", tags=["members"])
    app.include_router(loans.router, prefix="/v1", tags=["loans"])
    app.include_router(repayments.router, prefix="/v1", tags=["repayments"])
    app.include_router(contributions.router, prefix="/v1", tags=["contributions"])
    app.include_router(historical_interest.router, prefix="/v1", tags=["historical-interest"])
    app.include_router(finances.router, prefix="/v1", tags=["finances"])
    app.include_router(admin.router, prefix="/v1", tags=["admin"])

    return app


app = create_app()
