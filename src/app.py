"""FastAPI application factory for the marketplace workflow gating API."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded

from src.config import settings
from src.database.engine import engine
from src.exceptions import AppException, RateLimitException, ValidationException
from src.middleware.rate_limit import limiter

logger = logging.getLogger(__name__)

API_VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        "Workflow API starting (environment=%s, quote expiry=%sd, auto review=%s)",
        settings.environment,
        settings.quote_default_expiry_days,
        settings.design_resubmission_auto_review,
    )
    yield
    await engine.dispose()


def _configure_logging() -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", "unknown")


def error_envelope(
    request: Request,
    status_code: int,
    code: str,
    message: str,
    details: list[dict] | None = None,
) -> JSONResponse:
    """Every error leaves the API in this shape, tagged with the request ID."""
    return JSONResponse(
        status_code=status_code,
        content={
            "error": {
                "code": code,
                "message": message,
                "details": details or [],
                "requestId": _request_id(request),
            }
        },
    )


def _validation_details(exc: RequestValidationError) -> list[dict]:
    # Drop the "body"/"query" prefix so field names match the request schema
    details = []
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ())]
        if loc and loc[0] in ("body", "query", "path"):
            loc = loc[1:]
        details.append({"field": ".".join(loc), "message": err.get("msg", "")})
    return details


def _register_exception_handlers(application: FastAPI) -> None:
    @application.exception_handler(AppException)
    async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
        # Refusals are expected traffic; only server faults are errors
        log = logger.error if exc.status_code >= 500 else logger.info
        log(
            "%s %s refused with %s (%d): %s [%s]",
            request.method, request.url.path, exc.code, exc.status_code, exc.message,
            _request_id(request),
        )
        return error_envelope(request, exc.status_code, exc.code, exc.message, exc.details)

    @application.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        return error_envelope(
            request,
            ValidationException.status_code,
            ValidationException.code,
            "Validation failed",
            _validation_details(exc),
        )

    @application.exception_handler(RateLimitExceeded)
    async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
        logger.warning("Rate limit hit on %s [%s]", request.url.path, _request_id(request))
        return error_envelope(
            request,
            RateLimitException.status_code,
            RateLimitException.code,
            f"Too many requests: {exc.detail}",
        )

    @application.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return error_envelope(request, 500, "INTERNAL_ERROR", "An unexpected error occurred.")


def create_app() -> FastAPI:
    """Build the API: middleware, the v1 routers, error envelopes and /health."""
    _configure_logging()

    application = FastAPI(
        title="Marketplace Workflow Gating API",
        description=(
            "Per-option design approval and custom quoting, and the purchase "
            "eligibility they gate."
        ),
        version=API_VERSION,
        lifespan=lifespan,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json",
    )
    application.state.limiter = limiter

    # Last added runs outermost, so request IDs exist before CORS and routing
    if settings.cors_origins_list:
        application.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_origins_list,
            allow_credentials=True,
            allow_methods=["GET", "POST", "PUT"],
            allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
            expose_headers=["X-Request-ID"],
        )

    from src.middleware.request_id import RequestIdMiddleware

    application.add_middleware(RequestIdMiddleware)

    from src.api.v1 import v1_router

    application.include_router(v1_router)
    _register_exception_handlers(application)

    @application.get("/health")
    async def health_check() -> dict:
        return {"status": "ok", "version": API_VERSION, "environment": settings.environment}

    return application


app = create_app()
