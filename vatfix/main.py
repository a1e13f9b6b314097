from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
import uvicorn

from .config import get_settings
from .models import HealthResponse, ResolutionError, VatRequest
from .services.factory import Services, build_services
from .utils.logging_security import SecureLogger, log_secure

logger = logging.getLogger("vatfix")


def create_app(services: Optional[Services] = None) -> FastAPI:
    """Build the HTTP surface.

    Args:
        services: Pre-built core (tests). When omitted, the lifespan builds one
            from settings at startup and closes it at shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # === STARTUP ===
        owned = services is None
        app.state.services = services or build_services()
        logger.info(
            f"vatfix ready: store={app.state.services.store.name}, "
            f"rate limiting={'on' if app.state.services.rate_limiter.enabled else 'off'}"
        )

        yield  # Application runs here

        # === SHUTDOWN ===
        if owned:
            await app.state.services.close()
        else:
            await app.state.services.rate_limiter.drain()

    app = FastAPI(title="vatfix API", version="1.0.0", lifespan=lifespan)

    async def vat_body_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        if request.url.path.startswith("/vat/"):
            logger.info(f"[vat] rejected request body: {len(exc.errors())} error(s)")
            return JSONResponse(status_code=400, content={"error": "missing_vat_data"})
        return await request_validation_exception_handler(request, exc)

    app.add_exception_handler(RequestValidationError, vat_body_error_handler)

    @app.middleware("http")
    async def request_logging_middleware(request: Request, call_next):
        request_id = SecureLogger.generate_request_id()
        start = time.perf_counter()
        log_secure(
            "info",
            "request",
            SecureLogger.format_request_log(request, request_id, include_headers=True),
        )
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start) * 1000
        log_secure(
            "info",
            "response",
            SecureLogger.format_response_log(request_id, response.status_code, duration_ms),
        )
        response.headers["X-Request-Id"] = request_id
        return response

    async def vat_handler(request: Request, body: VatRequest) -> JSONResponse:
        core: Services = request.app.state.services
        try:
            api_key = str(request.headers.get("x-api-key") or "").strip()
            email = str(request.headers.get("x-customer-email") or "").strip()

            if not body.vatNumber:
                return JSONResponse(status_code=400, content={"error": "missing_vat_data"})

            headers = {}
            verdict = await core.rate_limiter.check_and_increment(
                api_key,
                email=email,
                country_code=body.countryCode,
                identifier=body.vatNumber,
            )
            if verdict.remaining is not None:
                headers["X-Rate-Remaining"] = str(verdict.remaining)
            if not verdict.allowed:
                return JSONResponse(
                    status_code=429,
                    content={"error": verdict.reason or "rate_limit_exceeded"},
                    headers=headers,
                )

            result = await core.resolver.resolve(body.countryCode, body.vatNumber)
            status_code = 400 if isinstance(result, ResolutionError) and result.error == "invalid_input" else 200
            return JSONResponse(
                status_code=status_code,
                content=result.model_dump(mode="json", exclude_none=True),
                headers=headers,
            )
        except Exception as e:
            logger.error(f"[vat] server error: {SecureLogger.redact_pii(str(e))}", exc_info=True)
            return JSONResponse(status_code=500, content={"error": "server_error"})

    @app.post("/vat/lookup")
    async def vat_lookup(request: Request, body: VatRequest) -> JSONResponse:
        return await vat_handler(request, body)

    @app.post("/vat/validate")
    async def vat_validate(request: Request, body: VatRequest) -> JSONResponse:
        return await vat_handler(request, body)

    @app.get("/health", response_model=HealthResponse)
    async def health(request: Request) -> HealthResponse:
        core: Services = request.app.state.services
        return HealthResponse(
            status="ok",
            timestamp=datetime.now(timezone.utc).isoformat(),
            environment=core.settings.environment or "development",
            store=core.store.name,
            storeReachable=await core.store.ping(),
            rateLimiting=core.rate_limiter.enabled,
        )

    return app


def _configure_logging() -> None:
    level = getattr(logging, get_settings().log_level.upper(), logging.INFO)
    logging.basicConfig(level=level)


_configure_logging()
app = create_app()


def run() -> None:
    """Serve the app with uvicorn (`vatfix` console script)."""
    settings = get_settings()
    uvicorn.run(
        "vatfix.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )
