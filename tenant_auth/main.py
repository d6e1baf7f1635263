"""
FastAPI Application Factory
===========================

Entry point for the tenant authentication service.

Routers:
    - /auth/*   : Login, callback, logout and token refresh
    - /health   : Health check endpoint

Environment Variables Required:
    - CLIENT_ID, CLIENT_SECRET: OAuth2 client credentials
    - LOGIN_STATE_SECRET: Secret for the login state cookie (32+ chars)
    - LOGIN_URL, REDIRECT_URI: This service's login and callback URLs
    - APPLICATION_DOMAIN: Identity provider application domain
    - ROOT_DOMAIN, USE_TENANT_SUBDOMAINS, USE_CUSTOM_DOMAINS: Tenant resolution
    - LOG_LEVEL: Logging level (default: INFO)

Running the Service:
    uvicorn tenant_auth.main:app --host 0.0.0.0 --port 8080
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Dict, Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from tenant_auth.auth.errors import ConfigurationError, ProviderError
from tenant_auth.auth.routes import auth_router, provider_error_response
from tenant_auth.auth.service import AuthService
from tenant_auth.config import get_settings
from tenant_auth.models import ErrorResponse


SERVICE_NAME = "tenant-auth"
SERVICE_VERSION = "1.0.0"


def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure structured logging for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format='{"timestamp": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", "message": "%(message)s", "module": "%(module)s", "function": "%(funcName)s"}',
        handlers=[logging.StreamHandler(sys.stdout)]
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Startup: load configuration, set up logging and build the AuthService
    (unless one was injected).
    Shutdown: close the service's connection pool.
    """
    logger = logging.getLogger("tenant_auth.main")
    auth_service: Optional[AuthService] = None

    if getattr(app.state, "auth_service", None) is None:
        settings = get_settings()
        setup_logging(settings.LOG_LEVEL)

        auth_service = AuthService(settings)
        app.state.auth_service = auth_service

        logger.info(
            "Starting tenant authentication service",
            extra={
                "application_domain": settings.APPLICATION_DOMAIN,
                "use_tenant_subdomains": settings.USE_TENANT_SUBDOMAINS,
                "use_custom_domains": settings.USE_CUSTOM_DOMAINS,
            },
        )

    yield

    logger.info("Shutting down tenant authentication service")
    if auth_service is not None:
        await auth_service.aclose()
        app.state.auth_service = None


def create_app(auth_service: Optional[AuthService] = None) -> FastAPI:
    """
    Application factory function.

    Args:
        auth_service: Pre-built service (tests); otherwise built from the
            environment during startup

    Returns:
        FastAPI: Configured application instance
    """
    app = FastAPI(
        title="Tenant Authentication Service",
        description="OAuth2 authorization code flow with PKCE for multi-tenant applications",
        version=SERVICE_VERSION,
        lifespan=lifespan,
    )
    app.state.auth_service = auth_service

    app.include_router(auth_router)

    @app.get("/health", tags=["System"])
    async def health_check() -> Dict[str, str]:
        return {
            "status": "ok",
            "service": SERVICE_NAME,
            "version": SERVICE_VERSION,
        }

    @app.exception_handler(ConfigurationError)
    async def configuration_error_handler(request: Request, exc: ConfigurationError) -> JSONResponse:
        logging.getLogger("tenant_auth.main").error(
            f"Configuration error: {exc}",
            extra={"path": request.url.path},
        )
        body = ErrorResponse(error="configuration_error", message=str(exc))
        return JSONResponse(status_code=500, content=body.model_dump(mode="json"))

    @app.exception_handler(ProviderError)
    async def provider_error_handler(request: Request, exc: ProviderError) -> JSONResponse:
        logging.getLogger("tenant_auth.main").warning(
            f"Identity provider error: {exc}",
            extra={"path": request.url.path, "provider_status_code": exc.status_code},
        )
        return provider_error_response(exc)

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
        body = ErrorResponse(error="invalid_request", message=str(exc))
        return JSONResponse(status_code=400, content=body.model_dump(mode="json"))

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logging.getLogger("tenant_auth.main").error(
            f"Unhandled exception: {str(exc)}",
            extra={
                "path": request.url.path,
                "method": request.method,
                "exception_type": type(exc).__name__,
            },
            exc_info=True,
        )
        body = ErrorResponse(error="internal_server_error", message="An unexpected error occurred")
        return JSONResponse(status_code=500, content=body.model_dump(mode="json"))

    return app


# Create app instance for uvicorn
app = create_app()


if __name__ == "__main__":
    uvicorn.run(
        "tenant_auth.main:app",
        host="0.0.0.0",
        port=8080,
        log_level=get_settings().LOG_LEVEL.lower(),
    )
