"""
FastAPI Captive Portal Application Factory
==========================================

Entry point for the captive portal sign-in service that sits between guests
on the Wi-Fi network and Microsoft Entra ID.

Flow:
    Access point splash → /auth/signin → Entra ID → /auth/openid/return → grant URL

Routers:
    - /auth/*       : Sign-in flow (signin, openid/return, signout)
    - /, /account   : Splash and account pages
    - /health       : Health check endpoint

Environment Variables Required:
    - AZURE_TENANT_ID: Entra ID tenant
    - AZURE_CLIENT_ID: Portal app registration client ID
    - AZURE_CLIENT_SECRET: Portal app registration client secret
    - REDIRECT_URL: Public base URL of the portal
    - SESSION_SECRET: Secret for signing the session cookie
    - TRUSTED_REDIRECT_DOMAIN: Grant URL domain (default: network-auth.com)
    - LOG_LEVEL: Logging level (default: INFO)

Running the Service:
    Development:
        uvicorn portal.main:app --reload --host 0.0.0.0 --port 3000

    Production:
        uvicorn portal.main:app --host 0.0.0.0 --port 3000 --proxy-headers
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Dict, Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse

from portal.auth.errors import AuthFlowError
from portal.auth.flow import AuthFlowController
from portal.auth.provider import IdentityProviderClient, MsalIdentityProvider
from portal.auth.routes import auth_router
from portal.config import Settings, get_settings, validate_configuration
from portal.pages import pages_router, render_error_page
from portal.sessions import MemorySessionStore, ServerSessionMiddleware, SessionStore

logger = logging.getLogger("portal.main")


# Configure structured JSON logging
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
    # Request lines are logged by uvicorn's access logger
    logging.getLogger("msal").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Startup tasks:
        - Configure logging
        - Report configuration problems

    Shutdown tasks:
        - Log shutdown information
    """
    settings: Settings = app.state.settings
    setup_logging(settings.LOG_LEVEL)

    report = validate_configuration(settings)
    for error in report["errors"]:
        logger.error("Configuration error: %s", error)
    for warning in report["warnings"]:
        logger.warning("Configuration warning: %s", warning)

    logger.info(
        "Captive portal started",
        extra={
            "authority": report["authority"],
            "trusted_redirect_domain": report["trusted_redirect_domain"],
        }
    )

    yield

    logger.info("Captive portal shutdown complete")


def create_app(
    settings: Optional[Settings] = None,
    identity_provider: Optional[IdentityProviderClient] = None,
    session_store: Optional[SessionStore] = None,
) -> FastAPI:
    """
    Application factory function.

    Creates and configures the FastAPI application instance with:
        - Lifespan management
        - Server-side session middleware
        - Route handlers
        - Exception handlers

    Args:
        settings: Settings to use instead of the environment
        identity_provider: Provider client (defaults to MSAL)
        session_store: Session backend (defaults to in-memory)

    Returns:
        FastAPI: Configured application instance
    """
    if settings is None:
        settings = get_settings()
    if identity_provider is None:
        identity_provider = MsalIdentityProvider(settings)
    if session_store is None:
        session_store = MemorySessionStore()

    app = FastAPI(
        title="Captive Portal",
        description="Captive portal sign-in with Microsoft Entra ID",
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs" if not settings.is_production else None,
        redoc_url=None,
    )

    app.state.settings = settings
    app.state.session_store = session_store
    app.state.auth_flow = AuthFlowController(settings, identity_provider)

    # SameSite=None: the provider posts the response cross-site
    app.add_middleware(
        ServerSessionMiddleware,
        store=session_store,
        secret_key=settings.SESSION_SECRET,
        session_cookie=settings.SESSION_COOKIE_NAME,
        max_age=settings.SESSION_MAX_AGE_SECONDS,
        same_site="none",
        https_only=settings.is_production,
    )

    app.include_router(auth_router)
    app.include_router(pages_router)

    # Health check endpoint
    @app.get("/health", tags=["System"])
    async def health_check() -> Dict[str, str]:
        """
        Health check endpoint.

        Returns:
            dict: Service health information
        """
        return {
            "status": "ok",
            "service": "captive-portal",
            "version": "1.0.0"
        }

    @app.exception_handler(AuthFlowError)
    async def auth_flow_exception_handler(request: Request, exc: AuthFlowError) -> HTMLResponse:
        """
        Render sign-in failures as the portal error page.

        Client errors are logged as warnings, upstream and session failures
        as errors. No failure redirects the browser.
        """
        log = logger.error if exc.status_code >= 500 else logger.warning
        log(
            f"Sign-in failed: {exc}",
            extra={
                "path": request.url.path,
                "method": request.method,
                "exception_type": type(exc).__name__
            },
            exc_info=exc.__cause__ is not None and exc.status_code >= 500,
        )
        return render_error_page(exc.title, str(exc), status_code=exc.status_code)

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> HTMLResponse:
        """
        Global exception handler for unhandled errors.

        Logs the error and returns the generic error page. Flow errors raised
        outside the routes (session persistence) keep their own page.
        """
        if isinstance(exc, AuthFlowError):
            return await auth_flow_exception_handler(request, exc)

        logger.error(
            f"Unhandled exception: {str(exc)}",
            extra={
                "path": request.url.path,
                "method": request.method,
                "exception_type": type(exc).__name__
            },
            exc_info=True
        )
        return render_error_page(
            "Unexpected Error",
            "An unexpected error occurred during sign-in. Please try again.",
            status_code=500,
        )

    return app


# Create app instance for uvicorn
app = create_app()


if __name__ == "__main__":
    settings = get_settings()

    uvicorn.run(
        "portal.main:app",
        host="0.0.0.0",
        port=3000,
        reload=not settings.is_production,
        log_level=settings.LOG_LEVEL.lower()
    )
