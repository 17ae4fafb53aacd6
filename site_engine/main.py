"""
Main FastAPI application for the SnapAI site engine
"""
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from starlette.middleware.sessions import SessionMiddleware

from config import settings, validate_required_config
from logging_config import logger
from rate_limit import limiter
from services.gemini_chat import GeminiChatService
from services.presentation import format_rating
from services.site_data import SiteData, build_store
from services.site_flags import SiteFlagStore
from sync.store import TableStore

# Import routers
from routers import admin, chat, tool_requests, tools, waitlist

VERSION = "1.0.0"


def create_app(
    store: Optional[TableStore] = None,
    chat_service: Optional[GeminiChatService] = None,
    flag_store: Optional[SiteFlagStore] = None,
) -> FastAPI:
    """Build the app; collaborators default to the ones configured in settings"""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan events"""
        logger.info("Starting site engine", environment=settings.ENVIRONMENT)

        # Validate required configuration
        validate_required_config()

        # Initialize Sentry if DSN provided
        if settings.SENTRY_DSN:
            sentry_sdk.init(
                dsn=settings.SENTRY_DSN,
                environment=settings.SENTRY_ENVIRONMENT,
                traces_sample_rate=settings.SENTRY_TRACES_SAMPLE_RATE,
                integrations=[FastApiIntegration()],
            )
            logger.info("Sentry initialized")

        # Site flags are read once here and only changed by the admin toggle
        flags = flag_store or SiteFlagStore(settings.SITE_FLAGS_PATH)
        flags.load()
        app.state.site_flags = flags

        site = SiteData(store or build_store())
        await site.start()
        app.state.site_data = site

        app.state.chat = chat_service or GeminiChatService(
            tools_provider=site.tools.snapshot,
            rating_provider=lambda: format_rating(len(site.waitlist)),
        )

        logger.info(
            "Site engine started",
            collections=site.status(),
            waitlist_active=flags.flags.waitlist_active,
            chat_model=settings.GEMINI_CHAT_MODEL
        )

        yield

        logger.info("Shutting down site engine")
        await site.close()

    app = FastAPI(
        title="SnapAI Site Engine",
        description="Tool showcase, waitlist, tool requests, admin console and chat assistant",
        version=VERSION,
        lifespan=lifespan
    )

    # Add rate limiter
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # Admin gate lives in a signed session cookie
    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.SESSION_SECRET,
        session_cookie="snapai_admin",
        https_only=settings.ENVIRONMENT == "production",
    )

    # CORS middleware - Configure from environment
    allowed_origins = [
        origin.strip()
        for origin in settings.CORS_ORIGINS.split(",")
        if origin.strip()
    ]

    # In development, allow all origins for easier testing
    if settings.ENVIRONMENT == "development" or settings.DEBUG:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=False,  # Cannot use credentials with wildcard origins
            allow_methods=["*"],
            allow_headers=["*"],
        )
    else:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=allowed_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.get("/")
    async def root():
        """Root endpoint"""
        return {
            "service": "SnapAI Site Engine",
            "version": VERSION,
            "status": "running",
        }

    @app.get("/health")
    async def health_check(request: Request):
        """Comprehensive health check"""
        site: SiteData = request.app.state.site_data
        health = {
            "status": "healthy",
            "version": VERSION,
            "timestamp": datetime.utcnow().isoformat(),
            "checks": {}
        }

        health["checks"]["gemini_api"] = {
            "configured": bool(settings.GEMINI_API_KEY),
            "status": "ok" if settings.GEMINI_API_KEY else "missing"
        }
        health["checks"]["supabase"] = {
            "configured": bool(settings.SUPABASE_URL),
            "status": "ok" if settings.SUPABASE_URL else "memory"
        }
        for table, state in site.status().items():
            health["checks"][f"table_{table}"] = {
                "status": "ok" if state["loaded"] else "error",
                **state,
            }

        all_loaded = all(state["loaded"] for state in site.status().values())
        health["status"] = "healthy" if all_loaded else "degraded"

        return health

    @app.get("/readiness")
    async def readiness_check(request: Request):
        """Kubernetes readiness probe"""
        site: SiteData = request.app.state.site_data
        status = site.status()

        if all(state["loaded"] for state in status.values()):
            return {"status": "ready"}
        return JSONResponse(
            status_code=503,
            content={"status": "not_ready", "collections": status}
        )

    # Include routers
    app.include_router(tools.router, prefix="/api", tags=["Tools"])
    app.include_router(tool_requests.router, prefix="/api", tags=["Tool Requests"])
    app.include_router(waitlist.router, prefix="/api", tags=["Waitlist"])
    app.include_router(admin.router, prefix="/api", tags=["Admin"])
    app.include_router(chat.router, prefix="/api", tags=["Chat"])

    # Error handlers
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Global exception handler with Sentry integration"""
        logger.error(
            "Unhandled exception",
            error=str(exc),
            path=request.url.path,
            exc_info=True
        )

        if settings.SENTRY_DSN:
            sentry_sdk.capture_exception(exc)

        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal server error",
                "detail": str(exc) if settings.SENTRY_ENVIRONMENT == "development" else None
            }
        )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    # Only enable reload in development
    reload_enabled = settings.ENVIRONMENT == "development" or settings.DEBUG
    uvicorn.run("main:app", host="0.0.0.0", port=8001, reload=reload_enabled)
