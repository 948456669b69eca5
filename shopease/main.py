from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from shopease.base_microservice import BaseMicroservice, Database, MCPResponse, configure_logging
from shopease.config import Settings
from shopease.auth.mailer import EmailSender
from shopease.auth.rate_limit import RateLimiter
from shopease.auth.router import router as auth_router
from shopease.auth.schemas import describe_validation_errors

# Create shared base microservice instance
base_service = BaseMicroservice()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for FastAPI.
    Handles startup and shutdown events.
    """
    base_service.log_event("service.startup", {"service": "main"})
    database: Database = app.state.database
    await database.create_all()
    base_service.logger.info("Database tables ready")
    try:
        yield
    finally:
        await database.dispose()
        base_service.log_event("service.shutdown", {"service": "main"})


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return MCPResponse(
        data=None,
        message=str(exc.detail),
        status="error",
        status_code=exc.status_code,
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return MCPResponse(
        data=None,
        message=describe_validation_errors(exc.errors()),
        status="error",
        status_code=400,
    )


async def unhandled_exception_handler(request: Request, exc: Exception):
    base_service.log_error(exc, context=f"{request.method} {request.url.path}")
    return MCPResponse(
        data=None,
        message="Something went wrong. Please try again later.",
        status="error",
        status_code=500,
    )


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the application around one settings object."""
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)
    if settings.jwt_secret_key == Settings.jwt_secret_key:
        base_service.logger.warning("JWT_SECRET_KEY is not set; using the insecure development key")

    app = FastAPI(
        title="ShopEase Auth API",
        description="User accounts and authentication for the ShopEase store",
        version="1.0.0",
        lifespan=lifespan
    )
    app.state.settings = settings
    app.state.database = Database(settings.database_url)
    app.state.email_sender = EmailSender(settings)
    app.state.rate_limiter = RateLimiter(settings.rate_limit_max_requests, settings.rate_limit_window_seconds)

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials="*" not in settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    app.include_router(auth_router, prefix=settings.api_prefix, tags=["auth"])

    @app.get("/", tags=["root"])
    async def root():
        """Root endpoint returning API information."""
        return base_service.mcp_response(
            message="ShopEase Auth API",
            data={
                "name": "ShopEase Auth API",
                "version": "1.0.0",
                "auth_prefix": settings.api_prefix
            }
        )

    @app.get("/health", tags=["health"])
    async def health_check():
        """Overall system health check."""
        return base_service.mcp_response(
            message="System health",
            data={"services": {"auth": "online"}}
        )

    return app


# For running directly with uvicorn
if __name__ == "__main__":
    import uvicorn
    uvicorn.run("shopease.main:create_app", factory=True, host="0.0.0.0", port=Settings.from_env().port)
