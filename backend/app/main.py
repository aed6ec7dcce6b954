from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from slowapi.errors import RateLimitExceeded
from sqlalchemy import text

from app.core.config import settings
from app.core.database import init_db, close_db, get_session_local
from app.core.exceptions import KonnectSphereError, error_response
from app.core.logging_config import logger
from app.core.middleware import (
    RequestLoggingMiddleware,
    SecurityHeadersMiddleware,
    RequestSizeLimitMiddleware,
)
from app.core.rate_limiter import limiter, rate_limit_exceeded_handler
from app.api.v1.router import api_router
from app.api.v1.endpoints import webhooks
from app.services.subscription_service import initialize_subscription_plans
import app.models  # noqa: F401  register tables on the metadata


async def validate_critical_config():
    """Fail fast when the app cannot function; warn for optional integrations"""
    errors = []
    warnings = []

    if not settings.DATABASE_URL:
        errors.append("DATABASE_URL is not set")

    if not settings.SECRET_KEY or settings.SECRET_KEY == "CHANGE_ME":
        errors.append("SECRET_KEY is not set or using default value")

    if not settings.stripe_configured:
        warnings.append("STRIPE_SECRET_KEY not set - checkout and billing disabled")

    if not settings.STRIPE_WEBHOOK_SECRET:
        warnings.append("STRIPE_WEBHOOK_SECRET not set - Stripe webhooks will be rejected")

    if not (settings.USE_SENDGRID and settings.SENDGRID_API_KEY) and not (settings.SMTP_USER and settings.SMTP_PASSWORD):
        warnings.append("Email not configured - verification and billing emails will not be sent")

    if errors:
        for err in errors:
            logger.critical(f"[Startup] CRITICAL: {err}")
        raise RuntimeError(f"Missing critical configuration: {', '.join(errors)}")

    for warn in warnings:
        logger.warning(f"[Startup] WARNING: {warn}")

    logger.info("[Startup] Critical configuration validated")
    return True


async def seed_subscription_plans():
    """Seed the plan catalogue on first start"""
    try:
        async with get_session_local()() as session:
            created, total = await initialize_subscription_plans(session)
            if created:
                await session.commit()
                logger.info(f"[Startup] Seeded {total} subscription plans")
    except Exception as e:
        logger.error(f"[Startup] Failed to seed subscription plans: {e}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan event handler for startup and shutdown"""
    logger.info("=" * 60)
    logger.info("Starting KonnectSphere API...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"API Version: {settings.API_VERSION}")
    logger.info("=" * 60)

    await validate_critical_config()

    try:
        await init_db()
        logger.info("[Startup] Database tables ready")
    except Exception as e:
        logger.error(f"[Startup] Failed to create database tables: {e}")

    await seed_subscription_plans()

    yield

    logger.info("Shutting down KonnectSphere API...")
    await close_db()


app = FastAPI(
    title=settings.APP_NAME,
    description="Marketplace connecting entrepreneurs seeking funding with investors",
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
    redirect_slashes=False  # Prevent 307 redirects that break CORS
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

# Middleware (order matters - last added runs first)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(RequestSizeLimitMiddleware, max_size=settings.MAX_UPLOAD_SIZE)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID", "X-Response-Time"],
)


@app.exception_handler(KonnectSphereError)
async def domain_exception_handler(request: Request, exc: KonnectSphereError):
    if exc.status_code >= 500:
        logger.error(f"[{exc.code}] {exc.message}")
    else:
        logger.info(f"[{exc.code}] {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=error_response(exc))


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Global exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "detail": "Internal server error",
            "message": str(exc) if settings.DEBUG else "An error occurred"
        }
    )


@app.get("/health", tags=["Health"])
async def health_check():
    database = "connected"
    try:
        async with get_session_local()() as session:
            await session.execute(text("SELECT 1"))
    except Exception as e:
        logger.warning(f"[HealthCheck] Database unreachable: {e}")
        database = "disconnected"
    return {"status": "healthy" if database == "connected" else "degraded", "database": database}


@app.get("/", tags=["Root"])
async def root():
    return {"message": "KonnectSphere API is running", "version": settings.APP_VERSION}


app.include_router(api_router, prefix=f"/api/{settings.API_VERSION}")
# Stripe posts to a fixed, unversioned URL
app.include_router(webhooks.router, prefix="/api/webhooks", tags=["Webhooks"])


def run():
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host=settings.SERVER_HOST,
        port=settings.SERVER_PORT,
        reload=settings.DEBUG
    )


if __name__ == "__main__":
    run()
