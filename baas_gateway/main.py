# baas_gateway/main.py
"""
Backend-as-a-Service API Gateway
Minimal main file with core FastAPI setup and routing
"""

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import uvicorn
import logging

from .config import get_settings
from .database.db import DatabaseConnection
from .database.redis_client import get_redis
from .health_monitor import HealthMonitor
from .middlewares.security_middleware import SecurityHeadersMiddleware
from .router_config import setup_routers
from .src.stripe.errors import (
    CustomerNotFoundError,
    PaymentIntentNotFoundError,
    StripeConnectAccountNotFoundError,
    StripeConnectError,
    StripeInvalidRequestError,
    StripePaymentError,
    StripeWebhookVerificationError,
)

# Get settings
settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)

# Configure logging to reduce verbosity
logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("stripe").setLevel(logging.WARNING)

logger = logging.getLogger(__name__)

allowed_origins = settings.ALLOWED_ORIGINS.split(",")

# Initialize health monitor
health_monitor = HealthMonitor(settings)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan event handler for startup and shutdown"""
    # Startup
    await health_monitor.startup_health_display()

    yield

    # Shutdown
    connection = DatabaseConnection._instance
    if connection is not None and connection._db is not None:
        connection.close_connection()
    if get_redis.cache_info().currsize:
        await get_redis().aclose()


# Create FastAPI app
app = FastAPI(
    title="Backend-as-a-Service API Gateway",
    description="Authentication (email/OTP, OAuth, JWT sessions) and a Stripe payments and Connect proxy",
    version=settings.SERVICE_VERSION,
    lifespan=lifespan
)

# Configure CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
    allow_methods=settings.CORS_ALLOW_METHODS.split(","),
    allow_headers=settings.CORS_ALLOW_HEADERS.split(","),
    expose_headers=[h for h in settings.CORS_EXPOSE_HEADERS.split(",") if h],
    max_age=settings.CORS_MAX_AGE,
)

app.add_middleware(SecurityHeadersMiddleware, environment=settings.ENVIRONMENT)

# Setup all application routers
app = setup_routers(app)


# Stripe domain errors -> HTTP
def _error_response(status_code: int, exc) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": exc.message, "code": exc.code})


@app.exception_handler(StripePaymentError)
async def stripe_payment_error_handler(request: Request, exc: StripePaymentError):
    if isinstance(exc, (PaymentIntentNotFoundError, CustomerNotFoundError)):
        return _error_response(404, exc)
    if isinstance(exc, StripeInvalidRequestError):
        return _error_response(400, exc)
    if exc.type == "card_error":
        return _error_response(402, exc)
    logger.error(f"Stripe payment error on {request.url.path}: {exc.message} ({exc.code})")
    return _error_response(502, exc)


@app.exception_handler(StripeConnectError)
async def stripe_connect_error_handler(request: Request, exc: StripeConnectError):
    if isinstance(exc, StripeConnectAccountNotFoundError):
        return _error_response(404, exc)
    if exc.type == "invalid_request_error":
        return _error_response(400, exc)
    logger.error(f"Stripe Connect error on {request.url.path}: {exc.message} ({exc.code})")
    return _error_response(502, exc)


@app.exception_handler(StripeWebhookVerificationError)
async def stripe_webhook_error_handler(request: Request, exc: StripeWebhookVerificationError):
    logger.warning(exc.message)
    return JSONResponse(status_code=400, content={"detail": exc.message, "code": "WEBHOOK_VERIFICATION_FAILED"})


# Core API endpoints
@app.get("/health")
async def health_check():
    """Simple health check endpoint"""
    return {"status": "healthy", "service": settings.SERVICE_NAME}


@app.get("/health/services")
async def comprehensive_health_check():
    """MongoDB and Redis health using HealthMonitor"""
    return await health_monitor.comprehensive_health_check()


@app.get("/")
async def root():
    """Root endpoint with service information"""
    return {
        "message": "Backend-as-a-Service API Gateway",
        "version": settings.SERVICE_VERSION,
        "features": ["authentication", "otp", "oauth", "jwt", "stripe_payments", "stripe_connect"]
    }


# Main entry point
if __name__ == "__main__":
    uvicorn.run("baas_gateway.main:app", host=settings.SERVICE_HOST, port=settings.SERVICE_PORT, log_level="info")
