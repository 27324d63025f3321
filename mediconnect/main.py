import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.gzip import GZipMiddleware
from dotenv import load_dotenv

# Load environment variables as early as possible
load_dotenv()

from .config import settings
from .database import create_db_and_tables
from .exceptions import http_exception_handler, validation_exception_handler, create_success_response
from .infrastructure.audit.std_logger import StdAuditLogger
from .infrastructure.email.resend_sender import ResendEmailSender
from .infrastructure.events.memory_event_bus import InMemoryEventBus
from .infrastructure.payments.paypal_gateway import PayPalGateway
from .infrastructure.payments.paypal_webhook_verifier import PayPalWebhookVerifier
from .infrastructure.rate_limit.memory_rate_limiter import InMemoryRateLimiter
from .infrastructure.rate_limit.redis_rate_limiter import RedisRateLimiter
from .middleware import RateLimitMiddleware, SecurityMiddleware, LoggingMiddleware, ErrorHandlingMiddleware, RequestSizeLimitMiddleware
from .routers import appointments_router, calendar_router, notifications_router, payments_router
from .scheduler import MaintenanceScheduler

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format=settings.LOG_FORMAT
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info(f"Starting {settings.APP_NAME}...")
    app.state.db_init_ok = True
    app.state.db_init_error = None
    try:
        create_db_and_tables()
        logger.info("Database initialized successfully")
    except Exception as e:
        # Do not crash the app; report via health endpoint
        app.state.db_init_ok = False
        app.state.db_init_error = str(e)
        logger.exception("Database initialization failed")

    app.state.event_bus = InMemoryEventBus()
    app.state.audit_logger = StdAuditLogger()
    app.state.payment_gateway = PayPalGateway(
        settings.paypal_base_url,
        settings.PAYPAL_CLIENT_ID,
        settings.PAYPAL_CLIENT_SECRET,
        timeout_seconds=settings.PAYMENT_HTTP_TIMEOUT_SECONDS,
    )
    app.state.webhook_verifier = PayPalWebhookVerifier(
        settings.PAYPAL_WEBHOOK_ID,
        max_age_seconds=settings.WEBHOOK_MAX_AGE_SECONDS,
    )
    if settings.RESEND_API_KEY:
        app.state.email_sender = ResendEmailSender(settings.RESEND_API_KEY, settings.EMAIL_FROM_ADDRESS)
    else:
        logger.warning("RESEND_API_KEY not set; emails will be skipped")
        app.state.email_sender = None

    scheduler = None
    if settings.SCHEDULER_ENABLED:
        scheduler = MaintenanceScheduler(email=app.state.email_sender, events=app.state.event_bus)
        scheduler.start()
    yield
    # Shutdown
    if scheduler is not None:
        scheduler.stop()
    logger.info(f"Shutting down {settings.APP_NAME}...")


def build_rate_limiter():
    if settings.REDIS_URL:
        return RedisRateLimiter(settings.REDIS_URL)
    return InMemoryRateLimiter()


# Initialize FastAPI
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    debug=settings.DEBUG,
    lifespan=lifespan,
    docs_url=("/docs" if settings.DOCS_ENABLED else None),
    redoc_url=("/redoc" if settings.DOCS_ENABLED else None),
    openapi_url=("/openapi.json" if settings.DOCS_ENABLED else None)
)

# Add custom exception handlers
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)

# Add middleware
app.add_middleware(ErrorHandlingMiddleware)
app.add_middleware(LoggingMiddleware)
app.add_middleware(SecurityMiddleware)
app.add_middleware(RequestSizeLimitMiddleware, max_size=settings.MAX_REQUEST_SIZE)
app.add_middleware(RateLimitMiddleware, limiter=build_rate_limiter(), per_minute=settings.RATE_LIMIT_PER_MINUTE)

# GZip compression
app.add_middleware(GZipMiddleware, minimum_size=settings.GZIP_MIN_SIZE)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(appointments_router.router)
app.include_router(calendar_router.router)
app.include_router(payments_router.router)
app.include_router(notifications_router.router)


@app.get("/health")
def health():
    return create_success_response({
        "status": "healthy" if getattr(app.state, "db_init_ok", True) else "degraded",
        "version": settings.APP_VERSION,
        "database": {
            "ok": getattr(app.state, "db_init_ok", True),
            "error": getattr(app.state, "db_init_error", None),
        },
    })
