import logging
import structlog
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .api.dependencies import get_extraction_log, get_orchestrator
from .api.v1.constants import ERROR_STATUS_CODES
from .api.v1.router import api_router
from .config import get_settings
from .core.database import SessionLocal, create_tables
from .core.exceptions import ExtractionError
from .services.scheduler import ExtractionScheduler


def apply_logging_preferences(settings):
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    # Per-request connection chatter from the feed and digest downloads
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    if not settings.debug:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(message)s"
)

apply_logging_preferences(settings)

structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer() if settings.log_format == "json" else structlog.dev.ConsoleRenderer(),
    ],
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    wrapper_class=structlog.stdlib.BoundLogger,
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    apply_logging_preferences(settings)
    logger.info("Starting Digest Extraction Orchestrator", version="0.1.0")
    try:
        create_tables()
        logger.info("Database tables created/verified")
    except Exception as e:
        logger.error("Failed to initialize database", error=str(e))
        raise

    orchestrator = get_orchestrator()
    interrupted = orchestrator.reconcile_interrupted_jobs()
    if interrupted:
        logger.warning("Interrupted jobs marked failed", count=interrupted)

    scheduler = None
    if settings.scheduler_enabled:
        scheduler = ExtractionScheduler(orchestrator, SessionLocal, get_extraction_log(), settings)
        scheduler.start()

    yield

    logger.info("Shutting down Digest Extraction Orchestrator")
    if scheduler is not None:
        await scheduler.stop()
    orchestrator.shutdown(wait=False)


def create_application() -> FastAPI:
    app = FastAPI(
        title="Digest Extraction Orchestrator",
        description="Daily judicial digest ingestion and external news fetching with single-flight job tracking",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/api/v1/openapi.json",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ExtractionError)
    async def extraction_exception_handler(request: Request, exc: ExtractionError):
        status_code = ERROR_STATUS_CODES.get(exc.error_code, 500)
        log = logger.warning if status_code < 500 else logger.error
        log(
            "Extraction request failed",
            path=request.url.path,
            method=request.method,
            code=exc.error_code,
            error=exc.message,
        )
        return JSONResponse(
            status_code=status_code,
            content={"success": False, "error": exc.error_code, "message": exc.message, "details": exc.details},
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request, exc):
        logger.error(
            "Unhandled exception occurred",
            path=request.url.path,
            method=request.method,
            error=str(exc),
            exc_info=exc,
        )
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "error": "Internal server error",
                "message": "An unexpected error occurred. Please try again later.",
            }
        )

    # Health check at root
    from .api.v1.endpoints import health
    app.include_router(health.router, tags=["health"])

    # Include API router
    app.include_router(api_router, prefix="/api/v1")

    return app


app = create_application()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "extraction_orchestrator.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
        log_level="info",
        access_log=False,
    )
