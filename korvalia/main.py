"""FastAPI application factory and startup configuration.

Error mapping:
  NotConfiguredError       → 503 "not configured"
  other EmblematicError    → 503 "unavailable" (upstream status only in the logs)
  NotFoundError            → 404
  pydantic / FastAPI input → 422 (FastAPI default)
  anything else            → 500 generic
"""
from contextlib import asynccontextmanager
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from korvalia.config import settings
from korvalia.core.exceptions import EmblematicError, NotConfiguredError, NotFoundError
from korvalia.core.logging import get_logger, set_correlation_id, setup_logging
from korvalia.database import Base, async_session_factory, engine
from korvalia.api.v1.chat import router as chat_router
from korvalia.api.v1.properties import router as properties_router
from korvalia.api.responses import fail, ok

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown events."""
    setup_logging()
    logger.info("Starting %s v%s", settings.app_name, settings.app_version)

    if not settings.emblematic_token:
        logger.warning("EMBLEMATIC_TOKEN não configurado; endpoints do CRM devolvem 503.")

    # Sem migrações: as tabelas do chat são criadas se não existirem
    import korvalia.models  # noqa: F401
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield

    await engine.dispose()
    logger.info("Shutting down %s", settings.app_name)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    application = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Real estate backend API: Emblematic CRM properties and the website chatbot.",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @application.middleware("http")
    async def add_trace_id(request: Request, call_next):
        request.state.trace_id = set_correlation_id()
        response = await call_next(request)
        response.headers["X-Trace-Id"] = request.state.trace_id
        return response

    @application.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        trace_id = getattr(request.state, "trace_id", None)
        logger.exception("Unhandled exception [trace_id=%s]", trace_id, exc_info=exc)
        return JSONResponse(
            status_code=500,
            content=fail("Error interno", ["Internal server error"], request),
        )

    @application.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError):
        return JSONResponse(status_code=404, content=fail(exc.message, [exc.message], request))

    @application.exception_handler(NotConfiguredError)
    async def not_configured_handler(request: Request, exc: NotConfiguredError):
        logger.warning("Emblematic request without token: %s", request.url.path)
        return JSONResponse(
            status_code=503,
            content=fail("Emblematic no está configurado", ["Emblematic not configured"], request),
        )

    @application.exception_handler(EmblematicError)
    async def emblematic_handler(request: Request, exc: EmblematicError):
        status_code = getattr(exc, "status_code", None)
        logger.error(
            "Emblematic unavailable (%s): %s",
            type(exc).__name__,
            exc.message,
            extra={"endpoint": request.url.path, "status_code": status_code},
        )
        return JSONResponse(
            status_code=503,
            content=fail("Emblematic no está disponible", ["Emblematic unavailable"], request),
        )

    application.include_router(properties_router, prefix="/api/v1/emblematic", tags=["emblematic"])
    application.include_router(chat_router, prefix="/api/v1/chat", tags=["chat"])

    @application.get("/health", tags=["system"])
    async def health_check(request: Request):
        db_status = "ok"
        try:
            async with async_session_factory() as session:
                await session.execute(text("SELECT 1"))
        except Exception as e:
            db_status = f"error: {str(e)}"

        return ok(
            {
                "status": "healthy" if db_status == "ok" else "unhealthy",
                "version": settings.app_version,
                "database": db_status,
                "emblematic": "configured" if settings.emblematic_token else "not configured",
            },
            "Health check completed",
            request,
        )

    return application


app = create_app()
