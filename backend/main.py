"""
FastAPI Backend for Scene Generation
"""

import logging
import time
import uuid
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import settings
from pipeline.errors import PipelineError
from routers import projects

structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer()
    ],
    wrapper_class=structlog.make_filtering_bound_logger(
        logging.DEBUG if settings.DEBUG else logging.INFO
    ),
    context_class=dict,
    logger_factory=structlog.PrintLoggerFactory(),
    cache_logger_on_first_use=False,
)

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Validate configuration and make sure the project table exists."""
    logger.info(
        "application_startup",
        default_model=settings.DEFAULT_VIDEO_MODEL,
        execution_mode=settings.DEFAULT_EXECUTION_MODE,
    )

    try:
        settings.validate_dynamodb_config()
    except ValueError as e:
        logger.error("config_validation_failed", error=str(e))
        raise

    # Missing tables surface again on first request; the API still boots
    try:
        from dynamodb_config import init_dynamodb_tables
        init_dynamodb_tables()
    except Exception as e:
        logger.error("dynamodb_init_error", error=str(e))

    yield

    logger.info("application_shutdown")


app = FastAPI(
    title="Scene Generation API",
    description="Turns a concept into a multi-scene AI video: script, scenes, continuity and stitching",
    version="0.1.0",
    lifespan=lifespan,
    debug=settings.DEBUG,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Bind a request id for the duration of the request and log timing."""
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(
        request_id=request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12],
    )
    start_time = time.time()

    try:
        response = await call_next(request)
    except Exception as e:
        logger.error(
            "request_failed",
            method=request.method,
            path=request.url.path,
            error=str(e),
            process_time=f"{time.time() - start_time:.3f}s"
        )
        raise

    logger.info(
        "request_completed",
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        process_time=f"{time.time() - start_time:.3f}s"
    )
    return response


@app.exception_handler(PipelineError)
async def pipeline_exception_handler(request: Request, exc: PipelineError):
    """Pipeline errors that escape a route get the same mapping the routes use."""
    http_exc = projects.http_error(exc)
    return JSONResponse(status_code=http_exc.status_code, content={"detail": http_exc.detail})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(
        "unhandled_exception",
        path=request.url.path,
        method=request.method,
        error=str(exc),
        exc_type=type(exc).__name__
    )

    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "message": "An unexpected error occurred. Please try again later.",
            "details": str(exc) if app.debug else None
        }
    )


@app.get("/health", tags=["Health"])
async def health_check():
    return {
        "status": "healthy",
        "service": "scene-generation",
        "version": app.version,
        "video_model": settings.DEFAULT_VIDEO_MODEL,
    }


app.include_router(projects.router)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        reload=settings.DEBUG,
        log_level="info"
    )
