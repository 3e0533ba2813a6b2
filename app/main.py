from contextlib import asynccontextmanager
import logging
import time
import uuid

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse

from app.api.v1.router import api_router
from app.core.assembler_factory import build_pipeline_resources
from app.core.exceptions import (
    AppError,
    ClassificationError,
    CollaboratorError,
    ConfigurationError,
    EntityNotFoundError,
    NodeStateError,
    ValidationError,
)
from app.core.logging import configure_logging
from app.core.metrics import get_metrics_payload
from app.core.request_context import reset_request_id, set_request_id
from app.core.settings import settings
from app.db.base import Base
from app.db.session import get_engine, init_engine
from app.services import job_queue


logger = logging.getLogger("app")


def _is_polling_request(method: str, path: str) -> bool:
    if method != "GET":
        return False
    if path.startswith("/v1/jobs/") or path.startswith("/v1/nodes/"):
        return True
    return path in {"/health", "/metrics"}


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings.log_level, settings.log_file)
    init_engine(settings.database_url)

    if settings.db_auto_create and settings.database_url.startswith("sqlite"):
        Base.metadata.create_all(bind=get_engine())

    resources = build_pipeline_resources(settings)
    app.state.resources = resources
    app.state.assembler = resources.assembler

    await job_queue.start_worker()
    try:
        yield
    finally:
        await job_queue.stop_worker()
        resources.close()
        app.state.assembler = None


app = FastAPI(title="Parallel Lives", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
    request.state.request_id = request_id
    token = set_request_id(request_id)
    start = time.perf_counter()
    try:
        try:
            response = await call_next(request)
        except Exception:
            duration_ms = (time.perf_counter() - start) * 1000
            logger.exception(
                "request_failed",
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "duration_ms": duration_ms,
                },
            )
            raise

        duration_ms = (time.perf_counter() - start) * 1000
        request_logger = logger.debug if _is_polling_request(request.method, request.url.path) else logger.info
        request_logger(
            "request_complete",
            extra={
                "method": request.method,
                "path": request.url.path,
                "status": response.status_code,
                "duration_ms": duration_ms,
            },
        )
        response.headers["x-request-id"] = request_id
        return response
    finally:
        reset_request_id(token)


def _status_for(exc: AppError) -> int:
    if isinstance(exc, ValidationError):
        return 400
    if isinstance(exc, EntityNotFoundError):
        return 404
    if isinstance(exc, NodeStateError):
        return 409
    if isinstance(exc, (ClassificationError, CollaboratorError)):
        return 502
    if isinstance(exc, ConfigurationError):
        return 503
    return 500


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    request_id = getattr(request.state, "request_id", None)
    status_code = _status_for(exc)
    if status_code >= 500:
        logger.warning("request_error type=%s error=%s", type(exc).__name__, exc)
    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.detail, "error_type": type(exc).__name__, "request_id": request_id},
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    request_id = getattr(request.state, "request_id", None)
    return JSONResponse(
        status_code=400,
        content={"detail": "Validation failed", "errors": jsonable_encoder(exc.errors()), "request_id": request_id},
    )


@app.get("/health")
def health(request: Request):
    resources = getattr(request.app.state, "resources", None)
    payload = {"status": "ok"}
    if resources is not None:
        payload["cache"] = resources.cache.stats()
        payload["narrative_generator"] = "gemini" if resources.gemini is not None else "template"
        if resources.gemini is not None:
            payload["gemini_circuit"] = resources.gemini.circuit_breaker_status()
    return payload


@app.get("/metrics")
def metrics_endpoint():
    return PlainTextResponse(get_metrics_payload(), media_type="text/plain; version=0.0.4; charset=utf-8")


app.include_router(api_router)
