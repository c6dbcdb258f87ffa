"""opradraft API: FastAPI application for rent-control OPRA request drafting.

Run:
    uvicorn opradraft.api.main:app --reload
    # or
    opradraft-api
"""

import logging
import uuid
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from mlflow.exceptions import MlflowException
from sqlalchemy.exc import SQLAlchemyError
from starlette.middleware.base import BaseHTTPMiddleware

from opradraft.api.routes import router
from opradraft.config import settings
from opradraft.core.errors import OpraDraftError
from opradraft.observability.logging import correlation_id, setup_logging
from opradraft.observability.tracing import configure_tracking
from opradraft.pipeline.services import get_services
from opradraft.pipeline.status import check_database
from opradraft.storage.db import init_db

logger = logging.getLogger(__name__)

STATUS_BY_ERROR_TYPE = {
    "not_found": 404,
    "precondition_failed": 409,
    "malformed_input": 422,
    "provider_error": 502,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Configure logging and MLflow, initialize the DB; start degraded if it is down."""
    setup_logging(json_format=settings.log_json, level=settings.log_level)
    try:
        configure_tracking(settings.mlflow_tracking_uri, settings.mlflow_experiment_name)
    except MlflowException as e:
        logger.warning("MLflow tracking unavailable: %s", e)

    logger.info("Initializing database...")
    try:
        await init_db()
    except (SQLAlchemyError, OSError) as e:
        logger.error("Database initialization failed, starting degraded: %s", e)
    logger.info("opradraft API ready")
    yield
    logger.info("Shutting down")


class CorrelationIDMiddleware(BaseHTTPMiddleware):
    """Set correlation ID from X-Request-ID header or generate a new one."""

    async def dispatch(self, request: Request, call_next):
        cid = request.headers.get("x-request-id", str(uuid.uuid4()))
        token = correlation_id.set(cid)
        try:
            response = await call_next(request)
            response.headers["x-request-id"] = cid
            return response
        finally:
            correlation_id.reset(token)


app = FastAPI(
    title="opradraft",
    description="Finds municipal rent-control ordinances, determines which public-records "
    "categories they support, and drafts Open Public Records Act requests.",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(CorrelationIDMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router)


@app.exception_handler(OpraDraftError)
async def domain_error_handler(request: Request, exc: OpraDraftError):
    status = STATUS_BY_ERROR_TYPE.get(exc.error_type, 500)
    if status >= 500:
        logger.error("%s on %s: %s", exc.error_type, request.url.path, exc)
    return JSONResponse(status_code=status, content={"detail": str(exc), "error_type": exc.error_type})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=422,
        content={"detail": jsonable_encoder(exc.errors()), "error_type": "malformed_input"},
    )


@app.get("/health")
async def health():
    """Health check that verifies DB connectivity."""
    database = await check_database(get_services())
    return {"status": "healthy" if database == "ok" else "degraded", "checks": {"database": database}}


def run():
    """Entry point for opradraft-api console script."""
    uvicorn.run("opradraft.api.main:app", host="0.0.0.0", port=8000, reload=True)
