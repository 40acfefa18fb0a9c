"""FastAPI entry point for the sales desk application."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response, status
from fastapi.responses import JSONResponse

from salesdesk import __version__
from salesdesk.core.lifecycle import (
    DealError,
    DealNotFoundError,
    DealValidationError,
    InvalidTransitionError,
    PermissionDeniedError,
    StorageUnavailableError,
)
from salesdesk.database import init_db
from salesdesk.routers import auth, projects, reports, sellers, sets

logger = logging.getLogger(__name__)

DEAL_ERROR_STATUS = (
    (DealNotFoundError, status.HTTP_404_NOT_FOUND),
    (PermissionDeniedError, status.HTTP_403_FORBIDDEN),
    (InvalidTransitionError, status.HTTP_409_CONFLICT),
    (DealValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (StorageUnavailableError, status.HTTP_503_SERVICE_UNAVAILABLE),
)


@asynccontextmanager
async def lifespan(_: FastAPI):
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s [%(name)s] %(message)s")
    init_db()
    yield


app = FastAPI(title="Sales Desk", version=__version__, lifespan=lifespan)

app.include_router(auth.router)
app.include_router(sellers.router)
app.include_router(sets.router)
app.include_router(projects.router)
app.include_router(reports.router)


@app.get("/health")
def health() -> Response:
    """Simple health endpoint for load balancers and platform checks."""
    return Response(content='{"status":"ok"}', media_type="application/json")


@app.exception_handler(DealError)
async def deal_error_handler(request: Request, exc: DealError):
    """Map lifecycle failures to HTTP responses.

    Validation failures list every offending field so the form can flag each
    one; storage failures carry a generic retry message.
    """
    status_code = status.HTTP_400_BAD_REQUEST
    for error_type, code in DEAL_ERROR_STATUS:
        if isinstance(exc, error_type):
            status_code = code
            break

    content: dict[str, object] = {"detail": str(exc)}
    if isinstance(exc, DealValidationError):
        content["errors"] = [{"field": e.field, "message": e.message} for e in exc.errors]
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=status_code, content=content)
