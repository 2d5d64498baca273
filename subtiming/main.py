"""FastAPI application entry point."""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from subtiming.config import MAX_UPLOAD_BYTES, ensure_directories
from subtiming.routes import alignment, documents, health, timing
from subtiming.services.errors import (
    AlignmentInProgress,
    BoundaryViolation,
    ExternalToolFailure,
    ReconciliationMismatch,
    SubtitleError,
)

logger = logging.getLogger(__name__)

app = FastAPI(title="Subtitle Timing", version="0.1.0")

# Register routes.
app.include_router(health.router)
app.include_router(documents.router)
app.include_router(timing.router)
app.include_router(alignment.router)

ERROR_STATUS = {
    BoundaryViolation: 409,
    ReconciliationMismatch: 409,
    AlignmentInProgress: 409,
    ExternalToolFailure: 502,
}


@app.exception_handler(SubtitleError)
async def subtitle_error_handler(request: Request, exc: SubtitleError) -> JSONResponse:
    status_code = next((code for kind, code in ERROR_STATUS.items() if isinstance(exc, kind)), 400)
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=status_code, content={"error": exc.error_payload})


@app.middleware("http")
async def upload_size_middleware(request, call_next):
    if request.method == "POST":
        length = request.headers.get("content-length")
        if length and length.isdigit() and int(length) > MAX_UPLOAD_BYTES:
            return JSONResponse(status_code=413, content={"detail": "Upload too large"})
    return await call_next(request)


@app.on_event("startup")
def startup() -> None:
    """Ensure filesystem layout is ready at boot."""
    ensure_directories()
