"""FastAPI application entry point."""

import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from assetflow import __version__
from assetflow.database import SessionLocal
from assetflow.errors import AssetFlowError, InternalError, ValidationError
from assetflow.logging_config import configure_logging
from assetflow.ratelimit import limiter
from assetflow.routers import assets, orchestrate, relationships
from assetflow.settings import settings

app = FastAPI(
    title="AssetFlow",
    description="Workflow orchestration tracking and asset lineage for generated media",
    version=__version__,
)
logger = logging.getLogger(__name__)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.on_event("startup")
async def setup_logging():
    configure_logging()


@app.exception_handler(AssetFlowError)
async def handle_assetflow_error(request: Request, exc: AssetFlowError):
    return JSONResponse(status_code=exc.http_status, content=exc.to_payload())


@app.exception_handler(RequestValidationError)
async def handle_request_validation_error(request: Request, exc: RequestValidationError):
    first = (exc.errors() or [{}])[0]
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg") or "Invalid request"
    if location:
        message = f"{location}: {message}"
    error = ValidationError(message)
    return JSONResponse(status_code=error.http_status, content=error.to_payload())


@app.exception_handler(Exception)
async def handle_unexpected_error(request: Request, exc: Exception):
    # Details stay in the log; callers only see the stable error kind.
    logger.exception("Unhandled error in %s %s", request.method, request.url.path)
    error = InternalError()
    return JSONResponse(status_code=error.http_status, content=error.to_payload())


_allowed_origins = [settings.app_url]
if settings.is_development:
    _allowed_origins += [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]
app.add_middleware(
    CORSMiddleware,
    allow_origins=_allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(relationships.router)
app.include_router(assets.router)
app.include_router(orchestrate.router)


@app.get("/health")
async def health_check():
    """Health check endpoint with DB connectivity verification."""
    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
        return {"status": "healthy"}
    except Exception as exc:
        logger.warning("Health check failed: %s", exc.__class__.__name__)
        raise HTTPException(status_code=503, detail="Database unavailable")
    finally:
        db.close()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "assetflow.api:app",
        host=settings.api_host,
        port=settings.api_port,
        workers=settings.api_workers,
        reload=settings.debug
    )
