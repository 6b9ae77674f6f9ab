"""
pastestore - Main FastAPI application.
"""
import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from pastestore.clock import TimeAuthority
from pastestore.config import Settings, settings as default_settings
from pastestore.database import PasteStore, open_store
from pastestore.exceptions import NotFoundOrUnavailable, StorageFailure, ValidationError
from pastestore.routes import health, pastes

# Configure logging
logging.basicConfig(
    level=default_settings.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def _describe_request_error(exc: RequestValidationError) -> str:
    reasons = []
    for error in exc.errors():
        field = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        reasons.append(f"{field}: {error.get('msg')}" if field else str(error.get("msg")))
    return "; ".join(reasons) or "invalid request"


def create_app(settings: Optional[Settings] = None, store: Optional[PasteStore] = None) -> FastAPI:
    """
    Build the application.

    Args:
        settings: Settings to use (defaults to the environment)
        store: Store to use (defaults to the one selected by ``settings``)

    Returns:
        The FastAPI application, owning its store until shutdown
    """
    settings = settings or default_settings

    app = FastAPI(
        title="pastestore",
        description="Expiring, view-limited paste store",
        version="1.0.0",
    )
    app.state.settings = settings
    app.state.clock = TimeAuthority(test_mode=settings.TEST_MODE)
    app.state.store = store if store is not None else open_store(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health.router)
    app.include_router(pastes.router)

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
        logger.info(f"Rejected paste: {exc.message}")
        return JSONResponse(status_code=400, content={"error": exc.message})

    @app.exception_handler(RequestValidationError)
    async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"error": _describe_request_error(exc)})

    @app.exception_handler(NotFoundOrUnavailable)
    async def unavailable_handler(request: Request, exc: NotFoundOrUnavailable) -> JSONResponse:
        return JSONResponse(status_code=404, content={"error": "paste not found or unavailable"})

    @app.exception_handler(StorageFailure)
    async def storage_failure_handler(request: Request, exc: StorageFailure) -> JSONResponse:
        logger.error(f"Storage failure on {request.method} {request.url.path}: {exc}")
        return JSONResponse(status_code=500, content={"error": "storage failure"})

    @app.on_event("startup")
    async def startup_event():
        """Startup event handler."""
        logger.info("pastestore starting...")
        if app.state.store.using_fallback:
            logger.warning("⚠️  STORAGE: Using IN-MEMORY storage (Redis not available)")
            logger.warning("   Data will NOT persist across server restarts!")
        if settings.TEST_MODE:
            logger.warning("TEST_MODE enabled: x-test-now-ms overrides the request clock")

    @app.on_event("shutdown")
    async def shutdown_event():
        """Shutdown event handler."""
        logger.info("pastestore shutting down...")
        app.state.store.close()

    return app


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "pastestore.main:create_app",
        factory=True,
        host="0.0.0.0",
        port=8000,
        reload=default_settings.DEBUG,
    )
