"""MangaView API application."""

import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from mangaview_catalog_client import MangaDexClient, set_client
from mangaview_services.exceptions import (
    GatewayUnavailable,
    NoPagesFound,
    NotFoundError,
    RelayError,
    RelayForbidden,
    ServiceError,
    ValidationError,
)
from .deps import configure_client, settings
from .routes import catalog_router, chapters_router, relay_router
from .schemas import HealthResponse

logger = logging.getLogger(__name__)

STATUS_CODES: dict[type[ServiceError], int] = {
    ValidationError: 400,
    RelayForbidden: 403,
    NotFoundError: 404,
    NoPagesFound: 404,
    GatewayUnavailable: 502,
    RelayError: 502,
}


def _error_response(status_code: int, code: str, message: str, **extra) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": {"code": code, "message": message}, **extra},
    )


def create_app(client: Optional[MangaDexClient] = None) -> FastAPI:
    """Create the FastAPI application.

    Args:
        client: Catalog client to use (defaults to one built from settings)

    Returns:
        FastAPI application
    """
    if client is not None:
        set_client(client)
    else:
        configure_client(settings)

    app = FastAPI(
        title="MangaView API",
        description="""
Catalog gateway and image relay for the MangaView reader.

## Reading a chapter

1. Find a series (`GET /manga?query=...` or `GET /manga/sections/{sort}`)
2. Get its chapters grouped by volume (`GET /manga/{series_id}`)
3. Get the chapter's page URLs (`GET /chapters/{chapter_id}/pages`)
4. Load each page from its proxied URL (`GET /proxy-image?url=...`),
   falling back to the direct URL when that fails

Every error response carries an `external_url` when the content can still be
read on the catalog site.
""",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers
    @app.exception_handler(ValidationError)
    async def validation_handler(request: Request, exc: ValidationError):
        return JSONResponse(
            status_code=400,
            content={
                "error": {
                    "code": exc.code,
                    "message": exc.message,
                    "field": exc.field,
                }
            },
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        first = exc.errors()[0] if exc.errors() else {}
        location = first.get("loc") or ()
        return JSONResponse(
            status_code=400,
            content={
                "error": {
                    "code": "VALIDATION_ERROR",
                    "message": first.get("msg", "Invalid request"),
                    "field": str(location[-1]) if location else None,
                }
            },
        )

    @app.exception_handler(ServiceError)
    async def service_error_handler(request: Request, exc: ServiceError):
        status_code = STATUS_CODES.get(type(exc), 500)
        if status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return _error_response(
            status_code,
            exc.code,
            exc.message,
            external_url=exc.external_url,
        )

    # Register routers
    app.include_router(catalog_router)
    app.include_router(chapters_router)
    app.include_router(relay_router)

    @app.get("/health", response_model=HealthResponse)
    async def health_check():
        """Health check endpoint."""
        return HealthResponse(status="healthy")

    return app


# Default app instance for uvicorn
app = create_app()
