"""Main application entrypoint for the image gallery service."""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from imagegallery.api.v1 import routes_health, routes_images, routes_static, routes_upload
from imagegallery.conversion.invoker import ImageConverter
from imagegallery.core.config import Settings, settings as default_settings
from imagegallery.core.logging import setup_logging
from imagegallery.gallery import build_gallery
from imagegallery.middleware import HTTPErrorLoggingMiddleware

logger = logging.getLogger(__name__)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Render every HTTP error as ``{"error": "<detail>"}``."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Render unexpected errors as a generic 500 without internal details."""
    logger.error(
        f"Unhandled error on {request.method} {request.url.path}: {exc}",
        exc_info=exc,
    )
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


def create_app(
    settings: Settings | None = None,
    converter: ImageConverter | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Storage directories are created here, so a misconfigured storage root
    stops the service before it accepts any request.

    Args:
        settings: Settings to use instead of the environment-loaded singleton
        converter: Converter to use instead of the ImageMagick executable

    Returns:
        FastAPI: Configured FastAPI application instance
    """
    settings = settings or default_settings

    # Initialize logging first
    setup_logging(settings)

    app = FastAPI(
        title=settings.SERVICE_NAME,
        version=settings.SERVICE_VERSION,
    )
    app.state.gallery = build_gallery(settings, converter=converter)

    app.add_middleware(HTTPErrorLoggingMiddleware)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # Register routers; static catch-all routes go last
    app.include_router(routes_health.router, tags=["health"])
    app.include_router(routes_images.router)
    app.include_router(routes_upload.router)
    app.include_router(routes_static.router)

    logger.info(
        "Image gallery service configured",
        extra={"service": settings.SERVICE_NAME, "env": settings.ENV},
    )
    return app


# Export app instance for ASGI servers
app = create_app()


if __name__ == "__main__":
    import os

    import uvicorn

    port = int(os.getenv("PORT", "8080"))
    uvicorn.run(app, host="0.0.0.0", port=port)
