"""Health check endpoints for the image gallery service."""

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse

from imagegallery.api.deps import get_gallery
from imagegallery.gallery import Gallery

router = APIRouter()


@router.get("/healthz", response_class=PlainTextResponse)
async def liveness() -> str:
    """Liveness probe: plain ``ok``."""
    return "ok"


@router.get("/health")
async def health_check(gallery: Gallery = Depends(get_gallery)) -> dict:
    """Health check endpoint.

    Returns service status, name, and version information.
    """
    return {
        "status": "ok",
        "service": gallery.settings.SERVICE_NAME,
        "version": gallery.settings.SERVICE_VERSION,
    }
