"""FastAPI dependencies."""

from fastapi import Request

from imagegallery.gallery import Gallery


def get_gallery(request: Request) -> Gallery:
    """Return the gallery built for this application at startup."""
    return request.app.state.gallery
