"""Gallery listing and deletion routes."""

import logging
from pathlib import PurePosixPath

from fastapi import APIRouter, Depends, HTTPException, Query, status

from imagegallery.api.deps import get_gallery
from imagegallery.catalog.deletion import delete_image
from imagegallery.catalog.lister import list_images
from imagegallery.gallery import Gallery
from imagegallery.models.image import DeleteResponse, ImageListResponse
from imagegallery.pipeline.exceptions import PathTraversalError
from imagegallery.storage.layout import validate_identifier

router = APIRouter(prefix="/api", tags=["images"])
logger = logging.getLogger(__name__)


@router.get("/images", response_model=ImageListResponse)
def list_gallery(gallery: Gallery = Depends(get_gallery)) -> ImageListResponse:
    """List stored images, newest first."""
    items = list_images(gallery.layout, gallery.default_thumb_size)
    return ImageListResponse(items=items)


@router.delete("/images", response_model=DeleteResponse)
async def delete_gallery_image(
    id: str | None = Query(None, description="Identifier of the image"),
    name: str | None = Query(None, description="Master filename (legacy)"),
    gallery: Gallery = Depends(get_gallery),
) -> DeleteResponse:
    """Delete an image with all of its thumbnails.

    Deleting an identifier that does not exist still succeeds.
    """
    target_id = id or (PurePosixPath(name).stem if name else "")
    if not target_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing ?id=")

    try:
        validate_identifier(target_id)
    except PathTraversalError:
        logger.warning("Rejected malformed identifier", extra={"upload_id": target_id})
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid id")

    await delete_image(gallery.layout, target_id)
    return DeleteResponse()
