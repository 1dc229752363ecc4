"""Static serving of stored artifacts and the bundled UI."""

import logging
from pathlib import Path

from fastapi import APIRouter, Depends
from fastapi.responses import FileResponse, JSONResponse, PlainTextResponse, Response

from imagegallery.api.deps import get_gallery
from imagegallery.gallery import Gallery
from imagegallery.pipeline.exceptions import NotFoundError, PathTraversalError
from imagegallery.storage.layout import MASTER_DIRNAME, THUMBS_DIRNAME, safe_join

router = APIRouter()
logger = logging.getLogger(__name__)

MIME_TYPES = {
    ".html": "text/html; charset=utf-8",
    ".js": "text/javascript; charset=utf-8",
    ".css": "text/css; charset=utf-8",
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".webp": "image/webp",
    ".gif": "image/gif",
    ".svg": "image/svg+xml",
    ".json": "application/json; charset=utf-8",
}

IMMUTABLE_CACHE = "public, max-age=31536000, immutable"
IMAGE_EXTENSIONS = frozenset([".png", ".jpg", ".jpeg", ".webp", ".gif", ".svg"])
PUBLIC_UPLOAD_DIRS = frozenset([MASTER_DIRNAME, THUMBS_DIRNAME])

ALL_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


def file_response(path: Path) -> FileResponse:
    """Build a response for an existing file with type and cache headers.

    Raises:
        NotFoundError: If ``path`` is not a regular file
    """
    if not path.is_file():
        raise NotFoundError(f"No such file: {path}")

    extension = path.suffix.lower()
    cache_control = IMMUTABLE_CACHE if extension in IMAGE_EXTENSIONS else "no-cache"
    return FileResponse(
        path,
        media_type=MIME_TYPES.get(extension, "application/octet-stream"),
        headers={"Cache-Control": cache_control},
    )


def serve_from(root: Path, relative: str) -> Response:
    try:
        return file_response(safe_join(root, relative))
    except PathTraversalError:
        logger.warning("Rejected path outside static root", extra={"path": relative})
        return PlainTextResponse("Bad path", status_code=400)
    except NotFoundError:
        return PlainTextResponse("Not found", status_code=404)


@router.api_route("/api/{rest:path}", methods=ALL_METHODS, include_in_schema=False)
async def api_not_found(rest: str) -> JSONResponse:
    return JSONResponse({"error": "not found"}, status_code=404)


@router.api_route("/uploads/{file_path:path}", methods=["GET", "HEAD"], include_in_schema=False)
async def serve_upload(file_path: str, gallery: Gallery = Depends(get_gallery)) -> Response:
    """Serve masters and thumbnails; staging files are never exposed."""
    top_level, _, rest = file_path.partition("/")
    if top_level not in PUBLIC_UPLOAD_DIRS:
        return PlainTextResponse("Not found", status_code=404)
    return serve_from(gallery.layout.root / top_level, rest)


@router.api_route("/{file_path:path}", methods=["GET", "HEAD"], include_in_schema=False)
async def serve_public(file_path: str, gallery: Gallery = Depends(get_gallery)) -> Response:
    return serve_from(gallery.settings.public_dir, file_path or "index.html")
