"""Upload API routes."""

import asyncio
import contextlib
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from imagegallery.api.deps import get_gallery
from imagegallery.gallery import Gallery
from imagegallery.models.image import UploadResponse
from imagegallery.pipeline.exceptions import (
    ConversionError,
    StagingWriteError,
    UnsupportedImageError,
    UploadAbortedError,
    UploadTooLargeError,
)
from imagegallery.pipeline.orchestrator import (
    PipelineResult,
    PipelineState,
    UploadJob,
    UploadPipeline,
)

router = APIRouter(prefix="/api", tags=["upload"])
logger = logging.getLogger(__name__)


@router.post("/upload", response_model=UploadResponse, status_code=201)
async def upload_image(
    request: Request,
    name: str | None = Query(None, description="Display name of the uploaded file"),
    gallery: Gallery = Depends(get_gallery),
) -> UploadResponse:
    """Stream a raw image body to disk and derive its master and thumbnails."""
    settings = gallery.settings
    max_bytes = settings.max_upload_bytes

    try:
        # Reject early when the client announces an oversized body
        content_length = request.headers.get("content-length", "")
        if content_length.isdigit() and int(content_length) > max_bytes:
            raise UploadTooLargeError(max_bytes)

        pipeline = gallery.new_pipeline()
        job = pipeline.new_job(request.stream(), display_name=name)

        if settings.CANCEL_ON_DISCONNECT:
            result = await _execute_until_disconnected(
                request, pipeline, job, settings.DISCONNECT_POLL_SECONDS
            )
        else:
            result = await pipeline.execute(job)

        logger.info(
            "Upload completed",
            extra={
                "upload_id": result.identifier,
                "display_name": name,
                "size_bytes": result.size_bytes,
                "image_type": result.image_type,
            },
        )

        return UploadResponse(
            id=result.identifier,
            master=result.master_url,
            thumb=result.thumb_url,
        )

    except UploadTooLargeError as e:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"File exceeds the {e.max_bytes} byte limit",
        )
    except UploadAbortedError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="upload aborted")
    except StagingWriteError:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="upload failed")
    except UnsupportedImageError:
        raise HTTPException(
            status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
            detail="unsupported image type",
        )
    except ConversionError:
        # Diagnostics were logged by the converter
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="conversion failed",
        )
    except Exception as e:
        logger.error(f"Unexpected error during upload: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error")


async def _execute_until_disconnected(
    request: Request,
    pipeline: UploadPipeline,
    job: UploadJob,
    poll_seconds: float,
) -> PipelineResult:
    """Run the job, cancelling it if the client goes away during conversion.

    The connection is only polled once staging is over; before that the body
    stream owns ``receive()`` and reports disconnects itself.
    """
    task = asyncio.ensure_future(pipeline.execute(job))
    try:
        while True:
            done, _ = await asyncio.wait({task}, timeout=poll_seconds)
            if done:
                return task.result()
            if job.state != PipelineState.STAGING and await request.is_disconnected():
                break
    except asyncio.CancelledError:
        task.cancel()
        raise

    logger.warning(
        "Client disconnected during conversion, cancelling",
        extra={"upload_id": job.identifier, "stage": job.state.value},
    )
    task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await task
    raise UploadAbortedError("Client disconnected during conversion")
