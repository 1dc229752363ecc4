"""Orchestrator for the upload-to-derivatives pipeline."""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import AsyncIterator, Awaitable, Callable
from uuid import uuid4

from imagegallery.conversion.invoker import ConversionOptions, ImageConverter
from imagegallery.core.logging import upload_id_context
from imagegallery.pipeline.exceptions import GalleryException, UnsupportedImageError
from imagegallery.storage.ingest import StagedUpload, ingest
from imagegallery.storage.layout import StorageLayout, remove_quietly
from imagegallery.storage.sniff import sniff_image_type

logger = logging.getLogger(__name__)


class PipelineState(str, Enum):
    """Stages of one upload."""

    STAGING = "staging"
    CONVERTING_MASTER = "converting_master"
    CONVERTING_THUMBNAILS = "converting_thumbnails"
    CLEANUP = "cleanup"
    DONE = "done"
    FAILED = "failed"


@dataclass
class UploadJob:
    """Mutable state of one upload moving through the pipeline."""

    identifier: str
    stream: AsyncIterator[bytes]
    display_name: str | None = None
    state: PipelineState = PipelineState.STAGING
    staged: StagedUpload | None = None
    image_type: str | None = None
    artifacts: list[Path] = field(default_factory=list)


@dataclass(frozen=True)
class PipelineResult:
    """Artifacts of a completed upload."""

    identifier: str
    master_path: Path
    thumb_paths: dict[int, Path]
    master_url: str
    thumb_url: str
    size_bytes: int
    image_type: str | None = None


def new_identifier() -> str:
    return uuid4().hex


class UploadPipeline:
    """Stage an upload, then derive its master and thumbnails.

    Each stage is a transition method that takes the job and returns the next
    state. Any failure, including cancellation, removes the staging file and
    every artifact written so far, so a master never outlives a failed
    thumbnail.
    """

    def __init__(
        self,
        layout: StorageLayout,
        converter: ImageConverter,
        master_options: ConversionOptions,
        thumbnail_options: dict[int, ConversionOptions],
        max_bytes: int,
        default_thumb_size: int,
        require_image_magic: bool = False,
    ):
        if default_thumb_size not in thumbnail_options:
            raise ValueError(f"No thumbnail options for default size {default_thumb_size}")
        self.layout = layout
        self.converter = converter
        self.master_options = master_options
        self.thumbnail_options = dict(sorted(thumbnail_options.items()))
        self.max_bytes = max_bytes
        self.default_thumb_size = default_thumb_size
        self.require_image_magic = require_image_magic

        self._transitions: dict[PipelineState, Callable[[UploadJob], Awaitable[PipelineState]]] = {
            PipelineState.STAGING: self._stage,
            PipelineState.CONVERTING_MASTER: self._convert_master,
            PipelineState.CONVERTING_THUMBNAILS: self._convert_thumbnails,
            PipelineState.CLEANUP: self._cleanup,
        }

    def new_job(
        self,
        stream: AsyncIterator[bytes],
        display_name: str | None = None,
        identifier: str | None = None,
    ) -> UploadJob:
        """Mint an identifier and create the job for one upload."""
        return UploadJob(
            identifier=identifier or new_identifier(),
            stream=stream,
            display_name=display_name,
        )

    async def run(
        self,
        stream: AsyncIterator[bytes],
        display_name: str | None = None,
        identifier: str | None = None,
    ) -> PipelineResult:
        """Run one upload to completion.

        Args:
            stream: Async iterator of upload body chunks
            display_name: Client-supplied name, used for logging only
            identifier: Identifier to use instead of minting a new one

        Returns:
            PipelineResult with artifact paths and public URLs

        Raises:
            IngestError: If staging fails
            UnsupportedImageError: If magic-byte checking is on and the
                upload is not a recognised image
            ConversionError: If the master or any thumbnail conversion fails
        """
        return await self.execute(self.new_job(stream, display_name, identifier))

    async def execute(self, job: UploadJob) -> PipelineResult:
        """Drive a job from its current state to DONE or FAILED."""
        token = upload_id_context.set(job.identifier)
        start_time = time.time()

        try:
            logger.info(
                "Starting upload pipeline",
                extra={"upload_id": job.identifier, "display_name": job.display_name},
            )
            while job.state != PipelineState.DONE:
                job.state = await self._transitions[job.state](job)

        except asyncio.CancelledError:
            job.state = PipelineState.FAILED
            logger.warning("Upload pipeline cancelled", extra={"upload_id": job.identifier})
            await self._rollback(job)
            raise
        except Exception as e:
            failed_in = job.state
            job.state = PipelineState.FAILED
            logger.error(
                "Upload pipeline failed",
                extra={
                    "upload_id": job.identifier,
                    "stage": failed_in.value,
                    "error_type": type(e).__name__,
                    "error": str(e),
                },
                exc_info=not isinstance(e, GalleryException),
            )
            await self._rollback(job)
            raise
        finally:
            upload_id_context.reset(token)

        logger.info(
            "Upload pipeline completed",
            extra={
                "upload_id": job.identifier,
                "size_bytes": job.staged.size_bytes,
                "duration_ms": int((time.time() - start_time) * 1000),
            },
        )
        return PipelineResult(
            identifier=job.identifier,
            master_path=self.layout.master_path_for(job.identifier),
            thumb_paths=self.layout.thumb_paths_for(job.identifier),
            master_url=self.layout.master_url_for(job.identifier),
            thumb_url=self.layout.thumb_url_for(job.identifier, self.default_thumb_size),
            size_bytes=job.staged.size_bytes,
            image_type=job.image_type,
        )

    async def _stage(self, job: UploadJob) -> PipelineState:
        job.staged = await ingest(job.identifier, job.stream, self.max_bytes, self.layout)
        job.image_type = sniff_image_type(job.staged.head)

        if job.image_type is None:
            if self.require_image_magic:
                raise UnsupportedImageError("Upload is not a recognised image format")
            logger.warning(
                "Upload does not start with a known image signature",
                extra={"upload_id": job.identifier},
            )
        return PipelineState.CONVERTING_MASTER

    async def _convert_master(self, job: UploadJob) -> PipelineState:
        destination = self.layout.master_path_for(job.identifier)
        job.artifacts.append(destination)
        await self.converter.convert(job.staged.path, self.master_options.for_destination(destination))
        return PipelineState.CONVERTING_THUMBNAILS

    async def _convert_thumbnails(self, job: UploadJob) -> PipelineState:
        for size, options in self.thumbnail_options.items():
            destination = self.layout.thumb_path_for(job.identifier, size)
            job.artifacts.append(destination)
            await self.converter.convert(job.staged.path, options.for_destination(destination))
        return PipelineState.CLEANUP

    async def _cleanup(self, job: UploadJob) -> PipelineState:
        await remove_quietly(job.staged.path)
        return PipelineState.DONE

    async def _rollback(self, job: UploadJob) -> None:
        """Best-effort removal of everything this job wrote."""
        targets = [self.layout.staging_path_for(job.identifier), *job.artifacts]
        removed = [path for path in targets if await remove_quietly(path)]
        if removed:
            logger.info(
                "Rolled back upload artifacts",
                extra={"upload_id": job.identifier, "removed": [str(p) for p in removed]},
            )
