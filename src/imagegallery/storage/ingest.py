"""Streamed, size-bounded staging of upload bodies."""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator

import aiofiles
from starlette.requests import ClientDisconnect

from imagegallery.pipeline.exceptions import (
    StagingWriteError,
    UploadAbortedError,
    UploadTooLargeError,
)
from imagegallery.storage.layout import StorageLayout, remove_quietly
from imagegallery.storage.sniff import SNIFF_LENGTH

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StagedUpload:
    """Raw upload bytes written to the staging directory."""

    identifier: str
    path: Path
    size_bytes: int
    head: bytes  # leading bytes, kept for format sniffing


async def ingest(
    identifier: str,
    stream: AsyncIterator[bytes],
    max_bytes: int,
    layout: StorageLayout,
) -> StagedUpload:
    """Write an upload stream to its staging file without buffering it in memory.

    The byte count is checked before each chunk is written, so a stream of
    exactly ``max_bytes`` succeeds and the staging file never grows past the
    limit. Every failure path deletes the partial file before raising.

    Args:
        identifier: Identifier minted for this upload
        stream: Async iterator of body chunks (e.g. ``Request.stream()``)
        max_bytes: Hard ceiling on the total body size
        layout: Storage layout providing the staging path

    Returns:
        StagedUpload describing the completed staging file

    Raises:
        UploadTooLargeError: If the stream exceeds ``max_bytes``
        UploadAbortedError: If the client disconnects mid-stream
        StagingWriteError: If the staging file cannot be written
    """
    staging_path = layout.staging_path_for(identifier)
    size_bytes = 0
    head = b""

    try:
        async with aiofiles.open(staging_path, "wb") as staging_file:
            async for chunk in stream:
                if not chunk:
                    continue
                size_bytes += len(chunk)
                if size_bytes > max_bytes:
                    raise UploadTooLargeError(max_bytes)
                if len(head) < SNIFF_LENGTH:
                    head += chunk[: SNIFF_LENGTH - len(head)]
                await staging_file.write(chunk)

    except UploadTooLargeError:
        await _close_stream(stream)
        await remove_quietly(staging_path)
        logger.warning(
            "Upload exceeded size limit",
            extra={"upload_id": identifier, "max_bytes": max_bytes, "received_bytes": size_bytes},
        )
        raise
    except ClientDisconnect as e:
        await remove_quietly(staging_path)
        logger.warning(
            "Client disconnected during upload",
            extra={"upload_id": identifier, "received_bytes": size_bytes},
        )
        raise UploadAbortedError("Client disconnected during upload") from e
    except OSError as e:
        await remove_quietly(staging_path)
        logger.error(
            "Failed to write staging file",
            extra={"upload_id": identifier, "path": str(staging_path), "error": str(e)},
        )
        raise StagingWriteError(f"Failed to write staging file: {e}") from e
    except asyncio.CancelledError:
        await remove_quietly(staging_path)
        raise

    logger.info(
        "Upload staged",
        extra={"upload_id": identifier, "path": str(staging_path), "size_bytes": size_bytes},
    )
    return StagedUpload(
        identifier=identifier,
        path=staging_path,
        size_bytes=size_bytes,
        head=head,
    )


async def _close_stream(stream: AsyncIterator[bytes]) -> None:
    """Tell the producer to stop sending."""
    aclose = getattr(stream, "aclose", None)
    if aclose is None:
        return
    try:
        await aclose()
    except ClientDisconnect:
        pass
