"""On-disk layout of staged uploads, masters and thumbnails."""

import logging
from pathlib import Path
from typing import Iterable

import aiofiles.os

from imagegallery.pipeline.exceptions import PathTraversalError, StorageError

logger = logging.getLogger(__name__)

STAGING_DIRNAME = "tmp"
MASTER_DIRNAME = "master"
THUMBS_DIRNAME = "thumbs"
STAGING_SUFFIX = ".upload"

# Leaves room for the size suffix and extension within a 255 byte filename
MAX_IDENTIFIER_BYTES = 200


class StorageLayout:
    """Maps identifiers to artifact paths under a single storage root.

    The root holds three directories: ``tmp/`` for uploads in progress,
    ``master/`` for normalized originals and ``thumbs/`` for resized
    variants (optionally one subdirectory per size). Path functions are pure;
    only :meth:`ensure` touches the filesystem.
    """

    def __init__(
        self,
        root: Path,
        thumbnail_sizes: Iterable[int],
        master_extension: str = "jpg",
        thumbnail_extension: str = "webp",
        thumbnail_subdirs: bool = True,
        url_prefix: str = "/uploads",
    ):
        self.root = Path(root)
        self.thumbnail_sizes = sorted(set(thumbnail_sizes))
        self.master_extension = master_extension.lstrip(".").lower()
        self.thumbnail_extension = thumbnail_extension.lstrip(".").lower()
        self.thumbnail_subdirs = thumbnail_subdirs
        self.url_prefix = url_prefix.rstrip("/")

    @property
    def staging_dir(self) -> Path:
        return self.root / STAGING_DIRNAME

    @property
    def master_dir(self) -> Path:
        return self.root / MASTER_DIRNAME

    @property
    def thumbs_dir(self) -> Path:
        return self.root / THUMBS_DIRNAME

    def ensure(self) -> None:
        """Create every storage directory, recursively and idempotently.

        Raises:
            StorageError: If any directory cannot be created
        """
        directories = [self.staging_dir, self.master_dir, self.thumbs_dir]
        if self.thumbnail_subdirs:
            directories.extend(self.thumbs_dir / str(size) for size in self.thumbnail_sizes)

        for directory in directories:
            try:
                directory.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise StorageError(f"Cannot create storage directory {directory}: {e}") from e

        logger.info(
            "Storage directories ready",
            extra={"root": str(self.root), "thumbnail_sizes": self.thumbnail_sizes},
        )

    def staging_path_for(self, identifier: str) -> Path:
        return self.staging_dir / f"{identifier}{STAGING_SUFFIX}"

    def master_name_for(self, identifier: str) -> str:
        return f"{identifier}.{self.master_extension}"

    def master_path_for(self, identifier: str) -> Path:
        return self.master_dir / self.master_name_for(identifier)

    def thumb_name_for(self, identifier: str, size: int) -> str:
        return f"{identifier}-{size}.{self.thumbnail_extension}"

    def thumb_path_for(self, identifier: str, size: int) -> Path:
        if self.thumbnail_subdirs:
            return self.thumbs_dir / str(size) / self.thumb_name_for(identifier, size)
        return self.thumbs_dir / self.thumb_name_for(identifier, size)

    def thumb_paths_for(self, identifier: str) -> dict[int, Path]:
        return {size: self.thumb_path_for(identifier, size) for size in self.thumbnail_sizes}

    def url_for(self, path: Path) -> str:
        """Public URL of an artifact stored under the root."""
        relative = path.relative_to(self.root).as_posix()
        return f"{self.url_prefix}/{relative}"

    def master_url_for(self, identifier: str) -> str:
        return self.url_for(self.master_path_for(identifier))

    def thumb_url_for(self, identifier: str, size: int) -> str:
        return self.url_for(self.thumb_path_for(identifier, size))


def validate_identifier(identifier: str) -> str:
    """Return the identifier if it is safe to use as a filename stem.

    Any stem the lister can report is accepted, including dots and spaces.

    Raises:
        PathTraversalError: If the identifier is empty, ``.`` or ``..``, too
            long, or contains a path separator or NUL byte
    """
    if (
        identifier in ("", ".", "..")
        or any(c in identifier for c in ("/", "\\", "\x00"))
        or len(identifier.encode("utf-8", "surrogatepass")) > MAX_IDENTIFIER_BYTES
    ):
        raise PathTraversalError(f"Invalid identifier: {identifier!r}")
    return identifier


def safe_join(root: Path, relative: str) -> Path:
    """Resolve a request path under ``root``.

    Raises:
        PathTraversalError: If the normalized path falls outside ``root``
    """
    if "\x00" in relative:
        raise PathTraversalError("Path contains a NUL byte")

    base = Path(root).resolve()
    candidate = (base / relative.lstrip("/")).resolve()
    if candidate != base and not candidate.is_relative_to(base):
        raise PathTraversalError(f"Path escapes its root: {relative!r}")
    return candidate


async def remove_quietly(path: Path) -> bool:
    """Delete a file, returning whether it existed.

    Missing files are not an error; other failures are logged and reported
    as ``False`` so cleanup never masks the error that triggered it.
    """
    try:
        await aiofiles.os.remove(path)
        return True
    except FileNotFoundError:
        return False
    except OSError as e:
        logger.warning(
            "Failed to remove file",
            extra={"path": str(path), "error": str(e)},
        )
        return False
