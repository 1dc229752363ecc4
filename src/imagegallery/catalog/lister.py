"""Catalog of stored images, computed from the master directory."""

import logging
import os
from pathlib import Path

from imagegallery.models.image import CatalogEntry
from imagegallery.storage.layout import StorageLayout

logger = logging.getLogger(__name__)


def list_images(layout: StorageLayout, default_thumb_size: int) -> list[CatalogEntry]:
    """List every master image, newest first.

    The identifier is the master filename without its extension. Thumbnails
    are not checked; a missing thumbnail shows up as a broken link for the
    UI to tolerate. An unreadable master directory yields an empty listing.
    """
    found: list[tuple[float, str, str]] = []

    try:
        with os.scandir(layout.master_dir) as entries:
            for entry in entries:
                if entry.name.startswith("."):
                    continue
                try:
                    if not entry.is_file():
                        continue
                    mtime = entry.stat().st_mtime
                except OSError:
                    # Removed between scandir and stat
                    continue
                found.append((mtime, entry.name, Path(entry.name).stem))
    except OSError as e:
        logger.warning(
            "Cannot read master directory",
            extra={"path": str(layout.master_dir), "error": str(e)},
        )
        return []

    found.sort(key=lambda item: (-item[0], item[1]))

    return [
        CatalogEntry(
            id=identifier,
            name=name,
            full=layout.url_for(layout.master_dir / name),
            thumb=layout.thumb_url_for(identifier, default_thumb_size),
        )
        for _, name, identifier in found
    ]
