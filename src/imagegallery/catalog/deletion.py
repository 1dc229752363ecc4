"""Removal of an image and all of its derivatives."""

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path

from imagegallery.storage.layout import StorageLayout, remove_quietly

logger = logging.getLogger(__name__)


@dataclass
class DeletionOutcome:
    """Result of a delete request. Always successful once attempted."""

    identifier: str
    removed: list[Path] = field(default_factory=list)

    @property
    def found(self) -> bool:
        return bool(self.removed)


async def delete_image(layout: StorageLayout, identifier: str) -> DeletionOutcome:
    """Remove the master, every thumbnail and any stale staging file.

    Each target is removed independently; a missing or undeletable file does
    not stop the others. The identifier must already be validated.
    """
    targets = [
        layout.master_path_for(identifier),
        *layout.thumb_paths_for(identifier).values(),
        layout.staging_path_for(identifier),
    ]
    results = await asyncio.gather(*(remove_quietly(path) for path in targets))

    outcome = DeletionOutcome(
        identifier=identifier,
        removed=[path for path, removed in zip(targets, results) if removed],
    )
    logger.info(
        "Image deleted",
        extra={"upload_id": identifier, "removed_count": len(outcome.removed)},
    )
    return outcome
