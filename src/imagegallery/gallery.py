"""Wiring of settings into the storage layout, converter and pipeline."""

import logging
from dataclasses import dataclass

from imagegallery.conversion.invoker import ConversionOptions, ImageConverter, MagickConverter
from imagegallery.core.config import Settings
from imagegallery.pipeline.orchestrator import UploadPipeline
from imagegallery.storage.layout import StorageLayout

logger = logging.getLogger(__name__)


@dataclass
class Gallery:
    """Components shared by every request, built once at startup."""

    settings: Settings
    layout: StorageLayout
    converter: ImageConverter
    master_options: ConversionOptions
    thumbnail_options: dict[int, ConversionOptions]

    @property
    def default_thumb_size(self) -> int:
        return self.settings.default_thumb_size

    def new_pipeline(self) -> UploadPipeline:
        return UploadPipeline(
            layout=self.layout,
            converter=self.converter,
            master_options=self.master_options,
            thumbnail_options=self.thumbnail_options,
            max_bytes=self.settings.max_upload_bytes,
            default_thumb_size=self.default_thumb_size,
            require_image_magic=self.settings.REQUIRE_IMAGE_MAGIC,
        )


def build_gallery(settings: Settings, converter: ImageConverter | None = None) -> Gallery:
    """Create the gallery components and their storage directories.

    Raises:
        StorageError: If the storage directories cannot be created
        ValueError: If the thumbnail configuration is inconsistent
    """
    sizes = settings.thumb_sizes
    if not sizes:
        raise ValueError("THUMB_SIZES must list at least one size")
    default_size = settings.default_thumb_size

    layout = StorageLayout(
        root=settings.upload_root,
        thumbnail_sizes=sizes,
        master_extension=settings.MASTER_FORMAT,
        thumbnail_extension=settings.THUMB_FORMAT,
        thumbnail_subdirs=settings.THUMB_SUBDIRS,
    )
    layout.ensure()

    master_options = ConversionOptions(
        max_dimension=settings.MASTER_MAX_DIMENSION,
        quality=settings.MASTER_QUALITY,
        format=settings.MASTER_FORMAT,
        interlace=settings.MASTER_INTERLACE or None,
    )
    thumbnail_options = {
        size: ConversionOptions(
            max_dimension=size,
            quality=settings.THUMB_QUALITY,
            format=settings.THUMB_FORMAT,
        )
        for size in sizes
    }

    if converter is None:
        converter = MagickConverter(
            binary=settings.CONVERT_BINARY,
            timeout_seconds=settings.CONVERT_TIMEOUT_SECONDS,
            diagnostics_limit=settings.CONVERT_DIAGNOSTICS_LIMIT,
        )

    logger.info(
        "Gallery configured",
        extra={
            "upload_root": str(layout.root),
            "max_upload_bytes": settings.max_upload_bytes,
            "thumb_sizes": sizes,
            "default_thumb_size": default_size,
            "converter": type(converter).__name__,
        },
    )
    return Gallery(
        settings=settings,
        layout=layout,
        converter=converter,
        master_options=master_options,
        thumbnail_options=thumbnail_options,
    )
