"""Pytest configuration and shared fixtures."""

import os
import struct
import tempfile
import zlib
from pathlib import Path

import pytest

# The module-level app in imagegallery.main builds its storage on import
os.environ.setdefault("UPLOAD_ROOT", tempfile.mkdtemp(prefix="gallery-tests-"))

from fastapi.testclient import TestClient

from imagegallery.conversion.invoker import ConversionOptions, ImageConverter
from imagegallery.core.config import Settings
from imagegallery.main import create_app
from imagegallery.pipeline.exceptions import ConversionProcessError
from imagegallery.storage.layout import StorageLayout
from imagegallery.storage.sniff import SNIFF_LENGTH, sniff_image_type

TEST_MAX_BYTES = 1024


def make_png(width: int = 20, height: int = 10) -> bytes:
    """Build a valid grayscale PNG."""

    def chunk(kind: bytes, data: bytes) -> bytes:
        return struct.pack(">I", len(data)) + kind + data + struct.pack(">I", zlib.crc32(kind + data))

    raw = b"".join(b"\x00" + b"\x80" * width for _ in range(height))
    return (
        b"\x89PNG\r\n\x1a\n"
        + chunk(b"IHDR", struct.pack(">IIBBBBB", width, height, 8, 0, 0, 0, 0))
        + chunk(b"IDAT", zlib.compress(raw))
        + chunk(b"IEND", b"")
    )


class FakeConverter(ImageConverter):
    """In-process stand-in for ImageMagick.

    Rejects sources without an image signature, like the real tool, and can
    be told to fail for particular target sizes.
    """

    def __init__(self):
        self.calls: list[tuple[Path, ConversionOptions]] = []
        self.fail_sizes: set[int] = set()

    async def convert(self, source: Path, options: ConversionOptions) -> None:
        self.calls.append((source, options))
        data = source.read_bytes()

        if options.max_dimension in self.fail_sizes:
            options.destination.write_bytes(b"partial")
            raise ConversionProcessError(1, f"convert: cannot write {options.destination.name}")
        if sniff_image_type(data[:SNIFF_LENGTH]) is None:
            raise ConversionProcessError(1, "magick: no decode delegate for this image format")

        options.destination.write_bytes(f"{options.format}:{options.max_dimension}:".encode() + data[:16])


@pytest.fixture
def png_bytes() -> bytes:
    return make_png()


@pytest.fixture
def fake_converter() -> FakeConverter:
    return FakeConverter()


@pytest.fixture
def layout(tmp_path) -> StorageLayout:
    """Storage layout under a temporary root, directories created."""
    storage = StorageLayout(root=tmp_path / "uploads", thumbnail_sizes=[320, 640, 1280])
    storage.ensure()
    return storage


@pytest.fixture
def gallery_settings(tmp_path) -> Settings:
    return Settings(
        UPLOAD_ROOT=str(tmp_path / "uploads"),
        MAX_UPLOAD_BYTES=TEST_MAX_BYTES,
        ENV="local",
        DISCONNECT_POLL_SECONDS=0.05,
    )


@pytest.fixture
def app(gallery_settings, fake_converter):
    return create_app(gallery_settings, converter=fake_converter)


@pytest.fixture
def client(app) -> TestClient:
    """Create test client."""
    return TestClient(app)
