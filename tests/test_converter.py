"""Tests for the ImageMagick conversion invoker."""

import asyncio
import shutil
import sys
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from imagegallery.conversion.invoker import ConversionOptions, MagickConverter
from imagegallery.pipeline.exceptions import (
    ConversionError,
    ConversionProcessError,
    ConversionTimeoutError,
)

SUBPROCESS_EXEC = "imagegallery.conversion.invoker.asyncio.create_subprocess_exec"


@pytest.fixture
def master_options(tmp_path) -> ConversionOptions:
    return ConversionOptions(
        max_dimension=5400,
        quality=88,
        format="jpg",
        interlace="Plane",
        destination=tmp_path / "out.jpg",
    )


def mock_process(returncode: int | None, stderr: bytes = b"") -> MagicMock:
    proc = MagicMock()
    proc.returncode = returncode
    proc.communicate = AsyncMock(return_value=(None, stderr))
    proc.wait = AsyncMock(return_value=returncode)
    return proc


def test_build_command_master(master_options, tmp_path):
    """Test the argument contract for a progressive master."""
    converter = MagickConverter(binary="magick")
    source = tmp_path / "abc.upload"

    cmd = converter.build_command(source, master_options)

    assert cmd == [
        "magick",
        str(source),
        "-strip",
        "-resize", "5400x5400>",
        "-quality", "88",
        "-interlace", "Plane",
        f"JPG:{tmp_path / 'out.jpg'}",
    ]


def test_build_command_thumbnail_without_interlace(tmp_path):
    """Test that baseline thumbnails carry no interlace flag."""
    options = ConversionOptions(max_dimension=320, quality=80, format="webp")
    converter = MagickConverter()

    cmd = converter.build_command(tmp_path / "src", options.for_destination(tmp_path / "t.webp"))

    assert "-interlace" not in cmd
    assert "320x320>" in cmd
    assert cmd[-1] == f"WEBP:{tmp_path / 't.webp'}"


def test_build_command_requires_destination(tmp_path):
    options = ConversionOptions(max_dimension=320, quality=80, format="webp")

    with pytest.raises(ValueError, match="destination"):
        MagickConverter().build_command(tmp_path / "src", options)


@pytest.mark.asyncio
async def test_convert_success(master_options, tmp_path):
    """Test that exit status 0 is a success."""
    proc = mock_process(0)
    with patch(SUBPROCESS_EXEC, AsyncMock(return_value=proc)) as mock_exec:
        await MagickConverter(binary="magick").convert(tmp_path / "abc.upload", master_options)

    mock_exec.assert_called_once()
    call_args = mock_exec.call_args[0]
    assert call_args[0] == "magick"
    assert str(tmp_path / "abc.upload") in call_args


@pytest.mark.asyncio
async def test_convert_nonzero_exit_captures_diagnostics(master_options, tmp_path):
    """Test that a failing process surfaces its stderr as diagnostics."""
    proc = mock_process(1, b"magick: no decode delegate for this image format `' @ error/constitute.c/ReadImage/746.\n")
    with patch(SUBPROCESS_EXEC, AsyncMock(return_value=proc)):
        with pytest.raises(ConversionProcessError) as exc_info:
            await MagickConverter().convert(tmp_path / "abc.upload", master_options)

    assert exc_info.value.returncode == 1
    assert "no decode delegate" in exc_info.value.diagnostics


@pytest.mark.asyncio
async def test_convert_diagnostics_are_bounded(master_options, tmp_path):
    """Test that only the tail of a long stderr is kept."""
    proc = mock_process(1, b"x" * 10_000 + b"final error line")
    with patch(SUBPROCESS_EXEC, AsyncMock(return_value=proc)):
        with pytest.raises(ConversionProcessError) as exc_info:
            await MagickConverter(diagnostics_limit=64).convert(tmp_path / "src", master_options)

    assert len(exc_info.value.diagnostics) <= 64
    assert exc_info.value.diagnostics.endswith("final error line")


@pytest.mark.asyncio
async def test_convert_empty_stderr(master_options, tmp_path):
    proc = mock_process(2)
    with patch(SUBPROCESS_EXEC, AsyncMock(return_value=proc)):
        with pytest.raises(ConversionProcessError, match="Unknown error"):
            await MagickConverter().convert(tmp_path / "src", master_options)


@pytest.mark.asyncio
async def test_convert_missing_executable(master_options, tmp_path):
    """Test that a missing executable is a conversion error."""
    with patch(SUBPROCESS_EXEC, AsyncMock(side_effect=FileNotFoundError("magick"))):
        with pytest.raises(ConversionError, match="not found"):
            await MagickConverter().convert(tmp_path / "src", master_options)


@pytest.mark.asyncio
async def test_convert_timeout_kills_process(master_options, tmp_path):
    """Test that a hung process is killed and reported as a timeout."""

    async def hang():
        await asyncio.sleep(10)

    proc = mock_process(None)
    proc.communicate = AsyncMock(side_effect=hang)
    with patch(SUBPROCESS_EXEC, AsyncMock(return_value=proc)):
        with pytest.raises(ConversionTimeoutError, match="timed out"):
            await MagickConverter(timeout_seconds=0.01).convert(tmp_path / "src", master_options)

    proc.kill.assert_called_once()
    proc.wait.assert_awaited()


@pytest.mark.asyncio
async def test_convert_cancellation_kills_process(master_options, tmp_path):
    """Test that cancelling a conversion terminates the subprocess."""
    started = asyncio.Event()

    async def hang():
        started.set()
        await asyncio.sleep(10)

    proc = mock_process(None)
    proc.communicate = AsyncMock(side_effect=hang)
    with patch(SUBPROCESS_EXEC, AsyncMock(return_value=proc)):
        task = asyncio.ensure_future(MagickConverter().convert(tmp_path / "src", master_options))
        await asyncio.wait_for(started.wait(), timeout=5)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    proc.kill.assert_called_once()


# A Python script stands in for the executable: the converter runs
# `<binary> <source> ...flags... FORMAT:<destination>`, so the source is the script.
FAKE_TOOL_FAIL = "import sys\nsys.stderr.write('improper image header')\nsys.exit(3)\n"
FAKE_TOOL_OK = (
    "import sys\n"
    "fmt, _, dest = sys.argv[-1].partition(':')\n"
    "open(dest, 'w').write(fmt + ' ' + ' '.join(sys.argv[1:-1]))\n"
)


@pytest.mark.asyncio
async def test_real_subprocess_failure(tmp_path, master_options):
    """Test exit status and stderr handling against a real child process."""
    script = tmp_path / "tool.py"
    script.write_text(FAKE_TOOL_FAIL)

    with pytest.raises(ConversionProcessError) as exc_info:
        await MagickConverter(binary=sys.executable).convert(script, master_options)

    assert exc_info.value.returncode == 3
    assert exc_info.value.diagnostics == "improper image header"


@pytest.mark.asyncio
async def test_real_subprocess_success(tmp_path, master_options):
    script = tmp_path / "tool.py"
    script.write_text(FAKE_TOOL_OK)

    await MagickConverter(binary=sys.executable).convert(script, master_options)

    written = Path(master_options.destination).read_text()
    assert written.startswith("JPG ")
    assert "-resize 5400x5400>" in written


@pytest.mark.skipif(shutil.which("magick") is None, reason="ImageMagick 7 not installed")
@pytest.mark.asyncio
async def test_imagemagick_end_to_end(tmp_path, png_bytes):
    """Test a real conversion: small images are re-encoded, never enlarged."""
    source = tmp_path / "abc.upload"
    source.write_bytes(png_bytes)
    options = ConversionOptions(
        max_dimension=320, quality=80, format="jpg", destination=tmp_path / "abc.jpg"
    )

    await MagickConverter().convert(source, options)

    assert options.destination.read_bytes()[:3] == b"\xff\xd8\xff"


@pytest.mark.skipif(shutil.which("magick") is None, reason="ImageMagick 7 not installed")
@pytest.mark.asyncio
async def test_imagemagick_rejects_non_image(tmp_path, master_options):
    source = tmp_path / "abc.upload"
    source.write_bytes(b"not an image at all " * 5)

    with pytest.raises(ConversionProcessError):
        await MagickConverter().convert(source, master_options)
