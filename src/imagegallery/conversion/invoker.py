"""Image conversion through an external ImageMagick process."""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from pathlib import Path

from imagegallery.pipeline.exceptions import (
    ConversionError,
    ConversionProcessError,
    ConversionTimeoutError,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConversionOptions:
    """Target of a single conversion.

    ``max_dimension`` bounds the long edge; images already inside the box are
    never enlarged.
    """

    max_dimension: int
    quality: int
    format: str
    destination: Path | None = None
    interlace: str | None = None
    strip: bool = True

    def for_destination(self, destination: Path) -> "ConversionOptions":
        return replace(self, destination=destination)


class ImageConverter(ABC):
    """Abstract base class for image converters."""

    @abstractmethod
    async def convert(self, source: Path, options: ConversionOptions) -> None:
        """Convert ``source`` into ``options.destination``.

        On success exactly one file exists at the destination. On failure the
        destination may hold a partial file and must not be used.

        Raises:
            ConversionError: If the conversion fails
        """
        pass


class MagickConverter(ImageConverter):
    """Converter that shells out to the ImageMagick ``magick`` executable."""

    def __init__(
        self,
        binary: str = "magick",
        timeout_seconds: float = 120.0,
        diagnostics_limit: int = 4096,
    ):
        self.binary = binary
        self.timeout_seconds = timeout_seconds
        self.diagnostics_limit = diagnostics_limit

    def build_command(self, source: Path, options: ConversionOptions) -> list[str]:
        """Translate conversion options into the executable's argument list."""
        if options.destination is None:
            raise ValueError("ConversionOptions.destination is required")

        size = options.max_dimension
        cmd = [self.binary, str(source)]
        if options.strip:
            cmd.append("-strip")                        # Drop EXIF/ICC metadata
        cmd += [
            "-resize", f"{size}x{size}>",               # Shrink to fit, never enlarge
            "-quality", str(options.quality),
        ]
        if options.interlace:
            cmd += ["-interlace", options.interlace]    # Progressive encoding
        cmd.append(f"{options.format.upper()}:{options.destination}")
        return cmd

    async def convert(self, source: Path, options: ConversionOptions) -> None:
        cmd = self.build_command(source, options)

        logger.debug(
            "Running image conversion",
            extra={"input": str(source), "output": str(options.destination), "command": cmd},
        )

        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise ConversionError(f"Conversion executable not found: {self.binary}") from e
        except OSError as e:
            raise ConversionError(f"Failed to start conversion process: {e}") from e

        try:
            _, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            await _kill(proc)
            logger.error(
                "Image conversion timeout",
                extra={"input": str(source), "timeout": self.timeout_seconds},
            )
            raise ConversionTimeoutError(
                f"Conversion timed out after {self.timeout_seconds} seconds"
            )
        except asyncio.CancelledError:
            await _kill(proc)
            raise

        if proc.returncode != 0:
            diagnostics = self._diagnostics(stderr)
            logger.error(
                "Image conversion failed",
                extra={
                    "input": str(source),
                    "output": str(options.destination),
                    "returncode": proc.returncode,
                    "error": diagnostics,
                },
            )
            raise ConversionProcessError(proc.returncode, diagnostics)

        logger.info(
            "Image converted",
            extra={
                "input": str(source),
                "output": str(options.destination),
                "max_dimension": options.max_dimension,
                "format": options.format,
            },
        )

    def _diagnostics(self, stderr: bytes | None) -> str:
        """Decode stderr, keeping only its tail when it is long."""
        if not stderr:
            return "Unknown error"
        tail = stderr[-self.diagnostics_limit:]
        return tail.decode("utf-8", errors="replace").strip()


async def _kill(proc: asyncio.subprocess.Process) -> None:
    if proc.returncode is None:
        try:
            proc.kill()
        except ProcessLookupError:
            pass
    await proc.wait()
