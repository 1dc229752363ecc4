"""Configuration management for the image gallery service."""

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
    )

    ENV: str = "local"
    SERVICE_NAME: str = "image-gallery"
    SERVICE_VERSION: str = "0.1.0"
    LOG_LEVEL: str = "INFO"

    # Storage Configuration
    UPLOAD_ROOT: str = "./uploads"  # staging/, master/ and thumbs/ live under here
    PUBLIC_DIR: str = ""  # Empty = bundled UI assets

    # Upload Constraints
    MAX_UPLOAD_MB: int = 50
    MAX_UPLOAD_BYTES: int = 0  # Exact byte ceiling, overrides MAX_UPLOAD_MB when > 0
    REQUIRE_IMAGE_MAGIC: bool = False  # Reject uploads whose leading bytes are not a known image

    # Conversion Executable (ImageMagick)
    CONVERT_BINARY: str = "magick"
    CONVERT_TIMEOUT_SECONDS: float = 120.0
    CONVERT_DIAGNOSTICS_LIMIT: int = 4096  # bytes of stderr kept for logging

    # Master Artifact
    MASTER_MAX_DIMENSION: int = 5400
    MASTER_QUALITY: int = 88
    MASTER_FORMAT: str = "jpg"
    MASTER_INTERLACE: str = "Plane"  # Empty = baseline encoding

    # Thumbnail Artifacts
    THUMB_SIZES: str = "320,640,1280"  # Comma-separated long-edge sizes
    THUMB_QUALITY: int = 80
    THUMB_FORMAT: str = "webp"
    DEFAULT_THUMB_SIZE: int = 640
    THUMB_SUBDIRS: bool = True  # thumbs/<size>/<id>-<size>.<ext> instead of a flat directory

    # Request Lifecycle
    CANCEL_ON_DISCONNECT: bool = True  # Kill running conversions when the client goes away
    DISCONNECT_POLL_SECONDS: float = 0.5

    @property
    def max_upload_bytes(self) -> int:
        """Byte ceiling for a single upload."""
        if self.MAX_UPLOAD_BYTES > 0:
            return self.MAX_UPLOAD_BYTES
        return self.MAX_UPLOAD_MB * 1024 * 1024

    @property
    def thumb_sizes(self) -> list[int]:
        """Parse THUMB_SIZES into a sorted, de-duplicated list."""
        sizes = {int(size.strip()) for size in self.THUMB_SIZES.split(",") if size.strip()}
        return sorted(sizes)

    @property
    def default_thumb_size(self) -> int:
        """Thumbnail size used for listing and upload responses."""
        sizes = self.thumb_sizes
        if self.DEFAULT_THUMB_SIZE in sizes:
            return self.DEFAULT_THUMB_SIZE
        raise ValueError(
            f"DEFAULT_THUMB_SIZE={self.DEFAULT_THUMB_SIZE} is not one of THUMB_SIZES={sizes}"
        )

    @property
    def upload_root(self) -> Path:
        return Path(self.UPLOAD_ROOT).resolve()

    @property
    def public_dir(self) -> Path:
        """Directory of static UI assets."""
        if self.PUBLIC_DIR:
            return Path(self.PUBLIC_DIR).resolve()
        return Path(__file__).resolve().parent.parent / "ui" / "static"


# Singleton settings instance
settings = Settings()
