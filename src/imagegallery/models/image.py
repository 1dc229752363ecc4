"""Image API data models."""

from pydantic import BaseModel


class CatalogEntry(BaseModel):
    """One image in the gallery listing."""

    id: str
    name: str
    full: str
    thumb: str


class ImageListResponse(BaseModel):
    """Response model for the gallery listing."""

    items: list[CatalogEntry]


class UploadResponse(BaseModel):
    """Response model for a completed upload."""

    ok: bool = True
    id: str
    master: str
    thumb: str


class DeleteResponse(BaseModel):
    """Response model for image deletion."""

    ok: bool = True
