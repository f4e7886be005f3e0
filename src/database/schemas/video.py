from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional
from datetime import datetime


class VideoRecord(BaseModel):
    """
    Videos collection schema.

    Stored field names are camelCase (``isPremium``, ``viewsCount``, ...) so
    the browsing and detail pages can read documents as they are.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = None
    title: str
    description: str
    duration_seconds: int = Field(..., gt=0, alias="duration")
    is_premium: bool = Field(False, alias="isPremium")
    genre: str = ""
    tags: str = Field("", description="Comma-separated tags")
    video_url: str = Field(..., alias="videoUrl")
    thumbnail_url: str = Field(..., alias="thumbnailUrl")
    views_count: int = Field(0, ge=0, alias="viewsCount")
    upload_date: datetime = Field(..., alias="uploadDate")
    permissions: List[str] = Field(default_factory=list)

    def to_document(self) -> dict:
        """Fields to persist; the id and permissions are handled by the store."""
        return self.model_dump(by_alias=True, exclude={"id", "permissions"})


class UploadResponse(BaseModel):
    message: str = "Video uploaded and metadata saved successfully!"
    video: VideoRecord
    video_blob_url: str = Field(..., alias="videoBlobUrl")
    thumbnail_blob_url: str = Field(..., alias="thumbnailBlobUrl")

    model_config = ConfigDict(populate_by_name=True)


class ErrorResponse(BaseModel):
    error: str
    message: str
    details: Optional[str] = None
