import re
from dataclasses import dataclass
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from src.ingestion.errors import InvalidInput
from src.ingestion.multipart import ParsedForm, StagedFile

VIDEO_FIELD = "videoFile"
THUMBNAIL_FIELD = "thumbnailFile"
FILE_FIELDS = (VIDEO_FIELD, THUMBNAIL_FIELD)

_DIGITS = re.compile(r"[0-9]+")
# stored as a BSON int32
MAX_DURATION_SECONDS = 2**31 - 1


class VideoUploadForm(BaseModel):
    """Text fields of the admin upload form, one value per field."""

    model_config = ConfigDict(populate_by_name=True)

    title: str
    description: str
    duration_seconds: int = Field(alias="duration")
    is_premium: bool = Field(False, alias="isPremium")
    genre: str = ""
    tags: str = ""
    team_id: Optional[str] = Field(None, alias="teamId")
    user_id: Optional[str] = Field(None, alias="userId")

    @field_validator("title", "description", mode="before")
    @classmethod
    def _required_text(cls, value):
        if not isinstance(value, str) or not value.strip():
            raise ValueError("must not be empty")
        return value.strip()

    @field_validator("duration_seconds", mode="before")
    @classmethod
    def _positive_seconds(cls, value):
        text = value.strip() if isinstance(value, str) else str(value)
        if not _DIGITS.fullmatch(text) or int(text) <= 0:
            raise ValueError("must be a positive whole number of seconds")
        if int(text) > MAX_DURATION_SECONDS:
            raise ValueError(f"must be at most {MAX_DURATION_SECONDS} seconds")
        return int(text)

    @field_validator("is_premium", mode="before")
    @classmethod
    def _premium_flag(cls, value):
        # only the literal token the form sends for a checked box counts
        return value is True or value == "true"

    @field_validator("genre", "tags", mode="before")
    @classmethod
    def _optional_text(cls, value):
        return value.strip() if isinstance(value, str) else ""

    @field_validator("team_id", "user_id", mode="before")
    @classmethod
    def _optional_identifier(cls, value):
        if isinstance(value, str) and value.strip():
            return value.strip()
        return None


@dataclass
class VideoUpload:
    form: VideoUploadForm
    video_file: StagedFile
    thumbnail_file: StagedFile


def _describe(error: dict) -> str:
    if error["type"] == "missing":
        return "is required"
    return error["msg"].removeprefix("Value error, ")


def validate_upload(parsed: ParsedForm) -> VideoUpload:
    """
    Turn a parsed form into a ``VideoUpload`` or raise ``InvalidInput``
    listing every failing field.
    """
    problems: Dict[str, str] = {}
    form = None
    try:
        form = VideoUploadForm.model_validate(parsed.fields)
    except ValidationError as exc:
        for error in exc.errors():
            name = str(error["loc"][0]) if error["loc"] else "form"
            problems.setdefault(name, _describe(error))

    for name in FILE_FIELDS:
        staged = parsed.files.get(name)
        if staged is None:
            problems[name] = "is required"
        elif staged.size == 0:
            problems[name] = "must not be empty"

    if problems:
        raise InvalidInput(problems)

    return VideoUpload(
        form=form,
        video_file=parsed.files[VIDEO_FIELD],
        thumbnail_file=parsed.files[THUMBNAIL_FIELD],
    )
