"""
Upload ingestion pipeline.

Stages run strictly in order:
1. Parse the streamed multipart body, staging both files on disk
2. Validate the form
3. Store the video file
4. Store the thumbnail
5. Persist the metadata record with its access-control list

The first failure stops the run. Staged files are always deleted before
``ingest`` returns. Assets already stored when a later stage fails are left
in place and logged as orphans, including uploads that complete after the
run has timed out.
"""

import asyncio
import logging
import mimetypes
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import AsyncIterable, List, Optional
from uuid import uuid4

from src.core.permissions import build_permissions
from src.database.document_store import DocumentStoreError
from src.database.schemas.video import VideoRecord
from src.ingestion.errors import IngestTimeout, PersistenceFailure, StorageFailure
from src.ingestion.multipart import StagedFile, read_multipart_form
from src.ingestion.validation import FILE_FIELDS, VideoUpload, validate_upload
from src.storage.object_storage import PUBLIC, ObjectStorageError, StoredAsset
from src.utils.staging import StagingArea

logger = logging.getLogger(__name__)


@dataclass
class IngestResult:
    record: VideoRecord
    video_url: str
    thumbnail_url: str


def choose_filename(staged: StagedFile) -> str:
    if staged.filename:
        return staged.filename
    media_type = staged.media_type.split(";", 1)[0].strip()
    extension = mimetypes.guess_extension(media_type) or ""
    return f"{uuid4().hex}{extension}"


class IngestionPipeline:
    def __init__(
        self,
        storage,
        documents,
        staging_dir: str,
        collection: str = "videos",
        timeout: Optional[float] = None,
        max_field_bytes: int = 1024 * 1024,
    ):
        self.storage = storage
        self.documents = documents
        self.staging_dir = staging_dir
        self.collection = collection
        self.timeout = timeout
        self.max_field_bytes = max_field_bytes

    async def ingest(self, body: AsyncIterable[bytes], content_type: Optional[str]) -> IngestResult:
        """
        Run one upload end to end.

        Raises:
            MalformedBody, InvalidInput, StorageFailure, PersistenceFailure,
            IngestTimeout
        """
        stored: List[StoredAsset] = []
        if not self.timeout:
            return await self._run(body, content_type, stored)
        try:
            return await asyncio.wait_for(self._run(body, content_type, stored), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.error("Upload aborted after %ss", self.timeout)
            if stored:
                logger.warning("Orphaned assets after timeout: %s", ", ".join(a.id for a in stored))
            raise IngestTimeout(self.timeout)

    async def _run(
        self, body: AsyncIterable[bytes], content_type: Optional[str], stored: List[StoredAsset]
    ) -> IngestResult:
        with StagingArea(self.staging_dir) as staging:
            parsed = await read_multipart_form(
                body,
                content_type,
                staging,
                file_fields=FILE_FIELDS,
                max_field_bytes=self.max_field_bytes,
            )
            upload = validate_upload(parsed)
            logger.info("Upload %s validated: %r", staging.request_id, upload.form.title)

            video = await self._store_binary("video", upload.video_file, stored)
            try:
                thumbnail = await self._store_binary("thumbnail", upload.thumbnail_file, stored)
            except StorageFailure:
                logger.warning("Orphaned video asset %s", video.id)
                raise

            record = await self._persist(upload, video, thumbnail)

        return IngestResult(record=record, video_url=video.url, thumbnail_url=thumbnail.url)

    async def _store_binary(self, stage: str, staged: StagedFile, stored: List[StoredAsset]) -> StoredAsset:
        name = choose_filename(staged)
        try:
            with open(staged.path, "rb") as payload:
                upload = asyncio.ensure_future(
                    self.storage.store(name, payload, staged.media_type, visibility=PUBLIC)
                )
                try:
                    asset = await asyncio.shield(upload)
                except asyncio.CancelledError:
                    # a put already handed to a worker thread cannot be stopped,
                    # so the staged file has to outlive it
                    await asyncio.wait([upload])
                    if not upload.cancelled() and upload.exception() is None:
                        stored.append(upload.result())
                    raise
        except ObjectStorageError as e:
            logger.exception("Storing %s file %s failed", stage, name)
            raise StorageFailure(stage, details=str(e)) from e

        stored.append(asset)
        logger.info("Stored %s file at %s", stage, asset.url)
        return asset

    async def _persist(self, upload: VideoUpload, video: StoredAsset, thumbnail: StoredAsset) -> VideoRecord:
        form = upload.form
        record = VideoRecord(
            title=form.title,
            description=form.description,
            duration_seconds=form.duration_seconds,
            is_premium=form.is_premium,
            genre=form.genre,
            tags=form.tags,
            video_url=video.url,
            thumbnail_url=thumbnail.url,
            views_count=0,
            upload_date=datetime.now(timezone.utc),
        )
        permissions = build_permissions(team_id=form.team_id, user_id=form.user_id)

        try:
            created = await self.documents.create_record(
                self.collection, record.to_document(), permissions=permissions
            )
        except DocumentStoreError as e:
            logger.exception("Saving video metadata failed")
            logger.warning("Orphaned assets %s and %s", video.id, thumbnail.id)
            raise PersistenceFailure(details=str(e)) from e

        logger.info("Video metadata saved: %s", created["id"])
        return VideoRecord.model_validate(created)
