import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from kombu.exceptions import OperationalError
from starlette.concurrency import run_in_threadpool

from src.api.dependencies import get_document_store, get_ingestion_pipeline
from src.app_celery.tasks import record_view
from src.core.config import settings
from src.database.document_store import DocumentStoreError, MongoDocumentStore, RecordNotFound
from src.database.schemas.video import ErrorResponse, UploadResponse, VideoRecord
from src.ingestion.pipeline import IngestionPipeline

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post(
    "/upload",
    response_model=UploadResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}, 504: {"model": ErrorResponse}},
)
async def upload_video(request: Request, pipeline: IngestionPipeline = Depends(get_ingestion_pipeline)):
    """
    Accept the admin upload form (multipart/form-data).

    Fields: title, description, duration, isPremium, genre, tags, teamId,
    userId, videoFile, thumbnailFile. Failures are rendered by the
    IngestError handler registered on the app.
    """
    result = await pipeline.ingest(request.stream(), request.headers.get("content-type"))
    return UploadResponse(
        video=result.record,
        video_blob_url=result.video_url,
        thumbnail_blob_url=result.thumbnail_url,
    )


@router.get("", response_model=List[VideoRecord])
async def list_videos(
    limit: int = Query(50, ge=1, le=200),
    documents: MongoDocumentStore = Depends(get_document_store),
):
    try:
        records = await documents.list_records(settings.VIDEOS_COLLECTION, limit=limit)
    except DocumentStoreError as e:
        logger.exception("Listing videos failed")
        raise HTTPException(status_code=500, detail=f"Failed to load videos: {e}")
    return [VideoRecord.model_validate(r) for r in records]


@router.get("/{video_id}", response_model=VideoRecord)
async def get_video(video_id: str, documents: MongoDocumentStore = Depends(get_document_store)):
    try:
        record = await documents.get_record(settings.VIDEOS_COLLECTION, video_id)
    except RecordNotFound:
        raise HTTPException(status_code=404, detail="Video not found")
    except DocumentStoreError as e:
        logger.exception("Loading video %s failed", video_id)
        raise HTTPException(status_code=500, detail=f"Failed to load video: {e}")
    return VideoRecord.model_validate(record)


@router.post(
    "/{video_id}/views",
    status_code=status.HTTP_202_ACCEPTED,
    responses={503: {"description": "Broker unreachable"}},
)
async def count_view(video_id: str):
    try:
        task = await run_in_threadpool(record_view.delay, video_id)
    except OperationalError as e:
        logger.error("Could not queue view count for %s: %s", video_id, e)
        raise HTTPException(status_code=503, detail="View counter is unavailable")
    logger.info("Queued view count for %s (task %s)", video_id, task.id)
    return {"message": "View recorded", "task_id": task.id}
