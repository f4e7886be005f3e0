from functools import lru_cache

from fastapi import Depends, HTTPException

from src.core.config import settings
from src.core.database import mongodb
from src.database.document_store import MongoDocumentStore
from src.ingestion.pipeline import IngestionPipeline
from src.storage.object_storage import S3ObjectStorage, create_object_storage


def get_document_store() -> MongoDocumentStore:
    if mongodb.db is None:
        raise HTTPException(status_code=503, detail="Database is not connected")
    return MongoDocumentStore(mongodb.db)


@lru_cache
def get_object_storage() -> S3ObjectStorage:
    return create_object_storage()


def get_ingestion_pipeline(
    storage: S3ObjectStorage = Depends(get_object_storage),
    documents: MongoDocumentStore = Depends(get_document_store),
) -> IngestionPipeline:
    return IngestionPipeline(
        storage,
        documents,
        staging_dir=settings.UPLOAD_STAGING_DIR,
        collection=settings.VIDEOS_COLLECTION,
        timeout=settings.INGEST_TIMEOUT_SECONDS,
        max_field_bytes=settings.MAX_FIELD_BYTES,
    )
