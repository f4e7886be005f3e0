import logging
from datetime import datetime

import bson
import pytest
from pymongo.errors import DuplicateKeyError, ServerSelectionTimeoutError

from conftest import FakeObjectStorage, run
from src.database.document_store import DocumentStoreError, MongoDocumentStore, RecordNotFound
from src.ingestion.errors import PersistenceFailure
from src.ingestion.pipeline import IngestionPipeline
from src.ingestion.validation import VideoUpload, VideoUploadForm
from src.storage.object_storage import StoredAsset


class FakeCursor:
    def __init__(self, documents):
        self.documents = list(documents)
        self._limit = None

    def sort(self, key, direction):
        self.documents.sort(key=lambda d: d[key], reverse=direction < 0)
        return self

    def limit(self, n):
        self._limit = n
        return self

    async def to_list(self, length=None):
        return self.documents[: self._limit]


class FakeCollection:
    def __init__(self, error=None):
        self.documents = {}
        self.error = error

    async def insert_one(self, document):
        if self.error:
            raise self.error
        if document["_id"] in self.documents:
            raise DuplicateKeyError("duplicate _id")
        self.documents[document["_id"]] = dict(document)

    async def find_one(self, query):
        if self.error:
            raise self.error
        return self.documents.get(query["_id"])

    def find(self, query):
        if self.error:
            raise self.error
        return FakeCursor(self.documents.values())


class FakeDatabase(dict):
    def __missing__(self, name):
        self[name] = FakeCollection()
        return self[name]


@pytest.fixture
def db():
    return FakeDatabase()


def test_create_record_assigns_id_and_stores_permissions(db):
    store = MongoDocumentStore(db)

    record = run(store.create_record("videos", {"title": "Trailer"}, permissions=['read("any")']))

    assert record["id"]
    assert record["title"] == "Trailer"
    assert record["permissions"] == ['read("any")']
    assert db["videos"].documents[record["id"]]["_id"] == record["id"]


def test_create_record_with_explicit_id(db):
    store = MongoDocumentStore(db)

    record = run(store.create_record("videos", {"title": "Trailer"}, record_id="vid_42"))

    assert record["id"] == "vid_42"


def test_duplicate_id_is_a_store_error(db):
    store = MongoDocumentStore(db)
    run(store.create_record("videos", {"title": "a"}, record_id="same"))

    with pytest.raises(DocumentStoreError):
        run(store.create_record("videos", {"title": "b"}, record_id="same"))


def test_get_record_roundtrip_and_missing(db):
    store = MongoDocumentStore(db)
    created = run(store.create_record("videos", {"title": "Trailer"}))

    assert run(store.get_record("videos", created["id"]))["title"] == "Trailer"
    with pytest.raises(RecordNotFound):
        run(store.get_record("videos", "nope"))


def test_list_records_newest_first(db):
    store = MongoDocumentStore(db)
    run(store.create_record("videos", {"title": "old", "uploadDate": datetime(2024, 1, 1)}))
    run(store.create_record("videos", {"title": "new", "uploadDate": datetime(2025, 1, 1)}))
    run(store.create_record("videos", {"title": "mid", "uploadDate": datetime(2024, 6, 1)}))

    records = run(store.list_records("videos", limit=2))

    assert [r["title"] for r in records] == ["new", "mid"]


def test_unreachable_database_is_a_store_error():
    db = FakeDatabase(videos=FakeCollection(error=ServerSelectionTimeoutError("no servers")))
    store = MongoDocumentStore(db)

    with pytest.raises(DocumentStoreError):
        run(store.create_record("videos", {"title": "x"}))
    with pytest.raises(DocumentStoreError):
        run(store.list_records("videos"))


class EncodingCollection(FakeCollection):
    """Encodes documents the way the driver does before sending them."""

    async def insert_one(self, document):
        bson.encode(document)
        await super().insert_one(document)


def test_unencodable_document_is_a_store_error():
    store = MongoDocumentStore(FakeDatabase(videos=EncodingCollection()))

    with pytest.raises(DocumentStoreError) as excinfo:
        run(store.create_record("videos", {"duration": 99999999999999999999}))

    assert "8-byte ints" in str(excinfo.value)


def test_oversized_duration_through_pipeline_is_persistence_failure(tmp_path, caplog):
    store = MongoDocumentStore(FakeDatabase(videos=EncodingCollection()))
    storage = FakeObjectStorage()
    pipeline = IngestionPipeline(storage, store, staging_dir=str(tmp_path / "staging"))
    video = VideoUpload(
        form=VideoUploadForm.model_construct(
            title="Trailer", description="A short trailer", duration_seconds=10**20,
            is_premium=False, genre="", tags="", team_id=None, user_id=None,
        ),
        video_file=None,
        thumbnail_file=None,
    )
    assets = (StoredAsset("uploads/1/a.mp4", "https://x/1"), StoredAsset("uploads/2/a.jpg", "https://x/2"))

    with caplog.at_level(logging.WARNING):
        with pytest.raises(PersistenceFailure):
            run(pipeline._persist(video, *assets))

    assert "Orphaned assets uploads/1/a.mp4 and uploads/2/a.jpg" in caplog.text
