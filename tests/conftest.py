import asyncio
import os
from typing import Dict, Optional, Tuple

import pytest

from src.database.document_store import DocumentStoreError, RecordNotFound
from src.ingestion.pipeline import IngestionPipeline
from src.storage.object_storage import ObjectStorageError, StoredAsset

BOUNDARY = "----vodTestBoundary7MA4YWxkTrZu0gW"

VIDEO_BYTES = b"\x00\x00\x00\x18ftypmp42" + b"v" * 4096
THUMBNAIL_BYTES = b"\xff\xd8\xff\xe0JFIF" + b"t" * 512

TRAILER_FIELDS = {
    "title": "Trailer",
    "description": "A short trailer",
    "duration": "120",
    "isPremium": "true",
    "genre": "Action",
    "tags": "trailer,action",
    "teamId": "team_1",
}


def trailer_files() -> Dict[str, Tuple[Optional[str], bytes, str]]:
    return {
        "videoFile": ("trailer.mp4", VIDEO_BYTES, "video/mp4"),
        "thumbnailFile": ("trailer.jpg", THUMBNAIL_BYTES, "image/jpeg"),
    }


def build_multipart(fields: dict, files: dict, boundary: str = BOUNDARY) -> Tuple[bytes, str]:
    body = bytearray()
    for name, value in fields.items():
        body += (
            f"--{boundary}\r\n"
            f'Content-Disposition: form-data; name="{name}"\r\n\r\n'
            f"{value}\r\n"
        ).encode("utf-8")
    for name, (filename, content, media_type) in files.items():
        disposition = f'form-data; name="{name}"'
        if filename is not None:
            disposition += f'; filename="{filename}"'
        body += (
            f"--{boundary}\r\n"
            f"Content-Disposition: {disposition}\r\n"
            f"Content-Type: {media_type}\r\n\r\n"
        ).encode("utf-8")
        body += content + b"\r\n"
    body += f"--{boundary}--\r\n".encode("utf-8")
    return bytes(body), f"multipart/form-data; boundary={boundary}"


async def stream_of(body: bytes, chunk_size: int = 1000):
    for start in range(0, len(body), chunk_size):
        yield body[start:start + chunk_size]


def run(coro):
    return asyncio.run(coro)


class FakeObjectStorage:
    def __init__(self, fail_on: Optional[str] = None):
        self.fail_on = fail_on
        self.calls = []
        self.staged_paths = []

    async def store(self, name, payload, media_type, visibility="public"):
        # the staged file must still exist while it is being uploaded
        assert os.path.exists(payload.name)
        self.staged_paths.append(payload.name)
        content = payload.read()
        self.calls.append({"name": name, "content": content, "media_type": media_type, "visibility": visibility})
        if self.fail_on is not None and media_type.startswith(self.fail_on):
            raise ObjectStorageError("AccessDenied: bucket policy rejected the upload")
        key = f"uploads/{len(self.calls)}/{name}"
        return StoredAsset(id=key, url=f"https://cdn.example.test/{key}")


class FakeDocumentStore:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.records = {}
        self.calls = []

    async def create_record(self, collection, fields, permissions=(), record_id=None):
        self.calls.append({"collection": collection, "fields": fields, "permissions": list(permissions)})
        if self.fail:
            raise DocumentStoreError("connection refused")
        record_id = record_id or f"vid_{len(self.records) + 1}"
        record = {"id": record_id, **fields, "permissions": list(permissions)}
        self.records[record_id] = record
        return dict(record)

    async def get_record(self, collection, record_id):
        if record_id not in self.records:
            raise RecordNotFound(collection, record_id)
        return dict(self.records[record_id])

    async def list_records(self, collection, limit=50):
        return [dict(r) for r in list(self.records.values())[:limit]]


@pytest.fixture
def staging_dir(tmp_path):
    return str(tmp_path / "staging")


@pytest.fixture
def storage():
    return FakeObjectStorage()


@pytest.fixture
def documents():
    return FakeDocumentStore()


@pytest.fixture
def pipeline(storage, documents, staging_dir):
    return IngestionPipeline(storage, documents, staging_dir=staging_dir, timeout=30)
