import logging
from typing import Iterable, List, Optional
from uuid import uuid4

from bson.errors import InvalidDocument
from pymongo import DESCENDING
from pymongo.errors import PyMongoError

logger = logging.getLogger(__name__)


class DocumentStoreError(Exception):
    """The database rejected the request or could not be reached."""


class RecordNotFound(DocumentStoreError):
    def __init__(self, collection: str, record_id: str):
        super().__init__(f"No record {record_id!r} in {collection!r}")
        self.collection = collection
        self.record_id = record_id


def _to_record(document: dict) -> dict:
    record = dict(document)
    record["id"] = str(record.pop("_id"))
    return record


class MongoDocumentStore:
    """Document store backed by a motor database handle."""

    def __init__(self, db):
        self.db = db

    async def create_record(
        self,
        collection: str,
        fields: dict,
        permissions: Iterable[str] = (),
        record_id: Optional[str] = None,
    ) -> dict:
        document = {
            "_id": record_id or uuid4().hex,
            **fields,
            "permissions": list(permissions),
        }
        try:
            await self.db[collection].insert_one(document)
        except (PyMongoError, InvalidDocument, OverflowError) as e:
            # bson encoding errors are not PyMongoErrors
            raise DocumentStoreError(str(e)) from e

        logger.info("Inserted %s record %s", collection, document["_id"])
        return _to_record(document)

    async def get_record(self, collection: str, record_id: str) -> dict:
        try:
            document = await self.db[collection].find_one({"_id": record_id})
        except PyMongoError as e:
            raise DocumentStoreError(str(e)) from e

        if document is None:
            raise RecordNotFound(collection, record_id)
        return _to_record(document)

    async def list_records(self, collection: str, limit: int = 50) -> List[dict]:
        """Newest uploads first."""
        try:
            cursor = self.db[collection].find({}).sort("uploadDate", DESCENDING).limit(limit)
            documents = await cursor.to_list(length=limit)
        except PyMongoError as e:
            raise DocumentStoreError(str(e)) from e
        return [_to_record(d) for d in documents]
