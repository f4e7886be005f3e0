import logging

from motor.motor_asyncio import AsyncIOMotorClient
from .config import settings

logger = logging.getLogger(__name__)


class MongoDB:
    client: AsyncIOMotorClient = None
    db = None

mongodb = MongoDB()

async def connect_to_mongo():
    mongodb.client = AsyncIOMotorClient(settings.MONGO_URI)
    mongodb.db = mongodb.client[settings.MONGO_DB]
    logger.info("Connected to MongoDB database %s", mongodb.db.name)

async def close_mongo_connection():
    if mongodb.client is not None:
        mongodb.client.close()
    mongodb.client = None
    mongodb.db = None
    logger.info("MongoDB connection closed")
