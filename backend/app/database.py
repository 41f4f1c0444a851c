"""
Database connections - MongoDB async (Motor) + sync (PyMongo for GridFS).
"""

from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import MongoClient

from app.config import Settings, logger


class Database:
    """Holds both clients for one configured database."""

    def __init__(self, settings: Settings):
        # Async client (used by all session queries)
        self.client = AsyncIOMotorClient(settings.mongo_url)
        self.db = self.client[settings.db_name]

        # Sync client (used by GridFS buckets)
        self.sync_client = MongoClient(settings.mongo_url)
        self.sync_db = self.sync_client[settings.db_name]
        logger.info(f"MongoDB clients created for database '{settings.db_name}'")

    def close(self):
        self.client.close()
        self.sync_client.close()
