# backend/myquant/db/mongo.py
"""MongoDB connection and database management"""

from __future__ import annotations
from typing import Optional

from motor.motor_asyncio import (
    AsyncIOMotorClient,
    AsyncIOMotorDatabase,
)
from pymongo.errors import PyMongoError

from myquant.core.config import settings
from myquant.logger import get_logger

log = get_logger(__name__)

# Global client and database instances
_client: Optional[AsyncIOMotorClient] = None
_db: Optional[AsyncIOMotorDatabase] = None


async def connect_to_mongo():
    """Initialize MongoDB connection"""
    global _client, _db

    _client = AsyncIOMotorClient(
        settings.MONGO_URI,
        maxPoolSize=10,
        minPoolSize=2,
        maxIdleTimeMS=60000,
    )
    _db = _client[settings.MONGO_DB_NAME]

    # Verify connection
    await _client.server_info()
    log.info(f"Connected to MongoDB: {settings.MONGO_DB_NAME}")

    await ensure_indexes(_db)


async def close_mongo_connection():
    """Close MongoDB connection"""
    global _client, _db
    if _client is not None:
        _client.close()
        _client = None
        _db = None
        _repositories.clear()
        log.info("Disconnected from MongoDB")


def get_client() -> AsyncIOMotorClient:
    """Get MongoDB client instance"""
    global _client
    if _client is None:
        _client = AsyncIOMotorClient(settings.MONGO_URI)
    return _client


def get_db() -> AsyncIOMotorDatabase:
    """Get MongoDB database instance"""
    global _db
    if _db is None:
        _db = get_client()[settings.MONGO_DB_NAME]
    return _db


async def ensure_indexes(db: Optional[AsyncIOMotorDatabase] = None) -> None:
    """Create all required indexes (idempotent)"""
    if db is None:
        db = get_db()

    try:
        await db["users"].create_index("email", unique=True)

        await db["holdings"].create_index(
            [("user_id", 1), ("ticker", 1), ("position_type", 1)], unique=True
        )

        await db["research_stocks"].create_index([("user_id", 1), ("ticker", 1)], unique=True)
        await db["research_stocks"].create_index([("user_id", 1), ("added_date", -1)])

        log.info("MongoDB indexes created/verified successfully")
    except PyMongoError as e:
        log.warning(f"Some indexes may not have been created: {e}")


# Repository instances (singleton pattern)
_repositories = {}


def get_repository(repo_class):
    """Get or create repository instance"""
    class_name = repo_class.__name__
    if class_name not in _repositories:
        _repositories[class_name] = repo_class(get_db())
    return _repositories[class_name]
