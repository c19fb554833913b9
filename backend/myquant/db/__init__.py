# backend/myquant/db/__init__.py
"""Database package - MongoDB"""

from .mongo import (
    connect_to_mongo,
    close_mongo_connection,
    get_db,
    get_client,
    get_repository,
)

from .schemas import (
    User,
    Holding,
    ResearchStock,
    PyObjectId,
    MongoBaseModel,
)

from .repositories import (
    BaseRepository,
    UserRepository,
    HoldingRepository,
    ResearchStockRepository,
    DuplicateResearchStockError,
    HoldingMergeConflictError,
)

__all__ = [
    # Connection management
    "connect_to_mongo",
    "close_mongo_connection",
    "get_db",
    "get_client",
    "get_repository",

    # Schemas
    "User",
    "Holding",
    "ResearchStock",
    "PyObjectId",
    "MongoBaseModel",

    # Repositories
    "BaseRepository",
    "UserRepository",
    "HoldingRepository",
    "ResearchStockRepository",
    "DuplicateResearchStockError",
    "HoldingMergeConflictError",
]
