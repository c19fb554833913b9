# backend/myquant/db/repositories.py
"""Repository pattern for MongoDB operations"""

from __future__ import annotations
from typing import Optional, List
from datetime import datetime, timezone
from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase, AsyncIOMotorCollection
from pymongo.errors import DuplicateKeyError

from myquant.db.schemas import User, Holding, ResearchStock, PositionType
from myquant.services.portfolio import weighted_average_merge, append_purchase_notes


class DuplicateResearchStockError(Exception):
    """Raised when a ticker is already on the user's watchlist"""

    def __init__(self, ticker: str):
        super().__init__(f"{ticker} is already in your research list")
        self.ticker = ticker


MERGE_ATTEMPTS = 5


class HoldingMergeConflictError(Exception):
    """Raised when a position keeps changing underneath a merge"""

    def __init__(self, ticker: str):
        super().__init__(f"{ticker} position was updated concurrently, please retry")
        self.ticker = ticker


def _oid(value) -> ObjectId:
    return value if isinstance(value, ObjectId) else ObjectId(str(value))


class BaseRepository:
    """Base repository with common CRUD operations"""

    def __init__(self, db: AsyncIOMotorDatabase, collection_name: str):
        self.db = db
        self.collection: AsyncIOMotorCollection = db[collection_name]

    async def create(self, document: dict) -> str:
        """Create a new document"""
        result = await self.collection.insert_one(document)
        return str(result.inserted_id)

    async def find_by_id(self, id: str) -> Optional[dict]:
        """Find document by ID"""
        return await self.collection.find_one({"_id": _oid(id)})

    async def find_one(self, filter: dict) -> Optional[dict]:
        """Find single document by filter"""
        return await self.collection.find_one(filter)

    async def find_many(self, filter: dict, limit: Optional[int] = 100, sort=None) -> List[dict]:
        """Find multiple documents; ``limit=None`` returns everything"""
        cursor = self.collection.find(filter)
        if sort:
            cursor = cursor.sort(sort)
        if limit:
            cursor = cursor.limit(limit)
        return await cursor.to_list(length=limit)

    async def update_one(self, id: str, update: dict) -> bool:
        """Update document by ID"""
        update["updated_at"] = datetime.now(timezone.utc)
        result = await self.collection.update_one(
            {"_id": _oid(id)},
            {"$set": update}
        )
        return result.modified_count > 0

    async def delete_one(self, id: str) -> bool:
        """Delete document by ID"""
        result = await self.collection.delete_one({"_id": _oid(id)})
        return result.deleted_count > 0


class UserRepository(BaseRepository):
    """User-specific repository operations"""

    def __init__(self, db: AsyncIOMotorDatabase):
        super().__init__(db, "users")

    async def find_by_email(self, email: str) -> Optional[dict]:
        return await self.find_one({"email": email})

    async def list_active(self) -> List[User]:
        """Every user that should receive the weekly digest"""
        docs = await self.find_many({"is_active": {"$ne": False}}, limit=None)
        return [User.model_validate(d) for d in docs]


class HoldingRepository(BaseRepository):
    """Holdings, merged by (user, ticker, position_type)"""

    def __init__(self, db: AsyncIOMotorDatabase):
        super().__init__(db, "holdings")

    async def list_by_user(self, user_id) -> List[Holding]:
        docs = await self.find_many({"user_id": _oid(user_id)}, limit=None)
        return [Holding.model_validate(d) for d in docs]

    async def find_position(self, user_id, ticker: str, position_type: PositionType) -> Optional[Holding]:
        doc = await self.find_one({
            "user_id": _oid(user_id),
            "ticker": ticker.strip().upper(),
            "position_type": position_type,
        })
        return Holding.model_validate(doc) if doc else None

    async def add_or_merge(self, holding: Holding) -> Holding:
        """Insert a purchase, or fold it into the existing position at weighted average cost.

        The merge key is backed by a unique index, and an update only applies
        while the position still holds the units and price that were read.
        A lost race re-reads the position and tries again.
        """
        for _ in range(MERGE_ATTEMPTS):
            existing = await self.find_position(holding.user_id, holding.ticker, holding.position_type)
            now = datetime.now(timezone.utc)

            if existing is None:
                holding.last_updated = now
                try:
                    await self.create(holding.to_document())
                except DuplicateKeyError:
                    # another purchase opened the position first; merge into it
                    continue
                return holding

            units, price = weighted_average_merge(
                existing.units_held, existing.bought_price,
                holding.units_held, holding.bought_price,
            )
            update = {
                "units_held": units,
                "bought_price": price,
                "company_name": holding.company_name,
                "sector": holding.sector or existing.sector,
                "notes": append_purchase_notes(existing.notes, holding.notes, holding.purchase_date),
                "last_updated": now,
                "updated_at": now,
            }
            result = await self.collection.update_one(
                {
                    "_id": existing.id,
                    "units_held": existing.units_held,
                    "bought_price": existing.bought_price,
                },
                {"$set": update},
            )
            if result.matched_count:
                return existing.model_copy(update=update)

        raise HoldingMergeConflictError(holding.ticker)

    async def write_current_price(self, holding_id, price: float) -> bool:
        """Persist a refreshed quote onto the holding"""
        return await self.update_one(str(holding_id), {
            "current_price": round(price, 2),
            "last_updated": datetime.now(timezone.utc),
        })


class ResearchStockRepository(BaseRepository):
    """Research watchlist entries"""

    def __init__(self, db: AsyncIOMotorDatabase):
        super().__init__(db, "research_stocks")

    async def list_by_user(self, user_id) -> List[ResearchStock]:
        docs = await self.find_many({"user_id": _oid(user_id)}, limit=None, sort=[("added_date", -1)])
        return [ResearchStock.model_validate(d) for d in docs]

    async def add(self, stock: ResearchStock) -> ResearchStock:
        """Add a watchlist entry; raises DuplicateResearchStockError if already present"""
        if await self.find_one({"user_id": stock.user_id, "ticker": stock.ticker}):
            raise DuplicateResearchStockError(stock.ticker)
        try:
            await self.create(stock.to_document())
        except DuplicateKeyError as e:
            # lost a race against the unique index
            raise DuplicateResearchStockError(stock.ticker) from e
        return stock
