# backend/myquant/db/schemas.py
"""MongoDB document schemas using Pydantic for validation"""

from __future__ import annotations
from datetime import datetime, timezone
from typing import Any, Dict, Literal, Optional
from pydantic import BaseModel, Field, ConfigDict, field_validator
from pydantic import GetCoreSchemaHandler, GetJsonSchemaHandler
from pydantic_core import core_schema
from bson import ObjectId

PositionType = Literal["long", "short"]


def _now() -> datetime:
    return datetime.now(timezone.utc)


class PyObjectId(ObjectId):
    """MongoDB ObjectId type with Pydantic v2 support."""
    @classmethod
    def __get_pydantic_core_schema__(cls, _source: Any, handler: GetCoreSchemaHandler):
        def validate(v: Any) -> ObjectId:
            if isinstance(v, ObjectId):
                return v
            if isinstance(v, str) and ObjectId.is_valid(v):
                return ObjectId(v)
            raise ValueError("Invalid ObjectId")
        return core_schema.no_info_after_validator_function(
            validate,
            core_schema.union_schema([
                core_schema.is_instance_schema(ObjectId),
                core_schema.str_schema(),
            ]),
            serialization=core_schema.plain_serializer_function_ser_schema(str, when_used="json"),
        )

    @classmethod
    def __get_pydantic_json_schema__(cls, core_schema_, handler: GetJsonSchemaHandler):
        js = handler(core_schema_)
        js.update(type="string", examples=["64f1a2b3c4d5e67890ab12cd"])
        return js


class MongoBaseModel(BaseModel):
    """Base model for MongoDB documents"""
    model_config = ConfigDict(
        populate_by_name=True,
        arbitrary_types_allowed=True,
    )

    id: Optional[PyObjectId] = Field(default_factory=PyObjectId, alias="_id")
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)

    def to_document(self) -> Dict[str, Any]:
        """Dump for insert_one (keeps ``_id`` as ObjectId)"""
        return self.model_dump(by_alias=True)


class User(MongoBaseModel):
    """User document schema. Credentials live with the auth service."""
    email: str
    name: Optional[str] = None
    is_active: bool = True


class Holding(MongoBaseModel):
    """A position owned by one user.

    ``(user_id, ticker, position_type)`` is the merge key: adding another
    purchase under the same key folds it into this document at a weighted
    average cost instead of creating a second one.
    """
    user_id: PyObjectId
    ticker: str = Field(..., min_length=1, max_length=16)
    company_name: str
    units_held: float = Field(..., gt=0)
    bought_price: float = Field(..., gt=0)
    current_price: Optional[float] = None
    sector: Optional[str] = None
    position_type: PositionType = "long"
    purchase_date: str
    last_updated: Optional[datetime] = None
    notes: Optional[str] = None

    @field_validator("ticker", mode="before")
    @classmethod
    def _upper_ticker(cls, v):
        return str(v).strip().upper()


class ResearchStock(MongoBaseModel):
    """Watchlist entry, unique per (user_id, ticker)"""
    user_id: PyObjectId
    ticker: str = Field(..., min_length=1, max_length=16)
    company_name: str
    current_price: Optional[float] = None
    change: Optional[float] = None
    change_percent: Optional[float] = None
    sector: Optional[str] = None
    market_cap: Optional[float] = None
    pe_ratio: Optional[float] = None
    dividend_yield: Optional[float] = None
    added_date: datetime = Field(default_factory=_now)
    last_updated: Optional[datetime] = None
    cached_third_party_data: Optional[Dict[str, Any]] = None

    @field_validator("ticker", mode="before")
    @classmethod
    def _upper_ticker(cls, v):
        return str(v).strip().upper()
