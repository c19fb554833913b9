from pydantic import BaseModel, Field
from typing import Optional
from datetime import date

from myquant.db.schemas import PositionType


class HoldingIn(BaseModel):
    ticker: str = Field(..., min_length=1, max_length=16)
    company_name: str = Field(..., min_length=1)
    units_held: float = Field(..., gt=0)
    bought_price: float = Field(..., gt=0)
    current_price: Optional[float] = Field(None, gt=0)
    sector: Optional[str] = None
    position_type: PositionType = "long"
    purchase_date: str = Field(default_factory=lambda: date.today().isoformat())
    notes: Optional[str] = None


class HoldingOut(BaseModel):
    id: str
    ticker: str
    company_name: str
    units_held: float
    bought_price: float
    current_price: Optional[float] = None
    position_type: PositionType
    value: float


class ResearchIn(BaseModel):
    ticker: str = Field(..., min_length=1, max_length=16)
    company_name: str = Field(..., min_length=1)
    current_price: Optional[float] = None
    change: Optional[float] = None
    change_percent: Optional[float] = None
    sector: Optional[str] = None
    market_cap: Optional[float] = None
    pe_ratio: Optional[float] = None
    dividend_yield: Optional[float] = None


class SummaryOut(BaseModel):
    total_value: float
    total_cost: float
    total_pnl: float
    total_pnl_percent: float
    active_positions: int
    long_positions: int
    short_positions: int
