# backend/myquant/routers/holdings.py
"""Holdings and research watchlist endpoints"""

from typing import List
from fastapi import APIRouter, Depends, HTTPException, Query, status

from myquant.api.deps import get_assembler, get_current_user, get_holding_repo, get_research_repo
from myquant.db.repositories import (
    DuplicateResearchStockError,
    HoldingMergeConflictError,
    HoldingRepository,
    ResearchStockRepository,
)
from myquant.db.schemas import Holding, ResearchStock, User
from myquant.schemas.portfolio import HoldingIn, HoldingOut, ResearchIn, SummaryOut
from myquant.services.portfolio import portfolio_summary, position_value
from myquant.tasks.weekly_digest import DigestAssembler
from myquant.logger import get_logger

log = get_logger(__name__)
router = APIRouter(tags=["Portfolio"])


def _holding_out(h: Holding) -> HoldingOut:
    return HoldingOut(
        id=str(h.id),
        ticker=h.ticker,
        company_name=h.company_name,
        units_held=h.units_held,
        bought_price=h.bought_price,
        current_price=h.current_price,
        position_type=h.position_type,
        value=round(position_value(h), 2),
    )


@router.get("/holdings", response_model=List[HoldingOut])
async def list_holdings(
    user: User = Depends(get_current_user),
    repo: HoldingRepository = Depends(get_holding_repo),
):
    holdings = await repo.list_by_user(user.id)
    return [_holding_out(h) for h in holdings]


@router.post("/holdings", response_model=HoldingOut, status_code=status.HTTP_201_CREATED)
async def add_holding(
    body: HoldingIn,
    user: User = Depends(get_current_user),
    repo: HoldingRepository = Depends(get_holding_repo),
):
    """Add a purchase; an existing position of the same type is merged at weighted average cost"""
    holding = Holding(user_id=user.id, **body.model_dump())
    try:
        saved = await repo.add_or_merge(holding)
    except HoldingMergeConflictError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    log.info(f"Holding {saved.ticker} ({saved.position_type}) saved for {user.email}: "
             f"{saved.units_held:.4g} units @ {saved.bought_price:.2f}")
    return _holding_out(saved)


@router.get("/holdings/summary", response_model=SummaryOut)
async def holdings_summary(
    user: User = Depends(get_current_user),
    repo: HoldingRepository = Depends(get_holding_repo),
):
    return SummaryOut(**portfolio_summary(await repo.list_by_user(user.id)))


@router.get("/research", response_model=List[ResearchStock])
async def list_research(
    user: User = Depends(get_current_user),
    repo: ResearchStockRepository = Depends(get_research_repo),
):
    return await repo.list_by_user(user.id)


@router.post("/research", response_model=ResearchStock, status_code=status.HTTP_201_CREATED)
async def add_research(
    body: ResearchIn,
    user: User = Depends(get_current_user),
    repo: ResearchStockRepository = Depends(get_research_repo),
):
    try:
        return await repo.add(ResearchStock(user_id=user.id, **body.model_dump()))
    except DuplicateResearchStockError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))


@router.get("/research/validate")
async def validate_ticker(
    ticker: str = Query(..., min_length=1),
    user: User = Depends(get_current_user),
    assembler: DigestAssembler = Depends(get_assembler),
):
    """Confirm a ticker exists and look up its company name"""
    return await assembler.quotes.validate_ticker(ticker)
