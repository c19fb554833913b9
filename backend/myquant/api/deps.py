# backend/myquant/api/deps.py
"""API dependencies: current user from the bearer token, and pipeline handles"""

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from bson import ObjectId

from myquant.core.security import decode_access_token
from myquant.core.config import settings
from myquant.db import get_repository
from myquant.db.repositories import UserRepository, HoldingRepository, ResearchStockRepository
from myquant.db.schemas import User
from myquant.tasks.weekly_digest import DigestAssembler
from myquant.logger import get_logger

log = get_logger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl=f"{settings.API_PREFIX}/auth/login")


def get_user_repo() -> UserRepository:
    return get_repository(UserRepository)


def get_holding_repo() -> HoldingRepository:
    return get_repository(HoldingRepository)


def get_research_repo() -> ResearchStockRepository:
    return get_repository(ResearchStockRepository)


def get_assembler(request: Request) -> DigestAssembler:
    assembler = getattr(request.app.state, "assembler", None)
    if assembler is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Digest pipeline not ready")
    return assembler


async def get_current_user(
    token: str = Depends(oauth2_scheme),
    user_repo: UserRepository = Depends(get_user_repo),
) -> User:
    """Resolve the JWT ``sub`` to an active user"""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    payload = decode_access_token(token)
    if not payload:
        log.error("Token decode failed - invalid token")
        raise credentials_exception

    user_id = payload.get("sub")
    if not user_id or not ObjectId.is_valid(user_id):
        log.error(f"Token carries no usable 'sub': {user_id}")
        raise credentials_exception

    doc = await user_repo.find_by_id(user_id)
    if not doc:
        log.error(f"User not found: {user_id}")
        raise credentials_exception

    user = User.model_validate(doc)
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Inactive user")
    return user
