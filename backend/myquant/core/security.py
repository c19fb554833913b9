# backend/myquant/core/security.py
"""JWT verification. Tokens are issued by the auth service; this backend only verifies them."""

from typing import Optional
from jose import JWTError, jwt

from myquant.core.config import settings

ALGORITHM = "HS256"


def decode_access_token(token: str) -> Optional[dict]:
    """Decode and verify a JWT token"""
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        return None
