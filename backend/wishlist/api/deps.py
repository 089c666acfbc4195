"""
Shared FastAPI dependencies
"""
from typing import Optional
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession
from wishlist.database import get_db
from wishlist.models import User
from wishlist.services.auth import AuthService
from wishlist.services.wishlist_service import WishlistService, get_wishlist_service

bearer_scheme = HTTPBearer(auto_error=False)


async def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> Optional[User]:
    """The signed-in user, or None for anonymous visitors"""
    if credentials is None:
        return None
    return await AuthService(db).get_current_user(credentials.credentials)


async def get_current_user(user: Optional[User] = Depends(get_optional_user)) -> User:
    """The signed-in user; 401 otherwise"""
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


def get_service() -> WishlistService:
    return get_wishlist_service()
