"""
User authentication: JWT tokens, bcrypt password hashing and resolution of
the per-call viewer (owner, friend or visitor) for a wishlist.
"""
from datetime import timedelta
from typing import Optional
import bcrypt
from jose import JWTError, jwt
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from wishlist.config import get_settings
from wishlist.core.types import Role, Viewer, utcnow
from wishlist.models import User

settings = get_settings()

# JWT settings
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = 60 * 24  # 24 hours
REFRESH_TOKEN_EXPIRE_DAYS = 30


def resolve_viewer(user: Optional[User], owner_id: str) -> Viewer:
    """Auth context for a call against ``owner_id``'s wishlist"""
    if user is None:
        return Viewer(viewer_id=None, role=Role.VISITOR)
    viewer_id = str(user.id)
    role = Role.OWNER if viewer_id == str(owner_id) else Role.FRIEND
    return Viewer(viewer_id=viewer_id, role=role)


class AuthService:
    """User authentication service"""

    def __init__(self, db: AsyncSession):
        self.db = db

    def hash_password(self, password: str) -> str:
        password_bytes = password.encode('utf-8')
        return bcrypt.hashpw(password_bytes, bcrypt.gensalt()).decode('utf-8')

    def verify_password(self, plain_password: str, hashed_password: str) -> bool:
        return bcrypt.checkpw(plain_password.encode('utf-8'), hashed_password.encode('utf-8'))

    async def get_user_by_email(self, email: str) -> Optional[User]:
        result = await self.db.execute(
            select(User).where(User.email == email.lower())
        )
        return result.scalar_one_or_none()

    async def get_user_by_id(self, user_id: int) -> Optional[User]:
        return await self.db.get(User, user_id)

    async def create_user(
        self,
        email: str,
        password: str,
        display_name: Optional[str] = None
    ) -> User:
        """Create a new user account (and with it, an empty wishlist)"""
        user = User(
            email=email.lower(),
            hashed_password=self.hash_password(password),
            display_name=display_name,
        )
        self.db.add(user)
        await self.db.commit()
        await self.db.refresh(user)
        return user

    async def authenticate_user(self, email: str, password: str) -> Optional[User]:
        """Check credentials and stamp the login time"""
        user = await self.get_user_by_email(email)
        if not user or not self.verify_password(password, user.hashed_password):
            return None

        user.last_login = utcnow()
        await self.db.commit()
        return user

    def _encode(self, user_id: int, token_type: str, lifetime: timedelta) -> str:
        payload = {
            "sub": str(user_id),
            "exp": utcnow() + lifetime,
            "type": token_type,
        }
        return jwt.encode(payload, settings.secret_key, algorithm=ALGORITHM)

    def create_access_token(self, user_id: int, expires_delta: Optional[timedelta] = None) -> str:
        return self._encode(user_id, "access", expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))

    def create_refresh_token(self, user_id: int) -> str:
        return self._encode(user_id, "refresh", timedelta(days=REFRESH_TOKEN_EXPIRE_DAYS))

    def decode_token(self, token: str) -> Optional[dict]:
        """Decode and validate a JWT token"""
        try:
            return jwt.decode(token, settings.secret_key, algorithms=[ALGORITHM])
        except JWTError:
            return None

    async def get_current_user(self, token: str) -> Optional[User]:
        """Get current user from access token"""
        payload = self.decode_token(token)
        if not payload or payload.get("type") != "access":
            return None

        try:
            user_id = int(payload.get("sub"))
        except (TypeError, ValueError):
            return None
        user = await self.get_user_by_id(user_id)
        if user is None or not user.is_active:
            return None
        return user
