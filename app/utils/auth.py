# app/utils/auth.py
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from datetime import timedelta
from typing import Any, Dict, Optional
from uuid import UUID
import secrets
import string
import jwt
import bcrypt

# Local imports
from app.database import get_db
from app.config import settings
from app.models.all_models import User, UserRole, utc_now
from app.utils.errors import Unauthorized, Forbidden

security = HTTPBearer(auto_error=False)

def hash_password(password: str) -> str:
    """Hash a password using bcrypt."""
    return bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt()).decode('utf-8')

def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a plain password against a hashed password."""
    return bcrypt.checkpw(plain_password.encode('utf-8'), hashed_password.encode('utf-8'))

def generate_otp(length: int = 6) -> str:
    """Generate a random numeric OTP of specified length."""
    return ''.join(secrets.choice(string.digits) for _ in range(length))

def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """Create a JWT access token."""
    to_encode = data.copy()
    expire = utc_now() + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire, "type": "access"})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)

def verify_token(token: str, token_type: str = "access") -> Dict[str, Any]:
    """Verify a JWT token and return its payload."""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise Unauthorized("Not authorized, token expired")
    except jwt.InvalidTokenError:
        raise Unauthorized("Not authorized, token failed")
    if payload.get("type") != token_type:
        raise Unauthorized(f"Invalid token type, expected {token_type}")
    return payload

def _user_from_credentials(credentials: HTTPAuthorizationCredentials, db: Session) -> User:
    payload = verify_token(credentials.credentials, token_type="access")
    try:
        user_id = UUID(str(payload.get("sub")))
    except ValueError:
        raise Unauthorized("Invalid authentication credentials")

    user = db.get(User, user_id)
    if user is None:
        raise Unauthorized("Not authorized, user not found")
    return user

def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db)
) -> User:
    """Retrieve the current authenticated user from the bearer token."""
    if credentials is None:
        raise Unauthorized("Not authorized, no token")
    return _user_from_credentials(credentials, db)

def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db)
) -> Optional[User]:
    """Like get_current_user, but anonymous callers get None instead of a 401."""
    if credentials is None:
        return None
    return _user_from_credentials(credentials, db)

async def require_admin(
    current_user: User = Depends(get_current_user)
) -> User:
    """
    Dependency to require admin role for accessing protected routes.

    Usage:
    @router.delete("/{id}")
    def admin_only_route(user: User = Depends(require_admin)):
        ...
    """
    if current_user.role != UserRole.ADMIN:
        raise Forbidden("Not authorized as an admin")
    return current_user

async def require_verified(
    current_user: User = Depends(get_current_user)
) -> User:
    """Dependency to require an account that has completed OTP verification."""
    if not current_user.is_verified:
        raise Forbidden("Account not verified")
    return current_user

def require_roles(allowed_roles: list[UserRole]):
    """
    Dependency factory to require one of several roles.

    Usage:
    @router.post("/")
    def create(user: User = Depends(require_roles([UserRole.ADMIN, UserRole.HOSPITAL_ADMIN]))):
        ...
    """
    async def role_checker(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in allowed_roles:
            raise Forbidden(
                "Insufficient permissions. Required roles: " + ", ".join(role.value for role in allowed_roles)
            )
        return current_user
    return role_checker
