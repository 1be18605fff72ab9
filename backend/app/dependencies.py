"""
Shared API dependencies.
"""

from typing import Callable, Optional

from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from jose import ExpiredSignatureError, JWTError
from sqlalchemy.orm import Session

from app.core import security
from app.core.exceptions import Forbidden, Unauthorized
from app.database import get_db
from app.models.user import User, UserRole
from app.services.auth_service import AuthService
from app.services.dashboard_service import DashboardService
from app.services.rating_ledger import RatingLedger
from app.services.store_directory import StoreDirectory
from app.services.user_directory import UserDirectory

# auto_error is off so a missing token surfaces as our own Unauthorized
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/token", auto_error=False)


def _resolve_user(db: Session, token: str) -> User:
    try:
        payload = security.decode_access_token(token)
    except ExpiredSignatureError:
        raise Unauthorized("Token expired")
    except JWTError:
        raise Unauthorized("Invalid token")

    subject = payload.get("sub")
    try:
        user_id = int(subject)
    except (TypeError, ValueError):
        raise Unauthorized("Invalid token")

    user = AuthService(db).get_user_by_id(user_id)
    if user is None:
        raise Unauthorized("User no longer exists")
    return user


async def get_current_user(
    request: Request,
    db: Session = Depends(get_db),
    token: Optional[str] = Depends(oauth2_scheme),
) -> User:
    """
    Validate access token and return current user.
    """
    if not token:
        raise Unauthorized("Access token required")

    user = _resolve_user(db, token)
    request.state.user = user
    return user


async def get_optional_user(
    request: Request,
    db: Session = Depends(get_db),
    token: Optional[str] = Depends(oauth2_scheme),
) -> Optional[User]:
    """Current user when a valid token is sent, otherwise None."""
    if not token:
        return None
    try:
        user = _resolve_user(db, token)
    except Unauthorized:
        return None
    request.state.user = user
    return user


def require_role(*roles: UserRole) -> Callable:
    """Dependency factory rejecting callers whose role is not listed."""
    allowed = set(roles)

    async def check_role(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in allowed:
            raise Forbidden(
                "Insufficient permissions",
                details={
                    "required": sorted(role.value for role in allowed),
                    "current": current_user.role.value,
                },
            )
        return current_user

    return check_role


# --- Components, one set per request ---


def get_auth_service(db: Session = Depends(get_db)) -> AuthService:
    return AuthService(db)


def get_rating_ledger(db: Session = Depends(get_db)) -> RatingLedger:
    return RatingLedger(db)


def get_store_directory(db: Session = Depends(get_db)) -> StoreDirectory:
    return StoreDirectory(db)


def get_user_directory(db: Session = Depends(get_db)) -> UserDirectory:
    return UserDirectory(db)


def get_dashboard_service(db: Session = Depends(get_db)) -> DashboardService:
    return DashboardService(db)
