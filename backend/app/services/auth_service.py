"""
Authentication Service.

Registration, the one-time admin bootstrap, login and password changes.
"""

import hmac
import logging
from typing import Any, Dict, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.config import settings
from app.core import security
from app.core.exceptions import (
    Conflict,
    Forbidden,
    InvalidCredentials,
    ValidationError,
)
from app.core.validators import (
    check_password,
    clean_address,
    clean_email,
    clean_name,
    clean_role,
    is_strong_password,
    is_valid_email,
    require_fields,
)
from app.models.user import User, UserRole

logger = logging.getLogger(__name__)


class AuthService:
    def __init__(self, db: Session):
        self.db = db

    # --- Lookups (credential store) ---

    def get_user_by_email(self, email: str) -> Optional[User]:
        """Get a user by email, case-insensitively."""
        return (
            self.db.query(User)
            .filter(User.email == email.strip().lower())
            .first()
        )

    def get_user_by_id(self, user_id: int) -> Optional[User]:
        return self.db.query(User).filter(User.id == user_id).first()

    def admin_exists(self) -> bool:
        return (
            self.db.query(User.id).filter(User.role == UserRole.ADMIN).first()
            is not None
        )

    # --- Account creation ---

    def register(
        self,
        name: Optional[str],
        email: Optional[str],
        password: Optional[str],
        address: Optional[str],
    ) -> User:
        """Create a standard user."""
        return self.create_user(name, email, password, address, UserRole.USER)

    def bootstrap_admin(
        self,
        name: Optional[str],
        email: Optional[str],
        password: Optional[str],
        address: Optional[str],
        secret: Optional[str],
    ) -> User:
        """
        Create the first administrator.

        Only allowed while no admin exists, and only with the configured
        bootstrap secret.
        """
        if self.admin_exists():
            logger.warning("Admin bootstrap refused: an admin already exists")
            raise Conflict("An admin user already exists in the system")

        expected = settings.ADMIN_BOOTSTRAP_SECRET.encode("utf-8")
        provided = (secret or "").encode("utf-8")
        if not hmac.compare_digest(expected, provided):
            logger.warning("Admin bootstrap refused: invalid secret")
            raise Forbidden("Invalid admin secret")

        user = self.create_user(name, email, password, address, UserRole.ADMIN)

        # Racing bootstraps: only the lowest admin id keeps its account
        first_admin_id = (
            self.db.query(func.min(User.id))
            .filter(User.role == UserRole.ADMIN)
            .scalar()
        )
        if first_admin_id != user.id:
            logger.warning(
                f"Admin bootstrap lost a race: id={user.id} removed, "
                f"admin id={first_admin_id} kept"
            )
            self.db.delete(user)
            self.db.commit()
            raise Conflict("An admin user already exists in the system")

        logger.info(f"Bootstrap admin created: id={user.id} email={user.email}")
        return user

    def create_user(
        self,
        name: Optional[str],
        email: Optional[str],
        password: Optional[str],
        address: Optional[str],
        role: Any,
    ) -> User:
        """Validate and persist a user with the given role."""
        require_fields(name=name, email=email, password=password, address=address)
        name = clean_name(name)
        email = clean_email(email)
        check_password(password)
        address = clean_address(address)
        if role is None:
            raise ValidationError("Role is required")
        role = clean_role(role)

        if self.get_user_by_email(email):
            raise Conflict("An account with this email address already exists")

        user = User(
            name=name,
            email=email,
            hashed_password=security.get_password_hash(password),
            address=address,
            role=role,
        )
        self.db.add(user)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise Conflict("An account with this email address already exists")
        self.db.refresh(user)

        logger.info(f"User created: id={user.id} email={user.email} role={role.value}")
        return user

    # --- Sessions ---

    def authenticate_user(self, email: str, password: str) -> Optional[User]:
        """Authenticate a user by email and password."""
        user = self.get_user_by_email(email)
        if not user:
            return None
        if not security.verify_password(password, user.hashed_password):
            return None
        return user

    def login(self, email: Optional[str], password: Optional[str]) -> Dict[str, Any]:
        """
        Check credentials and issue a token.

        Unknown email and wrong password fail identically.
        """
        if not email or not password:
            raise ValidationError("Email and password are required")
        if not is_valid_email(email.strip().lower()):
            raise ValidationError("Please provide a valid email address")

        user = self.authenticate_user(email, password)
        if user is None:
            logger.info("Login failed")
            raise InvalidCredentials()

        logger.info(f"Login successful: id={user.id} role={user.role.value}")
        return {"token": self.create_user_token(user), "user": user}

    def create_user_token(self, user: User) -> str:
        """Create access token for user."""
        return security.create_access_token(user.id, user.role.value)

    def update_password(
        self,
        user: User,
        current_password: Optional[str],
        new_password: Optional[str],
    ) -> None:
        """Self-service password change for non-admin users."""
        if user.role == UserRole.ADMIN:
            raise Forbidden("Admins cannot update password via this endpoint")
        if not current_password or not new_password:
            raise ValidationError("Current password and new password are required")
        if not is_strong_password(new_password):
            raise ValidationError(
                "New password must be 8-16 characters with at least one "
                "uppercase letter and one special character"
            )

        if not security.verify_password(current_password, user.hashed_password):
            raise ValidationError("Current password is incorrect")

        user.hashed_password = security.get_password_hash(new_password)
        self.db.commit()
        logger.info(f"Password updated for user {user.id}")
